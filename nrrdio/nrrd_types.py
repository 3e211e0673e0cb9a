"""Type definitions and constants shared across NRRD IO components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import numpy as np

from .errors import UnsupportedEncoding, UnsupportedType


class ElementKind(Enum):
    """Numeric type of a single payload element."""

    UINT8 = "unsigned char"
    INT16 = "short"
    FLOAT32 = "float"

    @property
    def dtype(self) -> np.dtype:
        """Host-native NumPy dtype used to reinterpret payload bytes."""
        return np.dtype(_ELEMENT_DTYPES[self])

    @property
    def width(self) -> int:
        """Element width in bytes."""
        return self.dtype.itemsize

    @property
    def plane_dtype(self) -> np.dtype:
        """Storage dtype of the output planes (integers widen to int32)."""
        return np.dtype(np.float32 if self is ElementKind.FLOAT32 else np.int32)

    @property
    def is_integer(self) -> bool:
        return self is not ElementKind.FLOAT32


class Codec(Enum):
    """Payload encoding scheme."""

    GZIP = "gzip"
    BZIP2 = "bzip2"
    RAW = "raw"
    TEXT = "text"


_ELEMENT_DTYPES: dict[ElementKind, type] = {
    ElementKind.UINT8: np.uint8,
    ElementKind.INT16: np.int16,
    ElementKind.FLOAT32: np.float32,
}

@dataclass(frozen=True)
class VolumeMetadata:
    """Describe a volume's shape, dtype, and estimated size in GiB.

    Attributes:
        shape (tuple[int,int,int]): (slices, width, height) plane stack shape.
        dtype (np.dtype): Plane storage dtype.
        size_gb (float): Estimated in-memory size in GiB.
    """

    shape: tuple[int, int, int]
    dtype: np.dtype
    size_gb: float

NRRD_MAGIC: str = "NRRD"
"""Marker every NRRD file starts with (followed by an optional version)."""

NRRD_VERSION: str = "NRRD0004"
"""Magic line emitted by the writer."""

REQUIRED_FIELDS: tuple[str, ...] = ("dimension", "type", "encoding", "sizes")
"""Header fields that must be present, in the order they are checked."""

TYPE_NAMES: dict[str, ElementKind] = {
    "unsigned char": ElementKind.UINT8,
    "unsigned int": ElementKind.INT16,
    "short": ElementKind.INT16,
    "int16": ElementKind.INT16,
    "float": ElementKind.FLOAT32,
}
"""Map header ``type`` values to element kinds."""

ENCODING_NAMES: dict[str, Codec] = {
    "gzip": Codec.GZIP,
    "gz": Codec.GZIP,
    "bzip2": Codec.BZIP2,
    "bz2": Codec.BZIP2,
    "raw": Codec.RAW,
    "txt": Codec.TEXT,
    "text": Codec.TEXT,
    "ascii": Codec.TEXT,
}
"""Map header ``encoding`` values to codecs."""

OUTPUT_CHOICES: tuple[str, ...] = (
    "Tif",
    "Scroll-Tif",
    "Nifti",
    "Scroll-Png",
    "Nrrd",
)
"""Human-friendly output selection labels exposed via the CLI."""

TYPE_MAP: dict[str, str] = {
    "Tif": "single-tiff",
    "Scroll-Tif": "scroll-tiff",
    "Nifti": "single-nii",
    "Scroll-Png": "scroll-png",
    "Nrrd": "nrrd",
}
"""Map UI labels to the internal writer keys used throughout the pipeline."""

VALID_SUFFIXES: tuple[str, ...] = (".nrrd",)
"""File suffixes that the reader is prepared to handle directly."""


def lookup_element_kind(name: str) -> ElementKind:
    """Resolve a header ``type`` value, raising ``UnsupportedType`` if unknown."""
    try:
        return TYPE_NAMES[name]
    except KeyError:
        raise UnsupportedType(name) from None


def lookup_codec(name: str) -> Codec:
    """Resolve a header ``encoding`` value, raising ``UnsupportedEncoding`` if unknown."""
    try:
        return ENCODING_NAMES[name]
    except KeyError:
        raise UnsupportedEncoding(name) from None


__all__ = [
    "ElementKind",
    "Codec",
    "VolumeMetadata",
    "NRRD_MAGIC",
    "NRRD_VERSION",
    "REQUIRED_FIELDS",
    "TYPE_NAMES",
    "ENCODING_NAMES",
    "OUTPUT_CHOICES",
    "TYPE_MAP",
    "VALID_SUFFIXES",
    "lookup_element_kind",
    "lookup_codec",
]
