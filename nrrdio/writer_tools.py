"""Encoding helpers used by ``nrrdio.writer.FileWriter``.

The NRRD encoder here is the inverse of ``nrrdio.reader_tools``: planes are
interleaved back into the slice-fastest flat layout, encoded with the
requested codec, and prefixed with a header naming that codec.
"""
import bz2
import gzip
import logging
import numpy as np

from .nrrd_types import NRRD_VERSION, Codec, ElementKind

# Set up module-level logger
logger = logging.getLogger(__name__)


def flatten_planes(planes) -> np.ndarray:
    """Interleave ``(width, height)`` planes into the slice-fastest flat layout.

    Inverse of ``reader_tools.reshape``: the plane ``i`` value at ``[j, k]``
    lands at offset ``(k * width + j) * slice_count + i``.

    Args:
        planes (Sequence[np.ndarray] | np.ndarray): Planes or a stacked
            ``(slices, width, height)`` array.

    Returns:
        np.ndarray: 1D array in file order.
    """
    volume = np.asarray(planes)
    if volume.ndim == 2:
        volume = volume[np.newaxis, ...]
    if volume.ndim != 3:
        raise ValueError(f"Expected a stack of 2D planes, got shape {volume.shape}")
    return np.transpose(volume, (2, 1, 0)).reshape(-1)


def _format_text(flat: np.ndarray, element_kind: ElementKind) -> bytes:
    """Render elements one per line as decimal text."""
    if element_kind.is_integer:
        lines = [str(int(v)) for v in flat]
    else:
        lines = [repr(float(v)) for v in flat]
    return ("\n".join(lines) + "\n").encode("ascii")


def encode_payload(flat: np.ndarray, codec: Codec, element_kind: ElementKind) -> bytes:
    """Encode a flat buffer with ``codec`` as elements of ``element_kind``.

    Values are cast to the element dtype in host-native byte order.
    """
    flat = np.asarray(flat)
    if element_kind.is_integer and not np.issubdtype(flat.dtype, np.integer):
        flat = np.rint(flat)
    if np.issubdtype(flat.dtype, np.integer) and element_kind.is_integer:
        info = np.iinfo(element_kind.dtype)
        if flat.size and (flat.min() < info.min or flat.max() > info.max):
            raise ValueError(f"Values out of range for {element_kind.value}: [{flat.min()}, {flat.max()}]")
    typed = flat.astype(element_kind.dtype)

    if codec is Codec.TEXT:
        # inf/nan have no decimal spelling the reader accepts
        if not element_kind.is_integer and not np.isfinite(typed).all():
            raise ValueError(f"Text encoding requires finite values for {element_kind.value}")
        return _format_text(typed, element_kind)

    raw = typed.tobytes()
    if codec is Codec.RAW:
        return raw
    if codec is Codec.GZIP:
        return gzip.compress(raw)
    if codec is Codec.BZIP2:
        return bz2.compress(raw)
    raise ValueError(f"Unknown codec: {codec}")


def format_header_text(sizes, element_kind: ElementKind, codec: Codec, extra_fields=None) -> bytes:
    """Build the header block, terminating blank line included.

    Args:
        sizes (Sequence[int]): Size vector written to ``sizes``.
        element_kind (ElementKind): Written to ``type``.
        codec (Codec): Written to ``encoding``.
        extra_fields (dict[str, str] | None): Additional fields appended after
            the required ones; required keys here are ignored.
    """
    fields = {
        "type": element_kind.value,
        "dimension": str(len(sizes)),
        "sizes": " ".join(str(int(s)) for s in sizes),
        "encoding": codec.value,
    }
    for key, value in (extra_fields or {}).items():
        if key not in fields:
            fields[key] = str(value)

    lines = [NRRD_VERSION]
    lines += [f"{key}: {value}" for key, value in fields.items()]
    return ("\n".join(lines) + "\n\n").encode("latin-1")


def write_nrrd(stream, planes, element_kind: ElementKind, codec: Codec, extra_fields=None) -> int:
    """Write ``planes`` to ``stream`` as a complete NRRD file.

    Returns:
        int: Number of bytes written.
    """
    volume = np.asarray(planes)
    if volume.ndim == 2:
        volume = volume[np.newaxis, ...]
    header = format_header_text(volume.shape, element_kind, codec, extra_fields)
    payload = encode_payload(flatten_planes(volume), codec, element_kind)
    stream.write(header)
    stream.write(payload)
    logger.debug(f"Wrote NRRD {volume.shape} {element_kind.value}/{codec.value}: {len(header) + len(payload)} bytes")
    return len(header) + len(payload)


def normalize_to_uint8(plane: np.ndarray) -> np.ndarray:
    """Min-max scale a plane to ``[0, 255]`` and convert to ``uint8``.

    A constant plane maps to zeros.
    """
    arr = np.asarray(plane, dtype=np.float64)
    lo, hi = float(arr.min()), float(arr.max())
    if hi - lo <= np.finfo(np.float64).eps:
        return np.zeros(arr.shape, dtype=np.uint8)
    scaled = (arr - lo) * (255.0 / (hi - lo))
    return np.rint(scaled).astype(np.uint8)
