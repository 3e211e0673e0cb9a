"""Public NRRD package exports for readers, writers, and shared metadata.

Exposes the high-level ``NrrdReader``/``FileWriter`` classes, the
stream-level ``read_nrrd`` entry point, and common constants. Errors live
in ``nrrdio.errors``.
"""
from .errors import NrrdError
from .reader import NrrdReader, collect_volume_metadata, format_header, gather_nrrd_files
from .reader_tools import read_nrrd
from .writer import FileWriter
from .nrrd_types import Codec, ElementKind, OUTPUT_CHOICES, TYPE_MAP, VALID_SUFFIXES, VolumeMetadata

__all__ = [
    "NrrdReader",
    "NrrdError",
    "FileWriter",
    "read_nrrd",
    "format_header",
    "gather_nrrd_files",
    "collect_volume_metadata",
    "Codec",
    "ElementKind",
    "OUTPUT_CHOICES",
    "TYPE_MAP",
    "VALID_SUFFIXES",
    "VolumeMetadata",
]
