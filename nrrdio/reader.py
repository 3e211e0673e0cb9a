"""File-level NRRD reader and directory helpers.

High-level reader built on top of the low-level protocol helpers in
``nrrdio.reader_tools``. ``NrrdReader`` parses the header eagerly and
decodes the payload on demand; ``collect_volume_metadata`` inspects many
files concurrently without decoding their payloads.
"""
import logging
import math
import numpy as np

from pathlib import Path
from tqdm import tqdm
from concurrent.futures import ThreadPoolExecutor, as_completed

from .errors import FileUnreadable, NrrdError
from .nrrd_types import VALID_SUFFIXES, VolumeMetadata, lookup_codec, lookup_element_kind
from .reader_tools import decode, parse_header, parse_sizes, plane_layout, reshape


# Initialize logging
logger = logging.getLogger(__name__)


def _estimate_size_gb(shape: tuple, dtype: np.dtype) -> float:
    """Estimate in-memory size in GiB for an array of given shape and dtype."""
    return float(math.prod(shape) * np.dtype(dtype).itemsize / (1024 ** 3))


def _detect_suffix(path: Path) -> str:
    """Return a normalized suffix string for the given input path."""
    suffix = path.suffix.lower()
    if suffix not in VALID_SUFFIXES:
        return ''
    return suffix


def format_header(header: dict[str, str]) -> str:
    """Render a header mapping for display, one ``"key" : value`` line per field."""
    lines = ["header info:"]
    lines += [f'  "{key}" : {value}' for key, value in header.items()]
    return "\n".join(lines)


def gather_nrrd_files(directory) -> list[Path]:
    """Scan a directory for NRRD files, sorted by name."""
    directory = Path(directory)
    files: list[Path] = []
    for file in sorted(directory.iterdir()):
        if not file.is_file():
            continue
        if _detect_suffix(file) in VALID_SUFFIXES:
            files.append(file)
        else:
            logger.debug(f"Skipping non-NRRD file {file}")
    return files


class NrrdReader:
    """Load an NRRD volume from disk as a list of 2D planes.

    The header is parsed and validated on construction so that shape and
    dtype are known before the payload is touched. The payload is decoded
    by ``read`` / ``read_volume``.

    Args:
        input_path (str | Path): Path of the ``.nrrd`` file.
        memory_limit_gb (float): Soft cap on the decoded volume size.

    Attributes:
        header (dict[str, str]): Raw header fields.
        element_kind (ElementKind): Declared element type.
        codec (Codec): Declared payload encoding.
        sizes (list[int]): Size vector.
        volume_name (str): File stem.
        volume_shape (tuple[int,int,int]): ``(slices, width, height)``.
        volume_dtype (np.dtype): Plane storage dtype.
        payload_offset (int): Byte offset of the payload.
    """

    def __init__(self, input_path, memory_limit_gb=32):
        self.input_path = Path(input_path)
        self.memory_limit_bytes = memory_limit_gb * 1024 ** 3

        logger.info(f"Initializing NrrdReader with path: {self.input_path}")

        if not self.input_path.is_file():
            raise FileUnreadable(f"File not found. Given {self.input_path}")

        self.volume_name = self.input_path.stem

        with self._open() as fh:
            self.header, self.payload_offset = parse_header(fh)

        self.sizes: list[int] = parse_sizes(self.header)
        self.volume_shape: tuple[int, int, int] = plane_layout(self.sizes)
        self.codec = lookup_codec(self.header["encoding"])
        self.element_kind = lookup_element_kind(self.header["type"])
        self.volume_dtype: np.dtype = self.element_kind.plane_dtype

        logger.info(f"Volume name: {self.volume_name}")
        logger.info(f"Volume shape: {self.volume_shape}")
        logger.info(f"Volume dtype: {self.volume_dtype} ({self.element_kind.value}, {self.codec.value})")

    @property
    def metadata(self) -> VolumeMetadata:
        """Shape, dtype and estimated decoded size of the volume."""
        return VolumeMetadata(
            shape=self.volume_shape,
            dtype=self.volume_dtype,
            size_gb=_estimate_size_gb(self.volume_shape, self.volume_dtype),
        )

    def format_header(self) -> str:
        return format_header(self.header)

    def read(self) -> list[np.ndarray]:
        """Decode the payload and return every plane in slice order.

        Returns:
            list[np.ndarray]: ``slices`` arrays of shape ``(width, height)``.
        """
        self._check_memory()

        with self._open() as fh:
            try:
                fh.seek(self.payload_offset)
            except OSError as e:
                raise FileUnreadable(e) from e
            flat = decode(fh, self.codec, self.element_kind, math.prod(self.sizes))

        return reshape(flat, *self.volume_shape)

    def read_volume(self, z_start=0, z_end=None) -> np.ndarray:
        """Return planes ``z_start:z_end`` stacked as ``(dz, width, height)``.

        The whole payload is decoded; only the requested planes are kept.
        """
        z0, z1 = z_start, (self.volume_shape[0] if z_end is None else z_end)
        logger.info(f"Reading volume z: {z0} - {z1}")

        planes = self.read()[z0:z1]
        if not planes:
            return np.empty((0,) + tuple(self.volume_shape[1:]), dtype=self.volume_dtype)
        return np.stack(planes, axis=0)

    def _check_memory(self) -> None:
        """Raise ``MemoryError`` when the decoded volume would exceed the limit."""
        mem_limit = self.memory_limit_bytes / (1024 ** 3)
        needed = self.metadata.size_gb
        if needed > mem_limit:
            raise MemoryError(f"Need {needed:.2f}GiB but limit is {mem_limit:.2f}GiB")

    def _open(self):
        try:
            return open(self.input_path, "rb")
        except OSError as e:
            raise FileUnreadable(e) from e


def collect_volume_metadata(paths) -> list[VolumeMetadata]:
    """Gather per-file metadata concurrently from NRRD headers.

    Args:
        paths (Sequence[str | Path]): Files to inspect.

    Returns:
        list[VolumeMetadata]: One entry per input path, in input order.

    Raises:
        NrrdError: The first header failure encountered, annotated with the file.
    """
    paths = [Path(p) for p in paths]
    metadata: list[VolumeMetadata | None] = [None] * len(paths)

    def process(file: Path) -> VolumeMetadata:
        return NrrdReader(file).metadata

    with ThreadPoolExecutor() as executor:
        future_to_idx = {executor.submit(process, file): i for i, file in enumerate(paths)}

        with tqdm(total=len(future_to_idx), desc="Gathering volume info", leave=False) as pbar:
            for future in as_completed(future_to_idx):
                i = future_to_idx[future]
                try:
                    metadata[i] = future.result()
                except NrrdError as e:
                    logger.error(f"Error reading header of {paths[i].name}: {e}")
                    raise
                finally:
                    pbar.update(1)

    return [entry for entry in metadata if entry is not None]
