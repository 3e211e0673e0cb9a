"""Utilities for writing decoded plane stacks to TIFF, NIfTI, PNG, and NRRD outputs."""
import logging
import numpy as np
import tifffile
import nibabel as nib
import imageio.v3 as iio

from pathlib import Path

from .nrrd_types import Codec, ElementKind
from .writer_tools import normalize_to_uint8, write_nrrd

# Set up module-level logger
logger = logging.getLogger(__name__)


class FileWriter:
    """Handle writing plane stacks to the supported output formats.

    Blocks passed to ``write`` are stacks shaped ``(dz, width, height)``
    as produced by ``NrrdReader.read_volume``.

    Supports:
      - Single multi-page TIFF volumes and per-plane "scroll" TIFFs
      - Single NIfTI volumes
      - Per-plane 8-bit PNG previews (min-max normalized)
      - NRRD re-encoding with a chosen codec
    """

    def __init__(
        self,
        output_path,
        output_name,
        output_type,
        full_res_shape,
        output_dtype,
        file_name=None,
        element_kind=None,
        encoding=Codec.GZIP,
    ):
        """Create and initialize a writer for the desired output.

        Args:
            output_path (str | Path): Directory where outputs are written.
            output_name (str): Base name used to form output file names.
            output_type (str): One of: 'single-tiff', 'scroll-tiff',
                'single-nii', 'scroll-png', 'nrrd'.
            full_res_shape (tuple[int,int,int]): ``(slices, width, height)``.
            output_dtype (np.dtype | str): Output dtype for TIFF/NIfTI.
            file_name (list[Path] | None): For scroll outputs, the per-plane base names.
            element_kind (ElementKind | None): Element type for NRRD output.
            encoding (Codec): Payload codec for NRRD output.
        """
        self.output_path = Path(output_path)
        self.output_name = output_name
        self.output_type = output_type
        self.full_res_shape = tuple(full_res_shape)
        self.output_dtype = np.dtype(output_dtype)
        self.file_name = file_name
        self.element_kind = element_kind
        self.encoding = encoding

        logger.info(f"Initialized FileWriter with output: {self.output_path}")

        handler = self._output_initializers().get(self.output_type)
        if handler is None:
            raise ValueError(f"Unknown output_type: {self.output_type}")
        handler()

    def write(self, array: np.ndarray, z_start=0, z_end=None) -> None:
        """Write a block of planes to the configured destination.

        Args:
            array (np.ndarray): Input block shaped ``(dz, width, height)``.
            z_start (int): Inclusive plane index of the block.
            z_end (int | None): Exclusive plane index; defaults to slice count.
        """
        z0, z1 = z_start, self.full_res_shape[0] if z_end is None else z_end
        if array.shape[0] != z1 - z0:
            raise ValueError(f"Block has {array.shape[0]} planes but range z: {z0} - {z1} was given")

        logger.info(f"Writing planes z: {z0} - {z1}")
        handler = self._write_handlers()[self.output_type]
        handler(array, z0, z1)

    def _write_handlers(self):
        """Dispatch table matching output types to write implementations."""
        return {
            'single-tiff': self._write_single_tiff,
            'scroll-tiff': self._write_scroll_tiff,
            'single-nii': self._write_single_nii,
            'scroll-png': self._write_scroll_png,
            'nrrd': self._write_nrrd,
        }

    def _write_single_tiff(self, array: np.ndarray, z0: int, z1: int) -> None:
        """Persist the supplied block as a multi-page TIFF file."""
        output_path = self.output_path / f"{self.output_name}_z{z0}-{z1}.tiff"
        tifffile.imwrite(output_path, array.astype(self.output_dtype))

    def _write_scroll_tiff(self, array: np.ndarray, z0: int, z1: int) -> None:
        """Write per-plane TIFF files for scroll outputs."""
        for idx, file_path in enumerate(self.output_file_path[z0:z1]):
            tifffile.imwrite(file_path, array[idx].astype(self.output_dtype))

    def _write_single_nii(self, array: np.ndarray, z0: int, z1: int) -> None:
        """Persist a NIfTI volume; array axes follow the NRRD size vector."""
        nii_img = nib.Nifti1Image(array.astype(self.output_dtype), affine=np.eye(4))
        output_path = self.output_path / f"{self.output_name}_z{z0}-{z1}.nii.gz"
        nib.save(nii_img, output_path)

    def _write_scroll_png(self, array: np.ndarray, z0: int, z1: int) -> None:
        """Write per-plane 8-bit PNG previews, each normalized to its own range."""
        for idx, file_path in enumerate(self.output_file_path[z0:z1]):
            iio.imwrite(file_path, normalize_to_uint8(array[idx]))

    def _write_nrrd(self, array: np.ndarray, z0: int, z1: int) -> None:
        """Re-encode the full volume as a single NRRD file."""
        if (z0, z1) != (0, self.full_res_shape[0]):
            raise ValueError("NRRD output must be written as a single full-volume block")
        with open(self.output_file_path, "wb") as fh:
            nbytes = write_nrrd(fh, array, self.element_kind, self.encoding)
        logger.info(f"Wrote {nbytes} bytes to {self.output_file_path}")

    def _output_initializers(self):
        """Return a mapping from output type to initialisation callable."""
        return {
            'single-tiff': self._initialize_single,
            'scroll-tiff': self._initialize_scroll_tiff,
            'single-nii': self._initialize_single,
            'scroll-png': self._initialize_scroll_png,
            'nrrd': self._initialize_nrrd,
        }

    def _initialize_single(self) -> None:
        """Ensure the output directory exists for single-volume exports."""
        self.output_path.mkdir(parents=True, exist_ok=True)

    def _initialize_scroll_tiff(self) -> None:
        """Prepare paths for per-plane TIFF scroll outputs."""
        self.output_path = self.output_path / f"{self.output_name}.scroll-tif"
        self.output_path.mkdir(parents=True, exist_ok=True)

        self.output_file_path = [self.output_path / f"{name.stem}.tiff" for name in self._scroll_names()]

    def _initialize_scroll_png(self) -> None:
        """Prepare paths for per-plane PNG scroll outputs."""
        self.output_path = self.output_path / f"{self.output_name}.scroll-png"
        self.output_path.mkdir(parents=True, exist_ok=True)

        self.output_file_path = [self.output_path / f"{name.stem}.png" for name in self._scroll_names()]

    def _initialize_nrrd(self) -> None:
        """Validate NRRD settings and prepare the output file path."""
        if not isinstance(self.element_kind, ElementKind):
            raise ValueError("element_kind is required for NRRD output")
        if not isinstance(self.encoding, Codec):
            raise ValueError(f"Unknown encoding: {self.encoding}")
        self.output_path.mkdir(parents=True, exist_ok=True)
        self.output_file_path = self.output_path / f"{self.output_name}.nrrd"

    def _scroll_names(self) -> list[Path]:
        """Per-plane base names, defaulting to ``<name>_z00000`` style."""
        if self.file_name is not None:
            return [Path(n) for n in self.file_name]
        return [Path(f"{self.output_name}_z{i:05d}") for i in range(self.full_res_shape[0])]
