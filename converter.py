"""
Command-line entry point for converting NRRD volumes into plane stacks
(multi-page TIFF, per-plane "scroll" TIFF/PNG, NIfTI) or re-encoding them
as NRRD with another payload encoding.

Example
  python converter.py ^
    --input_path D:\\scans\\brain.nrrd ^
    --output_path D:\\scans\\exports ^
    --output_type Scroll-Png ^
    --print-header

A directory input converts every ``.nrrd`` file in it. Files that fail to
decode are logged and skipped unless ``--fail-fast`` is given.
"""

import argparse
import logging
import sys
from pathlib import Path
from tqdm import tqdm

from nrrdio import FileWriter, NrrdReader, OUTPUT_CHOICES, TYPE_MAP, collect_volume_metadata, gather_nrrd_files
from nrrdio.errors import NrrdError
from nrrdio.nrrd_types import ENCODING_NAMES

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)

def parse_args(argv=None):
    """Parse CLI arguments describing the input volume and desired outputs.

    Returns:
        argparse.Namespace: Parsed flags including input/output paths,
            output type, NRRD encoding, and memory limit.
    """
    parser = argparse.ArgumentParser(description="Convert NRRD volumes into plane stacks or re-encoded NRRD.")

    parser.add_argument("--input_path", type=str, required=True, help="Input .nrrd file or directory of .nrrd files")
    parser.add_argument("--output_path", type=str, required=True, help="Output directory for result files")
    parser.add_argument("--output_type", type=str, required=True, choices=OUTPUT_CHOICES,
                        help="Specify the output format: Tif, Scroll-Tif, Nifti, Scroll-Png, Nrrd.")

    # NRRD options
    parser.add_argument("--encoding", type=str, default="gzip", choices=sorted(ENCODING_NAMES),
                        help="Payload encoding for Nrrd output")

    parser.add_argument("--print-header", action="store_true",
                        help="Print the parsed header of each input file")
    parser.add_argument("--fail-fast", action="store_true",
                        help="Stop at the first file that fails instead of skipping it")

    # Memory limit
    parser.add_argument("--memory-limit", type=int, default=32,
                        help="Maximum memory (in GB) for a decoded volume")

    return parser.parse_args(argv)

def _write_single_volume(reader: NrrdReader, args, io_output_type: str) -> bool:
    """Write every plane into one TIFF or NIfTI volume.

    Args:
        reader (NrrdReader): Source volume reader.
        args (argparse.Namespace): Parsed CLI args.
        io_output_type (str): One of "single-tiff" or "single-nii".

    Returns:
        bool: True after writing.
    """
    writer = FileWriter(
        output_path=args.output_path,
        output_name=reader.volume_name,
        output_type=io_output_type,
        full_res_shape=reader.volume_shape,
        output_dtype=reader.volume_dtype,
    )

    arr = reader.read_volume()
    writer.write(arr, z_start=0, z_end=reader.volume_shape[0])
    del arr
    return True

def _write_scroll_slices(reader: NrrdReader, args, io_output_type: str) -> bool:
    """Emit one file per plane for scroll outputs.

    Args:
        reader (NrrdReader): Source volume reader.
        args (argparse.Namespace): Parsed CLI args.
        io_output_type (str): "scroll-tiff" or "scroll-png".

    Returns:
        bool: True after writing.
    """
    num_slices = reader.volume_shape[0]
    file_names = [Path(f"{reader.volume_name}_z{i:05d}") for i in range(num_slices)]

    writer = FileWriter(
        output_path=args.output_path,
        output_name=reader.volume_name,
        output_type=io_output_type,
        full_res_shape=reader.volume_shape,
        output_dtype=reader.volume_dtype,
        file_name=file_names,
    )

    arr = reader.read_volume()
    writer.write(arr, z_start=0, z_end=num_slices)
    del arr
    return True

def _write_nrrd(reader: NrrdReader, args) -> bool:
    """Re-encode the volume as NRRD with the requested payload encoding."""
    writer = FileWriter(
        output_path=args.output_path,
        output_name=reader.volume_name,
        output_type="nrrd",
        full_res_shape=reader.volume_shape,
        output_dtype=reader.volume_dtype,
        element_kind=reader.element_kind,
        encoding=ENCODING_NAMES[args.encoding],
    )

    arr = reader.read_volume()
    writer.write(arr, z_start=0, z_end=reader.volume_shape[0])
    del arr
    return True

def convert_file(input_file: Path, args, io_output_type: str) -> bool:
    """Read one NRRD file and write it in the requested output format."""
    logging.info(f"Converting {input_file}")
    reader = NrrdReader(input_file, memory_limit_gb=args.memory_limit)

    if args.print_header:
        print(reader.format_header())

    if io_output_type in ["single-tiff", "single-nii"]:
        return _write_single_volume(reader, args, io_output_type)
    if io_output_type in ["scroll-tiff", "scroll-png"]:
        return _write_scroll_slices(reader, args, io_output_type)
    if io_output_type == "nrrd":
        return _write_nrrd(reader, args)

    logging.error(f"Unsupported output_type: {io_output_type}")
    return False

def _input_files(input_path: Path) -> list[Path]:
    """Resolve the input argument into the list of files to convert."""
    if input_path.is_dir():
        files = gather_nrrd_files(input_path)
        if not files:
            raise FileNotFoundError(f"No .nrrd files found in {input_path}")
        return files
    return [input_path]

def main(argv=None) -> int:
    """Entry point that orchestrates reading, conversion, and writing.

    Returns:
        int: Process exit status; 1 when any input failed.
    """
    args = parse_args(argv)

    logging.info("Starting conversion process.")
    logging.info(f"Input path: {args.input_path}")
    logging.info(f"Output path: {args.output_path}")
    logging.info(f"Output type: {args.output_type}")
    logging.info(f"Memory limit: {args.memory_limit} GB")

    io_output_type = TYPE_MAP.get(args.output_type)
    if io_output_type is None:
        logging.error(f"Unsupported output_type: {args.output_type}")
        return 1

    try:
        files = _input_files(Path(args.input_path))
    except FileNotFoundError as e:
        logging.error(str(e))
        return 1

    if args.fail_fast and len(files) > 1:
        # Validate every header before writing anything
        try:
            collect_volume_metadata(files)
        except NrrdError as e:
            logging.error(f"Header check failed: {e}")
            return 1

    # Ensure output directory exists
    Path(args.output_path).mkdir(parents=True, exist_ok=True)

    failed: list[Path] = []
    for input_file in tqdm(files, desc="Converting", disable=len(files) < 2):
        try:
            ok = convert_file(input_file, args, io_output_type)
        except (NrrdError, MemoryError, OSError, ValueError) as e:
            logging.error(f"Failed to convert {input_file}: {e}")
            if args.fail_fast:
                return 1
            failed.append(input_file)
            continue
        if not ok:
            failed.append(input_file)

    if failed:
        logging.warning(f"{len(failed)} of {len(files)} files failed: {', '.join(f.name for f in failed)}")
        return 1

    logging.info("Conversion complete.")
    return 0

if __name__ == "__main__":
    sys.exit(main())
