from __future__ import annotations

import gzip

import numpy as np
import pytest

from conftest import nrrd_bytes, volume_fields
from nrrdio import NrrdReader, collect_volume_metadata, format_header, gather_nrrd_files
from nrrdio.errors import FileUnreadable, InvalidMagic, UnsupportedType
from nrrdio.nrrd_types import Codec, ElementKind
from nrrdio.writer_tools import flatten_planes


def _write(path, volume, type_name="short", encoding="raw", extra=None):
    payload = flatten_planes(volume).astype(volume.dtype).tobytes()
    if encoding in ("gzip", "gz"):
        payload = gzip.compress(payload)
    fields = volume_fields(volume.shape, type_name, encoding)
    fields.update(extra or {})
    path.write_bytes(nrrd_bytes(fields, payload))
    return path


def test_reader_exposes_header_metadata(tmp_path, volume):
    path = _write(tmp_path / "brain.nrrd", volume, encoding="gzip", extra={"space": "left-posterior-superior"})
    reader = NrrdReader(path)

    assert reader.volume_name == "brain"
    assert reader.volume_shape == (2, 3, 4)
    assert reader.sizes == [2, 3, 4]
    assert reader.element_kind is ElementKind.INT16
    assert reader.codec is Codec.GZIP
    assert reader.volume_dtype == np.int32
    assert reader.header["space"] == "left-posterior-superior"
    assert reader.metadata.shape == (2, 3, 4)
    assert reader.metadata.size_gb == pytest.approx(24 * 4 / 1024 ** 3)


def test_reader_read_returns_planes(tmp_path, volume):
    reader = NrrdReader(_write(tmp_path / "v.nrrd", volume, encoding="gzip"))
    planes = reader.read()
    assert len(planes) == 2
    np.testing.assert_array_equal(np.stack(planes), volume)
    # a second read decodes again from the stored payload offset
    np.testing.assert_array_equal(np.stack(reader.read()), volume)


def test_reader_read_volume_range(tmp_path, volume):
    reader = NrrdReader(_write(tmp_path / "v.nrrd", volume))
    block = reader.read_volume(z_start=1, z_end=2)
    assert block.shape == (1, 3, 4)
    np.testing.assert_array_equal(block[0], volume[1])
    assert reader.read_volume(2, 2).shape == (0, 3, 4)


def test_reader_missing_file(tmp_path):
    with pytest.raises(FileUnreadable):
        NrrdReader(tmp_path / "missing.nrrd")


def test_reader_surfaces_header_errors(tmp_path, volume):
    path = tmp_path / "bad.nrrd"
    path.write_bytes(nrrd_bytes(volume_fields(volume.shape), magic="P5"))
    with pytest.raises(InvalidMagic):
        NrrdReader(path)

    path.write_bytes(nrrd_bytes(volume_fields(volume.shape, type_name="double")))
    with pytest.raises(UnsupportedType):
        NrrdReader(path)


def test_reader_memory_limit(tmp_path, volume):
    reader = NrrdReader(_write(tmp_path / "v.nrrd", volume), memory_limit_gb=0)
    with pytest.raises(MemoryError):
        reader.read()


def test_format_header_lists_every_field():
    text = format_header({"type": "short", "sizes": "1 2 3"})
    assert text.splitlines() == ["header info:", '  "type" : short', '  "sizes" : 1 2 3']


def test_gather_and_collect_metadata(tmp_path, volume):
    _write(tmp_path / "b.nrrd", volume)
    _write(tmp_path / "a.nrrd", volume[:1].astype(np.uint8), type_name="unsigned char")
    (tmp_path / "notes.txt").write_text("not a volume")

    files = gather_nrrd_files(tmp_path)
    assert [f.name for f in files] == ["a.nrrd", "b.nrrd"]

    metadata = collect_volume_metadata(files)
    assert [m.shape for m in metadata] == [(1, 3, 4), (2, 3, 4)]
    assert all(m.dtype == np.int32 for m in metadata)


def test_collect_metadata_propagates_errors(tmp_path, volume):
    good = _write(tmp_path / "good.nrrd", volume)
    bad = tmp_path / "bad.nrrd"
    bad.write_bytes(b"NOPE\n\n")
    with pytest.raises(InvalidMagic):
        collect_volume_metadata([good, bad])
