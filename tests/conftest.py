from __future__ import annotations

import io

import numpy as np
import pytest


def nrrd_bytes(fields: dict[str, str] | list[str], payload: bytes = b"", magic: str = "NRRD0004") -> bytes:
    """Assemble an NRRD file by hand: magic, header lines, blank line, payload.

    ``fields`` may be a mapping (rendered as ``key: value``) or a list of raw
    header lines, which lets tests inject comments and malformed lines.
    """
    if isinstance(fields, dict):
        lines = [f"{key}: {value}" for key, value in fields.items()]
    else:
        lines = list(fields)
    text = "\n".join([magic] + lines) + "\n\n"
    return text.encode("latin-1") + payload


def volume_fields(sizes=(2, 3, 4), type_name="short", encoding="raw") -> dict[str, str]:
    return {
        "type": type_name,
        "dimension": str(len(sizes)),
        "sizes": " ".join(str(s) for s in sizes),
        "encoding": encoding,
    }


@pytest.fixture
def make_stream():
    """Build a BytesIO holding a hand-made NRRD file."""

    def _make(fields, payload=b"", magic="NRRD0004"):
        return io.BytesIO(nrrd_bytes(fields, payload, magic))

    return _make


@pytest.fixture
def volume():
    """A (slices, width, height) = (2, 3, 4) int16 stack with distinct values."""
    return np.arange(2 * 3 * 4, dtype=np.int16).reshape(2, 3, 4) * 7 - 40
