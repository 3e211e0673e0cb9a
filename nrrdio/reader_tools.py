"""Low-level NRRD helpers backing the high-level ``nrrdio.reader.NrrdReader``.

Implements the attached-header NRRD protocol end to end: a regex
tokenizer, the header parser and validator, the payload decoder for the
raw/gzip/bzip2/text encodings, and the reshaper that turns the flat
payload into a list of 2D planes. ``read_nrrd`` chains them for a single
already-open byte stream.
"""
import bz2
import gzip
import io
import logging
import math
import re
import zlib
import numpy as np

from .errors import (
    CorruptPayload,
    DimensionMismatch,
    FileUnreadable,
    InvalidMagic,
    MalformedField,
    MalformedToken,
    MissingField,
    NrrdError,
    TruncatedPayload,
    UnsupportedDimension,
)
from .nrrd_types import (
    NRRD_MAGIC,
    REQUIRED_FIELDS,
    Codec,
    ElementKind,
    lookup_codec,
    lookup_element_kind,
)

# Initialize logging
logger = logging.getLogger(__name__)

VALUE_PATTERN = re.compile(r"\s*:\s*")
SIZES_PATTERN = re.compile(r"\s+")

# Plain decimal numbers only: no underscores, no inf/nan, no hex
INT_TOKEN = re.compile(r"[+-]?[0-9]+")
FLOAT_TOKEN = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_READ_BLOCK = 1 << 20


# ——— Tokenizer ———

def _convert_token(token: str, func):
    """Apply ``func`` to a single token, mapping parse failures to ``MalformedToken``."""
    try:
        return func(token)
    except (TypeError, ValueError, OverflowError):
        raise MalformedToken(token) from None


def parse_int(token: str) -> int:
    """Parse a plain decimal integer token.

    Raises:
        ValueError: If ``token`` is not an optionally signed run of digits.
    """
    if not INT_TOKEN.fullmatch(token):
        raise ValueError(f"not a decimal integer: {token!r}")
    return int(token)


def parse_float32(token: str) -> float:
    """Parse a decimal float token that stays finite as a 32-bit float.

    Raises:
        ValueError: If ``token`` is not a plain decimal/exponent number or
            overflows ``float32``.
    """
    if not FLOAT_TOKEN.fullmatch(token):
        raise ValueError(f"not a decimal number: {token!r}")
    with np.errstate(over="ignore"):
        value = np.float32(float(token))
    if not np.isfinite(value):
        raise ValueError(f"{token} overflows float32")
    return float(value)


def split_tokens(text: str, pattern, func=None) -> list:
    """Split ``text`` on every match of ``pattern`` and convert each piece.

    Args:
        text (str): Line to split.
        pattern (str | re.Pattern): Delimiter regex.
        func (Callable[[str], T] | None): Conversion applied to each token;
            identity when ``None``.

    Returns:
        list[T]: Converted tokens in input order; empty for empty input.

    Raises:
        MalformedToken: If ``func`` rejects any token.
    """
    if not text:
        return []
    tokens = re.split(pattern, text)
    if func is None:
        return tokens
    return [_convert_token(token, func) for token in tokens]


# ——— Stream helpers ———

def _read_line(stream) -> bytes:
    """Read one raw line, mapping IO failures to ``FileUnreadable``."""
    try:
        return stream.readline()
    except OSError as e:
        raise FileUnreadable(e) from e


def _read_upto(stream, n: int) -> bytes:
    """Read up to ``n`` bytes, looping over short reads until EOF."""
    chunks = []
    remaining = n
    try:
        while remaining > 0:
            chunk = stream.read(min(remaining, _READ_BLOCK))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
    except OSError as e:
        raise FileUnreadable(e) from e
    return b"".join(chunks)


def _read_remaining(stream) -> bytes:
    try:
        return stream.read()
    except OSError as e:
        raise FileUnreadable(e) from e


def _strip_terminator(raw: bytes) -> str:
    """Decode a header line and drop its ``\\n`` / ``\\r\\n`` terminator."""
    line = raw.decode("latin-1")
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


# ——— Header ———

def check_magic(line: str) -> None:
    """Raise ``InvalidMagic`` unless ``line`` starts with the NRRD marker."""
    if line[:len(NRRD_MAGIC)] != NRRD_MAGIC:
        raise InvalidMagic(line)


def validate_header(header: dict[str, str]) -> None:
    """Check required fields and that ``dimension`` matches the ``sizes`` count.

    Raises:
        MissingField: When a required field is absent.
        MalformedToken: When ``dimension`` is not an integer.
        DimensionMismatch: When ``dimension`` disagrees with ``sizes``.
    """
    for key in REQUIRED_FIELDS:
        if key not in header:
            raise MissingField(key)

    dims = _convert_token(header["dimension"].strip(), parse_int)
    size = len(split_tokens(header["sizes"].strip(), SIZES_PATTERN))
    if dims != size:
        raise DimensionMismatch(dims, size)


def parse_header(stream) -> tuple[dict[str, str], int]:
    """Parse the text header of an NRRD stream.

    Reads the magic line, then ``key: value`` lines until the first blank
    line (or end of stream). Lines starting with ``#`` are skipped. A
    repeated key keeps its last value.

    Args:
        stream: Binary file-like object positioned at the start of the file.

    Returns:
        tuple[dict[str, str], int]: The header mapping and the stream
        position where the payload begins.
    """
    raw = _read_line(stream)
    check_magic(_strip_terminator(raw))

    header: dict[str, str] = {}
    while True:
        raw = _read_line(stream)
        if not raw:
            break
        row = _strip_terminator(raw)
        if not row:
            break
        if row.startswith("#"):
            continue

        token = split_tokens(row, VALUE_PATTERN)
        if len(token) != 2:
            raise MalformedField(row)
        header[token[0]] = token[1]

    validate_header(header)

    try:
        payload_offset = stream.tell()
    except OSError as e:
        raise FileUnreadable(e) from e

    logger.debug(f"Parsed header with {len(header)} fields, payload at byte {payload_offset}")
    return header, payload_offset


def parse_sizes(header: dict[str, str]) -> list[int]:
    """Return the size vector declared by the header's ``sizes`` field."""
    sizes = split_tokens(header["sizes"].strip(), SIZES_PATTERN, parse_int)
    for value in sizes:
        if value <= 0:
            raise MalformedToken(str(value))
    return sizes


def plane_layout(sizes: list[int]) -> tuple[int, int, int]:
    """Map a size vector onto ``(slice_count, width, height)``.

    A 2D size vector is read as a single plane.
    """
    if len(sizes) == 3:
        return sizes[0], sizes[1], sizes[2]
    if len(sizes) == 2:
        return 1, sizes[0], sizes[1]
    raise UnsupportedDimension(len(sizes))


# ——— Payload ———

def _parse_int_for(kind: ElementKind):
    """Build an int parser that rejects values outside the kind's range."""
    info = np.iinfo(kind.dtype)

    def parse(token: str) -> int:
        value = parse_int(token)
        if value < info.min or value > info.max:
            raise ValueError(f"{value} out of range for {kind.value}")
        return value

    return parse


def _decompress(stream, codec: Codec) -> bytes:
    """Decompress the rest of ``stream``.

    The compressed bytes are read first so that stream failures surface as
    ``FileUnreadable``; every error raised while inflating them in memory is
    a ``CorruptPayload``. The decompressor is always closed, the caller's
    stream never is.
    """
    compressed = io.BytesIO(_read_remaining(stream))
    try:
        if codec is Codec.GZIP:
            with gzip.GzipFile(fileobj=compressed, mode="rb") as fh:
                return fh.read()
        with bz2.BZ2File(compressed, mode="rb") as fh:
            return fh.read()
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptPayload(codec, e) from e


def _decode_text(stream, element_kind: ElementKind, element_count: int) -> np.ndarray:
    text = _read_remaining(stream).decode("latin-1")
    tokens = split_tokens(text.strip(), SIZES_PATTERN)
    if len(tokens) < element_count:
        raise TruncatedPayload(element_count, len(tokens))

    parse = _parse_int_for(element_kind) if element_kind.is_integer else parse_float32
    values = [_convert_token(token, parse) for token in tokens[:element_count]]
    return np.array(values, dtype=element_kind.dtype)


def decode(stream, codec: Codec, element_kind: ElementKind, element_count: int) -> np.ndarray:
    """Decode ``element_count`` elements of ``element_kind`` from ``stream``.

    Binary payloads are reinterpreted in host-native byte order; no
    endianness conversion is applied.

    Args:
        stream: Binary file-like object positioned at the payload.
        codec (Codec): Payload encoding.
        element_kind (ElementKind): Element type declared by the header.
        element_count (int): Number of elements to produce.

    Returns:
        np.ndarray: 1D array of ``element_kind.dtype`` owning its memory.

    Raises:
        TruncatedPayload: Fewer bytes (binary) or tokens (text) than required.
        CorruptPayload: The compressed stream is malformed.
        MalformedToken: A text token does not parse.
    """
    if codec is Codec.TEXT:
        return _decode_text(stream, element_kind, element_count)

    nbytes = element_count * element_kind.width
    if codec is Codec.RAW:
        data = _read_upto(stream, nbytes)
    else:
        data = _decompress(stream, codec)

    if len(data) < nbytes:
        raise TruncatedPayload(nbytes, len(data))

    return np.frombuffer(data, dtype=element_kind.dtype, count=element_count).copy()


# ——— Planes ———

def _storage_dtype(dtype: np.dtype) -> np.dtype:
    """Widen an element dtype to the plane storage dtype (int32 / float32 minimum)."""
    floor = np.int32 if np.issubdtype(dtype, np.integer) else np.float32
    return np.promote_types(dtype, floor)


def reshape(flat: np.ndarray, slice_count: int, width: int, height: int) -> list[np.ndarray]:
    """Split a flat payload into ``slice_count`` planes of shape ``(width, height)``.

    The slice index varies fastest in the flat buffer, then width, then
    height: ``plane[i][j, k] == flat[(k * width + j) * slice_count + i]``.

    Returns:
        list[np.ndarray]: Independent C-contiguous planes.
    """
    flat = np.asarray(flat)
    expected = slice_count * width * height
    if flat.size < expected:
        raise TruncatedPayload(expected, flat.size)

    dtype = _storage_dtype(flat.dtype)
    volume = flat.reshape(-1)[:expected].reshape(height, width, slice_count)
    return [np.array(volume[:, :, i].T, dtype=dtype, order="C") for i in range(slice_count)]


# ——— Entry point ———

def read_nrrd(stream) -> tuple[list[np.ndarray], dict[str, str]]:
    """Decode an NRRD byte stream into planes.

    Args:
        stream: Readable binary file-like object at the start of the file.

    Returns:
        tuple[list[np.ndarray], dict[str, str]]: The ordered planes and the
        parsed header.
    """
    try:
        header, _ = parse_header(stream)
        sizes = parse_sizes(header)
        slice_count, width, height = plane_layout(sizes)

        codec = lookup_codec(header["encoding"])
        element_kind = lookup_element_kind(header["type"])

        flat = decode(stream, codec, element_kind, math.prod(sizes))
        planes = reshape(flat, slice_count, width, height)
    except NrrdError as e:
        logger.error(f"Error in read_nrrd: {e}")
        raise

    return planes, header
