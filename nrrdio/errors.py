"""Error types raised while reading or decoding NRRD volumes.

Every failure is terminal for the file being read: callers receive one of
the ``NrrdError`` subclasses below and decide whether to abort or skip.
"""


class NrrdError(ValueError):
    """Base class for all NRRD read/decode failures."""


class FileUnreadable(NrrdError):
    """The input could not be opened or read."""

    def __init__(self, reason):
        self.reason = str(reason)
        super().__init__(f"File could not be read: {self.reason}")


class InvalidMagic(NrrdError):
    """The first line does not carry the NRRD magic marker."""

    def __init__(self, found: str):
        self.found = found
        super().__init__(f"Invalid NRRD magic string. Found {found!r}")


class MalformedField(NrrdError):
    """A header line is neither a comment nor a ``key: value`` pair."""

    def __init__(self, line: str):
        self.line = line
        super().__init__(f"Malformed header field: {line!r}")


class MissingField(NrrdError):
    """A required header field is absent."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Required field ({name}) not found")


class DimensionMismatch(NrrdError):
    """``dimension`` disagrees with the number of ``sizes`` tokens."""

    def __init__(self, expected: int, found: int):
        self.expected = expected
        self.found = found
        super().__init__(
            f"Mismatch between dimension and sizes: dimension={expected}, sizes has {found} entries"
        )


class UnsupportedDimension(NrrdError):
    """The volume rank cannot be mapped onto a sequence of 2D planes."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        super().__init__(f"Unsupported dimension {dimension}; expected 2 or 3")


class UnsupportedType(NrrdError):
    """The ``type`` field names an element type outside the supported set."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Data type not supported: {name!r}")


class UnsupportedEncoding(NrrdError):
    """The ``encoding`` field names a codec outside the supported set."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Encoding not supported: {name!r}")


class TruncatedPayload(NrrdError):
    """The payload holds fewer bytes (or text tokens) than ``sizes`` implies."""

    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(f"Truncated payload: expected {expected}, got {got}")


class CorruptPayload(NrrdError):
    """A compressed payload could not be decompressed."""

    def __init__(self, codec, reason):
        self.codec = codec
        self.reason = str(reason)
        super().__init__(f"Corrupt {getattr(codec, 'value', codec)} payload: {self.reason}")


class MalformedToken(NrrdError):
    """A numeric token failed to parse."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Malformed numeric token: {text!r}")


__all__ = [
    "NrrdError",
    "FileUnreadable",
    "InvalidMagic",
    "MalformedField",
    "MissingField",
    "DimensionMismatch",
    "UnsupportedDimension",
    "UnsupportedType",
    "UnsupportedEncoding",
    "TruncatedPayload",
    "CorruptPayload",
    "MalformedToken",
]
