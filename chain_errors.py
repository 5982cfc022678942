"""
Exceptions raised while locating, decoding and indexing records in a block file.

Every failure is fatal for the operation that raised it. Heights cached before
a failure stay cached, so callers may keep using the same parser.
"""
from typing import Optional


class ChainError(Exception):
    """Base class for everything the block reader raises."""


class ChainFileError(ChainError):
    """The block file could not be opened for reading."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Cannot open block file '{path}': {reason}")


class MarkerNotFoundError(ChainError):
    """The file ended before the network marker was found."""

    def __init__(self, probed: int):
        self.probed = probed
        super().__init__(f"No record marker found after probing {probed} offsets")


class InvalidMarkerError(ChainError):
    def __init__(self, offset: int, found: bytes):
        self.offset = offset
        self.found = found
        super().__init__(f"Invalid record marker {found.hex()} at offset {offset}")


class TruncatedReadError(ChainError, EOFError):
    def __init__(self, offset: int, expected: int, available: int):
        self.offset = offset
        self.expected = expected
        self.available = available
        super().__init__(
            f"Expected {expected} bytes at offset {offset}, got {available} bytes"
        )


class EndOfChainError(TruncatedReadError):
    """
    No record starts at this boundary: either the file ends exactly here or the
    remaining bytes are zero padding.
    """


class MalformedPayloadError(ChainError, ValueError):
    def __init__(self, size: int, minimum: int):
        self.size = size
        self.minimum = minimum
        super().__init__(f"Payload of {size} bytes is shorter than the fixed {minimum} bytes")


class HeightNotFoundError(ChainError, LookupError):
    """The chain in this file is shorter than the requested height."""

    def __init__(self, height: int, last_height: Optional[int]):
        self.height = height
        self.last_height = last_height
        if last_height is None:
            detail = "the file holds no records"
        else:
            detail = f"the last record is at height {last_height}"
        super().__init__(f"Block {height} not present: {detail}")
