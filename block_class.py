import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Tuple

from chain_config import MAGIC_BYTES
# Import the byte helpers for hashing and hex rendering
from utilities import double_sha256, bytes_to_hex
from chain_errors import InvalidMarkerError, MalformedPayloadError, TruncatedReadError

# Marker (4 bytes) + payload size (u32 LE)
PREFIX_FORMAT = "<4sI"
PREFIX_SIZE = struct.calcsize(PREFIX_FORMAT)

# version i32, prev hash, merkle hash, time u32, nbits u32, nonce u32
HEADER_FORMAT = "<i32s32sIII"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

TX_COUNT_FORMAT = "<I"
TX_COUNT_SIZE = struct.calcsize(TX_COUNT_FORMAT)

# Smallest payload that still holds a header and the entry count
MIN_PAYLOAD_SIZE = HEADER_SIZE + TX_COUNT_SIZE


@dataclass(frozen=True)
class BlockHeader:
    """The fixed 80-byte header at the front of every payload."""

    version: int
    prev_block_hash: bytes
    merkle_hash: bytes
    time: int
    nbits: int
    nonce: int

    def serialize(self) -> bytes:
        return struct.pack(
            HEADER_FORMAT,
            self.version,
            self.prev_block_hash,
            self.merkle_hash,
            self.time,
            self.nbits,
            self.nonce,
        )

    @property
    def hash(self) -> str:
        """Double SHA-256 of the header, byte-reversed the way block hashes are displayed."""
        return double_sha256(self.serialize())[::-1].hex()

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.time, tz=timezone.utc)

    def __str__(self):
        return format_header(self)


@dataclass(frozen=True)
class TransactionBlock:
    """Payload of a record: header, claimed entry count and the opaque entries."""

    block_header: BlockHeader
    tx_count: int
    tx_data: bytes

    def serialize(self) -> bytes:
        return (
            self.block_header.serialize()
            + struct.pack(TX_COUNT_FORMAT, self.tx_count)
            + self.tx_data
        )


@dataclass(frozen=True)
class ChainBlock:
    """One length-prefixed record as it sits in the block file."""

    magic_bytes: bytes
    size: int
    block: TransactionBlock

    @property
    def span(self) -> int:
        """Bytes the record occupies on disk; the next record starts this far ahead."""
        return PREFIX_SIZE + self.size

    @property
    def header(self) -> BlockHeader:
        return self.block.block_header

    def serialize(self) -> bytes:
        return struct.pack(PREFIX_FORMAT, self.magic_bytes, self.size) + self.block.serialize()


# --- Decoding ---

def parse_prefix(data: bytes, offset: int = 0, magic: bytes = MAGIC_BYTES) -> int:
    """
    Decode the 8-byte record prefix and return the declared payload size.
    `offset` is only used to report where a bad marker was found.
    """
    if len(data) < PREFIX_SIZE:
        raise TruncatedReadError(offset, PREFIX_SIZE, len(data))
    magic_bytes, size = struct.unpack_from(PREFIX_FORMAT, data, 0)
    if magic_bytes != magic:
        raise InvalidMarkerError(offset, magic_bytes)
    return size


def parse_header(data: bytes, offset: int = 0) -> BlockHeader:
    """Interpret 80 bytes at data[offset] as a block header. No field is validated."""
    version, prev_hash, merkle_hash, time, nbits, nonce = struct.unpack_from(
        HEADER_FORMAT, data, offset
    )
    return BlockHeader(version, prev_hash, merkle_hash, time, nbits, nonce)


def parse_transaction_block(payload: bytes) -> TransactionBlock:
    if len(payload) < MIN_PAYLOAD_SIZE:
        raise MalformedPayloadError(len(payload), MIN_PAYLOAD_SIZE)
    header = parse_header(payload)
    tx_count = struct.unpack_from(TX_COUNT_FORMAT, payload, HEADER_SIZE)[0]
    return TransactionBlock(header, tx_count, bytes(payload[MIN_PAYLOAD_SIZE:]))


def parse_block(data: bytes, offset: int = 0, magic: bytes = MAGIC_BYTES) -> Tuple[int, ChainBlock]:
    """
    Decode one complete record from an in-memory buffer.

    Returns (span, block) where span is the exact number of bytes the record
    took, so the following record starts at offset + span.
    """
    size = parse_prefix(data[:PREFIX_SIZE], offset, magic)
    payload = data[PREFIX_SIZE:PREFIX_SIZE + size]
    if len(payload) < size:
        raise TruncatedReadError(offset + PREFIX_SIZE, size, len(payload))
    block = ChainBlock(magic, size, parse_transaction_block(payload))
    return block.span, block


def build_block(header: BlockHeader, tx_data: bytes = b"", tx_count: int = 0,
                magic: bytes = MAGIC_BYTES) -> ChainBlock:
    """Assemble a record around a header, sizing the payload to fit."""
    body = TransactionBlock(header, tx_count, bytes(tx_data))
    return ChainBlock(magic, MIN_PAYLOAD_SIZE + len(tx_data), body)


# --- Display ---

def format_header(header: BlockHeader) -> str:
    return (
        f"Block version: {header.version},\n"
        f"Previous block hash: {bytes_to_hex(header.prev_block_hash)},\n"
        f"Merkle hash: {bytes_to_hex(header.merkle_hash)},\n"
        f"time: {header.time},\n"
        f"nbits: {header.nbits},\n"
        f"nonce: {header.nonce},\n"
    )


def format_summary(height: int, block: ChainBlock) -> str:
    header = block.header
    return (f"Block {height}: Hash={header.hash}, "
            f"Timestamp={header.timestamp.strftime('%Y-%m-%d %H:%M:%S')}, "
            f"Transactions={block.block.tx_count}, Size={block.size}")
