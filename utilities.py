# --- Low-Level Byte Helpers ---
import hashlib
from typing import BinaryIO

from chain_errors import TruncatedReadError


def read_exact(f: BinaryIO, offset: int, n: int) -> bytes:
    """
    Read exactly n bytes from the file stream starting at an absolute offset.

    Raises TruncatedReadError if the file ends before n bytes are available,
    without allocating a buffer for a length the file cannot hold.
    Note: This function moves the file pointer.
    """
    end = f.seek(0, 2)
    if offset + n > end:
        raise TruncatedReadError(offset, n, max(end - offset, 0))
    f.seek(offset)
    data = f.read(n)
    if len(data) != n:
        raise TruncatedReadError(offset, n, len(data))
    return data


def deobfuscate_stream(data: bytes, key: bytes, key_offset: int) -> bytes:
    """
    Applies a repeating XOR key to the data, starting the key cycle at the
    position the data was read from in the file.
    An empty key leaves the data untouched.
    """
    if not key:
        return bytes(data)
    key_length = len(key)
    key_idx = key_offset % key_length
    result = bytearray(len(data))
    for i in range(len(data)):
        result[i] = data[i] ^ key[key_idx]
        key_idx = (key_idx + 1) % key_length
    return bytes(result)


def load_obfuscation_key(path: str) -> bytes:
    """Reads the XOR key stored next to the block files (xor.dat)."""
    with open(path, "rb") as f:
        key = f.read()
    # An all-zero key is how plaintext files are marked
    if not any(key):
        return b""
    return key


def double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def bytes_to_hex(data: bytes) -> str:
    """
    Lowercase hex of each byte in array order, no separators and no zero
    padding (0x0a renders as 'a').
    """
    return "".join(format(byte, "x") for byte in data)
