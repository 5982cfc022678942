import pytest

from block_class import BlockHeader, build_block
from utilities import deobfuscate_stream

# Bytes that never contain the network marker
JUNK_BYTE = b"\xaa"


def _make_header(**fields):
    values = {
        "version": 1,
        "prev_block_hash": bytes(32),
        "merkle_hash": bytes(32),
        "time": 0,
        "nbits": 0,
        "nonce": 0,
    }
    values.update(fields)
    return BlockHeader(**values)


def _block_bytes(header=None, tx_data=b"", tx_count=0):
    return build_block(header or _make_header(), tx_data, tx_count).serialize()


@pytest.fixture
def make_header():
    return _make_header


@pytest.fixture
def block_bytes():
    return _block_bytes


@pytest.fixture
def write_chain(tmp_path):
    def _writer(records, junk=b"", tail=b"", key=b"", name="blk00000.dat"):
        data = junk + b"".join(records) + tail
        path = tmp_path / name
        # XOR is its own inverse
        path.write_bytes(deobfuscate_stream(data, key, 0))
        return str(path)

    return _writer


@pytest.fixture
def chain_records():
    """Five records of different sizes, nonce == height."""
    return [
        _block_bytes(_make_header(nonce=h, time=1_600_000_000 + h), tx_data=bytes([h]) * (h * 7), tx_count=h)
        for h in range(5)
    ]
