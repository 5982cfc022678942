import argparse
import logging
import sys
from typing import BinaryIO, Dict, Iterator, Optional, Tuple

import chain_config
import db_export
from block_class import (
    PREFIX_SIZE, ChainBlock, format_header, format_summary, parse_prefix,
    parse_transaction_block,
)
from chain_errors import (
    ChainError, ChainFileError, EndOfChainError, HeightNotFoundError,
    MarkerNotFoundError,
)
from utilities import deobfuscate_stream, load_obfuscation_key, read_exact

logger = logging.getLogger(__name__)

# Bytes read per probe while looking for the first marker
SCAN_CHUNK_SIZE = 64 * 1024


# --- Chain Locator ---

def find_chain_start(f: BinaryIO, magic: bytes = chain_config.MAGIC_BYTES,
                     key: bytes = b"") -> int:
    """
    Find the smallest offset at which the marker occurs, tolerating any
    leading bytes that are not part of the chain.

    The file is probed in chunks that overlap by len(magic) - 1 bytes, which
    gives the same answer as testing every offset one byte at a time.
    """
    overlap = len(magic) - 1
    pos = 0
    while True:
        f.seek(pos)
        data = deobfuscate_stream(f.read(SCAN_CHUNK_SIZE), key, pos)
        idx = data.find(magic)
        if idx != -1:
            logger.debug("Chain starts at offset %d", pos + idx)
            return pos + idx
        if len(data) < SCAN_CHUNK_SIZE:
            raise MarkerNotFoundError(max(pos + len(data) - overlap, 0))
        pos += len(data) - overlap


# --- Record reader ---

def fetch_block(f: BinaryIO, offset: int, magic: bytes = chain_config.MAGIC_BYTES,
                key: bytes = b"", stop_at_zero_padding: bool = True) -> Tuple[int, ChainBlock]:
    """
    Decode the record that starts at `offset`.

    Returns (span, block); the next record starts at offset + span.
    """
    f.seek(offset)
    raw_prefix = f.read(PREFIX_SIZE)
    if not raw_prefix:
        raise EndOfChainError(offset, PREFIX_SIZE, 0)

    prefix = deobfuscate_stream(raw_prefix, key, offset)
    # Block files are pre-allocated, the unused tail is all zeros
    if stop_at_zero_padding and not any(prefix[:len(magic)]):
        raise EndOfChainError(offset, PREFIX_SIZE, len(prefix))

    size = parse_prefix(prefix, offset, magic)
    payload_offset = offset + PREFIX_SIZE
    payload = deobfuscate_stream(read_exact(f, payload_offset, size), key, payload_offset)

    block = ChainBlock(magic, size, parse_transaction_block(payload))
    return block.span, block


# --- Block Index ---

class BlockParser:
    """
    Random access to the records of one block file by height.

    Heights are resolved by walking forward from the nearest cached height,
    decoding and caching every record on the way. Cached entries are never
    evicted. Not safe for concurrent use: the file position and the cache
    are shared by every lookup.
    """

    def __init__(self, file_name: str, key: Optional[bytes] = None,
                 magic: bytes = chain_config.MAGIC_BYTES,
                 base_height: int = chain_config.BASE_HEIGHT,
                 stop_at_zero_padding: bool = chain_config.STOP_AT_ZERO_PADDING):
        try:
            self.reader = open(file_name, "rb")
        except OSError as e:
            raise ChainFileError(file_name, e.strerror or str(e)) from e

        self.file_name = file_name
        self.magic = magic
        self.key = chain_config.OBFUSCATION_KEY if key is None else key
        self.base_height = base_height
        self.stop_at_zero_padding = stop_at_zero_padding
        # height -> (offset of the record's marker, decoded record)
        self.blocks: Dict[int, Tuple[int, ChainBlock]] = {}
        self._tip: Optional[int] = None

        try:
            self.chain_start = find_chain_start(self.reader, magic, self.key)
        except BaseException:
            self.reader.close()
            raise

    def __len__(self):
        return len(self.blocks)

    def __contains__(self, height):
        return height in self.blocks

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.reader.close()

    @property
    def tip(self) -> Optional[int]:
        """Highest height decoded so far, None before the first lookup."""
        return self._tip

    def _nearest_ancestor(self, height: int) -> Optional[int]:
        if self._tip is None or height <= self.base_height:
            return None
        candidate = min(height - 1, self._tip)
        while candidate >= self.base_height:
            if candidate in self.blocks:
                return candidate
            candidate -= 1
        return None

    def read_block(self, block_height: int) -> ChainBlock:
        if block_height < self.base_height:
            raise ValueError(f"Height {block_height} is below the base height {self.base_height}")

        # Check cache and return if hit
        cached = self.blocks.get(block_height)
        if cached is not None:
            logger.debug("Cache hit for block %d", block_height)
            return cached[1]

        ancestor = self._nearest_ancestor(block_height)
        if ancestor is None:
            offset = self.chain_start
            start = self.base_height
        else:
            ancestor_offset, ancestor_block = self.blocks[ancestor]
            offset = ancestor_offset + ancestor_block.span
            start = ancestor + 1
        logger.info("Walking from height %d at offset %d to height %d", start, offset, block_height)

        for height in range(start, block_height + 1):
            try:
                size, block = fetch_block(self.reader, offset, self.magic, self.key,
                                          self.stop_at_zero_padding)
            except EndOfChainError as e:
                logger.warning("Chain ends at offset %d before block %d", offset, block_height)
                raise HeightNotFoundError(block_height, self._tip) from e
            logger.debug("Decoded block %d at offset %d (%d bytes)", height, offset, block.size)
            self.blocks[height] = (offset, block)
            self._tip = height if self._tip is None else max(self._tip, height)
            offset += size

        return self.blocks[block_height][1]

    lookup = read_block

    def offset_of(self, block_height: int) -> int:
        """File offset of the record's marker, decoding forward if needed."""
        self.read_block(block_height)
        return self.blocks[block_height][0]

    def iter_blocks(self, start: Optional[int] = None,
                    stop: Optional[int] = None) -> Iterator[Tuple[int, ChainBlock]]:
        """Yield (height, block) in ascending order until `stop` or the end of the chain."""
        height = self.base_height if start is None else start
        while stop is None or height < stop:
            try:
                block = self.read_block(height)
            except HeightNotFoundError:
                return
            yield height, block
            height += 1


# --- Command line ---

def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Print block headers from a block file by height.")
    ap.add_argument("path", nargs="?", default=chain_config.DEFAULT_DAT_PATH,
                    help="block file to read (default: %(default)s)")
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument("--height", type=int, default=chain_config.DEFAULT_HEIGHT,
                      help="height of the block to print (default: %(default)s)")
    mode.add_argument("--all", action="store_true", help="print a summary line for every block")
    key = ap.add_mutually_exclusive_group()
    key.add_argument("--xor-key", help="obfuscation key as hex")
    key.add_argument("--xor-file", help="path to the xor.dat holding the obfuscation key")
    ap.add_argument("--export", action="store_true",
                    help="write the selected headers to PostgreSQL")
    ap.add_argument("--log-level", default=chain_config.LOG_LEVEL.upper(), type=str.upper,
                    choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return ap


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    key = None
    try:
        if args.xor_key:
            key = bytes.fromhex(args.xor_key)
        elif args.xor_file:
            key = load_obfuscation_key(args.xor_file)
    except (ValueError, OSError) as e:
        print(f"Error: could not load the obfuscation key: {e}", file=sys.stderr)
        return 1

    try:
        with BlockParser(args.path, key=key) as parser:
            if args.export:
                start, stop = (None, None) if args.all else (args.height, args.height + 1)
                conn = db_export.get_db_connection()
                try:
                    total = db_export.export_headers(parser, conn, start, stop)
                finally:
                    conn.close()
                print(f"Done. Total blocks exported: {total}")
            elif args.all:
                count = 0
                for height, block in parser.iter_blocks():
                    print(format_summary(height, block))
                    count += 1
                print(f"\nLoaded {count} blocks.")
            else:
                block = parser.read_block(args.height)
                print(f"Block {args.height} header:\n{format_header(block.header)}")
    except (ChainError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
