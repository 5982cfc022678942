import os

# --- Configuration ---
# Every value can be overridden with a BLKREADER_* environment variable.


def _env(name: str, default: str) -> str:
    return os.environ.get(f"BLKREADER_{name}", default)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(f"BLKREADER_{name}")
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Mainnet network marker that prefixes every record on disk
MAGIC_BYTES = bytes.fromhex(_env("MAGIC_BYTES", "f9beb4d9"))

# Height assigned to the first record after the chain start
BASE_HEIGHT = int(_env("BASE_HEIGHT", "0"))

DEFAULT_DAT_PATH = _env("DAT_PATH", "garbage_header.dat")
DEFAULT_HEIGHT = int(_env("HEIGHT", "2"))

# Repeating XOR key for obfuscated block files, empty for plaintext
OBFUSCATION_KEY = bytes.fromhex(_env("XOR_KEY", ""))

# Treat an all-zero marker at a record boundary as the end of the chain
STOP_AT_ZERO_PADDING = _env_flag("STOP_AT_ZERO_PADDING", True)

BATCH_SIZE = int(_env("BATCH_SIZE", "5000"))
LOG_LEVEL = _env("LOG_LEVEL", "WARNING")

# --- Database ---
DB_NAME = _env("DB_NAME", "bitcoin_headers")
DB_USER = _env("DB_USER", "postgres")
DB_PASSWORD = _env("DB_PASSWORD", "")
DB_HOST = _env("DB_HOST", "localhost")
DB_PORT = int(_env("DB_PORT", "5432"))
