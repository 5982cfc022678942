import logging

import psycopg2
from psycopg2.extras import execute_values

import chain_config

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS blocks (
        height INTEGER NOT NULL,
        hash BYTEA PRIMARY KEY,
        previous_block BYTEA NOT NULL,
        merkle_root BYTEA NOT NULL,
        version INTEGER NOT NULL,
        timestamp BIGINT NOT NULL,
        nbits BIGINT NOT NULL,
        nonce BIGINT NOT NULL,
        tx_count BIGINT NOT NULL,
        size BIGINT NOT NULL
    )
"""


# --- DB Connection ---
def get_db_connection():
    try:
        return psycopg2.connect(
            dbname=chain_config.DB_NAME,
            user=chain_config.DB_USER,
            password=chain_config.DB_PASSWORD,
            host=chain_config.DB_HOST,
            port=chain_config.DB_PORT
        )
    except psycopg2.Error as e:
        logger.error("Error connecting to database: %s", e)
        raise


def header_row(height, block):
    """Row for the blocks table. Hashes are stored in display (byte-reversed) order."""
    header = block.header
    return (
        height,
        bytes.fromhex(header.hash),
        header.prev_block_hash[::-1],
        header.merkle_hash[::-1],
        header.version,
        header.time,
        header.nbits,
        header.nonce,
        block.block.tx_count,
        block.size,
    )


def bulk_insert(cursor, rows):
    if rows:
        execute_values(
            cursor,
            """
            INSERT INTO blocks (height, hash, previous_block, merkle_root, version,
                                timestamp, nbits, nonce, tx_count, size)
            VALUES %s
            ON CONFLICT (hash) DO NOTHING
            """,
            rows,
            template="(%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)"
        )


def export_headers(parser, conn, start=None, stop=None, batch_size=None):
    """
    Write the headers of heights [start, stop) to the blocks table, committing
    every `batch_size` rows. Stops early at the end of the chain.
    Returns the number of rows written.
    """
    batch_size = batch_size or chain_config.BATCH_SIZE
    cursor = conn.cursor()
    try:
        cursor.execute(CREATE_TABLE_SQL)

        rows_batch = []
        total_rows = 0
        for height, block in parser.iter_blocks(start, stop):
            rows_batch.append(header_row(height, block))
            total_rows += 1

            if len(rows_batch) >= batch_size:
                bulk_insert(cursor, rows_batch)
                conn.commit()
                logger.info("Committed %d headers, up to height %d", len(rows_batch), height)
                rows_batch.clear()

        if rows_batch:
            bulk_insert(cursor, rows_batch)
        conn.commit()
    finally:
        cursor.close()
    return total_rows
