"""Read an extracted MSigDB SQLite database into polars DataFrames."""

import sqlite3
from contextlib import closing
from pathlib import Path

import polars as pl
import structlog

from msigdb_pipeline.exceptions import SourceDataShapeError
from msigdb_pipeline.source.models import RAW_TABLE_SCHEMAS, MsigdbTables

logger = structlog.get_logger(__name__)


def _read_table(conn: sqlite3.Connection, table_name: str) -> pl.DataFrame:
    columns = ", ".join(f'"{col}"' for col in RAW_TABLE_SCHEMAS[table_name])
    try:
        return pl.read_database(
            f'SELECT {columns} FROM "{table_name}"',
            connection=conn,
            infer_schema_length=None,
        )
    except sqlite3.OperationalError as e:
        raise SourceDataShapeError(f"Cannot read table {table_name!r}: {e}") from e


def read_msigdb_sqlite(
    db_path: Path,
    version: str,
    min_gene_sets: int = 10000,
) -> MsigdbTables:
    """Extract the gene set tables from an MSigDB SQLite file.

    The database is opened read-only and the connection is closed before
    returning; the result holds no reference to the file.

    Args:
        db_path: Path to the extracted msigdb_v{version}.db file
        version: MSigDB version name to select from the MSigDB table (e.g. 2024.1.Hs)
        min_gene_sets: Minimum number of rows expected in gene_set

    Returns:
        MsigdbTables with the MSigDB table restricted to `version`

    Raises:
        SourceDataShapeError: If tables or columns are missing, the version is
            not exactly one row, or gene_set is too small
    """
    db_path = Path(db_path)
    if not db_path.exists():
        raise SourceDataShapeError(f"MSigDB SQLite file not found: {db_path}")

    logger.info("msigdb_sqlite_read_start", path=str(db_path), version=version)

    with closing(sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)) as conn:
        existing = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        missing = sorted(set(RAW_TABLE_SCHEMAS) - existing)
        if missing:
            raise SourceDataShapeError(f"MSigDB snapshot is missing tables {missing}")

        frames = {name: _read_table(conn, name) for name in RAW_TABLE_SCHEMAS}

    frames["MSigDB"] = frames["MSigDB"].filter(pl.col("version_name") == version)
    tables = MsigdbTables.from_frames(frames)
    tables.require_single_version()

    if tables.gene_set.height < min_gene_sets:
        raise SourceDataShapeError(
            f"The gene_set table has too few entries: {tables.gene_set.height} < {min_gene_sets}"
        )

    logger.info(
        "msigdb_sqlite_read_complete",
        version=version,
        target_species=tables.target_species,
        gene_sets=tables.gene_set.height,
        source_members=tables.source_member.height,
        gene_symbols=tables.gene_symbol.height,
    )

    return tables
