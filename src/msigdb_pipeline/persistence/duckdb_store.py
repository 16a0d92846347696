"""DuckDB-based storage for MSigDB snapshots and built tables."""

import re
from pathlib import Path
from typing import Optional

import duckdb
import polars as pl
import structlog

from msigdb_pipeline.source.models import RAW_TABLE_SCHEMAS, MsigdbTables

logger = structlog.get_logger(__name__)


def checkpoint_name(kind: str, version: str, table: str) -> str:
    """DuckDB table name for a versioned checkpoint.

    checkpoint_name("raw", "2024.1.Hs", "gene_set") -> "raw_2024_1_hs_gene_set"
    """
    slug = re.sub(r"[^0-9a-z]+", "_", version.lower()).strip("_")
    return f"{kind}_{slug}_{table.lower()}"


class PipelineStore:
    """
    Checkpoint tables in a single DuckDB file.

    The MSigDB SQLite archive is large; its tables are kept here per version
    so a rebuild can skip the download. Built tables are checkpointed as well.
    """

    def __init__(self, db_path: Path):
        """Open (or create) the database at db_path and its _checkpoints index."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(str(self.db_path))

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS _checkpoints (
                table_name VARCHAR PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                row_count INTEGER,
                description VARCHAR
            )
        """)

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
    ) -> None:
        """
        Store df as table_name (replacing it) and index it in _checkpoints.

        Only polars frames are accepted; they are handed to DuckDB as Arrow.
        """
        if not isinstance(df, pl.DataFrame):
            raise TypeError("df must be a polars.DataFrame")

        self.conn.register("_checkpoint_df", df.to_arrow())
        try:
            self.conn.execute(
                f'CREATE OR REPLACE TABLE "{table_name}" AS SELECT * FROM _checkpoint_df'
            )
        finally:
            self.conn.unregister("_checkpoint_df")

        self.conn.execute("""
            INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        """, [table_name, df.height, description])

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """Read table_name back, or None when it was never saved."""
        try:
            return self.conn.execute(f'SELECT * FROM "{table_name}"').pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str) -> bool:
        result = self.conn.execute(
            "SELECT COUNT(*) FROM _checkpoints WHERE table_name = ?",
            [table_name]
        ).fetchone()
        return result[0] > 0

    def list_checkpoints(self) -> list[dict]:
        columns = ("table_name", "created_at", "row_count", "description")
        rows = self.conn.execute(
            f"SELECT {', '.join(columns)} FROM _checkpoints ORDER BY table_name"
        ).fetchall()
        return [dict(zip(columns, row)) for row in rows]

    def delete_checkpoint(self, table_name: str) -> None:
        self.conn.execute(f'DROP TABLE IF EXISTS "{table_name}"')
        self.conn.execute(
            "DELETE FROM _checkpoints WHERE table_name = ?",
            [table_name]
        )

    def export_parquet(self, table_name: str, output_path: Path) -> None:
        """Write table_name to output_path with DuckDB COPY."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn.execute(
            f"COPY \"{table_name}\" TO '{output_path}' (FORMAT PARQUET)"
        )

    # --- MSigDB snapshots ---

    def has_snapshot(self, version: str) -> bool:
        """True if every raw table of a version has been checkpointed."""
        return all(
            self.has_checkpoint(checkpoint_name("raw", version, table))
            for table in RAW_TABLE_SCHEMAS
        )

    def save_snapshot(self, version: str, tables: MsigdbTables) -> None:
        """Checkpoint the raw tables of one MSigDB version."""
        for table in RAW_TABLE_SCHEMAS:
            self.save_dataframe(
                getattr(tables, table.lower()),
                checkpoint_name("raw", version, table),
                description=f"MSigDB {version} {table} table",
            )
        logger.info("msigdb_snapshot_saved", version=version, db_path=str(self.db_path))

    def load_snapshot(self, version: str) -> Optional[MsigdbTables]:
        """
        Rebuild MsigdbTables from checkpointed raw tables.

        Returns:
            MsigdbTables, or None if any table of the version is missing
        """
        if not self.has_snapshot(version):
            return None
        frames = {
            table: self.load_dataframe(checkpoint_name("raw", version, table))
            for table in RAW_TABLE_SCHEMAS
        }
        logger.info("msigdb_snapshot_loaded", version=version, db_path=str(self.db_path))
        return MsigdbTables.from_frames(frames)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "PipelineStore":
        return cls(config.duckdb_path)
