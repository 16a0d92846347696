"""Output generation: Parquet/TSV gene set tables with provenance sidecars."""

from msigdb_pipeline.output.writers import (
    DETAILS_BASE,
    MEMBERS_BASE,
    table_path,
    write_gene_set_tables,
    write_table,
)

__all__ = [
    "DETAILS_BASE",
    "MEMBERS_BASE",
    "table_path",
    "write_table",
    "write_gene_set_tables",
]
