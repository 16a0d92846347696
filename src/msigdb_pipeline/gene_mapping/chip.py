"""Ensembl CHIP table preparation.

MSigDB publishes a CHIP file mapping each approved gene symbol to canonical
Ensembl gene IDs. Some symbols carry many IDs; the resolver reduces those.
"""

import polars as pl
import structlog

from msigdb_pipeline.config.schema import EnsemblThresholds
from msigdb_pipeline.exceptions import SourceDataShapeError
from msigdb_pipeline.gates import Gate, run_gates
from msigdb_pipeline.source.models import CHIP_COLUMNS

logger = structlog.get_logger(__name__)

ENSEMBL_COLUMN = "db_ensembl_gene"
SYMBOL_COLUMN = "db_gene_symbol"

# Standard Ensembl identifiers (excludes LRG and other CHIP probe types)
ENSEMBL_ID_PATTERN = r"^ENS"


def chip_shape_gates(chip: pl.DataFrame, thresholds: EnsemblThresholds) -> list[Gate]:
    """Shape checks on the raw CHIP download."""
    return [
        Gate(
            name="chip_columns",
            check=lambda: tuple(chip.columns) == CHIP_COLUMNS,
            message=f"expected columns {list(CHIP_COLUMNS)}, found {chip.columns}",
            error=SourceDataShapeError,
        ),
        Gate(
            name="chip_min_rows",
            check=lambda: chip.height >= thresholds.min_chip_rows,
            message=f"{chip.height} rows, expected at least {thresholds.min_chip_rows}",
            error=SourceDataShapeError,
        ),
    ]


def prepare_ensembl_chip(
    chip: pl.DataFrame,
    gene_symbol: pl.DataFrame,
    thresholds: EnsemblThresholds | None = None,
) -> pl.DataFrame:
    """Restrict the CHIP table to standard Ensembl IDs of known symbols.

    Args:
        chip: Raw CHIP table (Probe Set ID, Gene Symbol, Gene Title)
        gene_symbol: MSigDB gene_symbol table (id, symbol, NCBI_id)
        thresholds: Resolver tolerances (default: production values)

    Returns:
        Distinct (db_ensembl_gene, db_gene_symbol) pairs

    Raises:
        SourceDataShapeError: If the CHIP table has the wrong columns or too few rows
        ValidationError: If too few pairs remain after filtering
    """
    thresholds = thresholds or EnsemblThresholds()
    run_gates("ensembl_chip", chip_shape_gates(chip, thresholds))

    known_symbols = gene_symbol["symbol"].drop_nulls().unique()

    ens = (
        chip
        .filter(pl.col("Gene Symbol").is_in(known_symbols.implode()))
        .filter(pl.col("Probe Set ID").str.contains(ENSEMBL_ID_PATTERN))
        .select(
            pl.col("Probe Set ID").alias(ENSEMBL_COLUMN),
            pl.col("Gene Symbol").alias(SYMBOL_COLUMN),
        )
        .unique(maintain_order=True)
    )

    run_gates("ensembl_chip_filtered", [
        Gate(
            name="filtered_chip_min_rows",
            check=lambda: ens.height >= thresholds.min_chip_rows,
            message=(
                f"{ens.height} Ensembl/symbol pairs after filtering, "
                f"expected at least {thresholds.min_chip_rows}"
            ),
        ),
    ])

    logger.info(
        "ensembl_chip_prepared",
        raw_rows=chip.height,
        filtered_rows=ens.height,
        symbols=ens[SYMBOL_COLUMN].n_unique(),
        ensembl_ids=ens[ENSEMBL_COLUMN].n_unique(),
    )

    return ens
