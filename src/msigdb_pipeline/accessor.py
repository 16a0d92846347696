"""Read access to the prebuilt gene set tables.

The tables are produced by `msigdb-pipeline build` and read from Parquet once
per process. Callers receive the joined table and must treat it as read-only.
"""

from functools import lru_cache
from pathlib import Path

import polars as pl
import structlog

from msigdb_pipeline.output.writers import DETAILS_BASE, MEMBERS_BASE, table_path
from msigdb_pipeline.source.models import normalize_species

logger = structlog.get_logger(__name__)

# Matches output_dir in config/default.yaml
DEFAULT_DATA_DIR = Path("data/tables")

GENE_SET_SORT = ["gs_id", "db_gene_symbol", "db_ensembl_gene", "source_gene"]


@lru_cache(maxsize=None)
def _read_table(data_dir: str, table: str, species: str) -> pl.DataFrame:
    path = table_path(Path(data_dir), table, species)
    if not path.exists():
        raise FileNotFoundError(
            f"{path} not found. Run 'msigdb-pipeline build --species {species}' first."
        )
    df = pl.read_parquet(path)
    logger.debug("gene_set_table_loaded", path=str(path), rows=df.height)
    return df


def load_gene_set_tables(
    target_species: str = "HS",
    data_dir: Path | None = None,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Return the (details, members) tables of one species."""
    species = normalize_species(target_species)
    directory = str(Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR)
    return (
        _read_table(directory, DETAILS_BASE, species),
        _read_table(directory, MEMBERS_BASE, species),
    )


def join_gene_sets(members: pl.DataFrame, details: pl.DataFrame) -> pl.DataFrame:
    """Attach gene set metadata to every membership row.

    Inner join on gs_id, sorted by gs_id, gene symbol, Ensembl ID and
    source gene.
    """
    return members.join(details, on="gs_id", how="inner").sort(GENE_SET_SORT)


def get_gene_sets(target_species: str = "HS", data_dir: Path | None = None) -> pl.DataFrame:
    """
    Gene sets and their members for one target species.

    Args:
        target_species: "HS" (human) or "MM" (mouse), case-insensitive
        data_dir: Directory holding the built tables (default: data/tables)

    Returns:
        One row per gene set member, with the member columns followed by the
        gene set detail columns

    Raises:
        InvalidArgumentError: If the species code is not HS or MM; raised
            before any table is read
        FileNotFoundError: If the tables have not been built
    """
    species = normalize_species(target_species)
    details, members = load_gene_set_tables(species, data_dir)
    return join_gene_sets(members, details)


def clear_cache() -> None:
    """Forget tables read so far (used after a rebuild in the same process)."""
    _read_table.cache_clear()
