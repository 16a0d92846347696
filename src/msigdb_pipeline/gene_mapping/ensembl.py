"""Tiered resolution of gene symbols to Ensembl gene IDs.

The CHIP mapping is many-to-many. Each symbol is resolved by the first tier
that accepts it, in this order:

1. single_chip_id: exactly one Ensembl ID in the CHIP table
2. unique_positional: exactly one ID among positional (C1/M1) members
3. unique_reliable: exactly one ID across all reliable collections combined
4. corroborated: IDs found in more than one reliable collection
5. positional: every remaining positional candidate
6. reliable: every remaining reliable-collection candidate
7. chip_only: symbols outside the reliable universe keep all CHIP IDs

Reliable collections are C1/M1 (positional, compiled from Ensembl BioMart
chromosome bands), Reactome and GTRD, where members were contributed as
Ensembl IDs. No symbol of the CHIP table is ever dropped.
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Callable

import polars as pl
import structlog

from msigdb_pipeline.config.schema import EnsemblThresholds
from msigdb_pipeline.gates import Gate, ratio, run_gates
from msigdb_pipeline.gene_mapping.chip import (
    ENSEMBL_COLUMN,
    SYMBOL_COLUMN,
    prepare_ensembl_chip,
)
from msigdb_pipeline.source.models import MsigdbTables

logger = structlog.get_logger(__name__)

RELIABLE_COLLECTION_PATTERN = r"C1|M1|REACTOME|GTRD"
POSITIONAL_COLLECTIONS = ("C1", "M1")
ENSEMBL_GENE_PATTERN = r"^ENS[GM]"

PAIR_COLUMNS = [ENSEMBL_COLUMN, SYMBOL_COLUMN]

TierSelector = Callable[[list[str]], pl.DataFrame]


@dataclass
class ResolverReport:
    """Summary of a resolver run.

    Attributes:
        chip_pairs: Ensembl/symbol pairs in the filtered CHIP table
        chip_symbols: Distinct CHIP symbols
        chip_ensembl_ids: Distinct CHIP Ensembl IDs
        reliable_collections: Distinct reliable collections with Ensembl members
        tier_counts: Symbols resolved by each tier, in precedence order
        resolved_pairs: Pairs in the final mapping
        resolved_ensembl_ids: Distinct Ensembl IDs in the final mapping
        multi_mapped_symbols: Symbols still mapped to more than one ID
    """
    chip_pairs: int
    chip_symbols: int
    chip_ensembl_ids: int
    reliable_collections: int
    tier_counts: dict[str, int] = field(default_factory=dict)
    resolved_pairs: int = 0
    resolved_ensembl_ids: int = 0
    multi_mapped_symbols: int = 0


def reliable_collection_members(tables: MsigdbTables) -> pl.DataFrame:
    """Ensembl-identified members of the reliable collections.

    Returns:
        Distinct (collection, db_ensembl_gene, db_gene_symbol) rows, where
        collection is the full MSigDB collection_name (e.g. C2:CP:REACTOME)
    """
    gene_sets = (
        tables.gene_set
        .filter(pl.col("collection_name").str.contains(RELIABLE_COLLECTION_PATTERN))
        .select(
            pl.col("id").alias("gene_set_id"),
            pl.col("collection_name").alias("collection"),
        )
    )
    source_member = tables.source_member.rename({"id": "source_member_id"})
    gene_symbol = tables.gene_symbol.select(
        pl.col("id").alias("gene_symbol_id"),
        pl.col("symbol"),
    )

    return (
        gene_sets
        .join(tables.gene_set_source_member, on="gene_set_id", how="inner")
        .select("collection", "source_member_id")
        .unique()
        .join(source_member, on="source_member_id", how="inner")
        .filter(pl.col("gene_symbol_id").is_not_null())
        .filter(pl.col("source_id").str.contains(ENSEMBL_GENE_PATTERN))
        .join(gene_symbol, on="gene_symbol_id", how="inner")
        .filter(pl.col("symbol").is_not_null())
        .select(
            pl.col("collection"),
            pl.col("source_id").alias(ENSEMBL_COLUMN),
            pl.col("symbol").alias(SYMBOL_COLUMN),
        )
        .unique()
        .sort(["collection", SYMBOL_COLUMN, ENSEMBL_COLUMN])
    )


def positional_members(members: pl.DataFrame) -> pl.DataFrame:
    return members.filter(pl.col("collection").is_in(list(POSITIONAL_COLLECTIONS)))


def _pairs(df: pl.DataFrame) -> pl.DataFrame:
    return df.select(PAIR_COLUMNS).unique().sort([SYMBOL_COLUMN, ENSEMBL_COLUMN])


def _restrict(df: pl.DataFrame, symbols: list[str]) -> pl.DataFrame:
    return df.filter(pl.col(SYMBOL_COLUMN).is_in(pl.Series(symbols, dtype=pl.Utf8).implode()))


def tier_single_chip_id(ens: pl.DataFrame, remaining: list[str]) -> pl.DataFrame:
    """Symbols with exactly one candidate in the CHIP table."""
    return _pairs(_restrict(ens, remaining).filter(pl.len().over(SYMBOL_COLUMN) == 1))


def tier_unique_candidate(candidates: pl.DataFrame, remaining: list[str]) -> pl.DataFrame:
    """Symbols with exactly one distinct ID among the candidate pairs."""
    pairs = _pairs(_restrict(candidates, remaining))
    return pairs.filter(pl.len().over(SYMBOL_COLUMN) == 1)


def tier_corroborated(members: pl.DataFrame, remaining: list[str]) -> pl.DataFrame:
    """IDs that occur in more than one reliable collection."""
    return _pairs(
        _restrict(members, remaining)
        .filter(pl.col("collection").n_unique().over(ENSEMBL_COLUMN) > 1)
    )


def tier_all_candidates(candidates: pl.DataFrame, remaining: list[str]) -> pl.DataFrame:
    """Every remaining candidate pair, without uniqueness filtering."""
    return _pairs(_restrict(candidates, remaining))


def tier_outside_universe(
    ens: pl.DataFrame,
    universe_symbols: set[str],
    remaining: list[str],
) -> pl.DataFrame:
    """CHIP candidates for symbols absent from the reliable collections."""
    outside = [symbol for symbol in remaining if symbol not in universe_symbols]
    return _pairs(_restrict(ens, outside))


def apply_tiers(
    tiers: list[tuple[str, TierSelector]],
    symbols: set[str],
) -> tuple[list[pl.DataFrame], dict[str, int], set[str]]:
    """Run tiers in precedence order over a shrinking set of symbols.

    Args:
        tiers: (name, selector) pairs; a selector receives the sorted remaining
               symbols and returns the pairs it accepts
        symbols: All symbols to resolve

    Returns:
        Tuple of (accepted pair frames per tier, resolved count per tier,
        symbols no tier accepted)
    """
    remaining = set(symbols)
    accepted: list[pl.DataFrame] = []
    counts: dict[str, int] = {}

    for name, select in tiers:
        pairs = select(sorted(remaining))
        resolved = set(pairs[SYMBOL_COLUMN].to_list()) & remaining
        remaining = remaining - resolved
        accepted.append(pairs)
        counts[name] = len(resolved)
        logger.debug("ensembl_tier_applied", tier=name, resolved=len(resolved), remaining=len(remaining))

    return accepted, counts, remaining


def chip_gates(
    ens: pl.DataFrame,
    members: pl.DataFrame,
    thresholds: EnsemblThresholds,
) -> list[Gate]:
    """Sanity checks on the CHIP mapping and the reliable collections."""
    # Each CHIP row carries the ID count of its symbol; the median is over rows
    ids_per_row = ens.select(pl.len().over(SYMBOL_COLUMN).alias("n_ids"))["n_ids"]
    ids_per_symbol = ens.group_by(SYMBOL_COLUMN).agg(pl.len().alias("n_ids"))["n_ids"]
    max_ids = ids_per_row.max() or 0
    median_ids = ids_per_row.median() or 0.0
    single_fraction = ratio((ids_per_symbol == 1).sum(), ids_per_symbol.len())

    n_collections = members["collection"].n_unique()
    n_reliable_ids = members[ENSEMBL_COLUMN].n_unique()

    chip_symbols = ens[SYMBOL_COLUMN].n_unique()
    positional_symbols = positional_members(members)[SYMBOL_COLUMN].n_unique()
    positional_fraction = ratio(positional_symbols, chip_symbols)

    return [
        Gate(
            name="max_ids_per_symbol",
            check=lambda: max_ids <= thresholds.max_ids_per_symbol,
            message=(
                f"a symbol has {max_ids} Ensembl IDs, "
                f"maximum is {thresholds.max_ids_per_symbol}"
            ),
        ),
        Gate(
            name="median_ids_per_symbol",
            check=lambda: median_ids <= thresholds.max_median_ids_per_symbol,
            message=(
                f"median Ensembl IDs per CHIP row symbol is {median_ids}, "
                f"maximum is {thresholds.max_median_ids_per_symbol}"
            ),
        ),
        Gate(
            name="reliable_collections",
            check=lambda: n_collections >= thresholds.min_reliable_collections,
            message=(
                f"{n_collections} reliable collections with Ensembl IDs, "
                f"expected at least {thresholds.min_reliable_collections}"
            ),
        ),
        Gate(
            name="reliable_ensembl_ids",
            check=lambda: n_reliable_ids >= thresholds.min_reliable_ensembl_ids,
            message=(
                f"{n_reliable_ids} Ensembl IDs in reliable collections, "
                f"expected at least {thresholds.min_reliable_ensembl_ids}"
            ),
        ),
        Gate(
            name="positional_coverage",
            check=lambda: positional_fraction >= thresholds.min_positional_fraction,
            message=(
                f"{positional_fraction:.2%} of symbols in the positional collection, "
                f"expected at least {thresholds.min_positional_fraction:.2%}"
            ),
        ),
        Gate(
            name="single_mapping_fraction",
            check=lambda: single_fraction >= thresholds.min_single_mapping_fraction,
            message=(
                f"{single_fraction:.2%} of symbols have a single Ensembl ID, "
                f"expected at least {thresholds.min_single_mapping_fraction:.2%}"
            ),
        ),
    ]


def resolved_gates(
    ens: pl.DataFrame,
    resolved: pl.DataFrame,
    thresholds: EnsemblThresholds,
) -> list[Gate]:
    """Checks that resolution kept every symbol and most Ensembl IDs."""
    chip_symbols = sorted(ens[SYMBOL_COLUMN].unique().to_list())
    resolved_symbols = sorted(resolved[SYMBOL_COLUMN].unique().to_list())
    retained = ratio(resolved[ENSEMBL_COLUMN].n_unique(), ens[ENSEMBL_COLUMN].n_unique())

    return [
        Gate(
            name="symbol_set_identical",
            check=lambda: chip_symbols == resolved_symbols,
            message=(
                f"{len(set(chip_symbols) - set(resolved_symbols))} symbols lost, "
                f"{len(set(resolved_symbols) - set(chip_symbols))} symbols added"
            ),
        ),
        Gate(
            name="retained_ensembl_ids",
            check=lambda: retained >= thresholds.min_retained_id_fraction,
            message=(
                f"{retained:.2%} of CHIP Ensembl IDs retained, "
                f"expected at least {thresholds.min_retained_id_fraction:.2%}"
            ),
        ),
    ]


def resolve_ensembl_genes(
    tables: MsigdbTables,
    chip: pl.DataFrame,
    thresholds: EnsemblThresholds | None = None,
) -> tuple[pl.DataFrame, ResolverReport]:
    """Build the gene symbol to Ensembl ID table used for member genes.

    Args:
        tables: Raw MSigDB tables
        chip: Raw Ensembl CHIP table for the same version
        thresholds: Resolver tolerances (default: production values)

    Returns:
        Tuple of (mapping, report)
        - mapping: Distinct (db_ensembl_gene, db_gene_symbol) pairs sorted by
          symbol then Ensembl ID
        - report: ResolverReport with per-tier counts

    Raises:
        SourceDataShapeError: If the CHIP table has the wrong shape
        ValidationError: If any resolver gate fails
    """
    thresholds = thresholds or EnsemblThresholds()

    ens = prepare_ensembl_chip(chip, tables.gene_symbol, thresholds)
    members = reliable_collection_members(tables)
    positional = positional_members(members)

    run_gates("ensembl_chip_mapping", chip_gates(ens, members, thresholds))

    universe_symbols = set(members[SYMBOL_COLUMN].to_list())

    tiers: list[tuple[str, TierSelector]] = [
        ("single_chip_id", partial(tier_single_chip_id, ens)),
        ("unique_positional", partial(tier_unique_candidate, positional)),
        ("unique_reliable", partial(tier_unique_candidate, members)),
        ("corroborated", partial(tier_corroborated, members)),
        ("positional", partial(tier_all_candidates, positional)),
        ("reliable", partial(tier_all_candidates, members)),
        ("chip_only", partial(tier_outside_universe, ens, universe_symbols)),
    ]

    accepted, tier_counts, unresolved = apply_tiers(tiers, set(ens[SYMBOL_COLUMN].to_list()))

    resolved = _pairs(pl.concat(accepted, how="vertical"))

    run_gates("ensembl_resolution", resolved_gates(ens, resolved, thresholds))

    ids_per_symbol = resolved.group_by(SYMBOL_COLUMN).agg(pl.len().alias("n_ids"))
    report = ResolverReport(
        chip_pairs=ens.height,
        chip_symbols=ens[SYMBOL_COLUMN].n_unique(),
        chip_ensembl_ids=ens[ENSEMBL_COLUMN].n_unique(),
        reliable_collections=members["collection"].n_unique(),
        tier_counts=tier_counts,
        resolved_pairs=resolved.height,
        resolved_ensembl_ids=resolved[ENSEMBL_COLUMN].n_unique(),
        multi_mapped_symbols=ids_per_symbol.filter(pl.col("n_ids") > 1).height,
    )

    logger.info(
        "ensembl_resolution_complete",
        chip_pairs=report.chip_pairs,
        resolved_pairs=report.resolved_pairs,
        multi_mapped_symbols=report.multi_mapped_symbols,
        unresolved_symbols=len(unresolved),
        **report.tier_counts,
    )

    return resolved, report
