"""Gene set members: one row per gene set and member gene.

Member genes are reported three ways: the original identifier contributed
with the gene set (source_gene), the MSigDB-mapped NCBI gene ID and symbol,
and Ensembl gene IDs attached through the symbol resolver.
"""

from dataclasses import dataclass

import polars as pl
import structlog

from msigdb_pipeline.config.schema import MembershipThresholds
from msigdb_pipeline.exceptions import ConsistencyError
from msigdb_pipeline.gates import Gate, ratio, run_gates
from msigdb_pipeline.gene_mapping.chip import ENSEMBL_COLUMN, SYMBOL_COLUMN
from msigdb_pipeline.gene_mapping.ensembl import ENSEMBL_GENE_PATTERN
from msigdb_pipeline.source.models import MsigdbTables

logger = structlog.get_logger(__name__)

NCBI_COLUMN = "db_ncbi_gene"

MEMBER_COLUMNS = [
    "gs_id",
    "source_gene",
    "source_species",
    NCBI_COLUMN,
    SYMBOL_COLUMN,
    ENSEMBL_COLUMN,
]

MEMBER_KEY = [SYMBOL_COLUMN, NCBI_COLUMN, ENSEMBL_COLUMN, "source_gene", "gs_id"]
MEMBER_SORT = [SYMBOL_COLUMN, ENSEMBL_COLUMN, "source_gene", "gs_id"]


@dataclass
class PairCounts:
    """Gene set/gene pair counts recorded while joining the raw tables.

    Attributes:
        pairs: Gene set/source member links before any other join
        source_genes: Distinct source gene identifiers
        mapped_pairs: Pairs after attaching NCBI genes (including unmapped ones)
        pairs_with_ncbi: Pairs whose source gene has an NCBI gene ID
        source_genes_with_ncbi: Distinct source genes with an NCBI gene ID
    """
    pairs: int
    source_genes: int
    mapped_pairs: int
    pairs_with_ncbi: int
    source_genes_with_ncbi: int


def link_source_members(tables: MsigdbTables) -> tuple[pl.DataFrame, PairCounts]:
    """Join gene sets to their source members, namespaces and NCBI genes.

    Returns:
        Tuple of (pairs, counts); pairs has gs_id, source_id, species_code,
        symbol and NCBI_id, with symbol and NCBI_id null for unmapped genes
    """
    gene_sets = (
        tables.gene_set
        .rename({"id": "gene_set_id"})
        .join(
            tables.gene_set_details.select("gene_set_id", pl.col("systematic_name").alias("gs_id")),
            on="gene_set_id",
            how="inner",
        )
        .select("gene_set_id", "gs_id")
    )

    mg = gene_sets.join(tables.gene_set_source_member, on="gene_set_id", how="inner")
    pairs = mg.height

    mg = mg.join(
        tables.source_member.rename({"id": "source_member_id"}),
        on="source_member_id",
        how="inner",
    )
    source_genes = mg["source_id"].drop_nulls().n_unique()

    mg = mg.join(
        tables.namespace.select(pl.col("id").alias("namespace_id"), "species_code"),
        on="namespace_id",
        how="inner",
    )

    # Not every source gene maps to an NCBI gene
    mg = mg.join(
        tables.gene_symbol.rename({"id": "gene_symbol_id"}),
        on="gene_symbol_id",
        how="left",
    )

    with_ncbi = mg.filter(pl.col("NCBI_id").is_not_null())
    counts = PairCounts(
        pairs=pairs,
        source_genes=source_genes,
        mapped_pairs=mg.height,
        pairs_with_ncbi=with_ncbi.height,
        source_genes_with_ncbi=with_ncbi["source_id"].drop_nulls().n_unique(),
    )

    return mg, counts


def ncbi_coverage_gates(counts: PairCounts, thresholds: MembershipThresholds) -> list[Gate]:
    """Most source genes and gene set/gene pairs should have NCBI gene IDs."""
    gene_fraction = ratio(counts.source_genes_with_ncbi, counts.source_genes)
    pair_fraction = ratio(counts.pairs_with_ncbi, counts.pairs)

    return [
        Gate(
            name="source_genes_with_ncbi",
            check=lambda: gene_fraction >= thresholds.min_source_gene_ncbi_fraction,
            message=(
                f"{gene_fraction:.2%} of source genes have NCBI IDs, "
                f"expected at least {thresholds.min_source_gene_ncbi_fraction:.2%}"
            ),
        ),
        Gate(
            name="pairs_with_ncbi",
            check=lambda: pair_fraction >= thresholds.min_pair_ncbi_fraction,
            message=(
                f"{pair_fraction:.2%} of gene set/gene pairs have NCBI IDs, "
                f"expected at least {thresholds.min_pair_ncbi_fraction:.2%}"
            ),
        ),
    ]


def gene_count_gates(
    members: pl.DataFrame,
    thresholds: MembershipThresholds,
    check_gene_sets: bool = True,
) -> list[Gate]:
    """Range checks on distinct NCBI genes and gene sets, and NCBI/symbol parity."""
    n_ncbi = members[NCBI_COLUMN].n_unique()
    n_symbols = members[SYMBOL_COLUMN].n_unique()
    n_gene_sets = members["gs_id"].n_unique()

    gates = [
        Gate(
            name="min_ncbi_genes",
            check=lambda: n_ncbi >= thresholds.min_ncbi_genes,
            message=f"too few gene IDs: {n_ncbi} < {thresholds.min_ncbi_genes}",
        ),
        Gate(
            name="max_ncbi_genes",
            check=lambda: n_ncbi <= thresholds.max_ncbi_genes,
            message=f"too many gene IDs: {n_ncbi} > {thresholds.max_ncbi_genes}",
        ),
    ]
    if check_gene_sets:
        gates += [
            Gate(
                name="min_gene_sets",
                check=lambda: n_gene_sets >= thresholds.min_gene_sets,
                message=f"too few gene set IDs: {n_gene_sets} < {thresholds.min_gene_sets}",
            ),
            Gate(
                name="max_gene_sets",
                check=lambda: n_gene_sets <= thresholds.max_gene_sets,
                message=f"too many gene set IDs: {n_gene_sets} > {thresholds.max_gene_sets}",
            ),
        ]
    gates.append(Gate(
        name="ncbi_symbol_one_to_one",
        check=lambda: n_ncbi == n_symbols,
        message=f"{n_ncbi} distinct NCBI IDs but {n_symbols} distinct symbols",
    ))
    return gates


def attach_ensembl_ids(members: pl.DataFrame, ensembl_map: pl.DataFrame) -> pl.DataFrame:
    """Add db_ensembl_gene to each member.

    Members whose symbol (or else source gene) is already an Ensembl gene ID
    keep it. The others take every Ensembl ID the resolver maps to their
    symbol; members without one get an empty string.

    Raises:
        ConsistencyError: If a source gene falls in both subsets
    """
    pattern = ENSEMBL_GENE_PATTERN
    members = members.with_columns(
        pl.when(pl.col(SYMBOL_COLUMN).str.contains(pattern))
        .then(pl.col(SYMBOL_COLUMN))
        .when(pl.col("source_gene").str.contains(pattern))
        .then(pl.col("source_gene"))
        .otherwise(pl.lit(None, dtype=pl.Utf8))
        .alias(ENSEMBL_COLUMN)
    )

    with_ensembl = members.filter(pl.col(ENSEMBL_COLUMN).is_not_null())
    without_ensembl = members.filter(pl.col(ENSEMBL_COLUMN).is_null()).drop(ENSEMBL_COLUMN)

    overlap = sorted(
        set(with_ensembl["source_gene"].to_list()) & set(without_ensembl["source_gene"].to_list())
    )
    run_gates("ensembl_attachment", [
        Gate(
            name="disjoint_source_genes",
            check=lambda: not overlap,
            message=(
                f"{len(overlap)} source genes are both Ensembl-identified and not "
                f"(first 10: {overlap[:10]})"
            ),
            error=ConsistencyError,
        ),
    ])

    mapped = without_ensembl.join(
        ensembl_map.select(ENSEMBL_COLUMN, SYMBOL_COLUMN),
        on=SYMBOL_COLUMN,
        how="left",
    ).select(with_ensembl.columns)

    logger.info(
        "ensembl_ids_attached",
        ensembl_source_rows=with_ensembl.height,
        mapped_input_rows=without_ensembl.height,
        mapped_output_rows=mapped.height,
    )

    return (
        pl.concat([with_ensembl, mapped], how="vertical")
        .with_columns(pl.col(ENSEMBL_COLUMN).fill_null(""))
        .unique(subset=MEMBER_KEY, keep="first", maintain_order=True)
        .sort(MEMBER_SORT)
        .select(MEMBER_COLUMNS)
    )


def final_member_gates(
    members: pl.DataFrame,
    tables: MsigdbTables,
    counts: PairCounts,
    thresholds: MembershipThresholds,
) -> list[Gate]:
    """No source gene lost and row counts within tolerance of the inputs."""
    expected_genes = set(tables.source_member["source_id"].drop_nulls().to_list())
    missing_genes = sorted(expected_genes - set(members["source_gene"].to_list()))
    retained = ratio(members.height, counts.pairs)
    mapped_ratio = ratio(members.height, counts.mapped_pairs)

    return [
        Gate(
            name="all_source_genes_present",
            check=lambda: not missing_genes,
            message=f"{len(missing_genes)} source genes are missing (first 10: {missing_genes[:10]})",
        ),
        Gate(
            name="retained_pairs",
            check=lambda: retained >= thresholds.min_retained_pair_fraction,
            message=(
                f"too many gene-geneset pairs lost: {members.height}/{counts.pairs} "
                f"({retained:.2%}) retained"
            ),
        ),
        Gate(
            name="min_mapped_pair_ratio",
            check=lambda: mapped_ratio >= thresholds.min_mapped_pair_ratio,
            message=(
                f"too many gene-geneset pairs lost: {members.height} rows for "
                f"{counts.mapped_pairs} mapped pairs ({mapped_ratio:.3f})"
            ),
        ),
        Gate(
            name="max_mapped_pair_ratio",
            check=lambda: mapped_ratio <= thresholds.max_mapped_pair_ratio,
            message=(
                f"too many genes with multiple Ensembl IDs: {members.height} rows for "
                f"{counts.mapped_pairs} mapped pairs ({mapped_ratio:.3f})"
            ),
        ),
    ] + gene_count_gates(members, thresholds, check_gene_sets=False)


def build_gene_set_members(
    tables: MsigdbTables,
    ensembl_map: pl.DataFrame,
    thresholds: MembershipThresholds | None = None,
) -> pl.DataFrame:
    """Build the gene set membership table.

    Args:
        tables: Raw MSigDB tables for one release and species
        ensembl_map: Resolver output (db_ensembl_gene, db_gene_symbol)
        thresholds: Membership tolerances (default: production values)

    Returns:
        DataFrame with MEMBER_COLUMNS sorted by symbol, Ensembl ID, source
        gene and gene set; NCBI ID, symbol and Ensembl ID are empty strings
        when absent

    Raises:
        SourceDataShapeError: If the MSigDB table does not have exactly one row
        ValidationError: If coverage, range or row-count gates fail
        ConsistencyError: If Ensembl-identified and other source genes overlap
    """
    thresholds = thresholds or MembershipThresholds()
    tables.require_single_version()

    pairs, counts = link_source_members(tables)

    logger.info(
        "gene_set_members_linked",
        pairs=counts.pairs,
        source_genes=counts.source_genes,
        pairs_with_ncbi=counts.pairs_with_ncbi,
        source_genes_with_ncbi=counts.source_genes_with_ncbi,
    )

    run_gates("gene_set_members_ncbi", ncbi_coverage_gates(counts, thresholds))

    # NCBI IDs are kept as text
    members = (
        pairs
        .select(
            pl.col("gs_id"),
            pl.col("source_id").alias("source_gene"),
            pl.col("species_code").alias("source_species"),
            pl.col("NCBI_id").cast(pl.Utf8).alias(NCBI_COLUMN),
            pl.col("symbol").alias(SYMBOL_COLUMN),
        )
        .with_columns(
            pl.col(NCBI_COLUMN).fill_null(""),
            pl.col(SYMBOL_COLUMN).fill_null(""),
        )
        .unique(
            subset=["gs_id", "source_gene", NCBI_COLUMN, SYMBOL_COLUMN],
            keep="first",
            maintain_order=True,
        )
    )

    run_gates("gene_set_members_mapped", gene_count_gates(members, thresholds))

    members = attach_ensembl_ids(members, ensembl_map)

    run_gates("gene_set_members_final", final_member_gates(members, tables, counts, thresholds))

    logger.info(
        "gene_set_members_complete",
        rows=members.height,
        gene_sets=members["gs_id"].n_unique(),
        ncbi_genes=members[NCBI_COLUMN].n_unique(),
        ensembl_genes=members[ENSEMBL_COLUMN].n_unique(),
    )

    return members
