"""Tests for CHIP preparation and tiered Ensembl ID resolution."""

import warnings

import polars as pl
import pytest

from msigdb_pipeline.config.schema import EnsemblThresholds
from msigdb_pipeline.exceptions import SourceDataShapeError, ValidationError
from msigdb_pipeline.gates import gates_by_name
from msigdb_pipeline.gene_mapping import (
    prepare_ensembl_chip,
    reliable_collection_members,
    resolve_ensembl_genes,
)
from msigdb_pipeline.gene_mapping.ensembl import (
    apply_tiers,
    chip_gates,
    positional_members,
    resolved_gates,
    tier_all_candidates,
    tier_corroborated,
    tier_outside_universe,
    tier_single_chip_id,
    tier_unique_candidate,
)
from msigdb_pipeline.source.models import MsigdbTables


def pairs(rows):
    """(ensembl, symbol) tuples as a candidate pair frame."""
    return pl.DataFrame(
        {
            "db_ensembl_gene": [row[0] for row in rows],
            "db_gene_symbol": [row[1] for row in rows],
        },
        schema={"db_ensembl_gene": pl.Utf8, "db_gene_symbol": pl.Utf8},
    )


def collection_pairs(rows):
    """(collection, ensembl, symbol) tuples as a reliable-member frame."""
    return pl.DataFrame(
        {
            "collection": [row[0] for row in rows],
            "db_ensembl_gene": [row[1] for row in rows],
            "db_gene_symbol": [row[2] for row in rows],
        },
        schema={"collection": pl.Utf8, "db_ensembl_gene": pl.Utf8, "db_gene_symbol": pl.Utf8},
    )


def as_set(df):
    return set(df.select("db_ensembl_gene", "db_gene_symbol").iter_rows())


# ============================================================================
# CHIP preparation
# ============================================================================

def test_prepare_chip_filters_symbols_and_ids(msigdb_tables, ensembl_chip, ensembl_thresholds):
    """Test that unknown symbols and non-Ensembl probe IDs are dropped."""
    ens = prepare_ensembl_chip(ensembl_chip, msigdb_tables.gene_symbol, ensembl_thresholds)

    assert ens.columns == ["db_ensembl_gene", "db_gene_symbol"]
    assert as_set(ens) == {
        ("ENSG01", "A"), ("ENSG02", "B"), ("ENSG03", "B"), ("ENSG04", "C"), ("ENSG05", "D"),
    }


def test_prepare_chip_wrong_columns(msigdb_tables, ensembl_chip, ensembl_thresholds):
    chip = ensembl_chip.rename({"Gene Title": "Description"})

    with pytest.raises(SourceDataShapeError, match="chip_columns"):
        prepare_ensembl_chip(chip, msigdb_tables.gene_symbol, ensembl_thresholds)


def test_prepare_chip_too_few_rows(msigdb_tables, ensembl_chip):
    thresholds = EnsemblThresholds(min_chip_rows=100)

    with pytest.raises(SourceDataShapeError, match="chip_min_rows"):
        prepare_ensembl_chip(ensembl_chip, msigdb_tables.gene_symbol, thresholds)


def test_prepare_chip_too_few_rows_after_filtering(msigdb_tables, ensembl_chip):
    """Test that the filtered table is checked against the same minimum."""
    thresholds = EnsemblThresholds(min_chip_rows=6)

    with pytest.raises(ValidationError, match="filtered_chip_min_rows"):
        prepare_ensembl_chip(ensembl_chip, msigdb_tables.gene_symbol, thresholds)


# ============================================================================
# Reliable collections
# ============================================================================

def test_reliable_collection_members(msigdb_tables):
    """Test that only Ensembl-identified members of C1/Reactome/GTRD are used."""
    members = reliable_collection_members(msigdb_tables)

    assert set(members["collection"].to_list()) == {"C1", "C2:CP:REACTOME", "C3:TFT:GTRD"}
    assert members.filter(pl.col("collection") == "C2:CP:REACTOME")["db_ensembl_gene"].to_list() == [
        "ENSG02"
    ]
    # Symbol-identified members (A, B, ...) and the hallmark set are excluded
    assert all(gene.startswith("ENSG") for gene in members["db_ensembl_gene"].to_list())
    assert positional_members(members).height == 5


# ============================================================================
# Tiers
# ============================================================================

def test_tier_single_chip_id():
    ens = pairs([("E1", "A"), ("E2", "B"), ("E3", "B")])

    assert as_set(tier_single_chip_id(ens, ["A", "B"])) == {("E1", "A")}
    assert tier_single_chip_id(ens, ["B"]).height == 0


def test_tier_unique_candidate_counts_distinct_ids():
    """Test that an ID repeated across collections still counts as unique."""
    members = collection_pairs([
        ("C1", "E1", "A"),
        ("GTRD", "E1", "A"),
        ("C1", "E2", "B"),
        ("GTRD", "E3", "B"),
    ])

    assert as_set(tier_unique_candidate(members, ["A", "B"])) == {("E1", "A")}


def test_tier_corroborated_keeps_ids_in_several_collections():
    """Symbol B: ENSG02 in C1 and Reactome, ENSG03 only in C1."""
    members = collection_pairs([
        ("C1", "ENSG02", "B"),
        ("C1", "ENSG03", "B"),
        ("C2:CP:REACTOME", "ENSG02", "B"),
    ])

    assert as_set(tier_corroborated(members, ["B"])) == {("ENSG02", "B")}


def test_tier_corroborated_ignores_resolved_symbols():
    members = collection_pairs([
        ("C1", "E1", "A"),
        ("REACTOME", "E1", "A"),
    ])

    assert tier_corroborated(members, ["B"]).height == 0


def test_tier_all_candidates_keeps_every_pair():
    members = collection_pairs([("C1", "E2", "B"), ("C1", "E3", "B")])

    assert as_set(tier_all_candidates(members, ["B"])) == {("E2", "B"), ("E3", "B")}


def test_tier_outside_universe():
    ens = pairs([("E1", "A"), ("E2", "Z"), ("E3", "Z")])

    result = tier_outside_universe(ens, {"A"}, ["A", "Z"])

    assert as_set(result) == {("E2", "Z"), ("E3", "Z")}


def test_apply_tiers_first_tier_wins():
    """Test that a symbol accepted by an earlier tier is not passed on."""
    seen = []

    def first(remaining):
        seen.append(("first", list(remaining)))
        return pairs([("E1", "A")])

    def second(remaining):
        seen.append(("second", list(remaining)))
        # Returns A again; it must not be counted twice
        return pairs([("E9", "A"), ("E2", "B")])

    accepted, counts, unresolved = apply_tiers(
        [("first", first), ("second", second)], {"A", "B", "C"}
    )

    assert counts == {"first": 1, "second": 1}
    assert unresolved == {"C"}
    assert seen == [("first", ["A", "B", "C"]), ("second", ["B", "C"])]
    assert len(accepted) == 2


# ============================================================================
# Gates
# ============================================================================

def test_chip_gates_flag_ambiguous_mapping(ensembl_thresholds):
    """Test the median and single-mapping gates on a mostly ambiguous table."""
    ens = pairs([("E1", "A"), ("E2", "A"), ("E3", "B"), ("E4", "B"), ("E5", "C")])
    members = collection_pairs([("C1", "E1", "A")])

    gates = gates_by_name(chip_gates(ens, members, ensembl_thresholds))

    assert not gates["median_ids_per_symbol"].passed()
    assert not gates["single_mapping_fraction"].passed()
    assert not gates["positional_coverage"].passed()
    assert not gates["reliable_collections"].passed()
    assert gates["max_ids_per_symbol"].passed()


def test_chip_gates_median_counts_chip_rows(ensembl_thresholds):
    """Three single-ID symbols and two three-ID symbols: the per-symbol
    median is 1 but five of nine CHIP rows belong to ambiguous symbols."""
    ens = pairs([
        ("E1", "A"), ("E2", "B"), ("E3", "C"),
        ("E4", "D"), ("E5", "D"), ("E6", "D"),
        ("E7", "F"), ("E8", "F"), ("E9", "F"),
    ])
    members = collection_pairs([("C1", "E1", "A")])

    gates = gates_by_name(chip_gates(ens, members, ensembl_thresholds))

    assert not gates["median_ids_per_symbol"].passed()
    assert "is 3" in gates["median_ids_per_symbol"].message
    assert gates["max_ids_per_symbol"].passed()


def test_resolved_gates_detect_lost_symbol(ensembl_thresholds):
    ens = pairs([("E1", "A"), ("E2", "B")])
    resolved = pairs([("E1", "A")])

    gates = gates_by_name(resolved_gates(ens, resolved, ensembl_thresholds))

    assert not gates["symbol_set_identical"].passed()
    assert not gates["retained_ensembl_ids"].passed()


# ============================================================================
# Full resolution
# ============================================================================

def test_resolve_ensembl_genes(msigdb_tables, ensembl_chip, ensembl_thresholds):
    """Test that B resolves to the ID corroborated by two collections."""
    resolved, report = resolve_ensembl_genes(msigdb_tables, ensembl_chip, ensembl_thresholds)

    assert resolved.columns == ["db_ensembl_gene", "db_gene_symbol"]
    assert resolved.rows() == [
        ("ENSG01", "A"),
        ("ENSG02", "B"),
        ("ENSG04", "C"),
        ("ENSG05", "D"),
    ]
    assert report.tier_counts == {
        "single_chip_id": 3,
        "unique_positional": 0,
        "unique_reliable": 0,
        "corroborated": 1,
        "positional": 0,
        "reliable": 0,
        "chip_only": 0,
    }
    assert report.chip_pairs == 5
    assert report.resolved_ensembl_ids == 4
    assert report.multi_mapped_symbols == 0


def test_resolve_keeps_every_chip_symbol(msigdb_tables, ensembl_chip, ensembl_thresholds):
    """Test that resolution never drops a symbol of the filtered CHIP table."""
    ens = prepare_ensembl_chip(ensembl_chip, msigdb_tables.gene_symbol, ensembl_thresholds)

    resolved, _ = resolve_ensembl_genes(msigdb_tables, ensembl_chip, ensembl_thresholds)

    assert set(resolved["db_gene_symbol"].to_list()) == set(ens["db_gene_symbol"].to_list())
    assert as_set(resolved) <= as_set(ens)


def test_resolve_falls_back_to_all_positional_candidates(
    msigdb_frames, ensembl_chip, ensembl_thresholds
):
    """Without Reactome corroboration, B keeps both positional IDs."""
    # Drop the ENSG02 member from the Reactome set
    msigdb_frames["gene_set_source_member"] = msigdb_frames["gene_set_source_member"].filter(
        ~((pl.col("gene_set_id") == 2) & (pl.col("source_member_id") == 2))
    )
    tables = MsigdbTables.from_frames(msigdb_frames)
    # Reactome no longer has Ensembl-identified members
    thresholds = ensembl_thresholds.model_copy(update={"min_reliable_collections": 2})

    resolved, report = resolve_ensembl_genes(tables, ensembl_chip, thresholds)

    assert report.tier_counts["corroborated"] == 0
    assert report.tier_counts["positional"] == 1
    assert resolved.filter(pl.col("db_gene_symbol") == "B")["db_ensembl_gene"].to_list() == [
        "ENSG02", "ENSG03"
    ]
    assert report.multi_mapped_symbols == 1


def test_resolve_is_deterministic(msigdb_tables, ensembl_chip, ensembl_thresholds):
    first, _ = resolve_ensembl_genes(msigdb_tables, ensembl_chip, ensembl_thresholds)
    second, _ = resolve_ensembl_genes(
        msigdb_tables, ensembl_chip.reverse(), ensembl_thresholds
    )

    assert first.equals(second)


def test_resolve_fails_on_production_thresholds(msigdb_tables, ensembl_chip):
    """Test that the miniature release cannot pass production tolerances."""
    with pytest.raises(SourceDataShapeError):
        resolve_ensembl_genes(msigdb_tables, ensembl_chip)


def test_resolve_emits_no_deprecation_warnings(msigdb_tables, ensembl_chip, ensembl_thresholds):
    """Membership filters use collection arguments polars accepts without warning."""
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message=".*ambiguous", category=DeprecationWarning)
        resolved, _ = resolve_ensembl_genes(msigdb_tables, ensembl_chip, ensembl_thresholds)

    assert resolved.height > 0
