"""Shared fixtures: a miniature MSigDB release and its Ensembl CHIP table.

The release has four gene symbols (A-D) and four gene sets:

    M1001 CHR1P36           C1              members ENSG01-ENSG05
    M1002 REACTOME_PATHWAY  C2:CP:REACTOME  members ENSG02, A, B
    M1003 GTRD_FACTOR       C3:TFT:GTRD     members ENSG04, C, D
    M1004 HALLMARK_SET      H               members A, B, C, D, ORPHAN1

Symbol B has two CHIP Ensembl IDs (ENSG02, ENSG03); only ENSG02 occurs in
two reliable collections. ORPHAN1 has no gene symbol.
"""

import polars as pl
import pytest

from msigdb_pipeline.config.schema import (
    EnsemblThresholds,
    MembershipThresholds,
    ValidationConfig,
)
from msigdb_pipeline.source.models import MsigdbTables

VERSION = "2024.1.Hs"


def make_msigdb_frames(version: str = VERSION, species: str = "HS") -> dict[str, pl.DataFrame]:
    """Raw tables keyed by their SQLite names."""
    return {
        "MSigDB": pl.DataFrame({
            "version_name": [version],
            "target_species_code": [species],
        }),
        "gene_set": pl.DataFrame({
            "id": [1, 2, 3, 4],
            "standard_name": ["CHR1P36", "REACTOME_PATHWAY", "GTRD_FACTOR", "HALLMARK_SET"],
            "collection_name": ["C1", "C2:CP:REACTOME", "C3:TFT:GTRD", "H"],
        }),
        "gene_set_details": pl.DataFrame({
            "gene_set_id": [1, 2, 3, 4],
            "description_brief": ["Band 1p36", "A Reactome pathway", None, "Hallmark genes"],
            "description_full": [None, None, None, None],
            "systematic_name": ["M1001", "M1002", "M1003", "M1004"],
            "external_details_URL": [None, "https://reactome.org/R-HSA-1", None, None],
            "source_species_code": ["HS", "HS", "HS", "HS"],
            "publication_id": [None, 1, None, None],
            "GEO_id": [None, None, None, "GSE1000"],
        }, schema_overrides={"description_full": pl.Utf8, "publication_id": pl.Int64}),
        "gene_symbol": pl.DataFrame({
            "id": [1, 2, 3, 4],
            "symbol": ["A", "B", "C", "D"],
            "NCBI_id": ["101", "102", "103", "104"],
        }),
        "namespace": pl.DataFrame({
            "id": [1, 2],
            "label": ["HUMAN_GENE_SYMBOL", "HUMAN_ENSEMBL_GENE"],
            "species_code": ["HS", "HS"],
        }),
        "source_member": pl.DataFrame({
            "id": list(range(1, 11)),
            "source_id": [
                "ENSG01", "ENSG02", "ENSG03", "ENSG04", "ENSG05",
                "A", "B", "C", "D", "ORPHAN1",
            ],
            "gene_symbol_id": [1, 2, 2, 3, 4, 1, 2, 3, 4, None],
            "namespace_id": [2, 2, 2, 2, 2, 1, 1, 1, 1, 1],
        }),
        "gene_set_source_member": pl.DataFrame({
            "gene_set_id": [1, 1, 1, 1, 1, 2, 2, 2, 3, 3, 3, 4, 4, 4, 4, 4],
            "source_member_id": [1, 2, 3, 4, 5, 2, 6, 7, 4, 8, 9, 6, 7, 8, 9, 10],
        }),
        "publication": pl.DataFrame({
            "id": [1],
            "PMID": ["12345"],
        }),
        "collection": pl.DataFrame({
            "collection_name": ["C1", "C2:CP:REACTOME", "C3:TFT:GTRD", "H"],
            "full_name": ["Positional", "Reactome", "GTRD", "Hallmark"],
            "description": ["", "", "", ""],
        }),
    }


def make_ensembl_chip() -> pl.DataFrame:
    return pl.DataFrame({
        "Probe Set ID": [
            "ENSG01", "ENSG02", "ENSG03", "ENSG04", "ENSG05", "LRG_1", "ENSG99",
        ],
        "Gene Symbol": ["A", "B", "B", "C", "D", "A", "ZZZ"],
        "Gene Title": ["gene a", "gene b", "gene b", "gene c", "gene d", "gene a", "unknown"],
    })


@pytest.fixture
def msigdb_frames():
    return make_msigdb_frames()


@pytest.fixture
def msigdb_tables(msigdb_frames):
    return MsigdbTables.from_frames(msigdb_frames)


@pytest.fixture
def ensembl_chip():
    return make_ensembl_chip()


@pytest.fixture
def ensembl_thresholds():
    """Resolver tolerances scaled down to the miniature release."""
    return EnsemblThresholds(
        min_chip_rows=5,
        min_reliable_ensembl_ids=5,
        min_single_mapping_fraction=0.75,
    )


@pytest.fixture
def membership_thresholds():
    """Membership tolerances scaled down; one of 16 pairs lacks an NCBI ID."""
    return MembershipThresholds(
        min_pair_ncbi_fraction=0.9,
        min_ncbi_genes=1,
        max_ncbi_genes=100,
        min_gene_sets=1,
        max_gene_sets=100,
    )


@pytest.fixture
def validation_config(ensembl_thresholds, membership_thresholds):
    return ValidationConfig(ensembl=ensembl_thresholds, members=membership_thresholds)


@pytest.fixture
def ensembl_map():
    """Resolver output for the miniature release."""
    return pl.DataFrame({
        "db_ensembl_gene": ["ENSG01", "ENSG02", "ENSG04", "ENSG05"],
        "db_gene_symbol": ["A", "B", "C", "D"],
    })
