"""Gene set details and membership tables."""

from msigdb_pipeline.gene_sets.build import SpeciesTables, build_species_tables
from msigdb_pipeline.gene_sets.details import (
    DETAIL_COLUMNS,
    build_gene_set_details,
    split_collection,
)
from msigdb_pipeline.gene_sets.members import (
    MEMBER_COLUMNS,
    PairCounts,
    attach_ensembl_ids,
    build_gene_set_members,
)
from msigdb_pipeline.gene_sets.release import check_release

__all__ = [
    "SpeciesTables",
    "build_species_tables",
    "DETAIL_COLUMNS",
    "build_gene_set_details",
    "split_collection",
    "MEMBER_COLUMNS",
    "PairCounts",
    "attach_ensembl_ids",
    "build_gene_set_members",
    "check_release",
]
