"""Gene symbol to Ensembl ID mapping.

Provides CHIP table preparation and the tiered resolver that reduces
multi-mapping symbols using the reliable MSigDB collections.
"""

from msigdb_pipeline.gene_mapping.chip import (
    ENSEMBL_COLUMN,
    SYMBOL_COLUMN,
    prepare_ensembl_chip,
)
from msigdb_pipeline.gene_mapping.ensembl import (
    POSITIONAL_COLLECTIONS,
    RELIABLE_COLLECTION_PATTERN,
    ResolverReport,
    reliable_collection_members,
    resolve_ensembl_genes,
)

__all__ = [
    "ENSEMBL_COLUMN",
    "SYMBOL_COLUMN",
    "prepare_ensembl_chip",
    "POSITIONAL_COLLECTIONS",
    "RELIABLE_COLLECTION_PATTERN",
    "ResolverReport",
    "reliable_collection_members",
    "resolve_ensembl_genes",
]
