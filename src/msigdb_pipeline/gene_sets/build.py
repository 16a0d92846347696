"""Build both gene set tables for one MSigDB release and species."""

from dataclasses import dataclass

import polars as pl
import structlog

from msigdb_pipeline.config.schema import ValidationConfig
from msigdb_pipeline.gene_mapping.ensembl import ResolverReport, resolve_ensembl_genes
from msigdb_pipeline.gene_sets.details import build_gene_set_details
from msigdb_pipeline.gene_sets.members import build_gene_set_members
from msigdb_pipeline.source.models import MsigdbTables

logger = structlog.get_logger(__name__)


@dataclass
class SpeciesTables:
    """Validated tables for one target species.

    Attributes:
        version: MSigDB version name (e.g. 2024.1.Hs)
        target_species: Target species code (HS or MM)
        details: Gene set details table
        members: Gene set members table
        resolver: Summary of the Ensembl ID resolution
    """
    version: str
    target_species: str
    details: pl.DataFrame
    members: pl.DataFrame
    resolver: ResolverReport

    @property
    def suffix(self) -> str:
        return self.target_species.lower()

    def summary(self) -> dict:
        """Counts recorded in provenance and printed by the CLI."""
        return {
            "version": self.version,
            "target_species": self.target_species,
            "gene_sets": self.details.height,
            "member_rows": self.members.height,
            "gene_symbols": self.members["db_gene_symbol"].n_unique(),
            "ncbi_genes": self.members["db_ncbi_gene"].n_unique(),
            "ensembl_genes": self.members["db_ensembl_gene"].n_unique(),
            "ensembl_tiers": dict(self.resolver.tier_counts),
        }


def build_species_tables(
    tables: MsigdbTables,
    chip: pl.DataFrame,
    validation: ValidationConfig | None = None,
) -> SpeciesTables:
    """Resolve Ensembl IDs, then build the details and members tables.

    Pure function of its inputs: the same snapshot always yields the same
    sorted tables.

    Args:
        tables: Raw MSigDB tables for one release and species
        chip: Raw Ensembl CHIP table for the same version
        validation: Gate tolerances (default: production values)

    Raises:
        PipelineError subclass from the first failing gate
    """
    validation = validation or ValidationConfig()
    tables.require_single_version()

    logger.info(
        "species_build_start",
        version=tables.version_name,
        target_species=tables.target_species,
    )

    ensembl_map, resolver = resolve_ensembl_genes(tables, chip, validation.ensembl)
    details = build_gene_set_details(tables)
    members = build_gene_set_members(tables, ensembl_map, validation.members)

    result = SpeciesTables(
        version=tables.version_name,
        target_species=tables.target_species,
        details=details,
        members=members,
        resolver=resolver,
    )

    summary = result.summary()
    summary.pop("ensembl_tiers")
    logger.info("species_build_complete", **summary)

    return result
