"""Pydantic models for pipeline configuration."""

import hashlib
import json
import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

SUPPORTED_SPECIES = ("Hs", "Mm")


class MsigdbSourceConfig(BaseModel):
    """Location and release of the MSigDB snapshot."""

    release: str = Field(
        default="2024.1",
        description="MSigDB release without species suffix (YYYY.N)",
    )
    species: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_SPECIES),
        description="Resources to build (Hs, Mm)",
    )
    release_url_base: str = Field(
        default="https://data.broadinstitute.org/gsea-msigdb/msigdb/release",
        description="Base URL of the SQLite release archives",
    )
    annotations_url_base: str = Field(
        default="https://data.broadinstitute.org/gsea-msigdb/msigdb/annotations",
        description="Base URL of the CHIP annotation files",
    )
    timeout_seconds: int = Field(
        default=100,
        ge=1,
        description="Download timeout in seconds",
    )

    @field_validator("release")
    @classmethod
    def check_release(cls, v: str) -> str:
        """Release must look like 2024.1."""
        if not re.fullmatch(r"\d{4}\.\d+", v):
            raise ValueError(f"release must be in YYYY.N format, got {v!r}")
        return v

    @field_validator("species")
    @classmethod
    def check_species(cls, v: list[str]) -> list[str]:
        """Normalize species to Hs/Mm and reject anything else."""
        normalized = []
        for species in v:
            code = species.capitalize()
            if code not in SUPPORTED_SPECIES:
                raise ValueError(
                    f"species must be one of {SUPPORTED_SPECIES}, got {species!r}"
                )
            normalized.append(code)
        return normalized


class EnsemblThresholds(BaseModel):
    """Tolerances for the symbol to Ensembl ID resolver."""

    min_chip_rows: int = Field(
        default=40000,
        ge=0,
        description="Minimum CHIP rows before and after filtering",
    )
    max_ids_per_symbol: int = Field(
        default=100,
        ge=1,
        description="Maximum CHIP Ensembl IDs for a single symbol",
    )
    max_median_ids_per_symbol: float = Field(
        default=1.0,
        ge=1.0,
        description="Maximum median CHIP Ensembl IDs per symbol",
    )
    min_reliable_collections: int = Field(
        default=3,
        ge=1,
        description="Minimum distinct reliable collections with Ensembl members",
    )
    min_reliable_ensembl_ids: int = Field(
        default=40000,
        ge=0,
        description="Minimum distinct Ensembl IDs in reliable collections",
    )
    min_positional_fraction: float = Field(
        default=0.995,
        ge=0.0,
        le=1.0,
        description="Minimum fraction of CHIP symbols in the positional collection",
    )
    min_single_mapping_fraction: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Minimum fraction of CHIP symbols with exactly one Ensembl ID",
    )
    min_retained_id_fraction: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum fraction of CHIP Ensembl IDs kept after resolution",
    )


class MembershipThresholds(BaseModel):
    """Tolerances for the gene set membership table."""

    min_source_gene_ncbi_fraction: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum fraction of source genes with an NCBI gene ID",
    )
    min_pair_ncbi_fraction: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Minimum fraction of gene set/gene pairs with an NCBI gene ID",
    )
    min_ncbi_genes: int = Field(default=30000, ge=0)
    max_ncbi_genes: int = Field(default=50000, ge=0)
    min_gene_sets: int = Field(default=10000, ge=0)
    max_gene_sets: int = Field(default=50000, ge=0)
    min_retained_pair_fraction: float = Field(
        default=0.95,
        ge=0.0,
        description="Minimum final rows relative to initial gene set/gene pairs",
    )
    min_mapped_pair_ratio: float = Field(
        default=0.99,
        ge=0.0,
        description="Minimum final rows relative to pairs after NCBI mapping",
    )
    max_mapped_pair_ratio: float = Field(
        default=1.01,
        ge=1.0,
        description="Maximum final rows relative to pairs after NCBI mapping",
    )


class ReleaseThresholds(BaseModel):
    """Checks on the finished tables of a release, per species and across species."""

    min_gene_sets_hs: int = Field(
        default=30000,
        ge=0,
        description="Minimum distinct gs_id in the human details table",
    )
    min_gene_sets_mm: int = Field(
        default=10000,
        ge=0,
        description="Minimum distinct gs_id in the mouse details table",
    )
    min_member_symbols: int = Field(
        default=40000,
        ge=0,
        description="Minimum distinct gene symbols in each members table",
    )
    min_ensembl_to_ncbi_ratio: float = Field(
        default=1.0,
        ge=0.0,
        description="Distinct Ensembl IDs must exceed this multiple of distinct NCBI IDs",
    )
    min_hs_to_mm_row_ratio: float = Field(
        default=1.5,
        ge=0.0,
        description="Human tables must have more than this multiple of the mouse rows",
    )

    def min_gene_sets(self, target_species: str) -> int:
        return self.min_gene_sets_hs if target_species.upper() == "HS" else self.min_gene_sets_mm


class ValidationConfig(BaseModel):
    """Validation gate tolerances for all build stages."""

    ensembl: EnsemblThresholds = Field(default_factory=EnsemblThresholds)
    members: MembershipThresholds = Field(default_factory=MembershipThresholds)
    release: ReleaseThresholds = Field(default_factory=ReleaseThresholds)


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory for downloaded snapshots and sidecars",
    )
    cache_dir: Path = Field(
        ...,
        description="Directory for temporary download files",
    )
    output_dir: Path = Field(
        ...,
        description="Directory for the built gene set tables",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB checkpoint database file",
    )
    msigdb: MsigdbSourceConfig = Field(
        default_factory=MsigdbSourceConfig,
        description="MSigDB release and download locations",
    )
    validation: ValidationConfig = Field(
        default_factory=ValidationConfig,
        description="Validation gate tolerances",
    )

    @field_validator("data_dir", "cache_dir", "output_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        Returns a deterministic hash based on all config values,
        useful for tracking which tolerances produced a build.
        """
        config_dict = self.model_dump(mode="python")
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
