"""Dual-format Parquet+TSV writer with provenance sidecar."""

from datetime import datetime, timezone
from pathlib import Path

import polars as pl
import yaml

from msigdb_pipeline.gene_sets.build import SpeciesTables
from msigdb_pipeline.source.models import normalize_species

DETAILS_BASE = "gene_set_details"
MEMBERS_BASE = "gene_set_members"


def table_path(output_dir: Path, table: str, species: str, suffix: str = ".parquet") -> Path:
    """Path of a built table, e.g. gene_set_members_hs.parquet."""
    return Path(output_dir) / f"{table}_{normalize_species(species).lower()}{suffix}"


def write_table(
    df: pl.DataFrame,
    output_dir: Path,
    filename_base: str,
    metadata: dict | None = None,
) -> dict:
    """
    Write a table to TSV and Parquet formats with a YAML provenance sidecar.

    Args:
        df: Table to write (already sorted by its builder)
        output_dir: Directory to write output files (created if doesn't exist)
        filename_base: Base filename without extension
        metadata: Extra provenance entries (release, species, build counts)

    Returns:
        Dictionary with output file paths:
        {"tsv": ..., "parquet": ..., "provenance": ...}
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    tsv_path = output_dir / f"{filename_base}.tsv"
    parquet_path = output_dir / f"{filename_base}.parquet"
    provenance_path = output_dir / f"{filename_base}.provenance.yaml"

    df.write_csv(tsv_path, separator="\t", include_header=True)
    df.write_parquet(parquet_path, compression="snappy", use_pyarrow=True)

    provenance = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "output_files": [tsv_path.name, parquet_path.name],
        "row_count": df.height,
        "column_count": len(df.columns),
        "column_names": df.columns,
    }
    if metadata:
        provenance.update(metadata)

    with open(provenance_path, "w") as f:
        yaml.dump(provenance, f, default_flow_style=False, sort_keys=False)

    return {
        "tsv": tsv_path,
        "parquet": parquet_path,
        "provenance": provenance_path,
    }


def write_gene_set_tables(
    tables: SpeciesTables,
    output_dir: Path,
    extra_metadata: dict | None = None,
) -> dict[str, dict]:
    """
    Write the details and members tables of one species.

    Args:
        tables: Validated SpeciesTables
        output_dir: Directory for the output files
        extra_metadata: Entries added to both sidecars (e.g. config hash)

    Returns:
        {"details": paths, "members": paths} as returned by write_table
    """
    metadata = {
        "msigdb_version": tables.version,
        "target_species": tables.target_species,
        "build_summary": tables.summary(),
    }
    if extra_metadata:
        metadata.update(extra_metadata)

    return {
        "details": write_table(
            tables.details, output_dir, f"{DETAILS_BASE}_{tables.suffix}", metadata
        ),
        "members": write_table(
            tables.members, output_dir, f"{MEMBERS_BASE}_{tables.suffix}", metadata
        ),
    }
