"""Gene set details: one metadata row per gene set."""

import polars as pl
import structlog

from msigdb_pipeline.gates import Gate, run_gates
from msigdb_pipeline.source.models import MsigdbTables

logger = structlog.get_logger(__name__)

DETAIL_COLUMNS = [
    "gs_collection",
    "gs_subcollection",
    "gs_id",
    "gs_name",
    "gs_description",
    "gs_source_species",
    "gs_pmid",
    "gs_geoid",
    "gs_url",
    "db_version",
    "db_target_species",
]

# Descriptive fields where a missing value becomes an empty string
OPTIONAL_DETAIL_COLUMNS = [
    "gs_subcollection",
    "gs_description",
    "gs_pmid",
    "gs_geoid",
    "gs_url",
]


def split_collection(df: pl.DataFrame, column: str = "collection_name") -> pl.DataFrame:
    """Split a collection name on its first colon.

    "C2:CP:REACTOME" becomes gs_collection="C2", gs_subcollection="CP:REACTOME";
    "H" becomes gs_collection="H" with a null subcollection.
    """
    parts = pl.col(column).str.splitn(":", 2)
    return df.with_columns(
        parts.struct.field("field_0").alias("gs_collection"),
        parts.struct.field("field_1").alias("gs_subcollection"),
    ).drop(column)


def detail_gates(details: pl.DataFrame, tables: MsigdbTables) -> list[Gate]:
    """Completeness checks on the details table against its inputs."""
    output_ids = sorted(details["gs_id"].drop_nulls().to_list())
    input_ids = sorted(tables.gene_set_details["systematic_name"].to_list())

    gates = [
        Gate(
            name="column_count",
            check=lambda: details.width == len(DETAIL_COLUMNS),
            message=f"{details.width} columns, expected {len(DETAIL_COLUMNS)}",
        ),
        Gate(
            name="row_count",
            check=lambda: details.height == tables.gene_set.height,
            message=(
                f"{details.height} gene sets after merging, "
                f"{tables.gene_set.height} in gene_set"
            ),
        ),
        Gate(
            name="gs_id_set_identical",
            check=lambda: output_ids == input_ids,
            message="gene set identifiers differ from gene_set_details.systematic_name",
        ),
    ]
    for column in ("gs_id", "gs_name", "gs_collection"):
        null_count = details[column].null_count()
        gates.append(Gate(
            name=f"no_null_{column}",
            check=lambda n=null_count: n == 0,
            message=f"{null_count} nulls in column {column}",
        ))
    return gates


def _log_collection_summary(merged: pl.DataFrame) -> None:
    unknown = merged.filter(pl.col("collection_full_name").is_null())
    if unknown.height > 0:
        logger.warning(
            "gene_set_collection_unknown",
            gene_sets=unknown.height,
            collections=sorted(unknown["collection_name"].drop_nulls().unique().to_list())[:10],
        )

    summary = (
        merged
        .group_by("collection_name", "collection_full_name")
        .agg(pl.len().alias("gene_sets"))
        .sort("collection_name")
    )
    for row in summary.iter_rows(named=True):
        logger.debug(
            "gene_set_collection",
            collection=row["collection_name"],
            full_name=row["collection_full_name"],
            gene_sets=row["gene_sets"],
        )


def build_gene_set_details(tables: MsigdbTables) -> pl.DataFrame:
    """Combine gene set, detail, collection and publication tables.

    Args:
        tables: Raw MSigDB tables for one release and species

    Returns:
        DataFrame with DETAIL_COLUMNS, one row per gene set, sorted by
        gs_name then gs_id; missing descriptive fields are empty strings

    Raises:
        SourceDataShapeError: If the MSigDB table does not have exactly one row
        ValidationError: If gene sets were lost, duplicated or altered
    """
    tables.require_single_version()

    logger.info("gene_set_details_start", gene_sets=tables.gene_set.height)

    gene_set = tables.gene_set.rename({"id": "gene_set_id"})
    collection = (
        tables.collection
        .select("collection_name", pl.col("full_name").alias("collection_full_name"))
        .unique(subset="collection_name", keep="first", maintain_order=True)
    )
    publication = tables.publication.rename({"id": "publication_id"}).unique(
        subset="publication_id", keep="first", maintain_order=True
    )

    merged = (
        gene_set
        .join(tables.gene_set_details, on="gene_set_id", how="inner")
        .join(collection, on="collection_name", how="left")
        .join(publication, on="publication_id", how="left")
    )
    _log_collection_summary(merged)

    details = (
        split_collection(merged)
        .select(
            pl.col("gs_collection"),
            pl.col("gs_subcollection"),
            pl.col("systematic_name").alias("gs_id"),
            pl.col("standard_name").alias("gs_name"),
            pl.col("description_brief").alias("gs_description"),
            pl.col("source_species_code").alias("gs_source_species"),
            pl.col("PMID").cast(pl.Utf8).alias("gs_pmid"),
            pl.col("GEO_id").alias("gs_geoid"),
            pl.col("external_details_URL").alias("gs_url"),
        )
        .with_columns(
            [pl.col(col).fill_null("") for col in OPTIONAL_DETAIL_COLUMNS]
            + [
                pl.lit(tables.version_name, dtype=pl.Utf8).alias("db_version"),
                pl.lit(tables.target_species, dtype=pl.Utf8).alias("db_target_species"),
            ]
        )
        .unique(maintain_order=True)
        .sort(["gs_name", "gs_id"])
    )

    run_gates("gene_set_details", detail_gates(details, tables))

    logger.info(
        "gene_set_details_complete",
        gene_sets=details.height,
        collections=details["gs_collection"].n_unique(),
        version=tables.version_name,
        target_species=tables.target_species,
    )

    return details
