"""Raw MSigDB snapshot tables and download locations."""

from dataclasses import dataclass

import polars as pl

from msigdb_pipeline.exceptions import InvalidArgumentError, SourceDataShapeError

# Columns read from each SQLite table, with the dtypes the builders expect.
# Identifier joins are integer keys; gene and publication IDs are kept as text
# (NCBI IDs are stored as character downstream).
# https://docs.gsea-msigdb.org/#MSigDB/MSigDB_SQLite_Database/
RAW_TABLE_SCHEMAS: dict[str, dict[str, pl.DataType]] = {
    "MSigDB": {
        "version_name": pl.Utf8,
        "target_species_code": pl.Utf8,
    },
    "gene_set": {
        "id": pl.Int64,
        "standard_name": pl.Utf8,
        "collection_name": pl.Utf8,
    },
    "gene_set_details": {
        "gene_set_id": pl.Int64,
        "description_brief": pl.Utf8,
        "description_full": pl.Utf8,
        "systematic_name": pl.Utf8,
        "external_details_URL": pl.Utf8,
        "source_species_code": pl.Utf8,
        "publication_id": pl.Int64,
        "GEO_id": pl.Utf8,
    },
    "gene_symbol": {
        "id": pl.Int64,
        "symbol": pl.Utf8,
        "NCBI_id": pl.Utf8,
    },
    "namespace": {
        "id": pl.Int64,
        "label": pl.Utf8,
        "species_code": pl.Utf8,
    },
    "source_member": {
        "id": pl.Int64,
        "source_id": pl.Utf8,
        "gene_symbol_id": pl.Int64,
        "namespace_id": pl.Int64,
    },
    "gene_set_source_member": {
        "gene_set_id": pl.Int64,
        "source_member_id": pl.Int64,
    },
    "publication": {
        "id": pl.Int64,
        "PMID": pl.Utf8,
    },
    "collection": {
        "collection_name": pl.Utf8,
        "full_name": pl.Utf8,
        "description": pl.Utf8,
    },
}

# Ensembl CHIP annotation file compiled for MSigDB
CHIP_COLUMNS = ("Probe Set ID", "Gene Symbol", "Gene Title")

# Target species code -> (annotation directory, file prefix)
SPECIES_ANNOTATIONS = {
    "HS": ("human", "Human"),
    "MM": ("mouse", "Mouse"),
}


@dataclass(frozen=True)
class MsigdbTables:
    """In-memory copy of one MSigDB release for one target species.

    Attributes mirror the SQLite tables listed in RAW_TABLE_SCHEMAS; `msigdb`
    holds the single MSigDB row for the requested version.
    """
    msigdb: pl.DataFrame
    gene_set: pl.DataFrame
    gene_set_details: pl.DataFrame
    gene_symbol: pl.DataFrame
    namespace: pl.DataFrame
    source_member: pl.DataFrame
    gene_set_source_member: pl.DataFrame
    publication: pl.DataFrame
    collection: pl.DataFrame

    @classmethod
    def from_frames(cls, frames: dict[str, pl.DataFrame]) -> "MsigdbTables":
        """Select and cast the expected columns of each raw table.

        Args:
            frames: Table name (as in SQLite, e.g. "MSigDB") -> DataFrame

        Raises:
            SourceDataShapeError: If a table or column is missing, or required
                name fields contain nulls
        """
        tables = {}
        for table_name, schema in RAW_TABLE_SCHEMAS.items():
            if table_name not in frames:
                raise SourceDataShapeError(f"Missing table {table_name!r} in MSigDB snapshot")
            df = frames[table_name]
            missing = [col for col in schema if col not in df.columns]
            if missing:
                raise SourceDataShapeError(
                    f"Table {table_name!r} is missing columns {missing}"
                )
            tables[table_name.lower()] = df.select(
                [pl.col(col).cast(dtype) for col, dtype in schema.items()]
            )

        if tables["gene_set"]["standard_name"].null_count() > 0:
            raise SourceDataShapeError("Missing standard_name in gene_set")
        if tables["gene_set_details"]["systematic_name"].null_count() > 0:
            raise SourceDataShapeError("Missing systematic_name in gene_set_details")

        return cls(**tables)

    @property
    def version_name(self) -> str:
        return self.msigdb["version_name"][0]

    @property
    def target_species(self) -> str:
        return self.msigdb["target_species_code"][0]

    def require_single_version(self) -> None:
        """The MSigDB metadata table must describe exactly one release."""
        if self.msigdb.height != 1:
            raise SourceDataShapeError(
                f"MSigDB table must have exactly one row, found {self.msigdb.height}"
            )


def normalize_species(code: str) -> str:
    """Map a species code ("HS", "hs", "Mm", ...) to its upper-case form.

    Raises:
        InvalidArgumentError: If the code is not human or mouse
    """
    normalized = str(code).upper()
    if normalized not in SPECIES_ANNOTATIONS:
        raise InvalidArgumentError(
            f"Unsupported species code {code!r}; expected one of {sorted(SPECIES_ANNOTATIONS)}"
        )
    return normalized


def parse_msigdb_version(version: str) -> tuple[str, str]:
    """Split an MSigDB version such as "2024.1.Hs" into ("2024.1", "HS")."""
    release, sep, species = version.rpartition(".")
    if not sep or not release:
        raise InvalidArgumentError(
            f"MSigDB version must look like '2024.1.Hs', got {version!r}"
        )
    return release, normalize_species(species)


def msigdb_version(release: str, species: str) -> str:
    """Build the MSigDB version name ("2024.1", "HS") -> "2024.1.Hs"."""
    return f"{release}.{normalize_species(species).capitalize()}"


def release_archive_url(version: str, url_base: str) -> str:
    return f"{url_base}/{version}/msigdb_v{version}.db.zip"


def ensembl_chip_url(version: str, species: str, url_base: str) -> str:
    """URL of the Ensembl gene ID CHIP file matching an MSigDB version."""
    directory, prefix = SPECIES_ANNOTATIONS[normalize_species(species)]
    return f"{url_base}/{directory}/{prefix}_Ensembl_Gene_ID_MSigDB.v{version}.chip"
