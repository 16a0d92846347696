"""Raw MSigDB snapshot access: download, SQLite extraction and CHIP annotation."""

from msigdb_pipeline.source.fetch import (
    download_file,
    fetch_ensembl_chip,
    load_msigdb_snapshot,
    parse_chip,
    url_exists,
)
from msigdb_pipeline.source.models import (
    CHIP_COLUMNS,
    RAW_TABLE_SCHEMAS,
    MsigdbTables,
    ensembl_chip_url,
    msigdb_version,
    normalize_species,
    parse_msigdb_version,
    release_archive_url,
)
from msigdb_pipeline.source.sqlite import read_msigdb_sqlite

__all__ = [
    "MsigdbTables",
    "RAW_TABLE_SCHEMAS",
    "CHIP_COLUMNS",
    "normalize_species",
    "parse_msigdb_version",
    "msigdb_version",
    "release_archive_url",
    "ensembl_chip_url",
    "url_exists",
    "download_file",
    "load_msigdb_snapshot",
    "parse_chip",
    "fetch_ensembl_chip",
    "read_msigdb_sqlite",
]
