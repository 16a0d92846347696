"""Download the MSigDB SQLite release and its Ensembl CHIP annotation.

Downloads are not retried: the URL is checked with a HEAD request first and
any HTTP failure aborts the build.
"""

import io
import tempfile
import zipfile
from pathlib import Path

import httpx
import polars as pl
import structlog

from msigdb_pipeline.config.schema import MsigdbSourceConfig
from msigdb_pipeline.exceptions import SourceDataShapeError
from msigdb_pipeline.source.models import (
    CHIP_COLUMNS,
    MsigdbTables,
    ensembl_chip_url,
    release_archive_url,
)
from msigdb_pipeline.source.sqlite import read_msigdb_sqlite

logger = structlog.get_logger(__name__)


def url_exists(url: str, timeout: float = 30.0) -> bool:
    """Check that a URL resolves with a HEAD request."""
    try:
        response = httpx.head(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.warning("url_check_failed", url=url, error=str(e))
        return False
    return response.status_code < 400


def download_file(url: str, output_path: Path, timeout: float = 100.0) -> Path:
    """Stream a URL to disk.

    Args:
        url: Source URL
        output_path: Destination file (parent directories are created)
        timeout: Request timeout in seconds

    Returns:
        Path to the downloaded file

    Raises:
        httpx.HTTPStatusError: On HTTP error responses
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("download_start", url=url)

    with httpx.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
        response.raise_for_status()

        total_bytes = int(response.headers.get("content-length", 0))
        downloaded = 0

        with open(output_path, "wb") as f:
            for chunk in response.iter_bytes(chunk_size=8192):
                f.write(chunk)
                downloaded += len(chunk)

                # Log progress every 50MB
                if total_bytes > 0 and downloaded % (50 * 1024 * 1024) < 8192:
                    logger.info(
                        "download_progress",
                        downloaded_mb=round(downloaded / 1024 / 1024, 2),
                        total_mb=round(total_bytes / 1024 / 1024, 2),
                        percent=round(downloaded / total_bytes * 100, 1),
                    )

    logger.info(
        "download_complete",
        path=str(output_path),
        size_mb=round(output_path.stat().st_size / 1024 / 1024, 2),
    )

    return output_path


def load_msigdb_snapshot(
    version: str,
    source: MsigdbSourceConfig,
    work_dir: Path | None = None,
    min_gene_sets: int = 10000,
) -> MsigdbTables:
    """Download, extract and read one MSigDB release.

    The archive and the extracted database live in a temporary directory
    that is removed when this function returns or raises.

    Args:
        version: MSigDB version, such as 2024.1.Hs
        source: Download locations and timeout
        work_dir: Parent directory for the temporary files (default: system temp)
        min_gene_sets: Minimum rows expected in the gene_set table

    Returns:
        MsigdbTables read fully into memory

    Raises:
        SourceDataShapeError: If the release archive does not exist or lacks
            the expected database file or tables
    """
    url = release_archive_url(version, source.release_url_base)
    if not url_exists(url):
        raise SourceDataShapeError(f"The MSigDB SQLite file URL does not exist: {url}")

    db_name = f"msigdb_v{version}.db"

    if work_dir is not None:
        Path(work_dir).mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="msigdb_", dir=work_dir) as tmp:
        tmp_dir = Path(tmp)
        zip_path = download_file(url, tmp_dir / f"{db_name}.zip", timeout=source.timeout_seconds)

        with zipfile.ZipFile(zip_path) as archive:
            members = [name for name in archive.namelist() if Path(name).name == db_name]
            if not members:
                raise SourceDataShapeError(f"{zip_path.name} does not contain {db_name}")
            db_path = Path(archive.extract(members[0], tmp_dir))

        logger.info("msigdb_snapshot_extracted", path=str(db_path))
        return read_msigdb_sqlite(db_path, version, min_gene_sets=min_gene_sets)


def parse_chip(content: bytes) -> pl.DataFrame:
    """Parse a CHIP annotation file (tab-separated, all columns as text)."""
    return pl.read_csv(
        io.BytesIO(content),
        separator="\t",
        infer_schema_length=0,
        quote_char=None,
    )


def fetch_ensembl_chip(
    version: str,
    species: str,
    source: MsigdbSourceConfig,
) -> pl.DataFrame:
    """Download the MSigDB Ensembl gene ID CHIP file.

    MSigDB versions and the Ensembl releases used for gene annotation:
    2023.1 - 109, 2023.2 - 110, 2024.1 - 112.

    Args:
        version: MSigDB version name from the snapshot (e.g. 2024.1.Hs)
        species: Target species code (HS or MM)
        source: Download locations and timeout

    Returns:
        Raw CHIP table with columns Probe Set ID, Gene Symbol, Gene Title

    Raises:
        SourceDataShapeError: If the CHIP file URL does not exist
    """
    url = ensembl_chip_url(version, species, source.annotations_url_base)
    if not url_exists(url):
        raise SourceDataShapeError(f"The Ensembl ID CHIP file URL does not exist: {url}")

    logger.info("ensembl_chip_fetch_start", url=url)

    response = httpx.get(url, timeout=source.timeout_seconds, follow_redirects=True)
    response.raise_for_status()
    chip = parse_chip(response.content)

    logger.info(
        "ensembl_chip_fetch_complete",
        rows=chip.height,
        columns=chip.columns,
        expected_columns=list(CHIP_COLUMNS),
    )

    return chip
