"""Checks on the finished tables of a release.

Per species: enough gene sets and member symbols, and more distinct Ensembl
IDs than NCBI IDs. Across species, when both are built: identical columns
and a human release clearly larger than the mouse one.
"""

import structlog

from msigdb_pipeline.config.schema import ReleaseThresholds
from msigdb_pipeline.gates import Gate, ratio, run_gates
from msigdb_pipeline.gene_mapping.chip import ENSEMBL_COLUMN, SYMBOL_COLUMN
from msigdb_pipeline.gene_sets.build import SpeciesTables
from msigdb_pipeline.gene_sets.members import NCBI_COLUMN

logger = structlog.get_logger(__name__)


def species_release_gates(result: SpeciesTables, thresholds: ReleaseThresholds) -> list[Gate]:
    n_gene_sets = result.details["gs_id"].n_unique()
    min_gene_sets = thresholds.min_gene_sets(result.target_species)
    n_symbols = result.members[SYMBOL_COLUMN].n_unique()
    n_ensembl = result.members[ENSEMBL_COLUMN].n_unique()
    n_ncbi = result.members[NCBI_COLUMN].n_unique()

    return [
        Gate(
            name="release_min_gene_sets",
            check=lambda: n_gene_sets >= min_gene_sets,
            message=f"{n_gene_sets} gene sets in details, expected at least {min_gene_sets}",
        ),
        Gate(
            name="release_min_member_symbols",
            check=lambda: n_symbols >= thresholds.min_member_symbols,
            message=(
                f"{n_symbols} gene symbols in members, "
                f"expected at least {thresholds.min_member_symbols}"
            ),
        ),
        Gate(
            name="ensembl_exceeds_ncbi",
            check=lambda: n_ensembl > thresholds.min_ensembl_to_ncbi_ratio * n_ncbi,
            message=(
                f"{n_ensembl} distinct Ensembl IDs for {n_ncbi} distinct NCBI IDs, "
                f"expected more than {thresholds.min_ensembl_to_ncbi_ratio}x"
            ),
        ),
    ]


def cross_species_gates(
    human: SpeciesTables,
    mouse: SpeciesTables,
    thresholds: ReleaseThresholds,
) -> list[Gate]:
    """Human and mouse tables share columns; human has more rows by a margin."""
    min_ratio = thresholds.min_hs_to_mm_row_ratio
    gates = []
    for table in ("details", "members"):
        hs = getattr(human, table)
        mm = getattr(mouse, table)
        row_ratio = ratio(hs.height, mm.height)
        gates += [
            Gate(
                name=f"{table}_columns_match",
                check=lambda hs=hs, mm=mm: hs.columns == mm.columns,
                message=f"HS {table} columns {hs.columns} differ from MM {mm.columns}",
            ),
            Gate(
                name=f"{table}_hs_to_mm_rows",
                check=lambda hs=hs, mm=mm: hs.height > min_ratio * mm.height,
                message=(
                    f"HS {table} has {hs.height} rows, MM has {mm.height} "
                    f"({row_ratio:.2f}x), expected more than {min_ratio}x"
                ),
            ),
        ]
    return gates


def check_release(results: list[SpeciesTables], thresholds: ReleaseThresholds | None = None) -> None:
    """Run the release gates on every built species.

    Cross-species gates run only when both HS and MM are among the results.

    Raises:
        ValidationError: From the first failing gate
    """
    thresholds = thresholds or ReleaseThresholds()

    for result in results:
        run_gates(f"release_{result.version}", species_release_gates(result, thresholds))

    by_species = {result.target_species.upper(): result for result in results}
    if "HS" in by_species and "MM" in by_species:
        run_gates(
            "release_cross_species",
            cross_species_gates(by_species["HS"], by_species["MM"], thresholds),
        )
    else:
        logger.info("cross_species_gates_skipped", species=sorted(by_species))
