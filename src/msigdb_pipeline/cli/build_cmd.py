"""Build command: produce the gene set tables for one MSigDB release.

1. For each requested species: load the MSigDB snapshot (DuckDB checkpoint,
   else download), fetch the matching Ensembl CHIP annotation, resolve Ensembl
   IDs and build details and members tables
2. Run the release gates on all built species
3. Checkpoint the built tables and write Parquet/TSV outputs
4. Record provenance
"""

import logging
import sys
from pathlib import Path

import click

from msigdb_pipeline.accessor import clear_cache, get_gene_sets
from msigdb_pipeline.config.loader import load_config, load_config_with_overrides
from msigdb_pipeline.gene_sets import build_species_tables, check_release
from msigdb_pipeline.output import write_gene_set_tables
from msigdb_pipeline.persistence import PipelineStore, ProvenanceTracker, checkpoint_name
from msigdb_pipeline.source import (
    fetch_ensembl_chip,
    load_msigdb_snapshot,
    msigdb_version,
)

logger = logging.getLogger(__name__)

SPECIES_CHOICE = click.Choice(['Hs', 'Mm'], case_sensitive=False)


def _load_snapshot(store, config, version, force):
    """Raw tables from the store, or downloaded and checkpointed."""
    if not force:
        tables = store.load_snapshot(version)
        if tables is not None:
            click.echo(click.style(
                f"  Using checkpointed snapshot {version} (use --force to re-download)",
                fg='yellow'
            ))
            return tables

    click.echo(f"  Downloading MSigDB {version}...")
    tables = load_msigdb_snapshot(
        version,
        config.msigdb,
        work_dir=config.cache_dir,
        min_gene_sets=config.validation.members.min_gene_sets,
    )
    store.save_snapshot(version, tables)
    click.echo(click.style(f"  Snapshot saved: {tables.gene_set.height} gene sets", fg='green'))
    return tables


def _load_chip(store, config, version, species, force):
    table_name = checkpoint_name("raw", version, "ensembl_chip")
    if not force and store.has_checkpoint(table_name):
        return store.load_dataframe(table_name)

    chip = fetch_ensembl_chip(version, species, config.msigdb)
    store.save_dataframe(chip, table_name, description=f"Ensembl gene ID CHIP for {version}")
    return chip


@click.command('build')
@click.option(
    '--release',
    type=str,
    default=None,
    help='MSigDB release, e.g. 2024.1 (default: msigdb.release from config)'
)
@click.option(
    '--species',
    type=SPECIES_CHOICE,
    multiple=True,
    help='Species to build, repeatable (default: msigdb.species from config)'
)
@click.option(
    '--force',
    is_flag=True,
    help='Re-download snapshots even if checkpoints exist'
)
@click.pass_context
def build(ctx, release, species, force):
    """Build gene set details and members tables.

    Every validation gate must pass; a failing gate in any species aborts
    the build before any table is written.
    """
    config_path = ctx.obj['config_path']
    click.echo(click.style("=== MSigDB Gene Set Build ===", bold=True))
    click.echo()

    try:
        click.echo("Loading configuration...")
        overrides = {}
        if release:
            overrides["msigdb.release"] = release
        if species:
            overrides["msigdb.species"] = list(species)
        config = load_config_with_overrides(config_path, overrides)
        click.echo(click.style(f"  Config loaded: {config_path}", fg='green'))
        click.echo(f"  Release: {config.msigdb.release}")
        click.echo(f"  Species: {', '.join(config.msigdb.species)}")
        click.echo(f"  DuckDB Path: {config.duckdb_path}")
        click.echo()

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        results = []
        for code in config.msigdb.species:
            version = msigdb_version(config.msigdb.release, code)
            click.echo(click.style(f"--- {version} ---", bold=True))

            tables = _load_snapshot(store, config, version, force)
            provenance.record_step('load_snapshot', {
                'gene_sets': tables.gene_set.height,
                'source_members': tables.source_member.height,
            }, version=version)

            chip = _load_chip(store, config, version, code, force)
            provenance.record_step('fetch_ensembl_chip', {
                'rows': chip.height,
            }, version=version)

            click.echo("  Resolving Ensembl IDs and building tables...")
            result = build_species_tables(tables, chip, config.validation)
            provenance.record_step('build_species_tables', result.summary(), version=version)
            click.echo()
            results.append(result)

        click.echo("Checking release tables...")
        check_release(results, config.validation.release)
        provenance.record_step('release_gates', {
            'versions': [result.version for result in results],
        })
        click.echo()

        for result in results:
            for table, df in (('gene_set_details', result.details), ('gene_set_members', result.members)):
                store.save_dataframe(
                    df,
                    checkpoint_name("built", result.version, table),
                    description=f"{table} {result.version}",
                )

            paths = write_gene_set_tables(
                result,
                Path(config.output_dir),
                extra_metadata={'config_hash': provenance.config_hash},
            )
            for kind_paths in paths.values():
                click.echo(click.style(f"  Wrote {kind_paths['parquet']}", fg='green'))
        click.echo()

        provenance_path = provenance.save_sidecar(Path(config.data_dir) / "build")
        provenance.save_to_store(store)
        clear_cache()

        click.echo(click.style("=== Build Summary ===", bold=True))
        for summary in (result.summary() for result in results):
            click.echo(
                f"{summary['version']}: {summary['gene_sets']} gene sets, "
                f"{summary['member_rows']} member rows, "
                f"{summary['ensembl_genes']} Ensembl IDs"
            )
            for tier, count in summary['ensembl_tiers'].items():
                click.echo(f"  {tier}: {count}")
        click.echo(f"Provenance: {provenance_path}")
        click.echo()
        click.echo(click.style("Build complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Build failed: {e}", fg='red'), err=True)
        logger.exception("Build command failed")
        sys.exit(1)
    finally:
        if 'store' in locals():
            store.close()


@click.command('show')
@click.option(
    '--species',
    type=SPECIES_CHOICE,
    default='Hs',
    help='Species to show'
)
@click.option(
    '--rows',
    type=int,
    default=10,
    help='Number of rows to print'
)
@click.pass_context
def show(ctx, species, rows):
    """Print the first rows of the built gene set table."""
    try:
        config = load_config(ctx.obj['config_path'])
        gene_sets = get_gene_sets(species, data_dir=config.output_dir)
        click.echo(f"{gene_sets.height} rows, {gene_sets['gs_id'].n_unique()} gene sets")
        click.echo(gene_sets.head(rows))
    except Exception as e:
        click.echo(click.style(f"Show failed: {e}", fg='red'), err=True)
        logger.exception("Show command failed")
        sys.exit(1)
