"""msigdb-pipeline command group.

Global options (--config, --verbose) are stored on the click context and read
by the build, show and info subcommands.
"""

import logging
from pathlib import Path

import click

from msigdb_pipeline import __version__
from msigdb_pipeline.config.loader import load_config
from msigdb_pipeline.cli.build_cmd import build, show


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Pipeline configuration YAML'
)
@click.option('--verbose', is_flag=True, help='Log at DEBUG level')
@click.pass_context
def cli(ctx, config, verbose):
    """msigdb-pipeline: MSigDB gene set tables with Ensembl gene IDs.

    Downloads an MSigDB SQLite release, resolves gene symbols to Ensembl gene
    IDs and writes gene set detail and membership tables per species.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _echo_section(title, rows):
    click.echo(click.style(f"{title}:", bold=True))
    for label, value in rows:
        click.echo(f"  {label}: {value}")
    click.echo()


@cli.command()
@click.pass_context
def info(ctx):
    """Show the resolved configuration."""
    config_path = ctx.obj['config_path']

    click.echo(f"MSigDB Pipeline v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)
    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)

    click.echo(f"Config Hash: {config.config_hash()[:16]}...")
    click.echo()

    source = config.msigdb
    _echo_section("MSigDB Source", [
        ("Release", source.release),
        ("Species", ", ".join(source.species)),
        ("Release URL", source.release_url_base),
        ("Annotations URL", source.annotations_url_base),
        ("Timeout", f"{source.timeout_seconds}s"),
    ])
    _echo_section("Paths", [
        ("Data Directory", config.data_dir),
        ("Cache Directory", config.cache_dir),
        ("Output Directory", config.output_dir),
        ("DuckDB Path", config.duckdb_path),
    ])

    ensembl = config.validation.ensembl
    members = config.validation.members
    _echo_section("Validation", [
        ("Min CHIP Rows", ensembl.min_chip_rows),
        ("Min Single-Mapping Fraction", f"{ensembl.min_single_mapping_fraction:.0%}"),
        ("NCBI Genes", f"{members.min_ncbi_genes}-{members.max_ncbi_genes}"),
        ("Gene Sets", f"{members.min_gene_sets}-{members.max_gene_sets}"),
    ])


cli.add_command(build)
cli.add_command(show)


if __name__ == '__main__':
    cli()
