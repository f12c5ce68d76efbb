"""Main CLI entry point for Tableau Migration Tool."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config.config import Config
from ..migration.engine import MigrationEngine
from ..migration.manifest import JsonManifestStore
from ..migration.orchestrator import MigrationAbortedError, MigrationSummary
from ..utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.tableau-migrate.yaml']


@click.group()
@click.version_option(version='0.1.0', prog_name='tableau-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Tableau Migration Tool - Migrate users, groups, projects, data sources and workbooks between Tableau sites."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]Tableau Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)
    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)

    console.print(f'[green]✓[/green] Configuration template created at: {output}')
    console.print(f'[yellow]Please edit {output} with your Tableau site details[/yellow]')


@cli.command()
@click.option(
    '--dry-run',
    is_flag=True,
    help='Walk and filter source content without publishing anything',
)
@click.option(
    '--manifest',
    '-m',
    type=click.Path(dir_okay=False),
    help='Manifest file to resume from and record progress in',
)
@click.option(
    '--plan-id',
    help='Identity of the migration plan; a manifest of another plan is ignored',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    dry_run: bool,
    manifest: Optional[str],
    plan_id: Optional[str],
) -> None:
    """Start the migration process."""
    console.print(
        Panel.fit(
            '[bold blue]Tableau Migration Tool[/bold blue]\n'
            'Starting migration process...',
            border_style='blue',
        )
    )

    if dry_run:
        console.print('[yellow]Running in dry-run mode - no changes will be made[/yellow]')

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if manifest:
            config.migration.manifest_path = manifest
        if plan_id:
            config.migration.plan_id = plan_id
        if dry_run:
            config.migration.dry_run = True

        summary = asyncio.run(_run_migration(config, dry_run))
    except MigrationAbortedError as e:
        console.print(f'[red]✗[/red] {e}')
        _display_migration_summary(e.summary)
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    operation = 'Dry run' if dry_run else 'Migration'
    console.print(f'[green]✓[/green] {operation} completed')
    _display_migration_summary(summary)

    if summary.failed_migrations:
        sys.exit(2)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and sign-in to both sites."""
    console.print(
        Panel.fit(
            '[bold cyan]Tableau Migration Tool[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)
        results = asyncio.run(MigrationEngine(config).validate())
    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    console.print('[green]✓[/green] Configuration validation completed')
    for site, ok in results.items():
        mark = '[green]✓[/green]' if ok else '[red]✗[/red]'
        console.print(f'{mark} {site.title()} sign-in {"succeeded" if ok else "failed"}')

    if not all(results.values()):
        sys.exit(1)


@cli.command()
@click.option(
    '--manifest',
    '-m',
    type=click.Path(dir_okay=False),
    help='Manifest file to report on',
)
@click.pass_context
def status(ctx: click.Context, manifest: Optional[str]) -> None:
    """Show migration configuration and manifest progress."""
    console.print(
        Panel.fit(
            '[bold magenta]Tableau Migration Tool[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    table = Table(title='Migration Configuration')
    table.add_column('Setting', style='cyan')
    table.add_column('Value', style='green')

    settings = config.migration
    table.add_row('Source', f'{config.source.server_url} ({config.source.site_content_url or "default"})')
    table.add_row(
        'Destination',
        f'{config.destination.server_url} ({config.destination.site_content_url or "default"})',
    )
    for label, enabled in (
        ('Migrate Users', settings.users),
        ('Migrate Groups', settings.groups),
        ('Migrate Projects', settings.projects),
        ('Migrate Data Sources', settings.data_sources),
        ('Migrate Workbooks', settings.workbooks),
        ('Migrate Permissions', settings.permissions),
    ):
        table.add_row(label, '✓' if enabled else '✗')
    table.add_row('Page Size', str(settings.page_size))
    table.add_row('Max Concurrency', str(settings.max_concurrency))
    table.add_row('Retry Intervals', ', '.join(str(i) for i in config.resilience.retry_intervals))
    console.print(table)

    manifest_path = manifest or settings.manifest_path
    if not Path(manifest_path).exists():
        console.print(f'[yellow]No manifest found at {manifest_path}[/yellow]')
        return

    loaded = JsonManifestStore(manifest_path).load(settings.plan_id)
    progress = Table(title=f'Manifest {manifest_path}')
    progress.add_column('Content Type', style='cyan')
    for column, style in (
        ('completed', 'green'),
        ('failed', 'red'),
        ('skipped', 'yellow'),
        ('pending', 'blue'),
    ):
        progress.add_column(column.title(), style=style)

    for content_type in sorted({e.content_type for e in loaded.entries()}, key=lambda t: t.value):
        counts = loaded.counts(content_type)
        progress.add_row(
            content_type.value.replace('_', ' ').title(),
            str(counts['completed']),
            str(counts['failed']),
            str(counts['skipped']),
            str(counts['pending']),
        )
    console.print(progress)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    try:
        return Config.from_env()
    except ValueError as e:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            '"tableau-migrate init" to create one.'
        ) from e


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    log_level = 'DEBUG' if ctx.obj.get('verbose') else config.logging.level
    setup_logging(
        level=log_level,
        log_file=config.logging.file,
        log_format=config.logging.format,
    )


async def _run_migration(config: Config, dry_run: bool = False) -> MigrationSummary:
    """Run the migration with a status spinner."""
    engine = MigrationEngine(config)
    operation = 'Dry run' if dry_run else 'Migration'

    with console.status(f'[blue]{operation} in progress...'):
        if dry_run:
            return await engine.dry_run()
        return await engine.migrate()


def _display_migration_summary(summary: MigrationSummary) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Content Type', style='cyan')
    table.add_column('Total', style='blue')
    table.add_column('Successful', style='green')
    table.add_column('Failed', style='red')
    table.add_column('Skipped', style='yellow')

    for content_type, counts in summary.results_by_type.items():
        table.add_row(
            content_type.replace('_', ' ').title(),
            str(counts.get('total', 0)),
            str(counts.get('successful', 0)),
            str(counts.get('failed', 0)),
            str(counts.get('skipped', 0)),
        )

    console.print(table)

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    if summary.errors:
        console.print(f'\n[red]Errors ({len(summary.errors)}):[/red]')
        for error in summary.errors[:5]:
            console.print(f'  • {error}')
        if len(summary.errors) > 5:
            console.print(f'  ... and {len(summary.errors) - 5} more errors')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
