"""Command line interface module."""

import json
from typing import Optional

import click

from .config import Config
from .error_handler import BaseApplicationError, ConfigurationError, handle_error
from .holiday_store import HolidayStore
from .logging_config import LogFormat, LogLevel, log_function_call, log_performance, setup_logging
from .pipeline import HolidayIngestionPipeline
from .realtime_alerts import RealtimeAlertClassifier
from .year_writer import to_json_lf


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--output-dir', '-o', help='Directory holding the per-year JSON documents')
@click.option('--debug', is_flag=True, help='Enable debug mode with verbose logging')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              default='WARNING', help='Set logging level')
@click.option('--log-format', type=click.Choice(['simple', 'detailed', 'json', 'structured']),
              default='simple', help='Set log format')
@click.option('--enable-monitoring', is_flag=True, help='Enable performance monitoring')
@click.pass_context
def cli(ctx, config: Optional[str], output_dir: Optional[str], debug: bool,
        log_level: str, log_format: str, enable_monitoring: bool):
    """Taiwan government office calendar (holiday) open data tool.

    Examples:
      python main.py fetch
      python main.py show 2024
      python main.py realtime
    """
    ctx.ensure_object(dict)

    try:
        logging_manager = setup_logging(
            log_level=getattr(LogLevel, log_level),
            log_format=getattr(LogFormat, log_format.upper()),
            enable_performance_monitoring=enable_monitoring,
            debug_mode=debug
        )
        ctx.obj['logging_manager'] = logging_manager

        ctx.obj['config'] = Config(config)

        if output_dir:
            ctx.obj['config'].set('opendata.holiday.output_dir', output_dir)

    except (OSError, ValueError, BaseApplicationError) as e:
        error = ConfigurationError(
            f"Failed to initialize application: {e}",
            operation="cli_initialization",
            cause=e
        )
        handle_error(error)
        click.echo(f"Error: {error.get_user_message()}", err=True)
        raise click.Abort()


@cli.command()
@click.pass_context
@log_performance("cli_fetch")
@log_function_call()
def fetch(ctx):
    """Download the open data CSV and regenerate every year document."""
    pipeline = HolidayIngestionPipeline.from_config(ctx.obj['config'])

    click.echo(f"Fetching: {pipeline.source_url}")
    try:
        result = pipeline.fetch_and_process()
    except BaseApplicationError as e:
        click.echo(f"Error: {e.get_user_message()}", err=True)
        for suggestion in e.recovery_suggestions:
            click.echo(f"  - {suggestion}", err=True)
        raise click.Abort()

    click.echo(f"Parsed {result.record_count} records, {result.annotated_count} related holidays annotated")
    for year in result.written_years:
        click.echo(f"  {pipeline.writer.year_file(year)}")
    if result.failed_years:
        click.echo(f"Warning: failed to write years {', '.join(result.failed_years)}", err=True)
    click.echo(f"Years index: {', '.join(result.years_index)}")


@cli.command()
@click.pass_context
@log_performance("cli_process")
def process(ctx):
    """Re-run related holiday analysis on the existing year documents."""
    pipeline = HolidayIngestionPipeline.from_config(ctx.obj['config'])

    result = pipeline.process_existing_files()

    click.echo(f"Processed {len(result.processed_files)} files in {pipeline.output_dir}")
    if result.failed_files:
        click.echo(f"Warning: failed to process {', '.join(result.failed_files)}", err=True)


@cli.command()
@click.argument('year')
@click.pass_context
def show(ctx, year: str):
    """Print the holidays of YEAR as JSON."""
    store = HolidayStore.from_config(ctx.obj['config'])

    try:
        holidays = store.get_holidays_by_year(year)
    except BaseApplicationError as e:
        click.echo(f"Error: {e.get_user_message()}", err=True)
        raise click.Abort()

    click.echo(to_json_lf([holiday.to_dict() for holiday in holidays]), nl=False)


@cli.command()
@click.pass_context
def years(ctx):
    """List the years that have a published document, newest first."""
    store = HolidayStore.from_config(ctx.obj['config'])

    available = store.get_years()
    if not available:
        click.echo("No years available. Run 'fetch' first.")
        return

    for year in available:
        click.echo(year)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the matching entries as JSON')
@click.pass_context
def realtime(ctx, as_json: bool):
    """Show current full-city work and class suspension notices."""
    classifier = RealtimeAlertClassifier.from_config(ctx.obj['config'])

    alerts = classifier.get_realtime_alerts()

    if as_json:
        click.echo(json.dumps([alert.to_dict() for alert in alerts], ensure_ascii=False, indent=2))
        return

    if not alerts:
        click.echo("No active full-city suspension notices.")
        return

    for alert in alerts:
        click.echo(f"[{alert.updated or '-'}] {alert.title or ''}")
        click.echo(f"  {alert.summary_text}")
