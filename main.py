#!/usr/bin/env python3
"""
GeoPoll - Publisher Feed Poller
===============================

Main application entry point with CLI interface for management and polling.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py add-publisher URL         # Register a publisher
    python main.py list-publishers           # Show registered publishers
    python main.py poll 42                   # Poll one publisher's feed
    python main.py poll-all                  # Poll every active publisher
"""

import sys
import time
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from geopoll.config.settings import get_settings, load_smtp_settings
from geopoll.database.connection import get_db_manager
from geopoll.database.models import Publisher
from geopoll.database.schema import DatabaseSchema
from geopoll.jobs import PollJob, build_poll_dispatcher
from geopoll.scheduler import PollScheduler
from geopoll.storage import EventRepository, PublisherRepository
from geopoll.utils.logging import configure_application_logging
from geopoll.utils.exceptions import ConfigurationError, GeoPollError

console = Console()
logger = logging.getLogger(__name__)


def _setup(debug: bool):
    """Load settings, configure logging and open the database."""
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
    )
    db = get_db_manager(settings.database.path, pool_size=settings.database.pool_size)
    return settings, db


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """GeoPoll - background poller for publisher event feeds."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking GeoPoll Configuration[/bold blue]")

    try:
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    checks = [
        ("Database", _check_database_config),
        ("Logging", _check_logging_config),
        ("Polling", _check_polling_config),
        ("SMTP", _check_smtp_config),
    ]

    all_passed = True
    for name, check_func in checks:
        status, details = check_func(settings)
        table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
        if not status:
            all_passed = False

    console.print(table)

    if all_passed:
        console.print("[bold green]✅ All configuration checks passed![/bold green]")
    else:
        # Polling still works without SMTP; notifications will be skipped
        console.print("[bold yellow]⚠️ Some configuration checks failed[/bold yellow]")
        sys.exit(1)


@cli.command()
@click.pass_context
def init_db(ctx):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing GeoPoll Database[/bold blue]")

    try:
        settings = get_settings()
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)

        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")
        console.print(f"Database path: {settings.database.path}")

    except GeoPollError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('endpoint')
@click.option('--email', help='Contact address for failure notifications')
@click.option('--title', help='Display name')
@click.option('--description', help='Description used in notifications')
@click.pass_context
def add_publisher(ctx, endpoint, email, title, description):
    """Register a publisher feed endpoint."""
    _, db = _setup(ctx.obj.get('debug'))

    try:
        publisher = Publisher(endpoint=endpoint, email=email, title=title, description=description)
    except ValueError as e:
        console.print(f"[bold red]❌ Invalid publisher: {e}[/bold red]")
        sys.exit(1)

    try:
        publisher_id = PublisherRepository(db).create_publisher(publisher)
    except GeoPollError as e:
        console.print(f"[bold red]❌ Could not add publisher: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Added publisher {publisher_id}: {publisher.endpoint}[/bold green]")


@cli.command()
@click.pass_context
def list_publishers(ctx):
    """Show all publishers with their event counts."""
    console.print("[bold blue]📊 Publisher Report[/bold blue]")
    _, db = _setup(ctx.obj.get('debug'))

    try:
        publishers = PublisherRepository(db).get_all_publishers()
        event_repo = EventRepository(db)
    except GeoPollError as e:
        console.print(f"[bold red]❌ Error listing publishers: {e}[/bold red]")
        sys.exit(1)

    if not publishers:
        console.print("[yellow]⚠️ No publishers found in database[/yellow]")
        return

    table = Table(title="Publishers")
    table.add_column("ID", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Endpoint", style="blue")
    table.add_column("Contact", style="yellow")
    table.add_column("Events")
    table.add_column("Last Ingest")

    for publisher in publishers:
        endpoint = publisher.endpoint
        if len(endpoint) > 50:
            endpoint = endpoint[:47] + "..."

        table.add_row(
            str(publisher.id),
            "🟢" if publisher.active else "⚪",
            endpoint,
            publisher.email or "-",
            str(event_repo.count_events(publisher.id)),
            str(publisher.updated_at) if publisher.updated_at else "Never",
        )

    console.print(table)


@cli.command()
@click.argument('publisher_id', type=int)
@click.option('--url', help='Page URL (defaults to the publisher endpoint)')
@click.option('--page', default=1, type=int, help='Page number of the URL (default: 1)')
@click.pass_context
def poll(ctx, publisher_id, url, page):
    """Poll one publisher, following pagination and retrying failures."""
    settings, db = _setup(ctx.obj.get('debug'))

    if url is None:
        publisher = PublisherRepository(db).get_publisher(publisher_id)
        if publisher is None:
            console.print(f"[bold red]❌ Publisher {publisher_id} not found[/bold red]")
            sys.exit(1)
        url = publisher.endpoint

    dispatcher = build_poll_dispatcher(db, settings)
    dispatcher.enqueue(PollJob(publisher_id, url, page))

    console.print(f"[bold blue]📡 Polling publisher {publisher_id}: {url}[/bold blue]")
    records = dispatcher.run_until_idle()
    _print_records(records)


@cli.command()
@click.option('--interval', type=int, default=None,
              help='Repeat every N seconds instead of running once')
@click.pass_context
def poll_all(ctx, interval):
    """Poll every active publisher."""
    settings, db = _setup(ctx.obj.get('debug'))

    while True:
        dispatcher = build_poll_dispatcher(db, settings)
        scheduler = PollScheduler(PublisherRepository(db), dispatcher)

        console.print("[bold blue]📡 Polling all active publishers[/bold blue]")
        summary = scheduler.run_cycle()
        _print_records(dispatcher.records)
        console.print(
            f"Scheduled {summary['publishers_scheduled']} publishers "
            f"in {summary['duration_seconds']:.1f}s"
        )

        if not interval:
            break

        logger.info(f"Next poll cycle in {interval}s")
        time.sleep(interval)


def _print_records(records) -> None:
    if not records:
        console.print("[yellow]⚠️ Nothing was polled[/yellow]")
        return

    table = Table(title="Poll Jobs")
    table.add_column("Publisher", style="cyan")
    table.add_column("Page")
    table.add_column("URL", style="blue")
    table.add_column("State", style="green")
    table.add_column("Attempts")
    table.add_column("Last Error", style="red")

    for record in records:
        table.add_row(
            str(record.job.publisher_id),
            str(record.job.page_number),
            record.job.url,
            record.state.value,
            str(record.attempt),
            str(record.last_error) if record.last_error else "",
        )

    console.print(table)


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple[bool, str]:
    try:
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_polling_config(settings) -> tuple[bool, str]:
    polling = settings.polling
    return True, (
        f"Max pages: {polling.max_page_number}, Attempts: {polling.max_attempts}, "
        f"Workers: {polling.worker_count}"
    )


def _check_smtp_config(settings) -> tuple[bool, str]:
    try:
        smtp = load_smtp_settings()
    except ConfigurationError as e:
        return False, str(e)
    return True, f"Server: {smtp.address}:{smtp.port}, STARTTLS: {smtp.enable_starttls_auto}"


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 GeoPoll interrupted by user[/yellow]")
        sys.exit(130)
    except GeoPollError as e:
        console.print(f"\n[bold red]❌ {e}[/bold red]")
        sys.exit(1)
