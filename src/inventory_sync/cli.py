"""
Inventory Sync CLI - Command Line Interface.

Commands:
    sync               Run a catalog sync to completion (resumes a stopped run)
    progress           Show progress of the current run
    reset              Cancel the current run
    logs               Show recent sync log entries
    import-variations  Bulk import variable products and their variations
    test-connection    Check catalog connectivity and credentials
    config             Manage configuration
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from inventory_sync import __version__
from inventory_sync.config import Settings, load_settings
from inventory_sync.connectors.catalog import create_catalog_client
from inventory_sync.connectors.database import Database
from inventory_sync.connectors.inventory import InventoryStore
from inventory_sync.core.engine import DEFAULT_SESSION, SyncEngine, SyncResult
from inventory_sync.core.state import JsonFileStateRepository
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.core.variation_import import ImportMode, VariationImporter
from inventory_sync.utils.display import (
    ProgressDisplay,
    print_error,
    print_info,
    print_log_entries,
    print_success,
    print_summary,
    print_warning,
)
from inventory_sync.utils.logger import setup_logging


app = typer.Typer(
    name="inventory-sync",
    help="Mirror a remote product catalog into a local inventory database.",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]inventory-sync[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Inventory Sync - catalog to physical inventory synchronization."""
    pass


ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to config file.",
    exists=True,
)
SessionOption = typer.Option(
    DEFAULT_SESSION,
    "--session",
    help="Session key the run is checkpointed under.",
)


# =============================================================================
# SYNC Command
# =============================================================================
@app.command()
def sync(
    full: bool = typer.Option(
        False,
        "--full",
        "-f",
        help="Refresh catalog fields of existing items (stock is never touched).",
    ),
    session: str = SessionOption,
    config_file: Optional[Path] = ConfigOption,
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output.",
    ),
) -> None:
    """
    Sync the catalog into the local inventory.

    Pages are checkpointed, so an interrupted run picks up where it stopped.

    Example:
        inventory-sync sync --full
    """
    settings = _load_or_exit(config_file)
    _require_credentials(settings)
    _setup_logging(settings, quiet)

    db = Database(settings.database.path)
    display = ProgressDisplay() if not quiet else None

    try:
        with create_catalog_client(settings) as catalog:
            engine = _build_engine(settings, catalog, db)
            if display:
                display.start(full_sync=full, estimated_total=settings.sync.initial_estimate)

            result = engine.sync(session, full_sync=full)
            _show_progress(display, result)
            while not result.is_complete:
                result = engine.continue_sync(session, result.continuation_token)
                _show_progress(display, result)
    finally:
        if display:
            display.stop()
        db.close()

    if not quiet:
        console.print()
        print_summary({
            "mode": "FULL SYNC" if full else "SYNC",
            "duration": result.duration_seconds,
            "processed": result.processed_products,
            "added": result.products_added,
            "updated": result.products_updated,
            "warnings": len(result.warnings),
            "errors": len(result.errors),
        })

    _report_messages(result.warnings, print_warning)
    _report_messages(result.errors, print_error)

    if result.status != "success":
        raise typer.Exit(1)
    print_success("Sync completed successfully!")


def _show_progress(display: ProgressDisplay | None, result: SyncResult) -> None:
    if display:
        display.update(
            processed=result.processed_products,
            total=result.total_products,
            added=result.products_added,
            updated=result.products_updated,
            page=result.page,
            errors=len(result.errors),
        )


def _report_messages(messages: list[str], printer: Any, limit: int = 10) -> None:
    for message in messages[:limit]:
        printer(f"  • {message}")
    if len(messages) > limit:
        print_info(f"  ... and {len(messages) - limit} more")


# =============================================================================
# PROGRESS / RESET Commands
# =============================================================================
@app.command()
def progress(
    session: str = SessionOption,
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Show progress of the current sync run."""
    settings = _load_or_exit(config_file)
    states = JsonFileStateRepository(settings.sync.state_file)
    state = states.load(session)

    if state is None or not state.in_progress:
        print_info("No sync in progress.")
        raise typer.Exit(0)

    table = Table(title="Sync Progress", border_style="blue")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Mode", "full" if state.full_sync else "regular")
    table.add_row("Next page", str(state.page))
    table.add_row("Processed", f"{state.processed_products:,} of ~{state.estimated_total:,}")
    table.add_row("Added", f"{state.products_added:,}")
    table.add_row("Updated", f"{state.products_updated:,}")
    table.add_row("Errors", str(len(state.errors)))
    table.add_row("Warnings", str(len(state.warnings)))

    console.print(table)


@app.command()
def reset(
    session: str = SessionOption,
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Cancel the current sync run. The next sync starts from page 1."""
    settings = _load_or_exit(config_file)
    JsonFileStateRepository(settings.sync.state_file).delete(session)
    print_success(f"Sync state reset for session '{session}'")


# =============================================================================
# LOGS Command
# =============================================================================
@app.command()
def logs(
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        min=1,
        help="Number of entries to show.",
    ),
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Show recent sync log entries."""
    settings = _load_or_exit(config_file)
    with Database(settings.database.path) as db:
        entries = SyncLog(db).recent(limit)

    if not entries:
        print_info("No syncs recorded yet.")
        raise typer.Exit(0)
    print_log_entries(entries)


# =============================================================================
# IMPORT-VARIATIONS Command
# =============================================================================
@app.command("import-variations")
def import_variations(
    mode: ImportMode = typer.Option(
        ImportMode.STATUS_AWARE,
        "--mode",
        "-m",
        help="Variation filtering: basic, strict or status-aware.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Report what would be imported without writing.",
    ),
    config_file: Optional[Path] = ConfigOption,
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output.",
    ),
) -> None:
    """
    Import missing variable products and their variations in one pass.

    Example:
        inventory-sync import-variations --mode strict --dry-run
    """
    settings = _load_or_exit(config_file)
    _require_credentials(settings)
    _setup_logging(settings, quiet)

    if dry_run:
        print_warning("DRY RUN - No changes will be made")

    with Database(settings.database.path) as db, create_catalog_client(settings) as catalog:
        importer = VariationImporter(
            catalog,
            InventoryStore(db),
            SyncLog(db),
            mode=mode,
            low_stock_threshold=settings.sync.default_low_stock_threshold,
        )
        report = importer.run(dry_run=dry_run)

    if not quiet:
        console.print()
        print_summary(
            {
                "mode": report.mode.value,
                "duration": report.duration_seconds,
                "variable products": report.parents_found,
                "parents to add": report.parents_to_add,
                "variations to add": report.variations_to_add,
                "parents added": report.parents_added,
                "variations added": report.variations_added,
                "duplicates dropped": report.dedup.duplicates_dropped,
                "ghosts dropped": report.dedup.ghosts_dropped,
            },
            title="Variation Import",
        )

    _report_messages([str(c) for c in report.dedup.collisions], print_warning)
    _report_messages(report.errors, print_error)

    if report.errors and report.parents_found == 0:
        raise typer.Exit(1)
    if not dry_run:
        print_success(f"Imported {report.total_added} items")


# =============================================================================
# TEST-CONNECTION Command
# =============================================================================
@app.command("test-connection")
def test_connection(
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Check that the catalog is reachable and the credentials work."""
    settings = _load_or_exit(config_file)
    _require_credentials(settings)

    with create_catalog_client(settings) as catalog:
        ok, message = catalog.test_connectivity()

    if not ok:
        print_error(message)
        raise typer.Exit(1)
    print_success(f"{message} ({settings.api_base_url})")


# =============================================================================
# CONFIG Command
# =============================================================================
@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration.",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Write a config file with the current settings.",
    ),
    output: Path = typer.Option(
        Path("config.toml"),
        "--output",
        "-o",
        help="Output path for config file.",
    ),
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Manage configuration."""
    settings = _load_or_exit(config_file)

    if init:
        settings.to_file(output)
        print_success(f"Generated config file: {output}")
        return

    if show:
        table = Table(title="Current Configuration", border_style="cyan")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        not_set = "[dim]not set[/dim]"
        table.add_row("Store URL", settings.store_url or not_set)
        table.add_row("Consumer Key", settings.consumer_key or not_set)
        table.add_row(
            "Consumer Secret",
            "********" if settings.consumer_secret.get_secret_value() else not_set,
        )
        table.add_row("API Version", settings.api_version)
        table.add_row("Database", str(settings.database.path))
        table.add_row("State File", str(settings.sync.state_file))
        table.add_row("Page Size", str(settings.sync.page_size))
        table.add_row("Low Stock Threshold", str(settings.sync.default_low_stock_threshold))

        console.print(table)
        return

    console.print("Use --show to view config or --init to create config file.")


# =============================================================================
# Helper Functions
# =============================================================================
def _load_or_exit(config_file: Path | None) -> Settings:
    try:
        return load_settings(config_file)
    except (ValueError, FileNotFoundError) as e:
        print_error(str(e))
        raise typer.Exit(1)


def _require_credentials(settings: Settings) -> None:
    errors = settings.validate_credentials()
    if errors:
        for err in errors:
            print_error(err)
        print_info("Set them in a config file or INVENTORY_SYNC_* environment variables.")
        raise typer.Exit(1)


def _setup_logging(settings: Settings, quiet: bool) -> None:
    setup_logging(
        level="WARNING" if quiet else settings.logging.level,
        log_file=settings.logging.file,
        format_style=settings.logging.format,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )


def _build_engine(settings: Settings, catalog: Any, db: Database) -> SyncEngine:
    return SyncEngine(
        catalog,
        InventoryStore(db),
        SyncLog(db),
        states=JsonFileStateRepository(settings.sync.state_file),
        options=settings.sync,
    )


if __name__ == "__main__":
    app()
