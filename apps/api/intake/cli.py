"""CLI tools for client intake administration."""

import json
import logging
import sys

import click

from intake.core.async_utils import run_async
from intake.core.config import settings
from intake.core.deps import build_client_service, get_cache
from intake.db.base import Base
from intake.db.session import SessionLocal, engine
from intake.services import system_config_service
from intake.services.sheet_view_service import SheetViewService
from intake.services.sheets_client import SheetsClient
from intake.services.sync_service import SyncService

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Client intake sync tools."""
    _configure_logging(verbose)


@cli.command()
def init_db():
    """
    Create tables and seed default system config.

    Production databases should use `alembic upgrade head` instead.
    """
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        inserted = system_config_service.seed_defaults(db)
        db.commit()
        click.echo(f"✓ Tables ready ({settings.ENV})")
        click.echo(f"✓ Seeded {inserted} system config key(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
@click.option("--watch", is_flag=True, help="Keep running every SYNC_INTERVAL_MINUTES")
@click.option("--interval", type=int, default=None, help="Override interval in minutes")
def sync(watch: bool, interval: int | None):
    """Reconcile the intake sheet with the database."""
    if not settings.sheets_configured:
        click.echo("❌ SHEETS_SPREADSHEET_ID (or SHEETS_EXPORT_URL) is not configured")
        sys.exit(1)

    db = SessionLocal()
    try:
        service = build_client_service(db)
        syncer = SyncService(db, service)

        async def _run():
            if watch:
                await syncer.run_periodic(interval)
                return syncer.get_status()
            result = await syncer.full_sync()
            await service.dispatcher.drain()
            return result

        result = run_async(_run())
        _echo_json(result)
        if not result.get("success", True):
            sys.exit(1)
    finally:
        db.close()


@cli.command()
@click.option("--limit", type=int, default=20, help="Rows to print")
def sheet_clients(limit: int):
    """Print clients as recovered from the intake sheet."""
    view = SheetViewService(get_cache(), SheetsClient(settings))
    records = run_async(view.get_sheet_clients())
    click.echo(f"✓ {len(records)} client row(s) in sheet")
    for record in records[:limit]:
        click.echo(
            f"  row {record.row_index:>5}  {record.client_id or '-':<12}  "
            f"{record.client_full_name}  [{record.status or 'n/a'}]"
        )


@cli.command()
@click.option("--output", type=click.Path(dir_okay=False, writable=True), default=None)
def export(output: str | None):
    """Export all clients as JSON."""
    db = SessionLocal()
    try:
        result = run_async(build_client_service(db).export_all())
        payload = json.dumps(result.data, indent=2, default=str)
        if output:
            with open(output, "w", encoding="utf-8") as fh:
                fh.write(payload)
            click.echo(f"✓ Exported {len(result.data)} clients to {output}")
        else:
            click.echo(payload)
    finally:
        db.close()


@cli.command()
@click.option("--mirror", is_flag=True, help="Also check the spreadsheet mirror")
def health(mirror: bool):
    """Check database (and optionally mirror) reachability."""
    db = SessionLocal()
    try:
        service = build_client_service(db)
        result = run_async(service.health_check())
        _echo_json(result.model_dump())
        ok = result.success
        if mirror:
            diagnostics = run_async(service.mirror_diagnostics())
            _echo_json(diagnostics.model_dump())
            ok = ok and diagnostics.success
        if not ok:
            sys.exit(1)
    finally:
        db.close()


@cli.command()
def stats():
    """Print client counts per status and per month."""
    db = SessionLocal()
    try:
        service = build_client_service(db)
        by_status = run_async(service.get_client_stats())
        monthly = run_async(service.get_monthly_stats())
        _echo_json({"by_status": by_status.data, "monthly": monthly.data})
    finally:
        db.close()


if __name__ == "__main__":
    cli()
