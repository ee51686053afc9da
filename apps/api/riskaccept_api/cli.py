"""CLI commands for the risk acceptance API."""

from datetime import datetime
from typing import Optional

import click

from riskaccept_api.db.seed import seed_all
from riskaccept_api.db.session import SessionLocal
from riskaccept_api.settings import get_settings


@click.group()
def cli():
    """Risk acceptance CLI."""
    pass


@cli.command()
def seed():
    """Seed initial data."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--now", type=click.DateTime(), default=None, help="Sweep as of this UTC time.")
def sweep(now: Optional[datetime]):
    """Expire approved acceptances whose review date has passed."""
    from riskaccept_api.workflow.sweeper import ExpirySweeper

    db = SessionLocal()
    try:
        expired = ExpirySweeper(db).sweep(now=now)
        click.echo(f"✓ Expired {expired} risk acceptance(s).")
    finally:
        db.close()


@cli.command()
@click.option("--prefix", default=None, help="Reference prefix (defaults to REFERENCE_PREFIX).")
def allocate(prefix: Optional[str]):
    """Allocate and print the next reference for a prefix."""
    from riskaccept_api.workflow.references import ReferenceAllocator

    db = SessionLocal()
    try:
        reference = ReferenceAllocator(db).allocate(prefix or get_settings().reference_prefix)
        db.commit()
        click.echo(reference)
    except Exception as e:
        click.echo(f"✗ Error allocating reference: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
