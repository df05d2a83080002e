"""CLI tools for OrgTree administration."""

from uuid import UUID

import click

from orgtree.core.config import settings
from orgtree.core.structured_logging import configure_logging
from orgtree.db import session as db_session
from orgtree.services import access_service, transfer_expiry


@click.group()
def cli():
    """OrgTree CLI tools."""
    configure_logging(settings.LOG_LEVEL)


@cli.command("init-db")
def init_db():
    """Create all tables in the configured database."""
    db_session.init_db()
    click.echo("✅ Database initialized")


@cli.command("expire-transfers")
def expire_transfers():
    """
    Expire pending ownership transfers past their deadline.

    Example:
        orgtree expire-transfers
    """
    db = db_session.SessionLocal()
    try:
        expired = transfer_expiry.expire_old_transfers(db)
        click.echo(f"✅ Expired {expired} transfer(s)")
    finally:
        db.close()


@cli.command("show-access")
@click.option("--org-id", required=True, type=click.UUID, help="Organization ID")
@click.option("--user-id", required=True, type=click.UUID, help="User ID")
def show_access(org_id: UUID, user_id: UUID):
    """Print the user's effective role in an organization."""
    db = db_session.SessionLocal()
    try:
        access = access_service.resolve_org_access(db, org_id, user_id)
        if not access.has_access:
            click.echo("❌ No access")
            return
        click.echo(f"role: {access.role.value}")
        click.echo(f"is_owner: {access.is_owner}")
        click.echo(f"admin_access: {access.has_admin_access}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
