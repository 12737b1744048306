"""CLI tools for helpdesk administration."""

import click

from helpdesk.core.errors import HelpdeskError
from helpdesk.db.session import SessionLocal


@click.group()
def cli():
    """Helpdesk CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Company name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, hyphens)")
@click.option("--owner-email", required=True, help="Owner email address")
@click.option("--first-name", default=None, help="Owner first name")
@click.option("--last-name", default=None, help="Owner last name")
def create_company(name: str, slug: str, owner_email: str, first_name: str | None, last_name: str | None):
    """
    Create a company and its owner membership.

    This is the bootstrap command for setting up a new tenant.

    Example:
        helpdesk create-company --name "Acme Corp" --slug "acme" --owner-email "owner@acme.com"
    """
    from helpdesk.services import company_service

    db = SessionLocal()
    try:
        company, membership = company_service.create_company(
            db,
            name=name,
            slug=slug,
            owner_email=owner_email,
            owner_first_name=first_name,
            owner_last_name=last_name,
        )
        click.echo(f"✓ Created company: {company.name}")
        click.echo(f"  ID: {company.id}")
        click.echo(f"  Slug: {company.slug}")
        click.echo(f"✓ Owner membership for {owner_email}: {membership.id}")
    except HelpdeskError as e:
        db.rollback()
        click.echo(f"❌ Error: {e.message}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all staff sessions for a user by bumping their token_version.

    Example:
        helpdesk revoke-sessions --email "agent@acme.com"
    """
    from helpdesk.services import company_service

    db = SessionLocal()
    try:
        user = company_service.get_user_by_email(db, email)
        if not user:
            click.echo(f"❌ User not found: {email}")
            raise SystemExit(1)

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {user.email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")
    finally:
        db.close()


@cli.command()
@click.option("--slug", required=True, help="Company slug")
@click.option("--all", "include_inactive", is_flag=True, help="Include deactivated members")
def list_members(slug: str, include_inactive: bool):
    """List a company's team members, earliest first."""
    from helpdesk.services import company_service

    db = SessionLocal()
    try:
        company = company_service.get_company_by_slug(db, slug)
        if not company:
            click.echo(f"❌ Company not found: {slug}")
            raise SystemExit(1)

        memberships = company_service.list_memberships(db, company.id, active_only=not include_inactive)
        for membership in memberships:
            status = "" if membership.is_active else " (inactive)"
            click.echo(f"{membership.role:<6} {membership.user.email} {membership.user.display_name}{status}")
        click.echo(f"✓ {len(memberships)} member(s) in {company.name}")
    finally:
        db.close()


@cli.command()
def sync_gmail():
    """
    Sync every Gmail mailbox whose interval has elapsed.

    Meant to be run from cron; equivalent to POST /internal/gmail/sync-due.
    """
    from helpdesk.services import gmail_sync_service

    db = SessionLocal()
    try:
        summary = gmail_sync_service.sync_due_integrations(db)
        click.echo(
            f"✓ Checked {summary['checked']} mailbox(es): "
            f"{summary['synced']} synced, {summary['not_due']} not due, {summary['failed']} failed"
        )
    finally:
        db.close()


if __name__ == "__main__":
    cli()
