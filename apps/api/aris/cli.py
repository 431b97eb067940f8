"""CLI tools for ARIS administration."""

import click

from aris.core.async_utils import run_async
from aris.core.config import settings
from aris.db.enums import Role
from aris.db.models import Membership, Organization, User
from aris.db.session import SessionLocal


@click.group()
def cli():
    """ARIS CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
def create_org(name: str, slug: str):
    """
    Create an organization.

    Example:
        python -m aris.cli create-org --name "Acme d.o.o." --slug "acme"
    """
    db = SessionLocal()
    try:
        slug = slug.lower().strip()
        if not slug.replace("-", "").replace("_", "").isalnum():
            click.echo("❌ Slug must be alphanumeric (with optional hyphens/underscores)")
            return

        existing = db.query(Organization).filter(Organization.slug == slug).first()
        if existing:
            click.echo(f"❌ Organization with slug '{slug}' already exists")
            return

        org = Organization(name=name, slug=slug)
        db.add(org)
        db.commit()

        click.echo(f"✓ Created organization: {name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"  Slug: {slug}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email address")
@click.option("--org-slug", required=True, help="Organization slug")
@click.option("--name", "display_name", default=None, help="Display name (defaults to email)")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.MEMBER.value,
    show_default=True,
)
def create_user(email: str, org_slug: str, display_name: str | None, role: str):
    """
    Create a user and add them to an organization.

    A user belongs to exactly one organization. The owner role also sets is_owner.

    Example:
        python -m aris.cli create-user --email "ana@acme.si" --org-slug "acme" --role owner
    """
    db = SessionLocal()
    try:
        email = email.lower().strip()
        org = db.query(Organization).filter(Organization.slug == org_slug.lower()).first()
        if not org:
            click.echo(f"❌ Organization not found: {org_slug}")
            return

        if db.query(User).filter(User.email == email).first():
            click.echo(f"❌ User already exists: {email}")
            return

        user = User(email=email, display_name=display_name or email)
        db.add(user)
        db.flush()
        db.add(
            Membership(
                user_id=user.id,
                organization_id=org.id,
                role=role,
                is_owner=role == Role.OWNER.value,
            )
        )
        db.commit()

        click.echo(f"✓ Created user {email} in {org.slug} with role: {role}")
        click.echo(f"  ID: {user.id}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m aris.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--batch-size", default=None, type=int, help="Items to process (default: EMAIL_QUEUE_BATCH_SIZE)")
@click.option("--maintenance/--no-maintenance", default=True, help="Reset retryable failures and prune old items")
def process_email_queue(batch_size: int | None, maintenance: bool):
    """Process pending email queue items across all organizations."""
    from aris.services import email_queue_service

    with SessionLocal() as db:
        results = run_async(
            email_queue_service.process_pending_emails(
                db, batch_size=batch_size or settings.EMAIL_QUEUE_BATCH_SIZE
            )
        )
        click.echo(
            f"✓ Processed {results['processed']} "
            f"(completed={results['completed']}, review={results['require_review']}, "
            f"failed={results['failed']})"
        )
        if maintenance:
            summary = email_queue_service.run_scheduled_maintenance(db)
            click.echo(f"  Reset {summary['reset']} failed, cleaned up {summary['cleaned_up']}")


@cli.command()
def run_auto_sync():
    """Run due Metakocka auto-syncs for every enabled organization."""
    from aris.services import metakocka_auto_sync

    with SessionLocal() as db:
        summary = run_async(metakocka_auto_sync.run_auto_sync(db))
    click.echo(f"✓ Checked {summary['orgs_checked']} orgs, ran {summary['syncs_run']} syncs")
    for error in summary["errors"]:
        click.echo(f"  ❌ {error['organization_id']} {error.get('entity') or ''}: {error['error']}")


@cli.command()
def poll_email_accounts():
    """Run incremental syncs for every mailbox that is due."""
    from aris.services import real_time_sync_service

    with SessionLocal() as db:
        summary = run_async(real_time_sync_service.run_due_syncs(db))
    click.echo(
        f"✓ Checked {summary['accounts_checked']} accounts, synced {summary['accounts_synced']}, "
        f"stored {summary['emails_stored']} emails, queued {summary['emails_queued']}"
    )
    for error in summary["errors"]:
        click.echo(f"  ❌ {error['account_id']}: {error['error']}")


if __name__ == "__main__":
    cli()
