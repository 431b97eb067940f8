"""Admin CLI commands."""

from click.testing import CliRunner

from aris.cli import cli
from aris.db.models import Membership, Organization, User


def test_create_org_and_user(db):
    runner = CliRunner()

    result = runner.invoke(cli, ["create-org", "--name", "Acme d.o.o.", "--slug", "Acme"])
    assert result.exit_code == 0
    assert "Created organization: Acme d.o.o." in result.output

    result = runner.invoke(
        cli, ["create-user", "--email", "Ana@Acme.si", "--org-slug", "acme", "--role", "owner"]
    )
    assert result.exit_code == 0
    assert "with role: owner" in result.output

    user = db.query(User).filter(User.email == "ana@acme.si").one()
    membership = db.query(Membership).filter(Membership.user_id == user.id).one()
    assert membership.is_owner is True
    assert user.display_name == "ana@acme.si"


def test_create_org_rejects_bad_and_duplicate_slugs(db, test_org):
    runner = CliRunner()

    bad = runner.invoke(cli, ["create-org", "--name", "X", "--slug", "not a slug"])
    assert "Slug must be alphanumeric" in bad.output

    duplicate = runner.invoke(cli, ["create-org", "--name", "X", "--slug", test_org.slug])
    assert "already exists" in duplicate.output
    assert db.query(Organization).count() == 1


def test_create_user_unknown_org(db):
    result = CliRunner().invoke(cli, ["create-user", "--email", "a@b.test", "--org-slug", "nope"])

    assert "Organization not found: nope" in result.output


def test_revoke_sessions_bumps_token_version(db, test_user):
    before = test_user.token_version

    result = CliRunner().invoke(cli, ["revoke-sessions", "--email", test_user.email])

    assert result.exit_code == 0
    db.refresh(test_user)
    assert test_user.token_version == before + 1


def test_process_email_queue_with_nothing_pending(db):
    result = CliRunner().invoke(cli, ["process-email-queue"])

    assert result.exit_code == 0
    assert "Processed 0" in result.output
    assert "Reset 0 failed" in result.output
