"""Tests for the administration CLI."""
import uuid

import pytest
from click.testing import CliRunner

from orgtree.cli import cli
from orgtree.db import session as db_session
from orgtree.services import transfer_expiry, transfer_service


@pytest.fixture
def runner(session_factory, monkeypatch):
    monkeypatch.setattr(db_session, "SessionLocal", session_factory)
    return CliRunner()


def test_init_db(runner, engine, monkeypatch):
    monkeypatch.setattr(db_session, "engine", engine)
    result = runner.invoke(cli, ["init-db"])
    assert result.exit_code == 0, result.output
    assert "Database initialized" in result.output


def test_expire_transfers(runner, db, org_setup, monkeypatch):
    transfer = transfer_service.initiate_transfer(
        db, org_setup.org.id, org_setup.owner.id, org_setup.admin.id, "Passing the torch today"
    )
    deadline = transfer.expires_at
    monkeypatch.setattr(transfer_expiry, "epoch_now", lambda: deadline + 1)

    result = runner.invoke(cli, ["expire-transfers"])
    assert result.exit_code == 0, result.output
    assert "Expired 1 transfer(s)" in result.output

    result = runner.invoke(cli, ["expire-transfers"])
    assert "Expired 0 transfer(s)" in result.output


def test_show_access(runner, org_setup):
    org_id = str(org_setup.org.id)

    result = runner.invoke(cli, ["show-access", "--org-id", org_id, "--user-id", str(org_setup.owner.id)])
    assert result.exit_code == 0, result.output
    assert "role: owner" in result.output
    assert "is_owner: True" in result.output

    result = runner.invoke(
        cli, ["show-access", "--org-id", org_id, "--user-id", str(org_setup.superuser.id)]
    )
    assert "role: owner" in result.output
    assert "is_owner: False" in result.output

    result = runner.invoke(
        cli, ["show-access", "--org-id", org_id, "--user-id", str(uuid.uuid4())]
    )
    assert "No access" in result.output
