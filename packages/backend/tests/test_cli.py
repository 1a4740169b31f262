"""CLI tests — init-db, seed-roles, verify-role against a SQLite file."""

import pytest
from click.testing import CliRunner

from authgate.cli.main import main
from authgate.config import get_settings


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTHGATE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("AUTHGATE_BCRYPT_ROUNDS", "4")
    get_settings.cache_clear()
    yield CliRunner()
    get_settings.cache_clear()


def test_setup_then_verify(cli_env):
    runner = cli_env

    result = runner.invoke(main, ["init-db"])
    assert result.exit_code == 0, result.output
    assert "Tables created" in result.output

    result = runner.invoke(main, ["seed-roles"])
    assert result.exit_code == 0, result.output
    assert "Created roles: user, admin" in result.output

    result = runner.invoke(main, ["seed-roles"])
    assert result.exit_code == 0
    assert "All roles already present" in result.output

    result = runner.invoke(main, ["verify-role"])
    assert result.exit_code == 0, result.output
    assert "Verification successful (role=user)" in result.output


def test_verify_role_without_seed_data(cli_env):
    runner = cli_env
    assert runner.invoke(main, ["init-db"]).exit_code == 0

    result = runner.invoke(main, ["verify-role"])
    assert result.exit_code == 1
    assert "Verification failed" in result.output
