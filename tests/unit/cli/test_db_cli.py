# tests/unit/cli/test_db_cli.py
import sqlite3

import pytest
from click.testing import CliRunner

from app.cli import create_tables as db_cli
from app.core.config import Settings


@pytest.fixture
def db_path(tmp_path, mocker):
    path = tmp_path / "storesync.db"
    mocker.patch.object(
        db_cli, "get_settings", return_value=Settings(DATABASE_URL=f"sqlite+aiosqlite:///{path}")
    )
    return path


def test_commands_require_database_url(mocker):
    mocker.patch.object(db_cli, "get_settings", return_value=Settings(DATABASE_URL=""))

    result = CliRunner().invoke(db_cli.cli, ["create-tables"])

    assert result.exit_code != 0
    assert "DATABASE_URL is not set" in result.output


def test_create_tables_then_add_destination(db_path):
    runner = CliRunner()

    result = runner.invoke(db_cli.cli, ["create-tables"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        db_cli.cli,
        ["add-destination", "eu-store", "--shop-domain", "eu.myshopify.com", "--currency", "EUR"],
        env={"SHOPIFY_ACCESS_TOKEN": "shpat_eu"},
    )
    assert result.exit_code == 0, result.output
    assert "eu-store registered" in result.output

    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            "SELECT shop_domain, shop_name, access_token, currency FROM destinations WHERE id = 'eu-store'"
        ).fetchone()
    assert row == ("eu.myshopify.com", "eu.myshopify.com", "shpat_eu", "EUR")
