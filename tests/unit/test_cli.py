"""Unit tests for the command line interface."""
from __future__ import annotations

from typer.testing import CliRunner

from gads_client.cli import app

runner = CliRunner()


def test_version_command():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Google Ads API v" in result.output


def test_query_with_missing_config_exits_non_zero(tmp_path):
    result = runner.invoke(
        app,
        ["query", "SELECT customer.id FROM customer", "--config", str(tmp_path / "absent.yaml")],
    )
    assert result.exit_code == 1


def test_query_requires_customer_id(tmp_path):
    config_file = tmp_path / "google-ads.yaml"
    config_file.write_text("developer_token: t\nclient_id: c\nclient_secret: s\n")

    result = runner.invoke(
        app, ["query", "SELECT customer.id FROM customer", "--config", str(config_file)]
    )

    assert result.exit_code == 1
