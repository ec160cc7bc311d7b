"""Tests for the command-line interface."""

import json
import sys
from unittest.mock import patch

import pytest

from seocrawler import cli
from seocrawler.config import settings
from seocrawler.models import AggregatedReport
from seocrawler.storage import SqliteStorage


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(settings, "DATABASE_URL", url)
    monkeypatch.setattr(settings, "QUEUE_DATABASE_URL", url)
    return url


def run_cli(*argv):
    with patch.object(sys, "argv", ["seocrawler", *argv]), patch.object(cli, "setup_logging"):
        cli.main()


class TestCli:
    """Test cases for the CLI commands."""

    def test_enqueue_registers_site(self, db_url, capsys):
        run_cli("enqueue", "https://www.Example.com/", "--deep")

        storage = SqliteStorage(db_url)
        site = storage.find_site_by_domain("example.com")
        storage.close()

        assert site is not None
        assert site.root_url == "https://example.com/"
        assert "deep-analysis" in capsys.readouterr().out

    def test_report_json(self, db_url, capsys):
        storage = SqliteStorage(db_url)
        site = storage.create_site("example.com")
        storage.save_report(site.id, AggregatedReport(overall_score=77, pages_analyzed=4))
        storage.close()

        run_cli("report", "example.com", "--output", "json")

        data = json.loads(capsys.readouterr().out)
        assert data["overall_score"] == 77
        assert data["pages_analyzed"] == 4

    def test_report_unknown_site(self, db_url):
        with pytest.raises(SystemExit) as exc_info:
            run_cli("report", "unknown.example")

        assert exc_info.value.code == 1

    def test_print_report_text(self, capsys):
        cli.print_report("example.com", AggregatedReport(
            overall_score=64, technical_issues=["Technical: Missing meta description. (2 pages)"]
        ))

        out = capsys.readouterr().out
        assert "64/100" in out
        assert "Missing meta description" in out

    def test_no_command_prints_help(self, db_url, capsys):
        run_cli()
        assert "usage" in capsys.readouterr().out.lower()
