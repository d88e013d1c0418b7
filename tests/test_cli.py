"""Tests for the click command-line interface."""

import pytest
from click.testing import CliRunner


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    # Root logger handlers belong to pytest here
    monkeypatch.setattr("cli.main._init_logging", lambda verbose: None)
    return CliRunner()


def _invoke(runner, *args):
    from cli.main import cli
    return runner.invoke(cli, list(args))


class TestCli:
    def test_init_db(self, runner):
        result = _invoke(runner, "init-db")
        assert result.exit_code == 0
        assert "Database ready" in result.output

    def test_user_create_and_duplicate(self, runner):
        result = _invoke(runner, "user", "create", "-e", "reader@example.com", "-c", "20")
        assert result.exit_code == 0
        assert "API token" in result.output
        assert "20" in result.output

        again = _invoke(runner, "user", "create", "-e", "reader@example.com")
        assert again.exit_code == 1
        assert "already exists" in again.output

    def test_credits_grant_and_show(self, runner):
        _invoke(runner, "user", "create", "-e", "reader@example.com")
        granted = _invoke(runner, "credits", "grant", "-e", "reader@example.com", "-a", "5")
        assert granted.exit_code == 0
        assert "Granted 5 credits" in granted.output

        shown = _invoke(runner, "credits", "show", "-e", "reader@example.com")
        assert shown.exit_code == 0
        assert "55" in shown.output
        assert "grant" in shown.output

    def test_unknown_user(self, runner):
        result = _invoke(runner, "credits", "show", "-e", "nobody@example.com")
        assert result.exit_code == 1
        assert "No user" in result.output

    def test_add_key(self, runner):
        _invoke(runner, "user", "create", "-e", "reader@example.com")
        result = _invoke(runner, "user", "add-key", "-e", "reader@example.com", "-d", "anthropic", "-k", "sk-test")
        assert result.exit_code == 0
        assert "Stored anthropic key" in result.output

    def test_catalog(self, runner):
        result = _invoke(runner, "catalog")
        assert result.exit_code == 0
        assert "mystery" in result.output
        assert "claude-opus-4-1" in result.output

    def test_search_rejects_empty_request(self, runner):
        result = _invoke(runner, "search")
        assert result.exit_code == 2
        assert "freeText" in result.output

    def test_anonymous_search_miss_fails(self, runner):
        result = _invoke(runner, "search", "-t", "a haunted lighthouse", "-g", "horror", "-l", "en", "-m", "3")
        assert result.exit_code == 1
        assert "Authentication required" in result.output

    def test_invalid_configuration_exits_cleanly(self, runner, monkeypatch):
        monkeypatch.setenv("PAGE_SIZE", "0")
        result = _invoke(runner, "init-db")
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output
        assert "page_size" in result.output
