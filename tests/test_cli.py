"""Tests for CLI commands."""

import re
import sqlite3

import pytest
from click.testing import CliRunner

from sqlhandle.cli.main import cli


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    ansi_escape = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')
    return ansi_escape.sub('', text)


@pytest.fixture
def temp_db(tmp_path):
    """A SQLite database with an ``accounts`` table."""
    db_path = tmp_path / "cli.db"
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE accounts (
            id INTEGER PRIMARY KEY,
            owner TEXT NOT NULL,
            balance REAL NOT NULL DEFAULT 0
        );
        INSERT INTO accounts (owner, balance) VALUES ('alice', 100), ('bob', 50);
    """)
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def temp_config(tmp_path, temp_db):
    config_path = tmp_path / "sqlhandle.yaml"
    config_path.write_text(f"""
databases:
  test:
    type: sqlite
    path: {temp_db}
default_database: test
""", encoding="utf-8")
    return config_path


def balances(db_path):
    conn = sqlite3.connect(db_path)
    try:
        return dict(conn.execute("SELECT owner, balance FROM accounts").fetchall())
    finally:
        conn.close()


@pytest.fixture
def transfer_script(tmp_path):
    script = tmp_path / "transfer.sql"
    script.write_text(
        "UPDATE accounts SET balance = balance - 30 WHERE owner = 'alice';\n"
        "UPDATE accounts SET balance = balance + 30 WHERE owner = 'bob';\n",
        encoding="utf-8",
    )
    return script


class TestRunCommand:

    def test_run_commits(self, temp_config, temp_db, transfer_script):
        result = CliRunner().invoke(cli, ['--config', str(temp_config), 'run', str(transfer_script)])

        assert result.exit_code == 0, result.output
        assert 'Committed 2 statement(s)' in strip_ansi(result.output)
        assert balances(temp_db) == {'alice': 70, 'bob': 80}

    def test_dry_run_rolls_back(self, temp_config, temp_db, transfer_script):
        result = CliRunner().invoke(
            cli, ['--config', str(temp_config), 'run', '--dry-run', str(transfer_script)]
        )

        assert result.exit_code == 0, result.output
        assert 'rolled back' in strip_ansi(result.output)
        assert balances(temp_db) == {'alice': 100, 'bob': 50}

    def test_failure_rolls_back_whole_script(self, temp_config, temp_db, tmp_path):
        script = tmp_path / "broken.sql"
        script.write_text(
            "UPDATE accounts SET balance = 0 WHERE owner = 'alice';\n"
            "UPDATE missing SET x = 1;\n",
            encoding="utf-8",
        )

        result = CliRunner().invoke(cli, ['--config', str(temp_config), 'run', str(script)])

        assert result.exit_code == 1
        assert 'Script failed' in strip_ansi(result.output)
        assert balances(temp_db) == {'alice': 100, 'bob': 50}

    def test_isolation_option(self, temp_config, temp_db, transfer_script):
        result = CliRunner().invoke(
            cli,
            ['--config', str(temp_config), 'run', '--isolation', 'serializable', str(transfer_script)],
        )

        assert result.exit_code == 0, result.output

    def test_unknown_database(self, temp_config, transfer_script):
        result = CliRunner().invoke(
            cli, ['--config', str(temp_config), '--db', 'other', 'run', str(transfer_script)]
        )

        assert result.exit_code == 1
        assert 'Configuration Error' in strip_ansi(result.output)


class TestDbCommand:

    def test_ping(self, temp_config):
        result = CliRunner().invoke(cli, ['--config', str(temp_config), 'db', 'ping'])
        output = strip_ansi(result.output)

        assert result.exit_code == 0, output
        assert 'sqlite' in output
        assert 'SERIALIZABLE' in output
        assert 'Connection successful' in output


class TestConfigCommands:

    def test_sample_then_validate(self, tmp_path):
        output_file = tmp_path / "sample.yaml"
        runner = CliRunner()

        result = runner.invoke(cli, ['config', 'sample', str(output_file)])
        assert result.exit_code == 0, result.output
        assert output_file.exists()

        result = runner.invoke(cli, ['config', 'validate', str(output_file)])
        output = strip_ansi(result.output)
        assert result.exit_code == 0, output
        assert 'is valid' in output
        assert 'statement_cache_size=128' in output

    def test_validate_invalid_file(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("databases:\n  x:\n    type: oracle\n", encoding="utf-8")

        result = CliRunner().invoke(cli, ['config', 'validate', str(bad)])

        assert result.exit_code == 1
        assert 'validation failed' in strip_ansi(result.output)
