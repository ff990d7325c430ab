# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the hostscan command line.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from hostscan import __version__
from hostscan.cli.examples import example_jobs
from hostscan.cli.main import cli
from hostscan.processing.errors import UnrecognizedEnvelope


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_env(tmp_path, monkeypatch):
    path = tmp_path / "analytics.duckdb"
    monkeypatch.setenv("HOSTSCAN_DB_PATH", str(path))
    return path


class TestGroup:
    """Top-level options."""

    def test_version(self, runner):
        """Test --version prints the package version."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_without_command(self, runner):
        """Test the group prints help when no command is given."""
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "enqueue" in result.output


class TestStoreCommands:
    """init-db and counts."""

    def test_init_db_creates_database(self, runner, db_env):
        """Test init-db creates the database file."""
        result = runner.invoke(cli, ["init-db"])
        assert result.exit_code == 0, result.output
        assert "Schema ready" in result.output
        assert db_env.exists()

    def test_counts_on_empty_database(self, runner, db_env):
        """Test counts lists every table with zero rows."""
        result = runner.invoke(cli, ["counts"])
        assert result.exit_code == 0, result.output
        for table in ("resource_stats", "disk_stats", "services", "software"):
            assert table in result.output

    def test_config_file_option(self, runner, tmp_path):
        """Test --config points the store at the configured path."""
        db_path = tmp_path / "from-config.duckdb"
        config_path = tmp_path / "config.yaml"
        config_path.write_text(f"store:\n  db_path: {db_path}\n")

        result = runner.invoke(cli, ["--config", str(config_path), "init-db"])
        assert result.exit_code == 0, result.output
        assert db_path.exists()


class TestConfigCommand:
    """Inspecting and saving configuration."""

    def test_show_effective_config(self, runner, monkeypatch):
        """Test the listing includes file defaults and env overrides."""
        monkeypatch.setenv("HOSTSCAN_REDIS_HOST", "redis.internal")
        result = runner.invoke(cli, ["config"])
        assert result.exit_code == 0, result.output
        assert "redis.internal" in result.output
        assert "hostscan:scans" in result.output

    def test_get_key(self, runner):
        """Test --get prints a single dotted key."""
        result = runner.invoke(cli, ["config", "--get", "queue.dlq_stream"])
        assert result.exit_code == 0, result.output
        assert "queue.dlq_stream: hostscan:dlq" in result.output

    def test_get_missing_key(self, runner):
        """Test an unknown key is an error."""
        result = runner.invoke(cli, ["config", "--get", "queue.nope"])
        assert result.exit_code == 1
        assert "Configuration key not found" in result.output

    def test_save_writes_file(self, runner, tmp_path):
        """Test --save writes a config file that loads back."""
        config_path = tmp_path / "saved" / "config.yaml"
        result = runner.invoke(cli, ["--config", str(config_path), "config", "--save"])
        assert result.exit_code == 0, result.output
        assert yaml.safe_load(config_path.read_text())["queue"]["stream"] == "hostscan:scans"

    def test_validate_reports_errors(self, runner, monkeypatch):
        """Test --validate exits non-zero on invalid settings."""
        monkeypatch.setenv("HOSTSCAN_CONCURRENCY", "0")
        result = runner.invoke(cli, ["config", "--validate"])
        assert result.exit_code == 2
        assert "worker.concurrency must be positive" in result.output


class TestResolve:
    """Offline job inspection."""

    def test_resolve_example_jobs(self, runner, tmp_path):
        """Test both example jobs resolve and decompose into their tables."""
        job_file = tmp_path / "jobs.json"
        job_file.write_text(json.dumps(example_jobs()))

        result = runner.invoke(cli, ["resolve", str(job_file)])

        assert result.exit_code == 0, result.output
        assert "realtime" in result.output
        assert "resource_stats: 1 row(s)" in result.output
        assert "disk_stats: 1 row(s)" in result.output
        assert "services: 2 row(s)" in result.output
        assert "service_gpu_usage: 1 row(s)" in result.output
        assert "software: 3 row(s)" in result.output

    def test_resolve_unknown_scan_type(self, runner, tmp_path):
        """Test an unknown scan kind reports no tables."""
        job_file = tmp_path / "job.json"
        job_file.write_text(json.dumps({"payload": {"metadata": {"scanType": "bogus"}}}))

        result = runner.invoke(cli, ["resolve", str(job_file)])
        assert result.exit_code == 0, result.output
        assert "no tables" in result.output

    def test_resolve_unrecognized_envelope(self, runner, tmp_path):
        """Test an unrecognized envelope is an error."""
        job_file = tmp_path / "job.json"
        job_file.write_text(json.dumps({"foo": "bar"}))

        result = runner.invoke(cli, ["resolve", str(job_file)])
        assert result.exit_code != 0
        assert isinstance(result.exception, UnrecognizedEnvelope)


class TestEnqueue:
    """Pushing jobs onto the stream."""

    def test_enqueue_examples(self, runner):
        """Test --examples pushes both example jobs and closes the client."""
        client = MagicMock()
        client.xadd.side_effect = [b"1-0", b"1-1"]

        with patch("hostscan.cli.main.create_redis_client", return_value=client):
            result = runner.invoke(cli, ["enqueue", "--examples"])

        assert result.exit_code == 0, result.output
        assert "1-0" in result.output
        assert "1-1" in result.output
        assert client.xadd.call_count == 2
        stream, fields = client.xadd.call_args_list[0][0]
        assert stream == "hostscan:scans"
        assert json.loads(fields["data"])["jobData"]["tenant"]["tenant_id"]
        client.close.assert_called_once()

    def test_enqueue_nothing(self, runner):
        """Test enqueue without input is a usage error."""
        result = runner.invoke(cli, ["enqueue"])
        assert result.exit_code == 2
        assert "Nothing to enqueue" in result.output
