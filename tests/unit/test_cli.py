"""Unit tests for the command line entry point."""

from unittest.mock import patch

import pytest

from partition_leases import cli
from partition_leases.exceptions import ManagementError


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "partition_leases:\n"
        "  backend: memory\n"
        "  hub_name: orders\n"
        "  partition_count: 2\n"
    )
    return str(path)


def test_bootstrap_prints_partitions(config_path, capsys):
    assert cli.main(["bootstrap", "--config", config_path, "--host", "A"]) == 0

    out = capsys.readouterr().out
    assert "PARTITION" in out
    lines = [line for line in out.splitlines() if line and not line.startswith("PARTITION")]
    assert [line.split()[0] for line in lines] == ["0", "1"]


def test_status_on_empty_store(config_path, capsys):
    assert cli.main(["status", "--config", config_path]) == 0

    assert "not initialized" in capsys.readouterr().out


def test_reset(config_path):
    assert cli.main(["reset", "--config", config_path]) == 0


def test_failure_returns_nonzero(config_path):
    with patch(
        "partition_leases.cli.bootstrap", side_effect=ManagementError("unreachable")
    ):
        assert cli.main(["bootstrap", "--config", config_path]) == 1


def test_unknown_command_exits(config_path):
    with pytest.raises(SystemExit):
        cli.main(["explode", "--config", config_path])
