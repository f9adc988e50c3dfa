"""Tests for the command line interface."""

import json
import os
import tempfile

import pytest
import yaml

from usage_metrics import __version__
from usage_metrics.cli import main


def _config_file(data):
    with tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False) as fh:
        yaml.dump(data, fh)
        return fh.name


def test_version(capsys):
    main(["version"])
    assert capsys.readouterr().out.strip() == f"usage-metrics {__version__}"


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 1
    assert "usage-metrics" in capsys.readouterr().out


def test_scrape_prints_json(capsys):
    path = _config_file({"collector": {"host": True, "process": True}})
    try:
        main(["--config", path, "scrape", "--wait", "0.2"])
    finally:
        os.unlink(path)
    output = json.loads(capsys.readouterr().out)
    assert set(output) == {"server", "process"}
    assert output["server"]["collector"] == "server"
    assert output["process"]["values"]["process.memory.resident"] > 0


def test_collect_with_duration(capsys):
    path = _config_file({"collector": {"interval_seconds": 0.5, "host": False}})
    try:
        main(["--config", path, "collect", "--duration", "1.5"])
    finally:
        os.unlink(path)
    out = capsys.readouterr().out
    assert "[process]" in out
    assert "process.memory.resident" in out
    assert "Collection stopped." in out


def test_invalid_config_exits_with_error():
    path = _config_file({"mode": "nowhere"})
    try:
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", path, "scrape"])
    finally:
        os.unlink(path)
    assert excinfo.value.code == 2


def test_generate_config_round_trips(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        output = os.path.join(tmpdir, "conf", "usage_metrics.yaml")
        main(["generate-config", "--output", output])
        assert "Configuration written" in capsys.readouterr().out
        with open(output, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        assert data["collector"]["interval_seconds"] == 5.0
        assert data["store"]["type"] == "memory"
