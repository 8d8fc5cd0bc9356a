"""Tests for the Typer command line."""

import json
from pathlib import Path

import pytest
from conftest import FakeSyspassUI, snap
from typer.testing import CliRunner

from spt import automation
from spt.cli import app

runner = CliRunner()

DATA_DIR = Path(__file__).parent / "data"

IVAN = snap("Ivan Petrov", login="i.petrov", category="APP", client="BirchStore")
NINA = snap("Abramova Nina", login="n.abramova", category="APP", client="BirchStore")


@pytest.fixture
def fake_ui(monkeypatch):
    def _install(**kwargs):
        ui = FakeSyspassUI(**kwargs)
        monkeypatch.setattr(automation, "open_browser", lambda config, logger: ui)
        return ui

    return _install


def test_get_empty_prints_json(config_file, fake_ui):
    ui = fake_ui(pages=[[IVAN, NINA]], empty={NINA})

    result = runner.invoke(app, ["get-empty", "--config", str(config_file())])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == [NINA.model_dump()]
    assert ui.closed


def test_get_empty_passes_filters(config_file, fake_ui):
    ui = fake_ui(pages=[[IVAN, NINA]], empty={IVAN, NINA})

    result = runner.invoke(app, ["get-empty", "--config", str(config_file()), "--login-prefix", "i."])

    assert result.exit_code == 0, result.output
    assert ui.read == [IVAN]
    assert json.loads(result.stdout) == [IVAN.model_dump()]


def test_get_empty_resume_uses_cache(tmp_path, config_file, fake_ui):
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "accounts-get.cache").write_text(json.dumps([IVAN.model_dump()]), encoding="utf-8")
    ui = fake_ui(pages=[[IVAN, NINA]], empty={NINA})

    result = runner.invoke(app, ["get-empty", "--resume", "--config", str(config_file())])

    assert result.exit_code == 0, result.output
    assert ui.read == [NINA]
    assert json.loads(result.stdout) == [IVAN.model_dump(), NINA.model_dump()]


def test_get_empty_abort_exits_1(config_file, fake_ui):
    fake_ui(pages=[[IVAN, NINA]], failing={IVAN})

    result = runner.invoke(app, ["get-empty", "--config", str(config_file())])

    assert result.exit_code == 1
    assert "interrupted" in result.output


def test_bad_config_exits_1(tmp_path):
    result = runner.invoke(app, ["get-empty", "--config", str(tmp_path / "missing.yml")])

    assert result.exit_code == 1
    assert "couldn't load config" in result.output


def test_set_complete(config_file, fake_ui):
    ui = fake_ui()

    result = runner.invoke(app, ["set", "--xml-file", str(DATA_DIR / "import.xml"), "--config", str(config_file())])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == "complete"
    assert ui.applied == [IVAN, NINA]


def test_set_missing_manifest_exits_1(tmp_path, config_file, fake_ui):
    ui = fake_ui()

    result = runner.invoke(app, ["set", "--xml-file", str(tmp_path / "import.xml"), "--config", str(config_file())])

    assert result.exit_code == 1
    assert "xml file wasn't found" in result.output
    assert ui.calls == []


def test_set_malformed_manifest_exits_before_login(tmp_path, config_file, fake_ui):
    manifest = tmp_path / "import.xml"
    manifest.write_text("<Import><Account id=\"1\"><clientId>x</clientId></Account></Import>", encoding="utf-8")
    ui = fake_ui()

    result = runner.invoke(app, ["set", "--xml-file", str(manifest), "--config", str(config_file())])

    assert result.exit_code == 1
    assert ui.calls == []


def test_set_fail_fast_exits_1(config_file, fake_ui):
    fake_ui(failing={IVAN})

    result = runner.invoke(app, ["set", "--xml-file", str(DATA_DIR / "import.xml"), "--config", str(config_file())])

    assert result.exit_code == 1
    assert "interrupted" in result.output


def test_set_partial_failure_with_ignore_errors(config_file, fake_ui):
    ui = fake_ui(failing={IVAN})
    config = config_file(**{"ignore-errors": True})

    result = runner.invoke(app, ["set", "--xml-file", str(DATA_DIR / "import.xml"), "--config", str(config)])

    assert result.exit_code == 0, result.output
    assert ui.applied == [NINA]


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert result.stdout.strip() == "0.4.0"
