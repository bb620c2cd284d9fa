# Where: tupelo_integration/runner/tests/test_main.py
# What: Tests for argument parsing and the top-level exit status.
# Why: Setup failures must exit 1 before any container is touched.
from __future__ import annotations

from pathlib import Path

import pytest

from tupelo_integration import main as main_module
from tupelo_integration.runner import constants
from tupelo_integration.runner.cli import parse_args
from tupelo_integration.runner.errors import EngineError


def test_parse_args_defaults():
    args = parse_args(["run"])

    assert args.command == "run"
    assert args.log_level == "warn"
    assert args.config_file == constants.DEFAULT_CONFIG_FILE
    assert args.log_dir is None
    assert args.color is None


def test_parse_args_overrides():
    args = parse_args(["-L", "debug", "run", "-c", "ci.yml", "--log-dir", "logs", "--no-color"])

    assert args.log_level == "debug"
    assert args.config_file == "ci.yml"
    assert args.log_dir == Path("logs")
    assert args.color is False


def test_run_subcommand_is_required():
    with pytest.raises(SystemExit):
        parse_args([])


def test_invalid_log_level_exits_1(capsys):
    assert main_module.main(["-L", "chatty", "run"]) == 1
    assert "Could not set log level" in capsys.readouterr().err


def test_missing_config_exits_1_without_docker(monkeypatch, tmp_path, capsys):
    def _locate(*args, **kwargs):
        raise AssertionError("docker must not be located when config is missing")

    monkeypatch.setattr(main_module.DockerEngine, "locate", _locate)

    code = main_module.main(["run", "-c", str(tmp_path / "absent.yml")])

    assert code == 1
    assert "Error getting config file" in capsys.readouterr().err


def test_contradictory_config_exits_1(monkeypatch, tmp_path, capsys):
    config = tmp_path / "bad.yml"
    config.write_text(
        "tupelos:\n  bad:\n    docker-compose: true\n    image: tupelo:latest\n"
        "testers:\n  go:\n    image: tester\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(
        main_module.DockerEngine,
        "locate",
        lambda *a, **k: pytest.fail("docker must not be located for invalid config"),
    )

    assert main_module.main(["run", "-c", str(config)]) == 1
    assert "mutually exclusive" in capsys.readouterr().err


def test_missing_docker_exits_1(monkeypatch, tmp_path, capsys):
    config = tmp_path / "ok.yml"
    config.write_text(
        "tupelos:\n  edge:\n    image: tupelo:edge\ntesters:\n  go:\n    image: tester\n",
        encoding="utf-8",
    )

    def _locate(*args, **kwargs):
        raise EngineError("Could not find docker command in PATH")

    monkeypatch.setattr(main_module.DockerEngine, "locate", _locate)

    assert main_module.main(["run", "-c", str(config)]) == 1
    assert "Could not find docker" in capsys.readouterr().err


def test_unusable_log_dir_exits_1_without_docker(monkeypatch, tmp_path, capsys):
    config = tmp_path / "ok.yml"
    config.write_text(
        "tupelos:\n  edge:\n    image: tupelo:edge\ntesters:\n  go:\n    image: tester\n",
        encoding="utf-8",
    )
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setattr(
        main_module.DockerEngine,
        "locate",
        lambda *a, **k: pytest.fail("docker must not be located with an unusable log dir"),
    )

    code = main_module.main(["run", "-c", str(config), "--log-dir", str(blocker / "logs")])

    assert code == 1
    assert "Could not create log directory" in capsys.readouterr().err


def test_main_returns_matrix_exit_code(monkeypatch, tmp_path):
    config = tmp_path / "ok.yml"
    config.write_text(
        "tupelos:\n  edge:\n    image: tupelo:edge\ntesters:\n  go:\n    image: tester\n",
        encoding="utf-8",
    )

    class _Engine:
        def check(self):
            return None

    seen = {}

    def _run_all(backends, testers, *, lifecycle, reporter):
        seen["backends"] = [b.name for b in backends]
        seen["testers"] = [t.name for t in testers]
        return 5

    monkeypatch.setattr(main_module.DockerEngine, "locate", classmethod(lambda cls, **k: _Engine()))
    monkeypatch.setattr(main_module, "run_all", _run_all)

    assert main_module.main(["run", "-c", str(config), "--no-color"]) == 5
    assert seen == {"backends": ["edge"], "testers": ["go"]}
