#!/usr/bin/env python3
# Where: tupelo_integration/main.py
# What: Command-line entry point for the integration harness.
# Why: Provide a single entry point for config loading, matrix execution, and exit status.
import sys
from pathlib import Path

from tupelo_integration.runner.cli import parse_args
from tupelo_integration.runner.config import load_config
from tupelo_integration.runner.engine import DockerEngine
from tupelo_integration.runner.errors import ConfigError, HarnessError
from tupelo_integration.runner.lifecycle import StackLifecycle
from tupelo_integration.runner.logging import configure_logging
from tupelo_integration.runner.matrix import run_all
from tupelo_integration.runner.models import ProbeSettings
from tupelo_integration.runner.ui import PlainReporter


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        configure_logging(args.log_level)
    except ValueError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    config_path = Path(args.config_file).resolve()
    try:
        config = load_config(config_path)
        settings = ProbeSettings.from_env()
        if args.log_dir is not None:
            _prepare_log_dir(args.log_dir)
        engine = DockerEngine.locate()
        engine.check()
    except HarnessError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    reporter = PlainReporter(color=args.color)
    lifecycle = StackLifecycle(
        engine,
        reporter=reporter,
        settings=settings,
        log_dir=args.log_dir,
    )
    try:
        return run_all(config.backends, config.testers, lifecycle=lifecycle, reporter=reporter)
    except HarnessError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1


def _prepare_log_dir(log_dir: Path) -> None:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"Could not create log directory {log_dir}: {exc}") from exc


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
