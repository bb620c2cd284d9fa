import argparse
from pathlib import Path

from tupelo_integration.runner import constants
from tupelo_integration.runner.logging import LOG_LEVELS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tupelo-integration",
        description="A utility for running integration tests in docker",
    )
    parser.add_argument(
        "-L",
        "--log-level",
        default="warn",
        help=(
            "set log level for integration test suite debugging "
            f"({', '.join(sorted(LOG_LEVELS))})"
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the integration test suite")
    run_parser.add_argument(
        "-c",
        "--config-file",
        default=constants.DEFAULT_CONFIG_FILE,
        help="Path to tupelo integration runner yaml configuration file",
    )
    run_parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Write a full command transcript per backend into this directory",
    )
    run_parser.add_argument(
        "--color",
        dest="color",
        action="store_const",
        const=True,
        help="Force color output",
    )
    run_parser.add_argument(
        "--no-color",
        dest="color",
        action="store_const",
        const=False,
        help="Disable color output",
    )
    run_parser.set_defaults(color=None)
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
