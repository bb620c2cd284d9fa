# Where: tupelo_integration/runner/logging.py
# What: Console helpers, log sinks and subprocess streaming for harness runs.
# Why: Keep console output serialized and command transcripts redacted.
from __future__ import annotations

import logging
import subprocess
import sys
import threading
import urllib.parse
from pathlib import Path
from typing import Callable, TextIO

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_OUTPUT_LOCK = threading.Lock()
# Matched case-insensitively against `-e KEY=value` arguments.
_PROXY_ENV_KEYS = frozenset({"HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY"})
_MASK = "***"


def configure_logging(level_name: str) -> None:
    level = LOG_LEVELS.get(level_name.strip().lower())
    if level is None:
        choices = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"Could not set log level of {level_name}, use one of {choices}")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger().setLevel(level)


def safe_print(message: str = "", *, prefix: str | None = None) -> None:
    line = f"{prefix} {message}" if prefix else message
    with _OUTPUT_LOCK:
        print(line, flush=True)


def write_raw(message: str) -> None:
    with _OUTPUT_LOCK:
        sys.stdout.write(message)
        sys.stdout.flush()


class LogSink:
    """Per-backend command transcript written under ``--log-dir``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._file: TextIO | None = None
        self._lock = threading.Lock()

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w", encoding="utf-8")

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    def write_line(self, line: str) -> None:
        if self._file is None:
            raise RuntimeError(f"transcript {self.path} is not open")
        with self._lock:
            self._file.write(f"{line}\n")
            self._file.flush()


class NullSink:
    """Stands in for LogSink when no transcript directory is configured."""

    def open(self) -> None:
        return None

    def close(self) -> None:
        return None

    def write_line(self, line: str) -> None:
        return None


def make_prefix_printer(label: str, *, width: int = 0) -> Callable[[str], None]:
    prefix = f"[{label.ljust(width)}] |"

    def _printer(line: str) -> None:
        safe_print(line, prefix=prefix)

    return _printer


def render_cmd(cmd: list[str]) -> str:
    return " ".join(_redact_cmd(cmd))


def run_and_stream(
    cmd: list[str],
    *,
    log: LogSink | NullSink,
    cwd: Path | None = None,
    printer: Callable[[str], None] | None = None,
) -> int:
    """Run ``cmd`` with stdout and stderr merged, echoing each line as it arrives."""
    rendered = f"$ {render_cmd(cmd)}"
    log.write_line(rendered)
    if printer:
        printer(rendered)
    with subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
        errors="replace",
    ) as proc:
        for raw_line in proc.stdout:
            line = raw_line.rstrip("\n")
            log.write_line(line)
            if printer:
                printer(line)
        return proc.wait()


def _redact_cmd(cmd: list[str]) -> list[str]:
    return [_redact_proxy_token(token) for token in cmd]


def _redact_proxy_token(token: str) -> str:
    key, sep, value = token.partition("=")
    if not sep or key.upper() not in _PROXY_ENV_KEYS:
        return token
    return f"{key}={_redact_proxy_url(value)}"


def _redact_proxy_url(raw: str) -> str:
    try:
        parsed = urllib.parse.urlsplit(raw.strip())
    except ValueError:
        return raw
    userinfo, at, hostport = parsed.netloc.rpartition("@")
    if not at:
        return raw
    masked = f"{_MASK}:{_MASK}" if ":" in userinfo else _MASK
    return urllib.parse.urlunsplit(parsed._replace(netloc=f"{masked}@{hostport}"))
