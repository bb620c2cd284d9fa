# Where: tupelo_integration/runner/ui.py
# What: Plain console reporter for harness runs.
# Why: Keep output deterministic and free of terminal redraw tricks.
from __future__ import annotations

import os
import sys
import time

from tupelo_integration.runner.events import (
    EVENT_GROUP_END,
    EVENT_GROUP_START,
    EVENT_MATRIX_END,
    EVENT_MATRIX_START,
    EVENT_PAIR_END,
    EVENT_PAIR_START,
    EVENT_PHASE_END,
    EVENT_PHASE_SKIP,
    EVENT_PHASE_START,
    PHASE_IMAGE,
    PHASE_READY,
    PHASE_START,
    PHASE_TEARDOWN,
    PHASE_TEST,
    STATUS_FAILED,
    STATUS_PASSED,
    STATUS_SKIPPED,
    Event,
)
from tupelo_integration.runner.logging import safe_print, write_raw

_COLOR_RESET = "\033[0m"
_COLOR_GREEN = "\033[32m"
_COLOR_RED = "\033[31m"
_COLOR_YELLOW = "\033[33m"


def _resolve_feature(flag: bool | None, default: bool) -> bool:
    if flag is None:
        return default
    return bool(flag)


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(seconds)
    mins = total // 60
    secs = total % 60
    return f"{mins}m{secs:02d}s"


class Reporter:
    def emit(self, event: Event) -> None:
        raise NotImplementedError

    def progress(self) -> None:
        return None

    def progress_done(self) -> None:
        return None


class PlainReporter(Reporter):
    def __init__(self, *, color: bool | None = None) -> None:
        is_tty = sys.stdout.isatty()
        term = os.environ.get("TERM", "").lower()
        color_default = is_tty and term != "dumb" and not os.environ.get("NO_COLOR")
        self._color = _resolve_feature(color, color_default)
        self._group_started: dict[str, float] = {}
        self._dots = 0
        self._phase_width = max(
            len(PHASE_IMAGE),
            len(PHASE_START),
            len(PHASE_READY),
            len(PHASE_TEST),
            len(PHASE_TEARDOWN),
        )

    def _colorize(self, text: str, color: str) -> str:
        if not self._color:
            return text
        return f"{color}{text}{_COLOR_RESET}"

    def _status_word(self, status: str) -> str:
        if status == STATUS_PASSED:
            return self._colorize("ok", _COLOR_GREEN)
        if status == STATUS_FAILED:
            return self._colorize("failed", _COLOR_RED)
        if status == STATUS_SKIPPED:
            return self._colorize("skipped", _COLOR_YELLOW)
        return status

    def emit(self, event: Event) -> None:
        self.progress_done()

        if event.event_type == EVENT_MATRIX_START:
            backends = event.data.get("backends", 0)
            testers = event.data.get("testers", 0)
            safe_print(f"[matrix] {backends} backend(s) x {testers} tester(s)")
            return

        if event.event_type == EVENT_MATRIX_END:
            failed = event.data.get("failed") or []
            if not failed:
                safe_print(f"[matrix] {self._colorize('ALL PAIRS PASSED', _COLOR_GREEN)}")
                return
            safe_print(
                f"[matrix] {self._colorize('FAILED', _COLOR_RED)}: " + ", ".join(failed)
            )
            return

        if event.event_type == EVENT_GROUP_START and event.backend:
            self._group_started[event.backend] = time.monotonic()
            safe_print(f"[{event.backend}] started")
            return

        if event.event_type == EVENT_GROUP_END and event.backend:
            started = self._group_started.pop(event.backend, None)
            suffix = f" ({_format_duration(time.monotonic() - started)})" if started else ""
            status = str(event.data.get("status", ""))
            safe_print(f"[{event.backend}] done ... {self._status_word(status)}{suffix}")
            return

        if event.event_type == EVENT_PHASE_START and event.backend and event.phase:
            label = event.phase.ljust(self._phase_width)
            safe_print(f"[{event.backend}] {label} ... start")
            return

        if event.event_type == EVENT_PHASE_END and event.backend and event.phase:
            label = event.phase.ljust(self._phase_width)
            status = str(event.data.get("status", ""))
            duration = event.data.get("duration")
            suffix = f" ({_format_duration(duration)})" if duration is not None else ""
            safe_print(f"[{event.backend}] {label} ... {self._status_word(status)}{suffix}")
            return

        if event.event_type == EVENT_PHASE_SKIP and event.backend and event.phase:
            label = event.phase.ljust(self._phase_width)
            safe_print(f"[{event.backend}] {label} ... {self._status_word(STATUS_SKIPPED)}")
            return

        if event.event_type == EVENT_PAIR_START and event.backend and event.tester:
            safe_print(f"Running {event.tester} test suite with {event.backend} tupelo")
            return

        if event.event_type == EVENT_PAIR_END and event.backend and event.tester:
            code = event.data.get("exit_code", 0)
            status = STATUS_PASSED if code == 0 else STATUS_FAILED
            safe_print(
                f"[{event.backend}] {event.tester} ... {self._status_word(status)} (exit {code})"
            )

    def progress(self) -> None:
        self._dots += 1
        write_raw(".")

    def progress_done(self) -> None:
        if self._dots:
            self._dots = 0
            write_raw("\n")
