# Where: tupelo_integration/runner/events.py
# What: Event and status definitions for harness reporting.
# Why: Provide a stable, decoupled contract between execution and UI.
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

EVENT_MATRIX_START = "matrix_start"
EVENT_MATRIX_END = "matrix_end"
EVENT_GROUP_START = "group_start"
EVENT_GROUP_END = "group_end"
EVENT_PHASE_START = "phase_start"
EVENT_PHASE_END = "phase_end"
EVENT_PHASE_SKIP = "phase_skip"
EVENT_PAIR_START = "pair_start"
EVENT_PAIR_END = "pair_end"

STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

PHASE_IMAGE = "image"
PHASE_START = "start"
PHASE_READY = "ready"
PHASE_TEST = "test"
PHASE_TEARDOWN = "teardown"


@dataclass(frozen=True)
class Event:
    event_type: str
    backend: str | None = None
    tester: str | None = None
    phase: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.monotonic)
