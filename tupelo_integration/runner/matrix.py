# Where: tupelo_integration/runner/matrix.py
# What: Run every backend x tester pair and fold the results into one exit code.
# Why: Keep matrix iteration and accounting apart from per-backend orchestration.
from __future__ import annotations

from collections.abc import Iterable

from tupelo_integration.runner.config import validate_backends
from tupelo_integration.runner.events import EVENT_MATRIX_END, EVENT_MATRIX_START, Event
from tupelo_integration.runner.lifecycle import StackLifecycle
from tupelo_integration.runner.models import ContainerSpec, RunRecord
from tupelo_integration.runner.ui import Reporter


def aggregate_exit_code(records: Iterable[RunRecord]) -> int:
    for record in records:
        if record.exit_code != 0:
            return record.exit_code
    return 0


def run_all(
    backends: list[ContainerSpec],
    testers: list[ContainerSpec],
    *,
    lifecycle: StackLifecycle,
    reporter: Reporter,
) -> int:
    # Contradictory backend entries must fail before any image is built or pulled.
    validate_backends(backends)

    reporter.emit(
        Event(EVENT_MATRIX_START, data={"backends": len(backends), "testers": len(testers)})
    )
    records: list[RunRecord] = []
    try:
        for backend in backends:
            records.extend(lifecycle.run_group(backend, testers))
    finally:
        failed = [
            f"{record.backend.label}/{record.tester.label}"
            for record in records
            if not record.passed
        ]
        reporter.emit(Event(EVENT_MATRIX_END, data={"failed": failed}))
    return aggregate_exit_code(records)
