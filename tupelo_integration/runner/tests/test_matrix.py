# Where: tupelo_integration/runner/tests/test_matrix.py
# What: Unit tests for matrix iteration and exit code aggregation.
# Why: Backends run one at a time and the first failing pair decides the exit code.
from __future__ import annotations

import pytest

from tupelo_integration.runner.errors import ConfigError
from tupelo_integration.runner.events import EVENT_MATRIX_END, EVENT_MATRIX_START
from tupelo_integration.runner.matrix import aggregate_exit_code, run_all
from tupelo_integration.runner.models import ContainerSpec, RunRecord
from tupelo_integration.runner.tests.conftest import FakeEngine


def _records(codes: list[int]) -> list[RunRecord]:
    backend = ContainerSpec(name="b")
    return [RunRecord(backend, ContainerSpec(name=f"t{i}"), code) for i, code in enumerate(codes)]


@pytest.mark.parametrize(
    ("codes", "expected"),
    [
        ([0, 1, 0], 1),
        ([0, 0, 0], 0),
        ([0, 2, 3], 2),
        ([], 0),
    ],
)
def test_aggregate_exit_code(codes, expected):
    assert aggregate_exit_code(_records(codes)) == expected


def test_run_all_tears_down_each_backend_before_the_next(make_lifecycle):
    engine = FakeEngine(tester_codes=[0, 0, 0, 0])
    manager, reporter, _readiness = make_lifecycle(engine)
    backends = [
        ContainerSpec(name="one", image="tupelo:one", command=["rpc-server"]),
        ContainerSpec(name="two", image="tupelo:two", command=["rpc-server"]),
    ]
    testers = [
        ContainerSpec(name="go", image="testers/go"),
        ContainerSpec(name="js", image="testers/js"),
    ]

    code = run_all(backends, testers, lifecycle=manager, reporter=reporter)

    assert code == 0
    ops = engine.ops()
    assert ops.count("run_daemon") == 2
    assert ops.count("remove") == 2
    first_remove = ops.index("remove")
    second_start = len(ops) - 1 - ops[::-1].index("run_daemon")
    assert first_remove < second_start
    assert ops.count("tester") == 4
    assert reporter.events[0].event_type == EVENT_MATRIX_START
    assert reporter.events[-1].event_type == EVENT_MATRIX_END
    assert reporter.events[-1].data["failed"] == []


def test_run_all_returns_first_failing_code(make_lifecycle):
    engine = FakeEngine(tester_codes=[0, 4, 0, 7])
    manager, reporter, _readiness = make_lifecycle(engine)
    backends = [
        ContainerSpec(name="one", image="tupelo:one"),
        ContainerSpec(name="two", image="tupelo:two"),
    ]
    testers = [ContainerSpec(name="go", image="testers/go"), ContainerSpec(name="js", image="x")]

    code = run_all(backends, testers, lifecycle=manager, reporter=reporter)

    assert code == 4
    assert reporter.events[-1].data["failed"] == ["one/js", "two/js"]


def test_run_all_counts_unready_backend_as_failure(make_lifecycle):
    engine = FakeEngine()
    manager, reporter, _readiness = make_lifecycle(engine, readiness_fails=True)

    code = run_all(
        [ContainerSpec(name="one", image="tupelo:one")],
        [ContainerSpec(name="go", image="testers/go")],
        lifecycle=manager,
        reporter=reporter,
    )

    assert code == 1
    assert "tester" not in engine.ops()


def test_run_all_rejects_compose_backend_with_image_before_engine_calls(make_lifecycle):
    engine = FakeEngine()
    manager, reporter, _readiness = make_lifecycle(engine)
    backends = [
        ContainerSpec(name="ok", image="tupelo:ok"),
        ContainerSpec(name="bad", image="tupelo:bad", compose=True),
    ]

    with pytest.raises(ConfigError):
        run_all(
            backends,
            [ContainerSpec(name="go", image="testers/go")],
            lifecycle=manager,
            reporter=reporter,
        )

    assert engine.calls == []
    assert reporter.events == []
