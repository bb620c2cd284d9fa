# Where: tupelo_integration/runner/tests/conftest.py
# What: Shared fakes for lifecycle and matrix tests.
# Why: Exercise orchestration order without a Docker daemon.
from __future__ import annotations

import pytest

from tupelo_integration.runner import lifecycle as lifecycle_module
from tupelo_integration.runner.errors import EngineError, ReadinessError
from tupelo_integration.runner.lifecycle import StackLifecycle
from tupelo_integration.runner.logging import NullSink
from tupelo_integration.runner.models import DiscoveredEndpoint, ProbeSettings
from tupelo_integration.runner.ui import Reporter


class FakeEngine:
    def __init__(
        self,
        *,
        addresses: dict[str, str] | None = None,
        version_output: str = "tupelo v1.2.3",
        tester_codes: list[int] | None = None,
        fail_on: set[str] | None = None,
    ) -> None:
        self.addresses = addresses or {
            "cid-1": "172.17.0.2",
            "bootstrap-id": "172.18.0.2",
            "rpc-server-id": "172.18.0.3",
        }
        self.version_output = version_output
        self.tester_codes = list(tester_codes or [])
        self.fail_on = fail_on or set()
        self.calls: list[tuple] = []
        self.log = NullSink()
        self._daemons = 0

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise EngineError(f"docker {op} errored: exit status 1")

    def build(self, build_root: str) -> str:
        self.calls.append(("build", build_root))
        self._maybe_fail("build")
        return f"sha256:built-{build_root}"

    def pull_best_effort(self, image: str, *, printer=None) -> bool:
        self.calls.append(("pull", image))
        return True

    def run_daemon(self, spec) -> str:
        self.calls.append(("run_daemon", spec.image, tuple(spec.command)))
        self._maybe_fail("run_daemon")
        self._daemons += 1
        return f"cid-{self._daemons}"

    def container_address(self, name_or_id: str, *, attempts: int, delay: float) -> str:
        self.calls.append(("address", name_or_id))
        self._maybe_fail("address")
        return self.addresses.get(name_or_id, "172.17.0.9")

    def stack_up(self, project: str, *, printer=None) -> None:
        self.calls.append(("stack_up", project))
        self._maybe_fail("stack_up")

    def stack_down(self, project: str, *, printer=None) -> None:
        self.calls.append(("stack_down", project))

    def stack_container_id(self, project: str, service: str) -> str:
        self.calls.append(("stack_ps", project, service))
        return f"{service}-id"

    def remove(self, container_id: str) -> None:
        self.calls.append(("remove", container_id))

    def run_output(self, image: str, args: list[str]) -> str:
        self.calls.append(("run_output", image, tuple(args)))
        return self.version_output

    def run_foreground(self, spec, *, printer=None) -> int:
        self.calls.append(("tester", spec.label, dict(spec.env), spec.network, spec.image))
        self._maybe_fail("run_foreground")
        if self.tester_codes:
            return self.tester_codes.pop(0)
        return 0

    def ops(self) -> list[str]:
        return [call[0] for call in self.calls]


class RecordingReporter(Reporter):
    def __init__(self) -> None:
        self.events = []
        self.dots = 0

    def emit(self, event) -> None:
        self.events.append(event)

    def progress(self) -> None:
        self.dots += 1


class FakeReadiness:
    """Stands in for await_all and logs the call into the engine's call list."""

    def __init__(self, engine: FakeEngine, *, fail: bool = False) -> None:
        self.engine = engine
        self.fail = fail
        self.targets = []
        self.on_attempt = None

    def __call__(self, targets, *, settings, on_attempt=None):
        targets = list(targets)
        self.targets.append(targets)
        self.on_attempt = on_attempt
        self.engine.calls.append(("await", tuple(t.name for t in targets)))
        if on_attempt:
            on_attempt()
        if self.fail:
            raise ReadinessError(
                "rpcServer did not become ready",
                status={t.name: "closed" for t in targets},
            )
        return {t.name: DiscoveredEndpoint(t.name, t.addresses[-1], t.port) for t in targets}


@pytest.fixture
def make_lifecycle(monkeypatch):
    def _make(engine: FakeEngine, *, readiness_fails: bool = False, environ=None):
        readiness = FakeReadiness(engine, fail=readiness_fails)
        monkeypatch.setattr(lifecycle_module, "await_all", readiness)
        reporter = RecordingReporter()
        manager = StackLifecycle(
            engine,
            reporter=reporter,
            settings=ProbeSettings(inspect_attempts=2, inspect_delay=0.0),
            environ=environ if environ is not None else {},
        )
        return manager, reporter, readiness

    return _make
