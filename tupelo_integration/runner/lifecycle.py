# Where: tupelo_integration/runner/lifecycle.py
# What: Per-backend state machine: image, start, wait for ready, run testers, tear down.
# Why: Separate backend orchestration from matrix iteration and from the container CLI.
from __future__ import annotations

import logging
import os
import re
import threading
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Callable, TypeVar

from tupelo_integration.runner import constants
from tupelo_integration.runner.config import validate_backends
from tupelo_integration.runner.engine import DockerEngine, docker_host_address, run_args
from tupelo_integration.runner.errors import ConfigError, EngineError, HarnessError
from tupelo_integration.runner.events import (
    EVENT_GROUP_END,
    EVENT_GROUP_START,
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
    Event,
)
from tupelo_integration.runner.logging import LogSink, NullSink, make_prefix_printer, safe_print
from tupelo_integration.runner.models import (
    ContainerSpec,
    GroupState,
    ProbeSettings,
    ReadinessTarget,
    RunningBackend,
    RunRecord,
)
from tupelo_integration.runner.readiness import await_all
from tupelo_integration.runner.ui import Reporter
from tupelo_integration.runner.version import resolve_version

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOG_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def build_tester_env(tester: ContainerSpec, running: RunningBackend) -> dict[str, str]:
    env = dict(tester.env)
    env[constants.ENV_RPC_HOST] = f"{running.rpc_host}:{constants.PORT_RPC_SERVER}"
    if running.bootstrap_host:
        env[constants.ENV_BOOTSTRAP_NODES] = (
            f"/ip4/{running.bootstrap_host}/tcp/{constants.PORT_BOOTSTRAP}"
            f"/ipfs/{constants.BOOTSTRAP_PEER_ID}"
        )
    env[constants.ENV_VERSION] = running.version
    return env


def candidate_addresses(*addresses: str) -> tuple[str, ...]:
    unique: list[str] = []
    for address in addresses:
        if address and address not in unique:
            unique.append(address)
    return tuple(unique)


class _ProgressGate:
    """Forwards probe attempts to the reporter until closed.

    Losing probe workers are not joined and may still report an attempt after
    the wait has returned; those late ticks are dropped.
    """

    def __init__(self, tick: Callable[[], None]) -> None:
        self._tick = tick
        self._open = True
        self._lock = threading.Lock()

    def __call__(self) -> None:
        with self._lock:
            if self._open:
                self._tick()

    def close(self) -> None:
        with self._lock:
            self._open = False


class StackLifecycle:
    """Drives one backend group at a time through its states.

    Only one backend is ever alive: ``start`` refuses to run while a previous
    group still holds a teardown handle, and ``teardown`` always releases it.
    """

    def __init__(
        self,
        engine: DockerEngine,
        *,
        reporter: Reporter,
        settings: ProbeSettings | None = None,
        environ: Mapping[str, str] | None = None,
        log_dir: Path | None = None,
    ) -> None:
        self.engine = engine
        self.reporter = reporter
        self.settings = settings or ProbeSettings()
        self.environ = os.environ if environ is None else environ
        self.log_dir = log_dir
        self.state = GroupState.IDLE
        self._active: RunningBackend | None = None
        self._teardown: Callable[[], None] | None = None
        self._container_id = ""
        self._built_images: dict[str, str] = {}

    @property
    def active(self) -> RunningBackend | None:
        return self._active

    def run_group(self, backend: ContainerSpec, testers: list[ContainerSpec]) -> list[RunRecord]:
        label = backend.label
        if not testers:
            logger.warning("No testers configured; skipping backend %s", label)
            return []

        log = self._open_log(label)
        self.reporter.emit(Event(EVENT_GROUP_START, backend=label))
        self.engine.log = log
        records: list[RunRecord] = []
        try:
            try:
                self._phase(label, PHASE_IMAGE, lambda: self.resolve_backend_image(backend))
                self._phase(label, PHASE_START, lambda: self.start(backend))
                running = self._phase(label, PHASE_READY, lambda: self.await_ready(backend))
            except HarnessError as exc:
                logger.error("%s", exc)
                safe_print(f"[ERROR] {label}: {exc}")
                log.write_line(f"[ERROR] {exc}")
                self.reporter.emit(Event(EVENT_PHASE_SKIP, backend=label, phase=PHASE_TEST))
                records = [RunRecord(backend, tester, 1, skipped=True) for tester in testers]
            else:
                for tester in testers:
                    self.reporter.emit(Event(EVENT_PAIR_START, backend=label, tester=tester.label))
                    code = self.run_tester(tester, running)
                    records.append(RunRecord(backend, tester, code))
                    self.reporter.emit(
                        Event(
                            EVENT_PAIR_END,
                            backend=label,
                            tester=tester.label,
                            data={"exit_code": code},
                        )
                    )
        finally:
            self._phase(label, PHASE_TEARDOWN, self.teardown)
            self.engine.log = NullSink()
            log.close()

        status = STATUS_PASSED if all(record.passed for record in records) else STATUS_FAILED
        self.reporter.emit(Event(EVENT_GROUP_END, backend=label, data={"status": status}))
        return records

    def resolve_backend_image(self, backend: ContainerSpec) -> None:
        validate_backends([backend])
        if backend.compose:
            # The stack builds its own images during `up --build`.
            pass
        elif not backend.image:
            backend.image = self._build(backend.build or constants.DEFAULT_BUILD_PATH)
        else:
            self.engine.pull_best_effort(backend.image, printer=safe_print)
        self.state = GroupState.IMAGE_RESOLVED

    def start(self, backend: ContainerSpec) -> None:
        if self._active is not None or self._teardown is not None:
            raise RuntimeError("previous backend group was not torn down before starting a new one")
        self.state = GroupState.STARTING

        if backend.compose:
            project = backend.compose_project
            safe_print("Starting tupelo docker-compose stack")
            # Registered before `up` so a half-started stack still gets brought down.
            self._teardown = lambda: self._stop_stack(project)
            self.engine.stack_up(project, printer=make_prefix_printer("compose"))
            if not backend.network:
                backend.network = f"{project}_default"
            return

        safe_print("Starting tupelo container")
        container_id = self.engine.run_daemon(backend)
        self._container_id = container_id
        self._teardown = lambda: self._remove_container(container_id)

    def await_ready(self, backend: ContainerSpec) -> RunningBackend:
        self.state = GroupState.AWAITING_READY
        host = docker_host_address(self.environ)

        if backend.compose:
            project = backend.compose_project
            bootstrap_ip = self._stack_address(project, constants.SERVICE_BOOTSTRAP)
            rpc_ip = self._stack_address(project, constants.SERVICE_RPC_SERVER)
            targets = [
                ReadinessTarget(
                    constants.TARGET_BOOTSTRAPPER,
                    candidate_addresses(host, bootstrap_ip),
                    constants.PORT_BOOTSTRAP,
                ),
                ReadinessTarget(
                    constants.TARGET_RPC_SERVER,
                    candidate_addresses(host, rpc_ip),
                    constants.PORT_RPC_SERVER,
                ),
            ]
            safe_print("Waiting for bootstrapper and RPC server to come up")
        else:
            bootstrap_ip = ""
            rpc_ip = self._address(self._container_id)
            targets = [
                ReadinessTarget(
                    constants.TARGET_RPC_SERVER,
                    candidate_addresses(host, rpc_ip),
                    constants.PORT_RPC_SERVER,
                )
            ]
            safe_print("Waiting for RPC server to come up")

        gate = _ProgressGate(self.reporter.progress)
        try:
            endpoints = await_all(targets, settings=self.settings, on_attempt=gate)
        finally:
            gate.close()
            self.reporter.progress_done()
        for endpoint in endpoints.values():
            logger.info("%s answered on %s", endpoint.target, endpoint.address)

        running = RunningBackend(
            rpc_host=rpc_ip,
            bootstrap_host=bootstrap_ip,
            network=backend.network,
            version=resolve_version(self.engine, backend.image),
        )
        self._active = running
        self.state = GroupState.READY
        return running

    def run_tester(self, tester: ContainerSpec, running: RunningBackend) -> int:
        if self._active is not running:
            raise RuntimeError("testers can only run against the active backend")
        self.state = GroupState.RUNNING_TESTER
        run = tester.copy_for_run()
        try:
            if not run.image:
                run.image = self._build(run.build or constants.DEFAULT_BUILD_PATH)
            else:
                self.engine.pull_best_effort(run.image, printer=safe_print)
            run.env = build_tester_env(run, running)
            if running.network:
                run.network = running.network
            logger.info("Running docker %s", " ".join(run_args(run, daemon=False)))
            return self.engine.run_foreground(run, printer=make_prefix_printer(run.label))
        except EngineError as exc:
            logger.error("%s errored: %s", run.label, exc)
            safe_print(f"[ERROR] {run.label}: {exc}")
            return 1
        finally:
            self.state = GroupState.READY

    def teardown(self) -> None:
        handle = self._teardown
        self._teardown = None
        try:
            if handle is not None:
                handle()
        except EngineError as exc:
            logger.error("teardown failed: %s", exc)
            safe_print(f"[ERROR] teardown failed: {exc}")
        finally:
            self._active = None
            self._container_id = ""
            self.state = GroupState.TORN_DOWN

    def _build(self, build_root: str) -> str:
        key = str(Path(build_root).resolve())
        if key not in self._built_images:
            safe_print(f"Building Docker image from {build_root}")
            self._built_images[key] = self.engine.build(build_root)
        return self._built_images[key]

    def _address(self, name_or_id: str) -> str:
        return self.engine.container_address(
            name_or_id,
            attempts=self.settings.inspect_attempts,
            delay=self.settings.inspect_delay,
        )

    def _stack_address(self, project: str, service: str) -> str:
        try:
            name_or_id = self.engine.stack_container_id(project, service)
        except EngineError as exc:
            # Stacks that pin container_name can still be inspected by service name.
            logger.debug("falling back to container name %s: %s", service, exc)
            name_or_id = service
        return self._address(name_or_id)

    def _stop_stack(self, project: str) -> None:
        safe_print("Stopping tupelo docker-compose stack")
        self.engine.stack_down(project, printer=make_prefix_printer("compose"))

    def _remove_container(self, container_id: str) -> None:
        safe_print("Stopping tupelo container")
        self.engine.remove(container_id)

    def _open_log(self, label: str) -> LogSink | NullSink:
        if self.log_dir is None:
            return NullSink()
        name = _LOG_NAME_RE.sub("-", label).strip("-") or "backend"
        sink = LogSink(self.log_dir / f"{name}.log")
        try:
            sink.open()
        except OSError as exc:
            raise ConfigError(f"Could not open transcript {sink.path}: {exc}") from exc
        return sink

    def _phase(self, label: str, phase: str, fn: Callable[[], T]) -> T:
        self.reporter.emit(Event(EVENT_PHASE_START, backend=label, phase=phase))
        started = time.monotonic()
        try:
            result = fn()
        except Exception:
            self.reporter.emit(
                Event(
                    EVENT_PHASE_END,
                    backend=label,
                    phase=phase,
                    data={"status": STATUS_FAILED, "duration": time.monotonic() - started},
                )
            )
            raise
        self.reporter.emit(
            Event(
                EVENT_PHASE_END,
                backend=label,
                phase=phase,
                data={"status": STATUS_PASSED, "duration": time.monotonic() - started},
            )
        )
        return result
