# Where: tupelo_integration/runner/engine.py
# What: Thin adapter over the docker and docker compose command-line tools.
# Why: Keep container runtime invocations in one place so lifecycle logic stays testable.
from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
import urllib.parse
from collections.abc import Mapping
from pathlib import Path
from typing import Callable

from tupelo_integration.runner import constants
from tupelo_integration.runner.errors import EngineError
from tupelo_integration.runner.logging import TRACE, NullSink, LogSink, render_cmd, run_and_stream
from tupelo_integration.runner.models import ContainerSpec

logger = logging.getLogger(__name__)

_INSPECT_IP_FORMAT = "{{range .NetworkSettings.Networks}}{{.IPAddress}}{{end}}"


def docker_host_address(environ: Mapping[str, str] | None = None) -> str:
    """Return the address published ports are reachable on from this process."""
    lookup = os.environ if environ is None else environ
    docker_host = lookup.get(constants.ENV_DOCKER_HOST, "").strip()
    if not docker_host:
        return constants.DEFAULT_HOST_ADDRESS
    try:
        parsed = urllib.parse.urlsplit(docker_host)
    except ValueError as exc:
        raise EngineError(f"error parsing DOCKER_HOST URL: {exc}") from exc
    # unix:// and npipe:// sockets have no host part; ports are published locally.
    return parsed.hostname or constants.DEFAULT_HOST_ADDRESS


def run_args(spec: ContainerSpec, *, daemon: bool) -> list[str]:
    args = ["run", "-d"] if daemon else ["run", "--rm"]
    for key, value in spec.env.items():
        args.extend(["-e", f"{key}={value}"])
    if spec.network:
        args.extend(["--net", spec.network])
    args.append(spec.image)
    args.extend(spec.command)
    return args


class DockerEngine:
    def __init__(
        self,
        docker_cmd: str = "docker",
        compose_cmd: list[str] | None = None,
        *,
        log: LogSink | NullSink | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.docker_cmd = docker_cmd
        self.compose_cmd = list(compose_cmd) if compose_cmd else [docker_cmd, "compose"]
        self.log: LogSink | NullSink = log or NullSink()
        self.cwd = cwd

    @classmethod
    def locate(cls, *, cwd: Path | None = None) -> "DockerEngine":
        docker_cmd = shutil.which("docker")
        if docker_cmd is None:
            raise EngineError("Could not find docker command in PATH")

        compose_bin = shutil.which("docker-compose")
        if compose_bin:
            compose_cmd = [compose_bin]
        else:
            compose_cmd = [docker_cmd, "compose"]
            probe = subprocess.run(
                [*compose_cmd, "version"],
                capture_output=True,
                text=True,
                check=False,
            )
            if probe.returncode != 0:
                logger.warning("Could not find docker compose; docker-compose backends will not work")
        return cls(docker_cmd, compose_cmd, cwd=cwd)

    def check(self) -> None:
        self._run(["info"])

    def build(self, build_root: str) -> str:
        build_path = Path(build_root).resolve()
        return self._run(["build", "-q", str(build_path)])

    def pull(self, image: str) -> None:
        self._run(["pull", image])

    def pull_best_effort(self, image: str, *, printer: Callable[[str], None] | None = None) -> bool:
        if printer:
            printer(f"Pulling image {image}")
        try:
            self.pull(image)
        except EngineError as exc:
            # Offline runs fall back to whatever image is already cached locally.
            logger.warning("Could not pull latest image: %s", exc)
            return False
        return True

    def run_daemon(self, spec: ContainerSpec) -> str:
        return self._run(run_args(spec, daemon=True))

    def run_foreground(
        self,
        spec: ContainerSpec,
        *,
        printer: Callable[[str], None] | None = None,
    ) -> int:
        cmd = [self.docker_cmd, *run_args(spec, daemon=False)]
        try:
            return run_and_stream(cmd, log=self.log, cwd=self.cwd, printer=printer)
        except OSError as exc:
            raise EngineError(f"{render_cmd(cmd)} errored: {exc}", cmd=cmd) from exc

    def run_output(self, image: str, args: list[str]) -> str:
        return self._run(["run", "--rm", image, *args])

    def inspect_address(self, name_or_id: str) -> str:
        return self._run(["inspect", "-f", _INSPECT_IP_FORMAT, name_or_id])

    def container_address(
        self,
        name_or_id: str,
        *,
        attempts: int,
        delay: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str:
        last_err: EngineError | None = None
        for attempt in range(attempts):
            try:
                address = self.inspect_address(name_or_id)
            except EngineError as exc:
                last_err = exc
                address = ""
            if address:
                return address
            if attempt < attempts - 1:
                sleep(delay)
        if last_err is not None:
            raise last_err
        raise EngineError(f"no IP address assigned to {name_or_id} after {attempts} attempts")

    def remove(self, container_id: str) -> None:
        self._run(["rm", "-fv", container_id])

    def stack_up(self, project: str, *, printer: Callable[[str], None] | None = None) -> None:
        cmd = [*self.compose_cmd, "-p", project, "up", "-d", "--build", "--force-recreate"]
        self._stream_checked(cmd, printer=printer)

    def stack_down(self, project: str, *, printer: Callable[[str], None] | None = None) -> None:
        cmd = [*self.compose_cmd, "-p", project, "down"]
        self._stream_checked(cmd, printer=printer)

    def stack_container_id(self, project: str, service: str) -> str:
        cmd = [*self.compose_cmd, "-p", project, "ps", "-q", service]
        container_id = self._exec(cmd)
        if not container_id:
            raise EngineError(f"no container running for service {service} in {project}", cmd=cmd)
        return container_id.splitlines()[0].strip()

    def _run(self, args: list[str]) -> str:
        return self._exec([self.docker_cmd, *args])

    def _exec(self, cmd: list[str]) -> str:
        rendered = render_cmd(cmd)
        logger.log(TRACE, "Running command %s", rendered)
        self.log.write_line(f"$ {rendered}")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.cwd) if self.cwd else None,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise EngineError(f"{rendered} errored: {exc}", cmd=cmd) from exc
        stdout = result.stdout or ""
        output = f"{stdout}{result.stderr or ''}"
        logger.log(TRACE, "%s", output)
        if output:
            self.log.write_line(output.rstrip("\n"))
        if result.returncode != 0:
            raise EngineError(
                f"{rendered} errored: exit status {result.returncode}: {output.strip()}",
                cmd=cmd,
                output=output,
            )
        # Image and container ids are read from stdout; stderr carries notices and pull progress.
        return stdout.strip()

    def _stream_checked(self, cmd: list[str], *, printer: Callable[[str], None] | None) -> None:
        try:
            rc = run_and_stream(cmd, log=self.log, cwd=self.cwd, printer=printer)
        except OSError as exc:
            raise EngineError(f"{render_cmd(cmd)} errored: {exc}", cmd=cmd) from exc
        if rc != 0:
            raise EngineError(f"{render_cmd(cmd)} errored: exit status {rc}", cmd=cmd)
