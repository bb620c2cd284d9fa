# Where: tupelo_integration/runner/models.py
# What: Dataclasses for harness configuration, readiness and run results.
# Why: Keep execution inputs explicit and avoid implicit global state.
from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from tupelo_integration.runner import constants
from tupelo_integration.runner.errors import ConfigError


@dataclass
class ContainerSpec:
    name: str = ""
    build: str = ""
    image: str = ""
    command: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    compose: bool = False
    compose_project: str = constants.DEFAULT_COMPOSE_PROJECT
    network: str = ""

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.image:
            return self.image
        return self.build

    def copy_for_run(self) -> "ContainerSpec":
        return copy.deepcopy(self)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class ReadinessTarget:
    name: str
    addresses: tuple[str, ...]
    port: int


@dataclass(frozen=True)
class DiscoveredEndpoint:
    target: str
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class RunRecord:
    backend: ContainerSpec
    tester: ContainerSpec
    exit_code: int
    skipped: bool = False

    @property
    def passed(self) -> bool:
        return self.exit_code == 0


@dataclass
class RunningBackend:
    rpc_host: str
    bootstrap_host: str = ""
    network: str = ""
    version: str = constants.FALLBACK_VERSION


class GroupState(str, Enum):
    IDLE = "idle"
    IMAGE_RESOLVED = "image_resolved"
    STARTING = "starting"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    RUNNING_TESTER = "running_tester"
    TORN_DOWN = "torn_down"


@dataclass(frozen=True)
class ProbeSettings:
    max_attempts: int = constants.DEFAULT_MAX_ATTEMPTS
    attempt_timeout: float = constants.DEFAULT_ATTEMPT_TIMEOUT
    attempt_delay: float = constants.DEFAULT_ATTEMPT_DELAY
    inspect_attempts: int = constants.DEFAULT_INSPECT_ATTEMPTS
    inspect_delay: float = constants.DEFAULT_INSPECT_DELAY

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProbeSettings":
        """Build settings, letting TUPELO_INTEGRATION_* variables override defaults."""
        lookup = os.environ if environ is None else environ
        return cls(
            max_attempts=_env_int(lookup, constants.ENV_MAX_ATTEMPTS, cls.max_attempts),
            attempt_timeout=_env_float(lookup, constants.ENV_ATTEMPT_TIMEOUT, cls.attempt_timeout),
            attempt_delay=_env_float(lookup, constants.ENV_ATTEMPT_DELAY, cls.attempt_delay),
            inspect_attempts=_env_int(
                lookup, constants.ENV_INSPECT_ATTEMPTS, cls.inspect_attempts
            ),
            inspect_delay=_env_float(lookup, constants.ENV_INSPECT_DELAY, cls.inspect_delay),
        )


@dataclass
class HarnessConfig:
    backends: list[ContainerSpec]
    testers: list[ContainerSpec]


def _env_int(lookup: Mapping[str, str], key: str, default: int) -> int:
    raw = lookup.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _env_float(lookup: Mapping[str, str], key: str, default: float) -> float:
    raw = lookup.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value
