# Where: tupelo_integration/runner/errors.py
# What: Exception types raised inside the runner.
# Why: Callers at the lifecycle and CLI seams decide how each failure is reported.
from __future__ import annotations


class HarnessError(Exception):
    """Base class for runner failures."""


class ConfigError(HarnessError):
    """Configuration is unreadable or contradictory. Fatal before any container starts."""


class EngineError(HarnessError):
    def __init__(self, message: str, *, cmd: list[str] | None = None, output: str = "") -> None:
        super().__init__(message)
        self.cmd = list(cmd or [])
        self.output = output


class ProbeTimeoutError(HarnessError):
    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class ProbeCancelledError(HarnessError):
    pass


class ReadinessError(HarnessError):
    def __init__(self, message: str, *, status: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.status = dict(status or {})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.status:
            return base
        details = ", ".join(f"{name}={state}" for name, state in sorted(self.status.items()))
        return f"{base} ({details})"
