# Where: tupelo_integration/runner/probe.py
# What: TCP readiness probing across several candidate addresses for one port.
# Why: A backend may answer on its published host address or only on its container address.
from __future__ import annotations

import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

from tupelo_integration.runner.errors import ProbeCancelledError, ProbeTimeoutError
from tupelo_integration.runner.models import DiscoveredEndpoint, ProbeSettings, ReadinessTarget

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


def port_open(host: str, port: int, timeout: float) -> bool:
    try:
        conn = socket.create_connection((host, port), timeout=timeout)
    except OSError:
        return False
    conn.close()
    return True


def first_open_port(
    target: ReadinessTarget,
    *,
    settings: ProbeSettings,
    on_attempt: Callable[[], None] | None = None,
    stop: threading.Event | None = None,
) -> DiscoveredEndpoint:
    """Race every candidate address of ``target`` and return the first that accepts.

    Each candidate gets up to ``settings.max_attempts`` connection
    attempts. Setting ``stop`` from another thread abandons the search and raises
    ProbeCancelledError; the first success sets it too, which halts the other
    candidates.
    """
    if not target.addresses:
        raise ProbeTimeoutError(f"no candidate addresses to probe for {target.name}")

    stop_event = stop if stop is not None else threading.Event()

    def _search(host: str):
        for attempt in range(settings.max_attempts):
            if stop_event.is_set():
                return None
            _notify(on_attempt)
            if port_open(host, target.port, settings.attempt_timeout):
                stop_event.set()
                return DiscoveredEndpoint(target=target.name, host=host, port=target.port)
            logger.debug(
                "%s not reachable on %s:%d (attempt %d)",
                target.name,
                host,
                target.port,
                attempt + 1,
            )
            if attempt < settings.max_attempts - 1 and stop_event.wait(settings.attempt_delay):
                return None
        return _EXHAUSTED

    executor = ThreadPoolExecutor(
        max_workers=len(target.addresses),
        thread_name_prefix=f"probe-{target.name}",
    )
    outcomes = []
    try:
        futures = [executor.submit(_search, host) for host in target.addresses]
        for future in as_completed(futures):
            outcome = future.result()
            if isinstance(outcome, DiscoveredEndpoint):
                return outcome
            outcomes.append(outcome)
    finally:
        stop_event.set()
        executor.shutdown(wait=False, cancel_futures=True)

    if any(outcome is None for outcome in outcomes):
        raise ProbeCancelledError(f"probe for {target.name} cancelled")
    raise ProbeTimeoutError(
        f"{target.name}: maximum attempts ({settings.max_attempts}) with no hosts reachable",
        attempts=settings.max_attempts,
    )


def _notify(on_attempt: Callable[[], None] | None) -> None:
    if on_attempt is None:
        return
    try:
        on_attempt()
    except Exception:
        logger.debug("progress callback failed", exc_info=True)
