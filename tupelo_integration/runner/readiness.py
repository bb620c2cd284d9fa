# Where: tupelo_integration/runner/readiness.py
# What: Wait for several readiness targets at once, all-or-nothing.
# Why: A backend is only usable once every endpoint answers; one timeout fails the group.
from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

from tupelo_integration.runner.errors import ProbeTimeoutError, ReadinessError
from tupelo_integration.runner.models import DiscoveredEndpoint, ProbeSettings, ReadinessTarget
from tupelo_integration.runner.probe import first_open_port

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"

Prober = Callable[..., DiscoveredEndpoint]


def await_all(
    targets: Iterable[ReadinessTarget],
    *,
    settings: ProbeSettings,
    on_attempt: Callable[[], None] | None = None,
    prober: Prober = first_open_port,
) -> dict[str, DiscoveredEndpoint]:
    """Probe every target concurrently and return their endpoints keyed by target name.

    Raises ReadinessError as soon as any target exhausts its attempts. Sibling
    probes are signalled to stop but not waited for.
    """
    targets = list(targets)
    if not targets:
        return {}
    names = [target.name for target in targets]
    if len(set(names)) != len(names):
        raise ValueError(f"readiness target names must be unique: {names}")

    stops = {target.name: threading.Event() for target in targets}
    results: dict[str, DiscoveredEndpoint] = {}
    executor = ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="readiness")
    try:
        future_to_name = {
            executor.submit(
                prober,
                target,
                settings=settings,
                on_attempt=on_attempt,
                stop=stops[target.name],
            ): target.name
            for target in targets
        }
        for future in as_completed(future_to_name):
            name = future_to_name[future]
            try:
                results[name] = future.result()
            except ProbeTimeoutError as exc:
                status = {
                    target_name: STATUS_OPEN if target_name in results else STATUS_CLOSED
                    for target_name in names
                }
                raise ReadinessError(f"{name} did not become ready: {exc}", status=status) from exc
    finally:
        for stop in stops.values():
            stop.set()
        executor.shutdown(wait=False, cancel_futures=True)
    return results
