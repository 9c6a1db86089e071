"""
Provider health monitor.

Probes databases and file-storage providers with a bounded timeout and
reports a boolean-plus-detail result. The monitor never raises and never
makes decisions; the coordinator and failover controller assemble
aggregates from the independent results it returns.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Dict, Iterable, Optional, Protocol

from ..models.health import HealthFailure, HealthResult
from .errors import (
    AuthenticationFailedError,
    BackendTimeoutError,
    HybridStorageError,
    UnreachableError,
)

logger = logging.getLogger(__name__)


class ProbeTarget(Protocol):
    """Anything the monitor can probe."""

    @property
    def target_name(self) -> str: ...

    def check_health(self) -> None: ...


class HealthMonitor:
    """
    Runs health probes on a shared thread pool.

    Each probe is bounded by probe_timeout_seconds. A probe that does not
    answer in time is reported as a timeout; its worker thread is left to
    finish in the background.
    """

    def __init__(self, probe_timeout_seconds: float = 5, max_workers: int = 8):
        self.probe_timeout_seconds = probe_timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="health-probe")

    def probe(self, target: ProbeTarget) -> HealthResult:
        """Probe a single target."""
        return self.probe_many([target])[target.target_name]

    def probe_many(self, targets: Iterable[ProbeTarget]) -> Dict[str, HealthResult]:
        """
        Probe independent targets concurrently.

        Returns:
            Mapping of target name to HealthResult, one entry per target
        """
        targets = list(targets)
        started = time.monotonic()
        deadline = started + self.probe_timeout_seconds

        futures = {}
        results: Dict[str, HealthResult] = {}
        for target in targets:
            try:
                futures[target.target_name] = self._executor.submit(target.check_health)
            except RuntimeError as e:
                results[target.target_name] = self._failure(
                    target.target_name, HealthFailure.ERROR, f"Probe could not be scheduled: {e}", started
                )

        for name, future in futures.items():
            remaining = max(0.0, deadline - time.monotonic())
            try:
                future.result(timeout=remaining)
                results[name] = HealthResult(
                    target=name,
                    healthy=True,
                    latency_ms=round((time.monotonic() - started) * 1000, 2),
                )
            except FuturesTimeoutError:
                future.cancel()
                results[name] = self._failure(
                    name, HealthFailure.TIMEOUT,
                    f"No answer within {self.probe_timeout_seconds}s", started
                )
            except AuthenticationFailedError as e:
                results[name] = self._failure(name, HealthFailure.AUTH, e.message, started)
            except BackendTimeoutError as e:
                results[name] = self._failure(name, HealthFailure.TIMEOUT, e.message, started)
            except UnreachableError as e:
                results[name] = self._failure(name, HealthFailure.UNREACHABLE, e.message, started)
            except HybridStorageError as e:
                results[name] = self._failure(name, HealthFailure.UNHEALTHY, e.message, started)
            except Exception as e:
                logger.error(f"Unexpected error while probing {name}: {e}", exc_info=True)
                results[name] = self._failure(
                    name, HealthFailure.ERROR, f"Unexpected probe error: {e}", started
                )

        return results

    def _failure(self, name: str, failure: HealthFailure, detail: str,
                 started: Optional[float] = None) -> HealthResult:
        logger.warning(f"Health probe failed for {name} ({failure.value}): {detail}")
        latency = None
        if started is not None:
            latency = round((time.monotonic() - started) * 1000, 2)
        return HealthResult(target=name, healthy=False, detail=detail, failure=failure, latency_ms=latency)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
