"""Health check engine — runs all probes concurrently and aggregates them.

One pass (``run_all``) dispatches every enabled probe at once, waits for all
of them (each bounded by its own timeout), folds the results into a
SystemSnapshot and records each result in the ResultCache.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Iterable
from typing import Any

import httpx

from healthcore.health.config import HealthConfig
from healthcore.health.errors import ConfigurationError
from healthcore.health.metrics import collect_system_metrics
from healthcore.health.models import ProbeResult, Status, Summary, SystemSnapshot
from healthcore.health.probes import (
    CacheClient,
    CacheProbe,
    DatabasePool,
    DatabaseProbe,
    FilesystemProbe,
    HttpEndpointProbe,
    MemoryProbe,
    Probe,
)

logger = logging.getLogger(__name__)


# ── Aggregation ──────────────────────────────────────────────────────────────


def aggregate_status(results: Iterable[ProbeResult]) -> Status:
    """unhealthy > degraded > healthy. No results is healthy."""
    statuses = {r.status for r in results}
    if Status.UNHEALTHY in statuses:
        return Status.UNHEALTHY
    if Status.DEGRADED in statuses:
        return Status.DEGRADED
    return Status.HEALTHY


def summarize(results: list[ProbeResult]) -> Summary:
    return Summary(
        total=len(results),
        healthy=sum(1 for r in results if r.status == Status.HEALTHY),
        unhealthy=sum(1 for r in results if r.status == Status.UNHEALTHY),
        degraded=sum(1 for r in results if r.status == Status.DEGRADED),
    )


# ── Result cache ─────────────────────────────────────────────────────────────


class ResultCache:
    """Last-known result per probe name. In memory only, last writer wins."""

    def __init__(self) -> None:
        self._results: dict[str, ProbeResult] = {}
        self._lock = threading.Lock()

    def update(self, results: Iterable[ProbeResult]) -> None:
        """Overwrite entries for a whole pass in one critical section."""
        with self._lock:
            for r in results:
                self._results[r.service] = r

    def get(self, name: str) -> ProbeResult | None:
        with self._lock:
            return self._results.get(name)

    def snapshot(self) -> dict[str, ProbeResult]:
        with self._lock:
            return dict(self._results)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


# ── Probe wiring ─────────────────────────────────────────────────────────────


def build_probes(
    config: HealthConfig,
    db_pool: DatabasePool | None = None,
    cache_client: CacheClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> list[Probe]:
    """Instantiate enabled probes in report order.

    A probe whose collaborator is missing is skipped with a log line.
    """
    probes: list[Probe] = []

    def _add(name: str, factory: Any) -> None:
        try:
            probes.append(factory())
        except ConfigurationError as e:
            logger.info("Skipping %s probe: %s", name, e)

    if config.database.enabled:
        _add("database", lambda: DatabaseProbe(_require(db_pool, "database pool"), config.database))
    if config.cache.enabled:
        _add("cache", lambda: CacheProbe(_require(cache_client, "cache client"), config.cache))
    for api in config.external_apis:
        _add(
            f"external_api_{api.name}",
            lambda api=api: HttpEndpointProbe(_require(http_client, "HTTP client"), api),
        )
    if config.filesystem.enabled:
        probes.append(FilesystemProbe(config.filesystem))
    if config.memory.enabled:
        probes.append(MemoryProbe(config.memory))

    return probes


def _require(handle: Any, what: str) -> Any:
    if handle is None:
        raise ConfigurationError(f"{what} not configured")
    return handle


# ── Engine ───────────────────────────────────────────────────────────────────


class HealthEngine:
    """Runs every enabled probe and produces a SystemSnapshot."""

    def __init__(
        self,
        config: HealthConfig,
        db_pool: DatabasePool | None = None,
        cache_client: CacheClient | None = None,
        http_client: httpx.AsyncClient | None = None,
        cache: ResultCache | None = None,
        probes: list[Probe] | None = None,
    ) -> None:
        self.config = config
        self.cache = cache or ResultCache()
        if probes is None:
            probes = build_probes(config, db_pool, cache_client, http_client)
        self.probes = probes
        logger.info(
            "Health engine ready with %d probes: %s",
            len(self.probes), ", ".join(p.name for p in self.probes) or "none",
        )

    async def run_all(self) -> SystemSnapshot:
        """One full pass. Returns only after every probe resolved."""
        t0 = time.perf_counter()
        outcomes = await asyncio.gather(
            *(p.check() for p in self.probes), return_exceptions=True,
        )

        results: list[ProbeResult] = []
        for probe, outcome in zip(self.probes, outcomes):
            if isinstance(outcome, ProbeResult):
                results.append(outcome)
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                logger.error("Probe %s raised unexpectedly: %r", probe.name, outcome)
                results.append(ProbeResult(
                    service=probe.name,
                    status=Status.UNHEALTHY,
                    error=f"{type(outcome).__name__}: {outcome}",
                ))

        summary = summarize(results)
        snapshot = SystemSnapshot(
            status=aggregate_status(results),
            checks=results,
            metrics=collect_system_metrics(),
            summary=summary,
        )
        self.cache.update(results)

        logger.info(
            "Health pass: %s (%d/%d healthy, %d degraded) in %dms",
            snapshot.status.value, summary.healthy, summary.total, summary.degraded,
            int((time.perf_counter() - t0) * 1000),
        )
        return snapshot

    def last_results(self) -> dict[str, ProbeResult]:
        return self.cache.snapshot()
