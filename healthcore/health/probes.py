"""Dependency probes — database, cache, HTTP endpoints, filesystem, memory.

Every probe exposes ``check(timeout_ms) -> ProbeResult`` and never raises.
Probe bodies (``_probe``) fill a details dict and raise on failure; the base
class turns the outcome into a ProbeResult:

    ThresholdExceeded        -> degraded
    any other exception      -> unhealthy
    no exception             -> healthy

The body runs as its own task. If it overruns its budget the task is
cancelled best-effort and its eventual outcome is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import httpx
from redis.exceptions import RedisError

from healthcore.health.config import (
    CacheCheckConfig,
    DatabaseCheckConfig,
    ExternalApiConfig,
    FilesystemCheckConfig,
    FilesystemPath,
    MemoryCheckConfig,
)
from healthcore.health.errors import (
    CheckTimeoutError,
    ConnectivityError,
    HealthCheckError,
    IntegrityError,
    ThresholdExceeded,
)
from healthcore.health.metrics import memory_details
from healthcore.health.models import ProbeResult, Status

logger = logging.getLogger(__name__)

DB_QUERY = "SELECT NOW() AS current_time, version() AS version"
CACHE_KEY_PREFIX = "health_check:"
CACHE_TTL_SECONDS = 10


# ── Collaborator protocols ───────────────────────────────────────────────────


class DatabasePool(Protocol):
    async def fetchrow(self, query: str) -> Mapping[str, Any] | None: ...

    def occupancy(self) -> tuple[int, int, int]:
        """(total, idle, waiting) connections."""
        ...


class CacheClient(Protocol):
    async def ping(self) -> Any: ...

    async def set(self, name: str, value: str, ex: int | None = None) -> Any: ...

    async def get(self, name: str) -> Any: ...

    async def delete(self, *names: str) -> Any: ...

    async def info(self, section: str | None = None) -> dict[str, Any]: ...


# ── Base ─────────────────────────────────────────────────────────────────────


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def _discard_late_outcome(task: asyncio.Task[None]) -> None:
    # Mark the exception as retrieved so asyncio does not log it
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Discarded late probe failure: %s", task.exception())


class Probe(ABC):
    """A self-contained check of one dependency."""

    def __init__(self, name: str, timeout_ms: int) -> None:
        self.name = name
        self.timeout_ms = timeout_ms

    @abstractmethod
    async def _probe(self, details: dict[str, Any]) -> None:
        """Exercise the dependency. Raise on failure."""

    async def check(self, timeout_ms: int | None = None) -> ProbeResult:
        budget = timeout_ms if timeout_ms is not None else self.timeout_ms
        details: dict[str, Any] = {}
        t0 = time.perf_counter()
        task = asyncio.ensure_future(self._probe(details))

        try:
            done, _ = await asyncio.wait({task}, timeout=budget / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            task.add_done_callback(_discard_late_outcome)
            elapsed = max(_elapsed_ms(t0), budget)
            logger.warning("Probe %s timed out after %dms", self.name, budget)
            return self._result(
                Status.UNHEALTHY, elapsed, details, str(CheckTimeoutError(budget)),
            )

        elapsed = _elapsed_ms(t0)
        if task.cancelled():
            return self._result(Status.UNHEALTHY, elapsed, details, "check cancelled")

        exc = task.exception()
        if exc is None:
            return self._result(Status.HEALTHY, elapsed, details)
        if isinstance(exc, ThresholdExceeded):
            logger.info("Probe %s degraded: %s", self.name, exc)
            return self._result(Status.DEGRADED, elapsed, details, str(exc))

        logger.warning("Probe %s failed: %s", self.name, exc)
        return self._result(Status.UNHEALTHY, elapsed, details, _describe(exc))

    def _result(
        self,
        status: Status,
        elapsed_ms: int,
        details: dict[str, Any],
        error: str | None = None,
    ) -> ProbeResult:
        return ProbeResult(
            service=self.name,
            status=status,
            response_time_ms=elapsed_ms,
            details=dict(details),
            error=error,
        )


def _describe(exc: BaseException) -> str:
    if isinstance(exc, HealthCheckError):
        return str(exc)
    if isinstance(exc, TimeoutError):
        return f"timeout: {exc or type(exc).__name__}"
    return f"{type(exc).__name__}: {exc}"


# ── Database ─────────────────────────────────────────────────────────────────


class DatabaseProbe(Probe):
    """Trivial read query through the shared pool, plus pool occupancy."""

    def __init__(self, pool: DatabasePool, config: DatabaseCheckConfig) -> None:
        super().__init__("database", config.timeout_ms)
        self.pool = pool
        self.max_waiting = config.max_waiting

    def _occupancy(self) -> dict[str, Any]:
        total, idle, waiting = self.pool.occupancy()
        return {
            "total": total,
            "idle": idle,
            "waiting": waiting,
            "saturated": waiting > self.max_waiting,
        }

    async def _probe(self, details: dict[str, Any]) -> None:
        details["pool"] = self._occupancy()
        try:
            row = await self.pool.fetchrow(DB_QUERY)
        except OSError as e:
            raise ConnectivityError(f"Database unreachable: {e}") from e

        details["pool"] = self._occupancy()
        if row is not None:
            details["current_time"] = str(row["current_time"])
            version = row["version"] or ""
            details["version"] = " ".join(str(version).split()[:2])


# ── Cache ────────────────────────────────────────────────────────────────────


class CacheProbe(Probe):
    """PING plus a write/read/delete round-trip on an ephemeral key."""

    def __init__(self, client: CacheClient, config: CacheCheckConfig) -> None:
        super().__init__("cache", config.timeout_ms)
        self.client = client
        self.host = config.host
        self.port = config.port

    async def _probe(self, details: dict[str, Any]) -> None:
        details["host"] = self.host
        details["port"] = self.port
        try:
            await self.client.ping()
        except (RedisError, OSError) as e:
            raise ConnectivityError(f"Cache unreachable: {e}") from e

        key = f"{CACHE_KEY_PREFIX}{uuid.uuid4().hex}"
        value = uuid.uuid4().hex
        try:
            await self.client.set(key, value, ex=CACHE_TTL_SECONDS)
            stored = await self.client.get(key)
        finally:
            # On timeout this runs after check() has returned; the TTL bounds the key.
            await self._cleanup(key)

        if isinstance(stored, str):
            stored = stored.encode()
        if stored != value.encode():
            raise IntegrityError(
                f"Integrity failure: cache read-after-write mismatch for {key} "
                f"(wrote {value!r}, read {stored!r})"
            )
        details["round_trip"] = "ok"

        info = await self.client.info("server")
        details["version"] = info.get("redis_version")
        details["uptime"] = info.get("uptime_in_seconds")

    async def _cleanup(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except (RedisError, OSError) as e:
            # TTL expires the key anyway
            logger.warning("Failed to delete cache probe key %s: %s", key, e)


# ── HTTP endpoint ────────────────────────────────────────────────────────────


class HttpEndpointProbe(Probe):
    """GET against an external dependency, asserting the expected status."""

    def __init__(self, client: httpx.AsyncClient, config: ExternalApiConfig) -> None:
        super().__init__(f"external_api_{config.name}", config.timeout_ms)
        self.client = client
        self.url = config.url
        self.headers = dict(config.headers)
        self.expected_status = config.expected_status

    async def _probe(self, details: dict[str, Any]) -> None:
        details["url"] = self.url
        t0 = time.perf_counter()
        try:
            resp = await self.client.get(
                self.url, headers=self.headers, timeout=self.timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            details["elapsed_ms"] = _elapsed_ms(t0)
            raise CheckTimeoutError(
                self.timeout_ms, f"HTTP timeout after {self.timeout_ms}ms: {type(e).__name__}",
            ) from e
        except httpx.TransportError as e:
            details["elapsed_ms"] = _elapsed_ms(t0)
            raise ConnectivityError(f"HTTP connection error: {type(e).__name__}: {e}") from e

        details["elapsed_ms"] = _elapsed_ms(t0)
        details["status_code"] = resp.status_code
        details["reason"] = resp.reason_phrase
        details["headers"] = {
            "content-type": resp.headers.get("content-type"),
            "content-length": resp.headers.get("content-length"),
        }
        if resp.status_code != self.expected_status:
            raise HealthCheckError(
                f"HTTP {resp.status_code}: expected {self.expected_status}"
            )


# ── Filesystem ───────────────────────────────────────────────────────────────


class FilesystemProbe(Probe):
    """Existence, read and write checks over the configured paths."""

    def __init__(self, config: FilesystemCheckConfig) -> None:
        super().__init__("filesystem", config.timeout_ms)
        self.paths = list(config.paths)
        self.permissions = set(config.permissions)

    async def _probe(self, details: dict[str, Any]) -> None:
        checks = await asyncio.to_thread(self._check_all)
        details["checks"] = checks

        missing = [c["path"] for c in checks if c["required"] and not c["exists"]]
        if missing:
            raise HealthCheckError(
                f"Some required paths are unavailable: {', '.join(missing)}"
            )

    def _check_all(self) -> list[dict[str, Any]]:
        return [check_path(p, self.permissions) for p in self.paths]


def check_path(target: FilesystemPath, permissions: set[str]) -> dict[str, Any]:
    """Check one path: exists, then readable, then writable. Stops at the first failure."""
    entry: dict[str, Any] = {
        "path": target.path,
        "required": target.required,
        "exists": False,
        "readable": False,
        "writable": False,
    }
    path = Path(target.path)

    try:
        st = path.stat()
    except OSError as e:
        entry["error"] = f"{type(e).__name__}: {e}"
        return entry

    is_dir = path.is_dir()
    entry.update(
        exists=True,
        is_directory=is_dir,
        size=st.st_size,
        modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
    )

    if "read" in permissions:
        if not os.access(path, os.R_OK):
            entry["error"] = "Path is not readable"
            return entry
        entry["readable"] = True

    if "write" in permissions:
        if not os.access(path, os.W_OK):
            entry["error"] = "Path is not writable"
            return entry
        if is_dir:
            try:
                with tempfile.NamedTemporaryFile(
                    dir=path, prefix="health_check_", suffix=".tmp",
                ) as fh:
                    fh.write(b"health_check")
                    fh.flush()
            except OSError as e:
                entry["write_test"] = "failed"
                entry["error"] = f"Write test failed: {e}"
                return entry
            entry["write_test"] = "success"
        entry["writable"] = True

    return entry


# ── Memory ───────────────────────────────────────────────────────────────────


class MemoryProbe(Probe):
    """Host memory usage against a threshold. Over threshold is degraded, not down."""

    def __init__(self, config: MemoryCheckConfig) -> None:
        super().__init__("memory", config.timeout_ms)
        self.max_usage_percent = config.max_usage_percent

    async def _probe(self, details: dict[str, Any]) -> None:
        percent, info = memory_details(self.max_usage_percent)
        details.update(info)
        if percent > self.max_usage_percent:
            raise ThresholdExceeded(
                f"Memory usage {percent}% exceeds {self.max_usage_percent}%"
            )
