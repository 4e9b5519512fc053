"""Result models shared by probes, the engine and the HTTP adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Status(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ProbeResult:
    """Outcome of a single probe execution."""

    service: str
    status: Status
    response_time_ms: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()
        if self.response_time_ms < 0:
            self.response_time_ms = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "service": self.service,
            "status": self.status.value,
            "responseTime": self.response_time_ms,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SystemMetrics:
    """Host/runtime metrics read at snapshot time."""

    memory_used_bytes: int
    memory_total_bytes: int
    memory_percent: int
    uptime_seconds: float
    process_id: int
    python_version: str
    load_average: list[float] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "memory": {
                "used": self.memory_used_bytes,
                "total": self.memory_total_bytes,
                "percentage": self.memory_percent,
            },
            "uptime": self.uptime_seconds,
            "pythonVersion": self.python_version,
            "processId": self.process_id,
        }
        if self.load_average is not None:
            data["loadAverage"] = self.load_average
        return data


@dataclass
class Summary:
    total: int = 0
    healthy: int = 0
    unhealthy: int = 0
    degraded: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "healthy": self.healthy,
            "unhealthy": self.unhealthy,
            "degraded": self.degraded,
        }


@dataclass
class SystemSnapshot:
    """Aggregate outcome of one engine pass."""

    status: Status
    checks: list[ProbeResult]
    metrics: SystemMetrics
    summary: Summary
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": [c.to_dict() for c in self.checks],
            "metrics": self.metrics.to_dict(),
            "summary": self.summary.to_dict(),
            "timestamp": self.timestamp,
        }
