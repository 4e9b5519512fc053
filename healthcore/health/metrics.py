"""Host and process metrics via psutil."""

from __future__ import annotations

import os
import platform
import time
from typing import Any

import psutil

from healthcore.health.models import SystemMetrics


def host_memory() -> tuple[int, int, int]:
    """Return (used_bytes, total_bytes, percent) for the host."""
    vm = psutil.virtual_memory()
    used = vm.total - vm.available
    percent = round(used / vm.total * 100) if vm.total else 0
    return used, vm.total, percent


def process_memory() -> dict[str, int]:
    info = psutil.Process(os.getpid()).memory_info()
    return {"rss": info.rss, "vms": info.vms}


def process_uptime() -> float:
    """Seconds since this process started."""
    started = psutil.Process(os.getpid()).create_time()
    return round(max(time.time() - started, 0.0), 3)


def load_average() -> list[float] | None:
    try:
        return [round(x, 2) for x in psutil.getloadavg()]
    except (AttributeError, OSError):
        return None


def collect_system_metrics() -> SystemMetrics:
    used, total, percent = host_memory()
    return SystemMetrics(
        memory_used_bytes=used,
        memory_total_bytes=total,
        memory_percent=percent,
        uptime_seconds=process_uptime(),
        load_average=load_average(),
        process_id=os.getpid(),
        python_version=platform.python_version(),
    )


def memory_details(threshold: int) -> tuple[int, dict[str, Any]]:
    """Percent used plus the detail block reported by the memory probe."""
    used, total, percent = host_memory()
    return percent, {
        "usage": {"used": used, "total": total, "percentage": percent},
        "threshold": threshold,
        "process": process_memory(),
    }
