"""Health subsystem — probes, engine, result cache, scheduler."""

from .config import HealthConfig, load_health_config
from .engine import HealthEngine, ResultCache, aggregate_status
from .models import ProbeResult, Status, SystemSnapshot
from .scheduler import HealthScheduler
