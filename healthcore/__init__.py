"""healthcore — dependency health checks with liveness/readiness endpoints."""

__version__ = "0.1.0"
