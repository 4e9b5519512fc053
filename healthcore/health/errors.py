"""Failure taxonomy for health probes.

Probe bodies raise these; the probe base class folds them into a ProbeResult.
"""

from __future__ import annotations


class HealthCheckError(Exception):
    """Base class for every health-check failure."""


class ConnectivityError(HealthCheckError):
    """Raised when a dependency cannot be reached."""


class CheckTimeoutError(HealthCheckError, TimeoutError):
    """Raised when a check exceeds its configured deadline."""

    def __init__(self, timeout_ms: int, message: str | None = None) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(message or f"timeout after {timeout_ms}ms")


class IntegrityError(HealthCheckError):
    """Raised when a dependency answers but returns wrong data."""


class ConfigurationError(HealthCheckError):
    """Raised when a dependency is not configured, or config is invalid."""


class ThresholdExceeded(HealthCheckError):
    """Soft degradation signal: the dependency works but is under pressure."""
