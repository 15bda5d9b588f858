"""Health status aggregation.

Every check is a boolean. The overall status is:
- healthy: all checks pass
- degraded: at least one check passes (still served with 200)
- unhealthy: no check passes (served with 503)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from metal_quotes.data.models import now_ms

logger = structlog.get_logger(__name__)


class HealthStatus(Enum):
    """Overall health status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def http_status(self) -> int:
        """HTTP status code to report this status with."""
        return 503 if self is HealthStatus.UNHEALTHY else 200


def aggregate_status(checks: dict[str, bool]) -> HealthStatus:
    """Combine individual checks into an overall status."""
    if checks and all(checks.values()):
        return HealthStatus.HEALTHY
    if any(checks.values()):
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


@dataclass
class HealthReport:
    """Result of a full health check.

    Attributes:
        status: Overall status.
        checks: Individual check results by name.
        timestamp: When the check completed (ms since epoch).
        metrics: Cache and source counters, if available.
    """

    status: HealthStatus
    checks: dict[str, bool]
    timestamp: int = field(default_factory=now_ms)
    metrics: dict[str, Any] | None = None

    @classmethod
    def from_checks(
        cls, checks: dict[str, bool], metrics: dict[str, Any] | None = None
    ) -> "HealthReport":
        """Build a report, deriving the overall status."""
        report = cls(status=aggregate_status(checks), checks=dict(checks), metrics=metrics)
        logger.info("health_check_completed", status=report.status.value, checks=report.checks)
        return report

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "checks": self.checks,
        }
        if self.metrics is not None:
            data["metrics"] = self.metrics
        return data
