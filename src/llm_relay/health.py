"""Health checks for the relay process.

A small registry of async checks aggregated into one status, plus the check
that reports which providers have credentials.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from llm_relay.protocols import ProviderId

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    timestamp: datetime
    message: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "error": self.error,
            "metadata": self.metadata,
        }


HealthCheckFunc = Callable[[], Awaitable[CheckResult]]


class HealthCheck:
    """Health check registry and aggregator.

    Aggregation rules: any UNHEALTHY check makes the whole service
    UNHEALTHY; otherwise any DEGRADED check makes it DEGRADED.
    """

    def __init__(self) -> None:
        self._checks: dict[str, HealthCheckFunc] = {}

    def register(self, name: str, check_func: HealthCheckFunc) -> None:
        """Register a health check function.

        Raises:
            ValueError: If a check with this name already exists.
        """
        if name in self._checks:
            raise ValueError(f"Health check '{name}' already registered")
        self._checks[name] = check_func
        logger.info("Registered health check: %s", name)

    async def check(self, timeout: float = 5.0) -> dict[str, Any]:
        """Run all checks concurrently and return the aggregated report."""
        timestamp = datetime.now()
        names = list(self._checks)
        outcomes = await asyncio.gather(
            *(asyncio.wait_for(self._checks[name](), timeout) for name in names),
            return_exceptions=True,
        )

        results: dict[str, CheckResult] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Health check '%s' failed: %s", name, outcome)
                outcome = CheckResult(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    timestamp=datetime.now(),
                    error=str(outcome) or type(outcome).__name__,
                )
            results[name] = outcome

        statuses = [result.status for result in results.values()]
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return {
            "status": overall.value,
            "timestamp": timestamp.isoformat(),
            "checks": {name: result.to_dict() for name, result in results.items()},
        }


def provider_credentials_check(
    credentials: Mapping[ProviderId, bool],
) -> HealthCheckFunc:
    """Create a check reporting which providers have a credential.

    DEGRADED when some providers lack one, UNHEALTHY when none have one.
    """

    async def check() -> CheckResult:
        configured = sorted(p.value for p, ok in credentials.items() if ok)
        missing = sorted(p.value for p, ok in credentials.items() if not ok)
        if not configured:
            status = HealthStatus.UNHEALTHY
        elif missing:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY
        return CheckResult(
            name="providers",
            status=status,
            timestamp=datetime.now(),
            message=f"{len(configured)} of {len(credentials)} providers configured",
            metadata={"configured": configured, "missing": missing},
        )

    return check
