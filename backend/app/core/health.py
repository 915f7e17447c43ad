"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Database connectivity (SELECT 1 through the async engine)
    • Fan-out bus running + subscriber count
    • Disk space

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from backend.app.core.config import settings

if TYPE_CHECKING:
    from backend.app.core.database import Database
    from backend.app.realtime.bus import FanOutBus

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


DATABASE_CHECK_TIMEOUT_SECONDS = 3.0


async def check_database(database: Optional["Database"]) -> ComponentHealth:
    """Check store connectivity with a round trip."""
    comp = ComponentHealth(name="database")
    start = time.monotonic()
    if database is None:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Database not initialised"
        return comp
    try:
        await asyncio.wait_for(database.ping(), timeout=DATABASE_CHECK_TIMEOUT_SECONDS)
        comp.status = HealthStatus.HEALTHY
        comp.message = "Connection pool available"
        comp.details = {"url": database.display_url}
    except Exception as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e) or type(e).__name__
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_fanout_bus(bus: Optional["FanOutBus"]) -> ComponentHealth:
    """Check the real-time bus is accepting subscribers."""
    comp = ComponentHealth(name="fanout_bus")
    if bus is None or not bus.running:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Real-time bus not running; HTTP API unaffected"
        return comp
    comp.status = HealthStatus.HEALTHY
    comp.message = f"{bus.subscriber_count} subscriber(s)"
    comp.details = {
        "subscribers": bus.subscriber_count,
        "published": bus.published,
        "dropped": bus.dropped,
    }
    return comp


async def check_disk_space() -> ComponentHealth:
    """Check available disk space."""
    comp = ComponentHealth(name="disk_space")
    start = time.monotonic()
    try:
        total, used, free = shutil.disk_usage(".")
        free_gb = free / (1024 ** 3)
        total_gb = total / (1024 ** 3)
        used_pct = (used / total) * 100

        comp.details = {
            "total_gb": round(total_gb, 1),
            "free_gb": round(free_gb, 1),
            "used_pct": round(used_pct, 1),
        }

        if free_gb < 1.0:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = f"Low disk space: {free_gb:.1f} GB free"
        elif free_gb < 5.0:
            comp.status = HealthStatus.DEGRADED
            comp.message = f"Disk space warning: {free_gb:.1f} GB free"
        else:
            comp.status = HealthStatus.HEALTHY
            comp.message = f"{free_gb:.1f} GB free"
    except Exception as e:
        comp.status = HealthStatus.DEGRADED
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    database: Optional["Database"] = None,
    bus: Optional["FanOutBus"] = None,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_database(database),
        check_fanout_bus(bus),
        check_disk_space(),
    ]

    # Run all checks
    for coro in checks:
        comp = await coro
        report.components.append(comp)

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
