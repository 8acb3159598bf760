"""
Health validation — post-deploy checks of the started service.

Three checks, in order: the unit is active, each configured port is
listening, one HTTP GET against the health endpoint answers 2xx.
Process state and the liveness probe are authoritative (failure is a
ValidationFailure and triggers rollback); a port that is not
listening is recorded as a warning only.
"""

from __future__ import annotations

import logging
import re
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

from src.core.context import RunContext
from src.core.errors import NotApplicable, ValidationFailure
from src.core.models.service import ServiceDescriptor

logger = logging.getLogger(__name__)

HttpProbe = Callable[[str, float], tuple[int, str]]

SETTLE_SECONDS = 2.0
PROBE_TIMEOUT = 5.0


def urllib_probe(url: str, timeout: float) -> tuple[int, str]:
    """One GET request. Returns (status, detail); status 0 if unreachable."""
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            return resp.status, f"HTTP {resp.status}"
    except urllib.error.HTTPError as e:
        return e.code, f"HTTP {e.code}"
    except (urllib.error.URLError, OSError) as e:
        reason = getattr(e, "reason", e)
        return 0, f"unreachable: {reason}"


@dataclass
class ComponentHealth:
    """Health of a single check."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class HealthReport:
    """Aggregate health of the deployed service."""

    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.components]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    @property
    def healthy(self) -> bool:
        return self.status in ("healthy", "degraded")

    def component(self, name: str) -> ComponentHealth | None:
        for c in self.components:
            if c.name == name:
                return c
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def port_listening(output: str, port: int) -> bool:
    """Whether ``ss -tuln`` / ``netstat -tuln`` output shows *port* bound locally."""
    pattern = re.compile(rf"[:.]{port}$")
    for line in output.splitlines():
        columns = line.split()
        # local address column: 5th for ss, 4th for netstat
        for column in columns[3:5]:
            if pattern.search(column):
                return True
    return False


class HealthValidator:
    """Validates a started service. The http probe and sleep are injectable."""

    def __init__(
        self,
        ctx: RunContext,
        *,
        http_probe: HttpProbe | None = None,
        sleep: Callable[[float], None] = time.sleep,
        settle: float = SETTLE_SECONDS,
    ):
        self.ctx = ctx
        self.http_probe = http_probe or urllib_probe
        self.sleep = sleep
        self.settle = settle

    def validate(self, descriptor: ServiceDescriptor | None = None) -> HealthReport:
        """Run the checks and store the report on the context.

        Raises:
            NotApplicable: The service was not started by this run.
            ValidationFailure: Process inactive or liveness probe failed.
        """
        ctx = self.ctx
        descriptor = descriptor or ctx.descriptor
        if descriptor is None or not ctx.service_started:
            raise NotApplicable("Service not started; health validation skipped")

        report = HealthReport()
        ctx.health = report

        logger.info("Waiting %.0fs for %s to settle", self.settle, descriptor.unit_name)
        self.sleep(self.settle)

        process = self._check_process(descriptor)
        report.add(process)
        if process.status != "healthy":
            raise ValidationFailure(process.message)

        report.add(self._check_ports(descriptor))

        liveness = self._check_liveness()
        report.add(liveness)
        if liveness.status != "healthy":
            raise ValidationFailure(liveness.message)

        logger.info("Health validation passed (%s)", report.status)
        return report

    # ── Checks ──────────────────────────────────────────────────

    def _check_process(self, descriptor: ServiceDescriptor) -> ComponentHealth:
        unit = descriptor.unit_name
        if self.ctx.capabilities.services.is_active(unit):
            return ComponentHealth(name="process", status="healthy", message=f"{unit} is active")
        status = self.ctx.capabilities.services.status(unit)
        logger.debug("Status of %s:\n%s", unit, status)
        return ComponentHealth(
            name="process",
            status="unhealthy",
            message=f"{unit} is not active",
            details={"status": status[-500:]},
        )

    def _check_ports(self, descriptor: ServiceDescriptor) -> ComponentHealth:
        runner = self.ctx.runner
        phase = runner.phase
        for tool in ("ss", "netstat"):
            if runner.which(tool):
                result = runner.probe([tool, "-tuln"])
                break
        else:
            self.ctx.warn(phase, "Neither ss nor netstat available; port check skipped")
            return ComponentHealth(name="ports", status="degraded", message="port check skipped")

        closed = [p for p in descriptor.ports if not port_listening(result.output, p)]
        listening = [p for p in descriptor.ports if p not in closed]
        for port in closed:
            self.ctx.warn(phase, f"Port {port} is not listening")
        for port in listening:
            logger.info("Port %d is listening", port)
        return ComponentHealth(
            name="ports",
            status="degraded" if closed else "healthy",
            message=f"not listening: {closed}" if closed else "all ports listening",
            details={"listening": listening, "closed": closed},
        )

    def _check_liveness(self) -> ComponentHealth:
        url = self.ctx.config.health_check_url
        code, detail = self.http_probe(url, PROBE_TIMEOUT)
        if 200 <= code < 300:
            logger.info("Liveness probe %s: %s", url, detail)
            return ComponentHealth(name="liveness", status="healthy", message=detail,
                                   details={"url": url, "status": code})
        return ComponentHealth(
            name="liveness",
            status="unhealthy",
            message=f"Health check failed for {url}: {detail}",
            details={"url": url, "status": code},
        )
