"""Turning collected targets into running systemd services."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Self

from .audit import AuditEventType, AuditLogger
from .output import blank, info, warn
from .targets import Target, TargetKind, unit_name_for
from .units import UnitManager, UnitRenderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Outcome of materializing one target."""

    target: Target
    unit_name: str
    unit_path: Path
    started: bool


class ServiceMaterializer:
    """Writes, enables and starts one unit per target, in order.

    A unit that fails to start is reported and skipped; the remaining targets
    are still provisioned.
    """

    def __init__(
        self: Self,
        renderer: UnitRenderer,
        units: UnitManager,
        unit_prefix: str = "openllm",
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.renderer = renderer
        self.units = units
        self.unit_prefix = unit_prefix
        self.audit = audit

    def materialize(self: Self, target: Target) -> ServiceResult:
        unit_name = unit_name_for(self.unit_prefix, target.service_id)
        info(
            f"Processing target: Type='{target.kind.value}', ServiceID='{target.service_id}', "
            f"OpenLLM Arg='{' '.join(target.start_argument)}'"
        )
        info(f"Creating systemd service file: {self.units.unit_path(unit_name)} "
             f"for '{target.service_id}' on port {target.port}")

        unit_path = self.units.install(unit_name, self.renderer.render(target))
        self.units.reload()
        self.units.enable(unit_name)

        info(f"Attempting to start service {unit_name}...")
        started = self.units.start(unit_name)
        if started:
            info(f"Service {unit_name} started successfully for '{target.service_id}' on port {target.port}.")
            if target.kind is TargetKind.HUB:
                info("If this is a Hub model being downloaded for the first time, it might take a while to become ready.")
            info(f"Check status with: systemctl status {unit_name}")
            info(f"Check logs with: journalctl -u {unit_name} -f")
        else:
            warn(f"Service {unit_name} FAILED to start. Please check the logs:")
            warn(f"journalctl -u {unit_name} --no-pager -n 50")
            warn(f"systemctl status {unit_name}")

        if self.audit:
            self.audit.log_event(
                AuditEventType.SERVICE,
                "Service started" if started else "Service failed to start",
                resource=unit_name,
                success=started,
                details={"service_id": target.service_id, "port": target.port,
                         "unit_path": str(unit_path)},
            )
        return ServiceResult(target=target, unit_name=unit_name, unit_path=unit_path, started=started)

    def materialize_all(self: Self, targets: Iterable[Target]) -> List[ServiceResult]:
        info("--- Creating and Starting Services ---")
        results = []
        for target in targets:
            results.append(self.materialize(target))
            blank()
        logger.debug("Materialized %d service(s)", len(results))
        return results
