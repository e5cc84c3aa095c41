"""Audit trail of the changes a provisioning run makes to the host.

Every account, runtime, target and service event is appended as one JSON
object per line to ``provision.log`` in the configured log directory.
"""

import json
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .output import warn

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of provisioning events."""
    PREFLIGHT = "preflight"
    IDENTITY = "identity"
    STORAGE = "storage"
    RUNTIME = "runtime"
    TARGET = "target"
    SERVICE = "service"
    ERROR = "error"


class AuditLogger:
    """Writes structured provisioning events to the audit log."""

    def __init__(self, log_dir: Optional[Path] = None) -> None:
        """Initialize the audit logger.

        Args:
            log_dir: Directory for the audit log. ``None`` disables the file
                handler; events are then only emitted at DEBUG.
        """
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.audit_log_file: Optional[Path] = None

        self.audit_logger = logging.getLogger('openllm_provisioner_audit')
        self.audit_logger.setLevel(logging.INFO)
        self.audit_logger.propagate = False
        self.audit_logger.handlers.clear()

        if self.log_dir is not None:
            self._setup_file_handler()

    def _setup_file_handler(self) -> None:
        """Open the audit log with restrictive permissions."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.log_dir, 0o750)

        self.audit_log_file = self.log_dir / "provision.log"
        if not self.audit_log_file.exists():
            self.audit_log_file.touch()
        os.chmod(self.audit_log_file, 0o640)

        handler = logging.FileHandler(self.audit_log_file)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter('%(message)s'))
        self.audit_logger.addHandler(handler)

    def _create_log_entry(
        self,
        event_type: AuditEventType,
        message: str,
        resource: Optional[str] = None,
        result: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: str = "INFO"
    ) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "severity": severity,
            "message": message,
            "source": "openllm_provisioner",
            "version": __version__,
            "operator": os.environ.get('SUDO_USER') or os.environ.get('USER'),
        }

        if resource:
            entry["resource"] = resource
        if result:
            entry["result"] = result
        if details:
            entry["details"] = details

        return entry

    def log_event(
        self,
        event_type: AuditEventType,
        message: str,
        resource: Optional[str] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record one provisioning event.

        Args:
            event_type: Stage the event belongs to.
            message: Human readable description.
            resource: Account, path or unit affected.
            success: Outcome of the operation.
            details: Additional structured data.
        """
        entry = self._create_log_entry(
            event_type=event_type,
            message=message,
            resource=resource,
            result="SUCCESS" if success else "FAILURE",
            details=details,
            severity="INFO" if success else "WARNING",
        )
        self._write_entry(entry)

    def log_error(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Record a fatal error that aborted the run."""
        entry = self._create_log_entry(
            event_type=AuditEventType.ERROR,
            message=message,
            result="FAILURE",
            details=details,
            severity="ERROR",
        )
        self._write_entry(entry)

    def _write_entry(self, entry: Dict[str, Any]) -> None:
        log_line = json.dumps(entry, default=str)
        logger.debug("audit: %s", log_line)
        self.audit_logger.info(log_line)

    def close(self) -> None:
        """Flush and detach the file handler."""
        for handler in list(self.audit_logger.handlers):
            handler.close()
            self.audit_logger.removeHandler(handler)


def open_audit_logger(log_dir: Optional[str]) -> AuditLogger:
    """Open the audit log, falling back to a handler-less logger on failure."""
    if not log_dir:
        return AuditLogger(None)
    try:
        return AuditLogger(Path(log_dir))
    except OSError as e:
        warn(f"Cannot open audit log in {log_dir}: {e}. Continuing without it.")
        return AuditLogger(None)
