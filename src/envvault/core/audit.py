"""
Audit event emission

The engine does not store audit history. It hands one AuditEvent per durable
mutation to whatever sink the caller configured. Sinks are fire-and-forget:
a failing sink is logged and never fails the vault operation.
"""

import getpass
import logging
from typing import Optional, Protocol

from .models import AuditEvent

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes audit events to the ``envvault.audit`` logger."""

    def __init__(self, logger_name: str = "envvault.audit", level: int = logging.INFO):
        self.logger = logging.getLogger(logger_name)
        self.level = level

    def record(self, event: AuditEvent) -> None:
        self.logger.log(
            self.level,
            "%s env=%s key=%s actor=%s outcome=%s%s",
            event.operation,
            event.environment or "-",
            event.key_name or "-",
            event.actor,
            event.outcome,
            f" details={event.details}" if event.details else "",
        )


def current_actor() -> str:
    try:
        return getpass.getuser()
    except Exception:
        # getuser() raises when no login name can be found (e.g. bare containers)
        return "unknown"


def emit(sink: Optional[AuditSink], event: AuditEvent) -> None:
    """Deliver ``event`` to ``sink`` without ever raising."""
    if sink is None:
        return
    try:
        sink.record(event)
    except Exception:
        logger.warning(
            "audit sink failed to record %s for %s", event.operation, event.environment, exc_info=True
        )
