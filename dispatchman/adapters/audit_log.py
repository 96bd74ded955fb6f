"""
Logging Audit Sink — writes audit events to the "dispatchman.audit" logger.

Default sink. Projects with an audit table point AUDIT_SINK elsewhere:

    DISPATCHMAN = {
        "AUDIT_SINK": "myproject.audit.DatabaseAuditSink",
    }
"""

from __future__ import annotations

import logging

from dispatchman.protocols.audit import AuditEvent

logger = logging.getLogger("dispatchman.audit")


class LoggingAuditSink:
    """Implements AuditSink by logging one INFO record per event."""

    def record(self, event: AuditEvent) -> None:
        logger.info(
            event.action,
            extra={
                "tenant_id": event.tenant_id,
                "actor_id": event.actor_id,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "meta": event.meta,
            },
        )
