"""
Audit Protocol — Interface for the audit trail.

Dispatchman reports what happened; the host project decides where it goes
(database table, log stream, SIEM...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class AuditEvent:
    """One audited action."""

    tenant_id: int
    actor_id: int | None
    action: str  # "delivery.delivered", "invoice.created", ...
    entity_type: str  # "Delivery", "Invoice", ...
    entity_id: int | str
    meta: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class AuditSink(Protocol):
    """
    Protocol for audit sinks.

    record() is fire-and-forget: Dispatchman calls it after the transaction
    commits and logs, but never propagates, any exception it raises.
    """

    def record(self, event: AuditEvent) -> None:
        ...
