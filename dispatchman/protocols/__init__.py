"""
Dispatchman Protocols.

Defines interfaces for external collaborators.
"""

from dispatchman.protocols.access import AccessDecision, ModuleAccess
from dispatchman.protocols.audit import AuditEvent, AuditSink

__all__ = [
    "AccessDecision",
    "ModuleAccess",
    "AuditEvent",
    "AuditSink",
]
