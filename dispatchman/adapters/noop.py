"""
Noop adapters — permissive collaborators for development and testing.

Usage in settings.py:
    DISPATCHMAN = {
        "MODULE_ACCESS": "dispatchman.adapters.noop.AllowAllModuleAccess",
        "AUDIT_SINK": "dispatchman.adapters.noop.NoopAuditSink",
    }

WARNING: AllowAllModuleAccess enables every module for every tenant.
Production projects should plug in their plan/billing policy.
"""

from __future__ import annotations

from dispatchman.protocols.access import AccessDecision
from dispatchman.protocols.audit import AuditEvent


class AllowAllModuleAccess:
    """Every tenant may use every module."""

    def check(self, tenant, module: str) -> AccessDecision:
        return AccessDecision(allowed=True)


class NoopAuditSink:
    """Discards audit events."""

    def record(self, event: AuditEvent) -> None:
        return None
