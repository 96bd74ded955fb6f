"""
Module Access Protocol — Interface for tenant entitlement.

The host project resolves plans, suspensions and past-due gating.
Dispatchman only asks for the decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class AccessDecision:
    """Resolved entitlement for (tenant, module)."""

    allowed: bool
    reason: str | None = None  # "plan", "suspended", "past_due", ...


@runtime_checkable
class ModuleAccess(Protocol):

    def check(self, tenant, module: str) -> AccessDecision:
        """
        Decide whether tenant may use module.

        Args:
            tenant: Tenant instance
            module: One of models.enums.Module

        Returns:
            AccessDecision
        """
        ...
