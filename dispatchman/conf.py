"""
Dispatchman configuration.

Usage in settings.py:
    DISPATCHMAN = {
        "DELIVERY_MIN_EVIDENCE": 2,
        "AUDIT_SINK": "myproject.audit.DatabaseAuditSink",
        "MODULE_ACCESS": "myproject.tenants.PlanModuleAccess",
        "STORAGE_ALIAS": "evidence",
    }
"""

from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


@dataclass
class DispatchmanSettings:
    """Dispatchman configuration settings."""

    # Evidence files required before a delivery can be marked delivered or invoiced
    DELIVERY_MIN_EVIDENCE: int = 1

    # Sequence prefixes (<PREFIX>-<YYYYMM>-<NNNNNN>)
    DELIVERY_NUMBER_PREFIX: str = "DEL"
    INVOICE_NUMBER_PREFIX: str = "INV"

    # Collaborator backends (dotted paths)
    AUDIT_SINK: str = "dispatchman.adapters.audit_log.LoggingAuditSink"
    MODULE_ACCESS: str = "dispatchman.adapters.noop.AllowAllModuleAccess"

    # Django STORAGES alias used for delivery evidence and requirement documents
    STORAGE_ALIAS: str = "default"

    # Upload limits
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    ALLOWED_UPLOAD_TYPES: tuple = field(default_factory=lambda: (
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/heic",
    ))

    # Currency label for exports
    CURRENCY: str = "ARS"


def get_dispatchman_settings() -> DispatchmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "DISPATCHMAN", {})
    return DispatchmanSettings(**{
        k: v for k, v in user_settings.items()
        if k in DispatchmanSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_dispatchman_settings(), name)


dispatchman_settings = _LazySettings()
