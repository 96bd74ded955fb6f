"""
Collaborator loading — audit sink and module access.

Backends are configured by dotted path and instantiated once:

    from dispatchman.adapters import get_audit_sink

    get_audit_sink().record(event)

Settings:
    DISPATCHMAN = {
        "AUDIT_SINK": "myproject.audit.DatabaseAuditSink",
        "MODULE_ACCESS": "myproject.tenants.PlanModuleAccess",
    }
"""

from __future__ import annotations

import logging
import threading

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from dispatchman.conf import dispatchman_settings
from dispatchman.protocols.access import ModuleAccess
from dispatchman.protocols.audit import AuditSink

logger = logging.getLogger(__name__)


# Cached instances
_lock = threading.Lock()
_audit_sink: AuditSink | None = None
_module_access: ModuleAccess | None = None


def _load(setting: str):
    path = getattr(dispatchman_settings, setting)
    if not path:
        raise ImproperlyConfigured(f"DISPATCHMAN['{setting}'] must be configured.")
    try:
        backend = import_string(path)()
    except ImportError as e:
        raise ImproperlyConfigured(f"Failed to import {setting} '{path}': {e}") from e
    logger.debug("Loaded %s: %s", setting, path)
    return backend


def get_audit_sink() -> AuditSink:
    """
    Return the configured audit sink.

    Raises:
        ImproperlyConfigured: If AUDIT_SINK is empty or cannot be imported
    """
    global _audit_sink

    if _audit_sink is None:
        with _lock:
            if _audit_sink is None:  # double-checked
                _audit_sink = _load("AUDIT_SINK")
    return _audit_sink


def get_module_access() -> ModuleAccess:
    """
    Return the configured module access checker.

    Raises:
        ImproperlyConfigured: If MODULE_ACCESS is empty or cannot be imported
    """
    global _module_access

    if _module_access is None:
        with _lock:
            if _module_access is None:
                _module_access = _load("MODULE_ACCESS")
    return _module_access


def reset_backends() -> None:
    """Reset cached backends. Useful for testing."""
    global _audit_sink, _module_access
    _audit_sink = None
    _module_access = None
