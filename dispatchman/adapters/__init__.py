"""
Dispatchman Adapters.

Default implementations of collaborator protocols and their loaders.
"""

from dispatchman.adapters.backends import get_audit_sink, get_module_access, reset_backends

__all__ = [
    "get_audit_sink",
    "get_module_access",
    "reset_backends",
]
