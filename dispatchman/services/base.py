"""
Shared service helpers — tenant-scoped lookups, input coercion, entitlement,
audit and file storage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.core.files.base import ContentFile
from django.core.files.storage import storages
from django.db import transaction
from django.utils import timezone

from dispatchman.adapters import get_audit_sink, get_module_access
from dispatchman.conf import dispatchman_settings
from dispatchman.exceptions import DispatchError
from dispatchman.protocols.audit import AuditEvent

logger = logging.getLogger('dispatchman')

_UNSAFE_CHARS = re.compile(r'[^a-zA-Z0-9._-]')


# ══════════════════════════════════════════════════════════════
# LOOKUPS
# ══════════════════════════════════════════════════════════════


def get_owned(model, tenant, ref, code: str, *, for_update: bool = False, **filters):
    """
    Fetch ref (instance or pk) only if it belongs to tenant.

    Rows of another tenant are reported exactly like missing rows.

    Raises:
        DispatchError(code): Not found for this tenant
    """
    if ref is None:
        raise DispatchError(code)
    pk = getattr(ref, 'pk', ref)
    qs = model.objects.filter(tenant=tenant, **filters)
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise DispatchError(code, id=pk) from None


# ══════════════════════════════════════════════════════════════
# INPUT
# ══════════════════════════════════════════════════════════════


def to_decimal(value, code: str = 'INVALID_QUANTITY', *, allow_zero: bool = True) -> Decimal:
    """
    Coerce value to a finite, non-negative Decimal.

    Raises:
        DispatchError(code): Not a number, not finite, negative, or zero
            when allow_zero is False
    """
    if isinstance(value, bool) or value is None:
        raise DispatchError(code, value=value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise DispatchError(code, value=value) from None
    if not result.is_finite() or result < 0 or (result == 0 and not allow_zero):
        raise DispatchError(code, value=value)
    return result


def require_text(**fields) -> dict[str, str]:
    """
    Strip the given text fields and reject blanks.

    Raises:
        DispatchError('VALIDATION_ERROR'): With the blank field names
    """
    cleaned = {name: (value or '').strip() for name, value in fields.items()}
    missing = [name for name, value in cleaned.items() if not value]
    if missing:
        raise DispatchError('VALIDATION_ERROR', fields=missing)
    return cleaned


# ══════════════════════════════════════════════════════════════
# ENTITLEMENT
# ══════════════════════════════════════════════════════════════


def require_module(tenant, module: str) -> None:
    """
    Ask the module access collaborator for its decision.

    Raises:
        DispatchError('MODULE_FORBIDDEN'): Module not enabled for tenant
    """
    decision = get_module_access().check(tenant, module)
    if not decision.allowed:
        raise DispatchError('MODULE_FORBIDDEN', module=str(module), reason=decision.reason)


# ══════════════════════════════════════════════════════════════
# AUDIT
# ══════════════════════════════════════════════════════════════


def audit(tenant, actor, action: str, entity, **meta) -> None:
    """
    Record an audit event once the current transaction commits.

    Rolled-back operations leave no audit trace. Sink failures are logged.
    """
    event = AuditEvent(
        tenant_id=tenant.pk,
        actor_id=getattr(actor, 'pk', None),
        action=action,
        entity_type=type(entity).__name__,
        entity_id=entity.pk,
        meta={k: str(v) for k, v in meta.items() if v is not None},
    )

    def _send():
        try:
            get_audit_sink().record(event)
        except Exception:
            logger.exception("audit.sink_failed", extra={"action": action, "entity_id": event.entity_id})

    transaction.on_commit(_send)


# ══════════════════════════════════════════════════════════════
# STORAGE
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoredObject:
    """Result of an upload to object storage."""

    key: str
    name: str
    mime_type: str
    size: int
    url: str | None = None


def safe_file_name(name: str) -> str:
    """Replace anything outside [a-zA-Z0-9._-] with '_'."""
    return _UNSAFE_CHARS.sub('_', name or 'archivo')


def validate_upload(upload) -> None:
    """
    Check presence, size and content type of an uploaded file.

    Raises:
        DispatchError('FILE_REQUIRED' | 'FILE_TOO_LARGE' | 'UNSUPPORTED_FILE_TYPE')
    """
    if upload is None or not getattr(upload, 'size', 0):
        raise DispatchError('FILE_REQUIRED')
    if upload.size > dispatchman_settings.MAX_UPLOAD_BYTES:
        raise DispatchError('FILE_TOO_LARGE', size=upload.size, max=dispatchman_settings.MAX_UPLOAD_BYTES)
    content_type = getattr(upload, 'content_type', None) or ''
    if content_type not in dispatchman_settings.ALLOWED_UPLOAD_TYPES:
        raise DispatchError('UNSUPPORTED_FILE_TYPE', content_type=content_type)


def store_upload(prefix: str, upload) -> StoredObject:
    """
    Validate and write upload under prefix in the configured storage.

    Runs before any database write so a storage failure leaves no state.
    """
    validate_upload(upload)
    stamp = int(timezone.now().timestamp() * 1000)
    key = f"{prefix}/{stamp}-{safe_file_name(upload.name)}"

    storage = storages[dispatchman_settings.STORAGE_ALIAS]
    upload.seek(0)
    saved_key = storage.save(key, ContentFile(upload.read()))
    try:
        url = storage.url(saved_key)
    except NotImplementedError:
        url = None

    logger.info(
        "storage.uploaded",
        extra={"key": saved_key, "size": upload.size, "content_type": upload.content_type},
    )
    return StoredObject(
        key=saved_key,
        name=upload.name,
        mime_type=upload.content_type,
        size=upload.size,
        url=url,
    )
