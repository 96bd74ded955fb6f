"""
Sequences — human-readable, per-tenant monthly numbering.

    DEL-202610-000001, DEL-202610-000002, ... INV-202611-000001
"""

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from dispatchman.models.sequence import Sequence

logger = logging.getLogger('dispatchman')


class Sequences:
    """Number allocation."""

    @classmethod
    def next_value(cls, tenant, key: str) -> int:
        """
        Increment and return the counter for (tenant, key).

        Concurrency:
            - get_or_create then F() increment under select_for_update
            - Allocated values are never reused, even if the caller's
              transaction later fails on another check
        """
        with transaction.atomic():
            Sequence.objects.get_or_create(tenant=tenant, key=key)
            seq = Sequence.objects.select_for_update().get(tenant=tenant, key=key)
            Sequence.objects.filter(pk=seq.pk).update(value=F('value') + 1)
            seq.refresh_from_db(fields=['value'])
            return seq.value

    @classmethod
    def next_number(cls, tenant, kind: str, prefix: str, when=None) -> str:
        """
        Allocate "<PREFIX>-<YYYYMM>-<NNNNNN>" for kind ("delivery", "invoice").

        The counter restarts each calendar month.
        """
        bucket = timezone.localtime(when or timezone.now()).strftime('%Y%m')
        value = cls.next_value(tenant, f"{kind}:{bucket}")
        number = f"{prefix}-{bucket}-{value:06d}"
        logger.debug("sequence.allocated", extra={"tenant_id": tenant.pk, "number": number})
        return number
