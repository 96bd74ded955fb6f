"""
Sequence model — per-tenant counters for human-readable numbers.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class Sequence(models.Model):
    """
    Monotonic counter per (tenant, key).

    Keys are time-bucketed, e.g. "delivery:202610". A value is never handed
    out twice; numbers consumed by a failed operation are not reclaimed.
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.CASCADE, related_name='sequences')
    key = models.CharField(max_length=50, verbose_name=_('Clave'))
    value = models.PositiveIntegerField(default=0, verbose_name=_('Valor'))
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Secuencia')
        verbose_name_plural = _('Secuencias')
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'key'], name='unique_sequence_key_per_tenant'),
        ]

    def __str__(self) -> str:
        return f"{self.key}={self.value}"
