"""
PickList, PickListItem and Incident.

A frozen or packed pick list whose stock is not yet committed reserves
its items' picked_qty. There is no reservation row: reserved() reads
these fields directly.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from dispatchman.models.enums import IncidentCause, PickListStatus
from dispatchman.models.immutable import ImmutableModel
from dispatchman.models.reference import TenantQuerySet


class PickList(models.Model):
    """
    Warehouse working document for one approved order.

    Lifecycle: DRAFT → FROZEN → PACKED. stock_committed_at is written once,
    by the delivery's DELIVERED transition.
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='pick_lists')
    order = models.OneToOneField(
        'dispatchman.ApprovedOrder',
        on_delete=models.PROTECT,
        related_name='pick_list',
        verbose_name=_('Orden'),
    )
    status = models.CharField(
        max_length=10,
        choices=PickListStatus.choices,
        default=PickListStatus.DRAFT,
        db_index=True,
        verbose_name=_('Estado'),
    )
    frozen_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Congelada'))
    packed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Armada'))
    stock_committed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Stock comprometido'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Picklist')
        verbose_name_plural = _('Picklists')
        ordering = ['-created_at']

    @property
    def is_reserving(self) -> bool:
        """Does this list currently hold stock?"""
        return (
            self.status in (PickListStatus.FROZEN, PickListStatus.PACKED)
            and self.stock_committed_at is None
        )

    def __str__(self) -> str:
        return f"Picklist #{self.pk} ({self.get_status_display()})"


class PickListItemQuerySet(models.QuerySet):

    def reserving(self):
        """Items whose picked_qty counts as reserved."""
        return self.filter(
            pick_list__status__in=[PickListStatus.FROZEN, PickListStatus.PACKED],
            pick_list__stock_committed_at__isnull=True,
        )


class PickListItem(models.Model):
    """
    One product line of a pick list.

    requested_qty comes from the order and never changes. picked_qty is
    set to requested_qty on freeze and only lowered through an incident.
    """

    pick_list = models.ForeignKey(PickList, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('dispatchman.Product', on_delete=models.PROTECT, related_name='+')
    warehouse = models.ForeignKey(
        'dispatchman.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Deposito'),
    )
    requested_qty = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_('Solicitado'))
    picked_qty = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        verbose_name=_('Preparado'),
    )
    incident = models.OneToOneField(
        'dispatchman.Incident',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='item',
        verbose_name=_('Incidente'),
    )

    objects = PickListItemQuerySet.as_manager()

    class Meta:
        verbose_name = _('Item de picklist')
        verbose_name_plural = _('Items de picklist')
        ordering = ['pk']
        indexes = [
            models.Index(fields=['product', 'warehouse'], name='picklist_item_product_wh_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.picked_qty}/{self.requested_qty} x {self.product}"


class Incident(ImmutableModel):
    """Recorded reason for a picked quantity below the requested one."""

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='incidents')
    cause = models.CharField(max_length=30, choices=IncidentCause.choices, verbose_name=_('Causa'))
    description = models.TextField(blank=True, default='', verbose_name=_('Descripcion'))
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(default=timezone.now, verbose_name=_('Fecha'))

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Incidente')
        verbose_name_plural = _('Incidentes')
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"{self.get_cause_display()} ({self.created_at:%Y-%m-%d})"
