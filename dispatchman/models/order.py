"""
ApprovedOrder and KitTemplate — what was approved to ship.
"""

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from dispatchman.models.reference import TenantQuerySet


class KitTemplate(models.Model):
    """Reusable bundle of products (e.g. "Kit curacion semanal")."""

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='kit_templates')
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))
    description = models.TextField(blank=True, default='', verbose_name=_('Descripcion'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Kit')
        verbose_name_plural = _('Kits')
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class KitTemplateItem(models.Model):
    kit = models.ForeignKey(KitTemplate, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('dispatchman.Product', on_delete=models.PROTECT, related_name='+')
    quantity = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_('Cantidad'))

    class Meta:
        verbose_name = _('Item de kit')
        verbose_name_plural = _('Items de kit')
        ordering = ['pk']

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product}"


class ApprovedOrder(models.Model):
    """
    Order approved for a patient.

    Items are append-only until a pick list exists for the order.
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='orders')
    patient = models.ForeignKey(
        'dispatchman.Patient',
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name=_('Paciente'),
    )
    notes = models.TextField(blank=True, default='', verbose_name=_('Notas'))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Orden aprobada')
        verbose_name_plural = _('Ordenes aprobadas')
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"Orden #{self.pk} ({self.patient})"


class ApprovedOrderItem(models.Model):
    order = models.ForeignKey(ApprovedOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('dispatchman.Product', on_delete=models.PROTECT, related_name='+')
    quantity = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_('Cantidad'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Item de orden')
        verbose_name_plural = _('Items de orden')
        ordering = ['pk']

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product}"
