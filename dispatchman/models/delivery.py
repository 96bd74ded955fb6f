"""
Delivery and DeliveryEvidence.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from dispatchman.models.enums import DeliveryStatus
from dispatchman.models.immutable import ImmutableModel
from dispatchman.models.reference import TenantQuerySet


class Delivery(models.Model):
    """
    Shipment of one packed pick list.

    Lifecycle: PACKED → IN_TRANSIT → DELIVERED → CLOSED, strictly forward.
    Entering transit needs the carrier's signature; delivery needs the
    receiver's signature and enough evidence.
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='deliveries')
    pick_list = models.OneToOneField(
        'dispatchman.PickList',
        on_delete=models.PROTECT,
        related_name='delivery',
        verbose_name=_('Picklist'),
    )
    order = models.ForeignKey(
        'dispatchman.ApprovedOrder',
        on_delete=models.PROTECT,
        related_name='deliveries',
        verbose_name=_('Orden'),
    )
    number = models.CharField(max_length=30, verbose_name=_('Numero'))
    status = models.CharField(
        max_length=12,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PACKED,
        db_index=True,
        verbose_name=_('Estado'),
    )

    carrier_name = models.CharField(max_length=200, blank=True, default='', verbose_name=_('Transportista'))
    carrier_dni = models.CharField(max_length=20, blank=True, default='', verbose_name=_('DNI transportista'))
    carrier_signed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Firma transportista'))

    receiver_name = models.CharField(max_length=200, blank=True, default='', verbose_name=_('Receptor'))
    receiver_dni = models.CharField(max_length=20, blank=True, default='', verbose_name=_('DNI receptor'))
    receiver_relation = models.CharField(max_length=100, blank=True, default='', verbose_name=_('Vinculo'))
    receiver_signed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Firma receptor'))

    delivered_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Entregada'))
    closed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Cerrada'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Entrega')
        verbose_name_plural = _('Entregas')
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'number'], name='unique_delivery_number_per_tenant'),
        ]

    @property
    def has_carrier_signature(self) -> bool:
        return bool(self.carrier_name and self.carrier_dni and self.carrier_signed_at)

    @property
    def effective_date(self):
        """Date used to check authorization validity when invoicing."""
        return timezone.localdate(self.delivered_at) if self.delivered_at else timezone.localdate()

    def __str__(self) -> str:
        return self.number


class DeliveryEvidence(ImmutableModel):
    """Proof-of-delivery file. Append-only; count gates DELIVERED."""

    delivery = models.ForeignKey(Delivery, on_delete=models.PROTECT, related_name='evidence')
    file_key = models.CharField(max_length=500, verbose_name=_('Clave'))
    file_name = models.CharField(max_length=255, verbose_name=_('Archivo'))
    mime_type = models.CharField(max_length=100, verbose_name=_('Tipo'))
    size = models.PositiveBigIntegerField(verbose_name=_('Tamaño'))
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Evidencia de entrega')
        verbose_name_plural = _('Evidencias de entrega')
        ordering = ['created_at', 'pk']

    def __str__(self) -> str:
        return self.file_name
