"""
BillingRule, Invoice, InvoiceItem, DebitNote and Payment.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from dispatchman.models.enums import InvoiceStatus
from dispatchman.models.immutable import ImmutableModel
from dispatchman.models.reference import TenantQuerySet


ZERO = Decimal('0')


class BillingRule(models.Model):
    """
    Price and honorarium of a product under a payer.

    plan=None is the payer-general rule, used when no plan-specific rule
    exists for the invoice's plan.
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='billing_rules')
    payer = models.ForeignKey('dispatchman.Payer', on_delete=models.CASCADE, related_name='billing_rules')
    plan = models.ForeignKey(
        'dispatchman.PayerPlan',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='billing_rules',
    )
    product = models.ForeignKey('dispatchman.Product', on_delete=models.PROTECT, related_name='billing_rules')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Precio unitario'))
    honorarium = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=ZERO,
        verbose_name=_('Honorario'),
    )
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Regla de facturacion')
        verbose_name_plural = _('Reglas de facturacion')
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'payer', 'plan', 'product'],
                condition=Q(plan__isnull=False),
                name='unique_billing_rule_per_plan',
            ),
            models.UniqueConstraint(
                fields=['tenant', 'payer', 'product'],
                condition=Q(plan__isnull=True),
                name='unique_billing_rule_general',
            ),
        ]

    def __str__(self) -> str:
        scope = self.plan.name if self.plan_id else 'general'
        return f"{self.payer} [{scope}] {self.product}: {self.unit_price} + {self.honorarium}"


class InvoiceQuerySet(TenantQuerySet):

    def open(self):
        """Invoices still counting against limits and aging."""
        return self.exclude(status=InvoiceStatus.CANCELLED)


class Invoice(models.Model):
    """
    Invoice issued to a payer for delivered goods.

    total_amount is the gross sum of items. Debits and payments are kept
    apart and only drive status.
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='invoices')
    payer = models.ForeignKey('dispatchman.Payer', on_delete=models.PROTECT, related_name='invoices')
    plan = models.ForeignKey(
        'dispatchman.PayerPlan',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='invoices',
    )
    patient = models.ForeignKey('dispatchman.Patient', on_delete=models.PROTECT, related_name='invoices')
    authorization = models.ForeignKey(
        'dispatchman.Authorization',
        on_delete=models.PROTECT,
        related_name='invoices',
    )
    number = models.CharField(max_length=30, verbose_name=_('Numero'))
    status = models.CharField(
        max_length=10,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.ISSUED,
        db_index=True,
        verbose_name=_('Estado'),
    )
    issued_at = models.DateTimeField(default=timezone.now, verbose_name=_('Emitida'))
    due_date = models.DateField(null=True, blank=True, verbose_name=_('Vencimiento'))
    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=ZERO,
        verbose_name=_('Total'),
    )
    notes = models.TextField(blank=True, default='', verbose_name=_('Notas'))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    objects = InvoiceQuerySet.as_manager()

    class Meta:
        verbose_name = _('Factura')
        verbose_name_plural = _('Facturas')
        ordering = ['-issued_at']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'number'], name='unique_invoice_number_per_tenant'),
        ]

    @property
    def total_debits(self) -> Decimal:
        return self.debit_notes.aggregate(t=Coalesce(Sum('amount'), ZERO))['t']

    @property
    def total_payments(self) -> Decimal:
        return self.payments.aggregate(t=Coalesce(Sum('amount'), ZERO))['t']

    @property
    def balance(self) -> Decimal:
        """Outstanding amount: total minus debits and payments, floored at zero."""
        return max(self.total_amount - self.total_debits - self.total_payments, ZERO)

    def __str__(self) -> str:
        return self.number


@dataclass(frozen=True)
class EvidenceFile:
    key: str
    name: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class EvidenceSnapshot:
    """What proved the delivery at invoicing time, frozen onto each line."""

    delivery_number: str
    delivered_at: str | None
    receiver_name: str
    files: list[EvidenceFile] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.files)

    @classmethod
    def of(cls, delivery) -> EvidenceSnapshot:
        return cls(
            delivery_number=delivery.number,
            delivered_at=delivery.delivered_at.isoformat() if delivery.delivered_at else None,
            receiver_name=delivery.receiver_name,
            files=[
                EvidenceFile(key=e.file_key, name=e.file_name, mime_type=e.mime_type, size=e.size)
                for e in delivery.evidence.all()
            ],
        )

    @classmethod
    def from_dict(cls, data: dict) -> EvidenceSnapshot:
        return cls(
            delivery_number=data.get('delivery_number', ''),
            delivered_at=data.get('delivered_at'),
            receiver_name=data.get('receiver_name', ''),
            files=[EvidenceFile(**f) for f in data.get('files', [])],
        )

    def as_dict(self) -> dict:
        return asdict(self)


class InvoiceItem(ImmutableModel):
    """Invoice line. total = (unit_price + honorarium) × quantity."""

    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='items')
    delivery = models.ForeignKey(
        'dispatchman.Delivery',
        on_delete=models.PROTECT,
        related_name='invoice_items',
    )
    product = models.ForeignKey('dispatchman.Product', on_delete=models.PROTECT, related_name='+')
    description = models.CharField(max_length=255, verbose_name=_('Descripcion'))
    quantity = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_('Cantidad'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Precio unitario'))
    honorarium = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Honorario'))
    total = models.DecimalField(max_digits=14, decimal_places=2, verbose_name=_('Total'))
    evidence = models.JSONField(default=dict, blank=True, verbose_name=_('Evidencia'))

    class Meta:
        verbose_name = _('Item de factura')
        verbose_name_plural = _('Items de factura')
        ordering = ['pk']

    @property
    def evidence_snapshot(self) -> EvidenceSnapshot:
        return EvidenceSnapshot.from_dict(self.evidence)

    def __str__(self) -> str:
        return f"{self.quantity} x {self.description} = {self.total}"


class DebitNote(ImmutableModel):
    """Amount the payer refuses to pay (débito)."""

    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='debit_notes')
    amount = models.DecimalField(max_digits=14, decimal_places=2, verbose_name=_('Monto'))
    reason = models.CharField(max_length=255, verbose_name=_('Motivo'))
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Nota de debito')
        verbose_name_plural = _('Notas de debito')
        ordering = ['created_at', 'pk']

    def __str__(self) -> str:
        return f"-{self.amount} ({self.reason})"


class Payment(ImmutableModel):
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2, verbose_name=_('Monto'))
    method = models.CharField(max_length=50, blank=True, default='', verbose_name=_('Medio'))
    reference = models.CharField(max_length=100, blank=True, default='', verbose_name=_('Referencia'))
    paid_at = models.DateTimeField(default=timezone.now, verbose_name=_('Fecha de pago'))
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Pago')
        verbose_name_plural = _('Pagos')
        ordering = ['paid_at', 'pk']

    def __str__(self) -> str:
        return f"{self.amount} ({self.method or '-'})"
