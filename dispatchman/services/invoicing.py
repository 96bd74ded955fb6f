"""
Invoicing — delivery + authorization → invoice, and reconciliation.

generate_invoice() validates in a fixed order and the first failure wins:

    1. delivery DELIVERED or CLOSED         DELIVERY_NOT_READY
    2. enough evidence                      EVIDENCE_REQUIRED
    3. delivery not invoiced yet            DELIVERY_ALREADY_INVOICED
    4. authorization of the same patient    AUTHORIZATION_MISMATCH
    5. authorization valid on delivery day  AUTHORIZATION_NOT_ACTIVE / _NOT_STARTED
                                            / _EXPIRED / _REQUIREMENTS_PENDING
    6. items with picked_qty > 0            NO_BILLABLE_ITEMS
    7. a billing rule for every product     BILLING_RULE_MISSING
    8. unit and amount caps                 AUTHORIZATION_LIMIT_UNITS / _AMOUNT
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from dispatchman.conf import dispatchman_settings
from dispatchman.exceptions import DispatchError
from dispatchman.models.authorization import Authorization
from dispatchman.models.billing import DebitNote, EvidenceSnapshot, Invoice, InvoiceItem, Payment
from dispatchman.models.delivery import Delivery
from dispatchman.models.enums import DeliveryStatus, InvoiceStatus, Module
from dispatchman.services.authorizations import Authorizations
from dispatchman.services.base import audit, get_owned, require_module, require_text, to_decimal
from dispatchman.services.rules import BillingRules
from dispatchman.services.sequences import Sequences

logger = logging.getLogger('dispatchman')

ZERO = Decimal('0')
CENT = Decimal('0.01')


@dataclass(frozen=True)
class DraftLine:
    """Invoice line computed before anything is written."""

    product_id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    honorarium: Decimal

    @property
    def total(self) -> Decimal:
        return ((self.unit_price + self.honorarium) * self.quantity).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DraftInvoice:
    delivery: Delivery
    authorization: Authorization
    lines: list[DraftLine]


def invoice_status(gross: Decimal, debits: Decimal, payments: Decimal) -> str:
    """
    Status from the three accumulators.

    net_due = max(gross − debits, 0); PAID when nothing is due or payments
    cover it, PARTIAL when something was paid, else ISSUED.
    """
    net_due = max(gross - debits, ZERO)
    if net_due == 0 or payments >= net_due:
        return InvoiceStatus.PAID
    if payments > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.ISSUED


class Invoicing:
    """Invoice generation, debits, payments and reconciliation."""

    @classmethod
    def generate_invoice(cls, tenant, delivery, authorization, due_date=None, notes='',
                         actor=None) -> Invoice:
        """
        Invoice a delivered order against an authorization.

        Nothing is written unless every check passes.

        Concurrency:
            - Checks run once without locks to fail fast, then the number
              is allocated, then everything is checked again with the
              delivery and authorization rows locked before writing
        """
        require_module(tenant, Module.BILLING)

        cls._prepare(tenant, delivery, authorization)
        number = Sequences.next_number(tenant, 'invoice', dispatchman_settings.INVOICE_NUMBER_PREFIX)

        with transaction.atomic():
            draft = cls._prepare(tenant, delivery, authorization, lock=True)
            auth = draft.authorization
            invoice = Invoice.objects.create(
                tenant=tenant,
                payer_id=auth.payer_id,
                plan_id=auth.plan_id,
                patient_id=auth.patient_id,
                authorization=auth,
                number=number,
                due_date=due_date,
                notes=(notes or '').strip(),
                created_by=actor,
            )
            snapshot = EvidenceSnapshot.of(draft.delivery).as_dict()
            for line in draft.lines:
                InvoiceItem.objects.create(
                    invoice=invoice,
                    delivery=draft.delivery,
                    product_id=line.product_id,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    honorarium=line.honorarium,
                    total=line.total,
                    evidence=snapshot,
                )
            cls._reconcile(invoice)
            audit(tenant, actor, 'invoice.created', invoice,
                  number=number, delivery=draft.delivery.number, total=invoice.total_amount)

        logger.info(
            "invoice.created",
            extra={
                "tenant_id": tenant.pk,
                "number": number,
                "delivery": draft.delivery.number,
                "total": str(invoice.total_amount),
            },
        )
        return invoice

    @classmethod
    def _prepare(cls, tenant, delivery, authorization, lock=False) -> DraftInvoice:
        delivery = get_owned(Delivery, tenant, delivery, 'DELIVERY_NOT_FOUND', for_update=lock)
        authorization = get_owned(Authorization, tenant, authorization, 'AUTHORIZATION_NOT_FOUND', for_update=lock)

        if delivery.status not in (DeliveryStatus.DELIVERED, DeliveryStatus.CLOSED):
            raise DispatchError('DELIVERY_NOT_READY', status=delivery.status)

        minimum = dispatchman_settings.DELIVERY_MIN_EVIDENCE
        count = delivery.evidence.count()
        if count < minimum:
            raise DispatchError('EVIDENCE_REQUIRED', count=count, minimum=minimum)

        if InvoiceItem.objects.filter(delivery=delivery).exists():
            raise DispatchError('DELIVERY_ALREADY_INVOICED', delivery=delivery.number)

        if authorization.patient_id != delivery.order.patient_id:
            raise DispatchError('AUTHORIZATION_MISMATCH', number=authorization.number)

        code = Authorizations.validity_error(authorization, delivery.effective_date)
        if code:
            raise DispatchError(code, number=authorization.number)

        items = list(
            delivery.pick_list.items.filter(picked_qty__gt=0).select_related('product')
        )
        if not items:
            raise DispatchError('NO_BILLABLE_ITEMS', delivery=delivery.number)

        lines = []
        missing = []
        for item in items:
            rule = BillingRules.resolve_rule(tenant, authorization.payer_id, item.product_id, authorization.plan_id)
            if rule is None:
                missing.append(item.product_id)
                continue
            lines.append(DraftLine(
                product_id=item.product_id,
                description=item.product.name,
                quantity=item.picked_qty,
                unit_price=rule.unit_price,
                honorarium=rule.honorarium,
            ))
        if missing:
            raise DispatchError('BILLING_RULE_MISSING', product_ids=missing)

        cls._check_limits(authorization, lines)
        return DraftInvoice(delivery=delivery, authorization=authorization, lines=lines)

    @classmethod
    def _check_limits(cls, authorization, lines) -> None:
        if authorization.limit_units is None and authorization.limit_amount is None:
            return

        billed = InvoiceItem.objects.filter(
            invoice__authorization=authorization,
        ).exclude(
            invoice__status=InvoiceStatus.CANCELLED,
        ).aggregate(
            units=Coalesce(Sum('quantity'), ZERO),
            amount=Coalesce(Sum('total'), ZERO),
        )
        new_units = sum((line.quantity for line in lines), ZERO)
        new_amount = sum((line.total for line in lines), ZERO)

        if authorization.limit_units is not None and billed['units'] + new_units > authorization.limit_units:
            logger.warning(
                "invoice.limit_units",
                extra={
                    "number": authorization.number,
                    "billed": str(billed['units']),
                    "requested": str(new_units),
                    "limit": str(authorization.limit_units),
                },
            )
            raise DispatchError(
                'AUTHORIZATION_LIMIT_UNITS',
                limit=authorization.limit_units,
                billed=billed['units'],
                requested=new_units,
            )
        if authorization.limit_amount is not None and billed['amount'] + new_amount > authorization.limit_amount:
            logger.warning(
                "invoice.limit_amount",
                extra={
                    "number": authorization.number,
                    "billed": str(billed['amount']),
                    "requested": str(new_amount),
                    "limit": str(authorization.limit_amount),
                },
            )
            raise DispatchError(
                'AUTHORIZATION_LIMIT_AMOUNT',
                limit=authorization.limit_amount,
                billed=billed['amount'],
                requested=new_amount,
            )

    # ══════════════════════════════════════════════════════════════
    # RECONCILIATION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def reconcile(cls, tenant, invoice) -> Invoice:
        """
        Recompute total_amount (gross) and status. Idempotent.

        CANCELLED invoices keep their status; only the total is refreshed.
        """
        with transaction.atomic():
            invoice = get_owned(Invoice, tenant, invoice, 'INVOICE_NOT_FOUND', for_update=True)
            return cls._reconcile(invoice)

    @classmethod
    def _reconcile(cls, invoice: Invoice) -> Invoice:
        gross = invoice.items.aggregate(t=Coalesce(Sum('total'), ZERO))['t']
        debits = invoice.total_debits
        payments = invoice.total_payments

        status = invoice.status
        if status != InvoiceStatus.CANCELLED:
            status = invoice_status(gross, debits, payments)

        if (gross, status) != (invoice.total_amount, invoice.status):
            invoice.total_amount = gross
            invoice.status = status
            invoice.save(update_fields=['total_amount', 'status'])
            logger.info(
                "invoice.reconciled",
                extra={
                    "number": invoice.number,
                    "gross": str(gross),
                    "debits": str(debits),
                    "payments": str(payments),
                    "status": status,
                },
            )
        return invoice

    @classmethod
    def add_debit_note(cls, tenant, invoice, amount, reason, actor=None) -> DebitNote:
        """
        Record a payer debit and reconcile.

        Raises:
            DispatchError('INVALID_AMOUNT'): amount <= 0
            DispatchError('INVALID_STATUS'): Invoice CANCELLED
        """
        require_module(tenant, Module.BILLING)
        amount = to_decimal(amount, 'INVALID_AMOUNT', allow_zero=False)
        reason = require_text(reason=reason)['reason']

        with transaction.atomic():
            invoice = cls._lock_open(tenant, invoice)
            note = DebitNote.objects.create(invoice=invoice, amount=amount, reason=reason, actor=actor)
            cls._reconcile(invoice)
            audit(tenant, actor, 'invoice.debit_added', invoice, amount=amount, status=invoice.status)
            return note

    @classmethod
    def add_payment(cls, tenant, invoice, amount, method='', reference='', paid_at=None,
                    actor=None) -> Payment:
        """
        Record a payment and reconcile.

        Raises:
            DispatchError('INVALID_AMOUNT'): amount <= 0
            DispatchError('INVALID_STATUS'): Invoice CANCELLED
        """
        require_module(tenant, Module.BILLING)
        amount = to_decimal(amount, 'INVALID_AMOUNT', allow_zero=False)

        with transaction.atomic():
            invoice = cls._lock_open(tenant, invoice)
            payment = Payment.objects.create(
                invoice=invoice,
                amount=amount,
                method=(method or '').strip(),
                reference=(reference or '').strip(),
                paid_at=paid_at or timezone.now(),
                actor=actor,
            )
            cls._reconcile(invoice)
            audit(tenant, actor, 'invoice.payment_added', invoice, amount=amount, status=invoice.status)
            return payment

    @classmethod
    def cancel_invoice(cls, tenant, invoice, actor=None) -> Invoice:
        """
        Mark an invoice CANCELLED. Rows stay; it stops counting against limits.

        Its deliveries stay invoiced.
        """
        require_module(tenant, Module.BILLING)

        with transaction.atomic():
            invoice = cls._lock_open(tenant, invoice)
            invoice.status = InvoiceStatus.CANCELLED
            invoice.cancelled_at = timezone.now()
            invoice.save(update_fields=['status', 'cancelled_at'])
            audit(tenant, actor, 'invoice.cancelled', invoice)

        logger.info("invoice.cancelled", extra={"tenant_id": tenant.pk, "number": invoice.number})
        return invoice

    @classmethod
    def _lock_open(cls, tenant, invoice) -> Invoice:
        invoice = get_owned(Invoice, tenant, invoice, 'INVOICE_NOT_FOUND', for_update=True)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise DispatchError('INVALID_STATUS', current=invoice.status)
        return invoice
