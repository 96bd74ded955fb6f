"""
Tests for billing rules, invoice generation and reconciliation.
"""

import re
from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from dispatchman import dispatch, DispatchError
from dispatchman.adapters import reset_backends
from dispatchman.models import (
    AuthorizationStatus,
    BillingRule,
    Delivery,
    IncidentCause,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Payer,
    PayerPlan,
)
from dispatchman.services.invoicing import DraftLine, invoice_status
from dispatchman.tests.support import make_upload


pytestmark = pytest.mark.django_db


@pytest.fixture
def delivered(stocked, product, other_product, flow):
    """30 gauze + 5 syringes delivered to the default patient."""
    return flow.delivered((product, '30'), (other_product, '5'))


class TestBillingRules:

    def test_upsert_replaces(self, tenant, payer, product):
        """Upsert updates the existing rule."""
        first = dispatch.upsert_billing_rule(tenant, payer, product, Decimal('10'))
        second = dispatch.upsert_billing_rule(tenant, payer, product, Decimal('12'), Decimal('3'))

        assert first.pk == second.pk
        assert BillingRule.objects.count() == 1
        assert second.unit_price == Decimal('12')
        assert second.honorarium == Decimal('3')

    def test_plan_rule_wins(self, tenant, payer, plan, product):
        """Plan rule takes precedence."""
        general = dispatch.upsert_billing_rule(tenant, payer, product, Decimal('10'))
        specific = dispatch.upsert_billing_rule(tenant, payer, product, Decimal('15'), plan=plan)

        assert dispatch.resolve_rule(tenant, payer, product, plan) == specific
        assert dispatch.resolve_rule(tenant, payer, product) == general

    def test_falls_back_to_general(self, tenant, payer, plan, product):
        """Unknown plan falls back to the payer rule."""
        general = dispatch.upsert_billing_rule(tenant, payer, product, Decimal('10'))

        assert dispatch.resolve_rule(tenant, payer, product, plan) == general

    def test_no_rule(self, tenant, payer, product):
        """No rule resolves to None."""
        assert dispatch.resolve_rule(tenant, payer, product) is None

    @pytest.mark.parametrize('price, honorarium, code', [
        (Decimal('-1'), 0, 'INVALID_UNIT_PRICE'),
        (Decimal('1'), Decimal('-0.01'), 'INVALID_HONORARIUM'),
        (Decimal('Infinity'), 0, 'INVALID_UNIT_PRICE'),
    ])
    def test_invalid_amounts(self, tenant, payer, product, price, honorarium, code):
        """Negative or non-numeric amounts are rejected."""
        with pytest.raises(DispatchError) as exc:
            dispatch.upsert_billing_rule(tenant, payer, product, price, honorarium)

        assert exc.value.code == code

    def test_zero_price_is_allowed(self, tenant, payer, product):
        """Zero price is a valid rule."""
        rule = dispatch.upsert_billing_rule(tenant, payer, product, 0)

        assert rule.unit_price == Decimal('0')

    def test_plan_of_other_payer(self, tenant, payer, product):
        """Plan must belong to the payer."""
        other = Payer.objects.create(tenant=tenant, name='Galeno')
        foreign_plan = PayerPlan.objects.create(tenant=tenant, payer=other, name='Oro')

        with pytest.raises(DispatchError) as exc:
            dispatch.upsert_billing_rule(tenant, payer, product, Decimal('1'), plan=foreign_plan)

        assert exc.value.code == 'PLAN_PAYER_MISMATCH'

    def test_update(self, tenant, payer, product):
        """Update by id changes amounts."""
        rule = dispatch.upsert_billing_rule(tenant, payer, product, Decimal('10'), Decimal('1'))

        rule = dispatch.update_billing_rule(tenant, rule, honorarium=Decimal('2'))

        assert rule.unit_price == Decimal('10')
        assert rule.honorarium == Decimal('2')


class TestDraftLine:

    def test_total_rounds_half_up(self):
        """Line totals round half up to cents."""
        line = DraftLine(1, 'x', Decimal('0.1'), Decimal('0.05'), Decimal('0'))

        assert line.total == Decimal('0.01')

    def test_total_includes_honorarium(self):
        """Honorarium is added per unit."""
        line = DraftLine(1, 'x', Decimal('3'), Decimal('100'), Decimal('10'))

        assert line.total == Decimal('330.00')


class TestGenerateInvoice:

    def test_lines_and_total(self, tenant, delivered, authorization, rules, product, user):
        """One line per picked item, total is their sum."""
        invoice = dispatch.generate_invoice(tenant, delivered, authorization, actor=user)

        assert re.fullmatch(r'INV-\d{6}-000001', invoice.number)
        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.total_amount == Decimal('3550.00')
        assert invoice.payer_id == authorization.payer_id
        assert invoice.patient_id == authorization.patient_id
        assert invoice.created_by == user

        gauze = invoice.items.get(product=product)
        assert gauze.quantity == Decimal('30')
        assert gauze.unit_price == Decimal('100')
        assert gauze.honorarium == Decimal('10')
        assert gauze.total == Decimal('3300.00')
        assert gauze.description == 'Gasas 10x10'

    def test_evidence_snapshot(self, tenant, delivered, authorization, rules):
        """Lines carry the delivery's evidence snapshot."""
        invoice = dispatch.generate_invoice(tenant, delivered, authorization)

        snapshot = invoice.items.first().evidence_snapshot
        assert snapshot.delivery_number == delivered.number
        assert snapshot.receiver_name == 'Marta Perez'
        assert snapshot.count == 1
        assert snapshot.files[0].mime_type == 'image/png'

    def test_plan_specific_price(self, tenant, delivered, payer, plan, patient, product, rules, today):
        """Authorization plan selects the plan price."""
        dispatch.upsert_billing_rule(tenant, payer, product, Decimal('200'), plan=plan)
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-PLAN', start_date=today - timedelta(days=1), plan=plan,
        )

        invoice = dispatch.generate_invoice(tenant, delivered, authorization)

        assert invoice.plan == plan
        assert invoice.items.get(product=product).total == Decimal('6000.00')

    def test_closed_delivery(self, tenant, delivered, authorization, rules):
        """Closed deliveries can be invoiced."""
        dispatch.close_delivery(tenant, delivered)

        assert dispatch.generate_invoice(tenant, delivered, authorization).pk

    def test_skips_zero_picked_items(self, tenant, stocked, product, other_product, flow, authorization, rules):
        """Items picked at zero are not billed."""
        pick_list = flow.frozen((product, '30'), (other_product, '5'))
        dispatch.report_incident(tenant, pick_list.items.get(product=other_product), 0, IncidentCause.OUT_OF_STOCK)
        dispatch.pack(tenant, pick_list)
        delivery = dispatch.create_delivery(tenant, pick_list)
        dispatch.mark_in_transit(tenant, delivery, 'Juan', '1')
        dispatch.upload_evidence(tenant, delivery, make_upload())
        dispatch.mark_delivered(tenant, delivery, 'Marta', '2', 'hija')

        invoice = dispatch.generate_invoice(tenant, delivery, authorization)

        assert invoice.items.count() == 1
        assert invoice.total_amount == Decimal('3300.00')


class TestGenerateInvoiceChecks:
    """Each failure leaves no invoice behind."""

    def assert_fails(self, code, *args, **kwargs):
        with pytest.raises(DispatchError) as exc:
            dispatch.generate_invoice(*args, **kwargs)
        assert exc.value.code == code
        assert not Invoice.objects.exists()
        assert not InvoiceItem.objects.exists()
        return exc.value

    def test_not_delivered(self, tenant, stocked, product, flow, authorization, rules):
        """Undelivered delivery is not ready."""
        delivery = flow.in_transit((product, '1'))

        self.assert_fails('DELIVERY_NOT_READY', tenant, delivery, authorization)

    def test_evidence_below_minimum(self, tenant, delivered, authorization, rules, settings):
        """Evidence minimum applies to invoicing too."""
        settings.DISPATCHMAN = {**settings.DISPATCHMAN, 'DELIVERY_MIN_EVIDENCE': 2}

        self.assert_fails('EVIDENCE_REQUIRED', tenant, delivered, authorization)

    def test_already_invoiced(self, tenant, delivered, authorization, rules):
        """A delivery is invoiced once."""
        dispatch.generate_invoice(tenant, delivered, authorization)

        with pytest.raises(DispatchError) as exc:
            dispatch.generate_invoice(tenant, delivered, authorization)

        assert exc.value.code == 'DELIVERY_ALREADY_INVOICED'
        assert Invoice.objects.count() == 1

    def test_cancelled_invoice_still_blocks(self, tenant, delivered, authorization, rules):
        """Cancelled invoice still blocks re-invoicing."""
        invoice = dispatch.generate_invoice(tenant, delivered, authorization)
        dispatch.cancel_invoice(tenant, invoice)

        with pytest.raises(DispatchError) as exc:
            dispatch.generate_invoice(tenant, delivered, authorization)

        assert exc.value.code == 'DELIVERY_ALREADY_INVOICED'

    def test_other_patient(self, tenant, delivered, payer, other_patient, rules, today):
        """Authorization of another patient is a mismatch."""
        authorization = dispatch.create_authorization(
            tenant, payer, other_patient, 'AUT-OTRO', start_date=today - timedelta(days=1),
        )

        self.assert_fails('AUTHORIZATION_MISMATCH', tenant, delivered, authorization)

    def test_authorization_not_active(self, tenant, delivered, authorization, rules):
        """Suspended authorization cannot bill."""
        dispatch.update_authorization_status(tenant, authorization, AuthorizationStatus.SUSPENDED)

        self.assert_fails('AUTHORIZATION_NOT_ACTIVE', tenant, delivered, authorization)

    def test_authorization_not_started_on_delivery_day(self, tenant, delivered, payer, patient, rules, today):
        """Validity is checked on the delivery date."""
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-FUT', start_date=today + timedelta(days=5),
        )

        self.assert_fails('AUTHORIZATION_NOT_STARTED', tenant, delivered, authorization)

    def test_late_evening_delivery_on_end_date(self, tenant, delivered, payer, patient, rules, today):
        """Delivery at 22:30 local time still counts on the end date."""
        late = timezone.make_aware(datetime.combine(today, time(22, 30)))
        Delivery.objects.filter(pk=delivered.pk).update(delivered_at=late)
        delivered.refresh_from_db()
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-FIN',
            start_date=today - timedelta(days=10), end_date=today,
        )

        assert delivered.effective_date == today
        assert dispatch.generate_invoice(tenant, delivered, authorization).pk

    def test_late_evening_delivery_before_start(self, tenant, delivered, payer, patient, rules, today):
        """Delivery late on the day before start_date is not in the window."""
        late = timezone.make_aware(datetime.combine(today - timedelta(days=1), time(22, 30)))
        Delivery.objects.filter(pk=delivered.pk).update(delivered_at=late)
        delivered.refresh_from_db()
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-INI',
            start_date=today, end_date=today + timedelta(days=10),
        )

        self.assert_fails('AUTHORIZATION_NOT_STARTED', tenant, delivered, authorization)

    def test_missing_rule(self, tenant, delivered, authorization, payer, product):
        """Missing billing rule fails the whole invoice."""
        dispatch.upsert_billing_rule(tenant, payer, product, Decimal('100'))

        error = self.assert_fails('BILLING_RULE_MISSING', tenant, delivered, authorization)
        assert len(error.data['product_ids']) == 1

    def test_no_billable_items(self, tenant, stocked, product, flow, authorization, rules):
        """Nothing picked means nothing to bill."""
        pick_list = flow.frozen((product, '5'))
        dispatch.report_incident(tenant, pick_list.items.get(), 0, IncidentCause.HOME_REFUSAL)
        dispatch.pack(tenant, pick_list)
        delivery = dispatch.create_delivery(tenant, pick_list)
        dispatch.mark_in_transit(tenant, delivery, 'Juan', '1')
        dispatch.upload_evidence(tenant, delivery, make_upload())
        dispatch.mark_delivered(tenant, delivery, 'Marta', '2', 'hija')

        self.assert_fails('NO_BILLABLE_ITEMS', tenant, delivery, authorization)

    def test_unit_limit(self, tenant, delivered, payer, patient, rules, today):
        """Units over the authorization limit fail."""
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-LIM', start_date=today - timedelta(days=1), limit_units=30,
        )

        error = self.assert_fails('AUTHORIZATION_LIMIT_UNITS', tenant, delivered, authorization)
        assert error.data['requested'] == Decimal('35')

    def test_amount_limit(self, tenant, delivered, payer, patient, rules, today):
        """Amount over the authorization limit fails."""
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-LIM', start_date=today - timedelta(days=1), limit_amount='3549.99',
        )

        self.assert_fails('AUTHORIZATION_LIMIT_AMOUNT', tenant, delivered, authorization)

    def test_limit_counts_previous_invoices(self, tenant, stocked, product, flow, payer, patient, rules, today):
        """Limits include earlier invoices."""
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-LIM', start_date=today - timedelta(days=1), limit_units=50,
        )
        first = flow.delivered((product, '30'))
        dispatch.generate_invoice(tenant, first, authorization)
        second = flow.delivered((product, '30'))

        with pytest.raises(DispatchError) as exc:
            dispatch.generate_invoice(tenant, second, authorization)

        assert exc.value.code == 'AUTHORIZATION_LIMIT_UNITS'
        assert exc.value.data['billed'] == Decimal('30')

    def test_cancelled_invoices_free_the_limit(self, tenant, stocked, product, flow, payer, patient, rules, today):
        """Cancelled invoices do not count against limits."""
        authorization = dispatch.create_authorization(
            tenant, payer, patient, 'AUT-LIM', start_date=today - timedelta(days=1), limit_units=50,
        )
        first = dispatch.generate_invoice(tenant, flow.delivered((product, '30')), authorization)
        dispatch.cancel_invoice(tenant, first)

        second = dispatch.generate_invoice(tenant, flow.delivered((product, '30')), authorization)

        assert second.total_amount == Decimal('3300.00')

    def test_billing_module_forbidden(self, tenant, delivered, authorization, settings):
        """Tenant without billing module is refused."""
        settings.DISPATCHMAN = {
            **settings.DISPATCHMAN,
            'MODULE_ACCESS': 'dispatchman.tests.support.NoBillingModuleAccess',
        }
        reset_backends()

        error = self.assert_fails('MODULE_FORBIDDEN', tenant, delivered, authorization)
        assert error.category == 'access'
        assert error.data['reason'] == 'plan sin facturacion'


class TestInvoiceStatus:

    @pytest.mark.parametrize('gross, debits, payments, expected', [
        ('100', '0', '0', InvoiceStatus.ISSUED),
        ('100', '0', '40', InvoiceStatus.PARTIAL),
        ('100', '0', '100', InvoiceStatus.PAID),
        ('100', '30', '70', InvoiceStatus.PAID),
        ('100', '30', '69.99', InvoiceStatus.PARTIAL),
        ('100', '150', '0', InvoiceStatus.PAID),
        ('0', '0', '0', InvoiceStatus.PAID),
    ])
    def test_derivation(self, gross, debits, payments, expected):
        """Status derives from gross, debits and payments."""
        assert invoice_status(Decimal(gross), Decimal(debits), Decimal(payments)) == expected


class TestReconcile:

    @pytest.fixture
    def invoice(self, tenant, delivered, authorization, rules):
        return dispatch.generate_invoice(tenant, delivered, authorization)

    def test_debit_then_payments(self, tenant, invoice, user):
        """Debit lowers net due, payments settle it."""
        dispatch.add_debit_note(tenant, invoice, Decimal('550'), 'Falta firma en remito', actor=user)
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.total_amount == Decimal('3550.00')

        dispatch.add_payment(tenant, invoice, Decimal('1000'), method='transferencia')
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PARTIAL
        assert invoice.balance == Decimal('2000.00')

        dispatch.add_payment(tenant, invoice, Decimal('2000'))
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.balance == Decimal('0')
        assert invoice.total_amount == Decimal('3550.00')

    def test_idempotent(self, tenant, invoice):
        """Reconcile twice gives the same result."""
        dispatch.add_payment(tenant, invoice, Decimal('10'))

        first = dispatch.reconcile(tenant, invoice)
        second = dispatch.reconcile(tenant, invoice)

        assert (first.total_amount, first.status) == (second.total_amount, second.status)
        assert second.status == InvoiceStatus.PARTIAL

    def test_repairs_drift(self, tenant, invoice):
        """Reconcile fixes a stale status."""
        Invoice.objects.filter(pk=invoice.pk).update(total_amount=Decimal('1'), status=InvoiceStatus.PAID)

        invoice = dispatch.reconcile(tenant, invoice)

        assert invoice.total_amount == Decimal('3550.00')
        assert invoice.status == InvoiceStatus.ISSUED

    def test_keeps_cancelled(self, tenant, invoice):
        """Cancelled invoices stay CANCELLED."""
        dispatch.cancel_invoice(tenant, invoice)

        invoice = dispatch.reconcile(tenant, invoice)

        assert invoice.status == InvoiceStatus.CANCELLED
        assert invoice.cancelled_at is not None

    def test_cancelled_rejects_payments(self, tenant, invoice):
        """No payments on cancelled invoices."""
        dispatch.cancel_invoice(tenant, invoice)

        with pytest.raises(DispatchError) as exc:
            dispatch.add_payment(tenant, invoice, Decimal('10'))

        assert exc.value.code == 'INVALID_STATUS'

    @pytest.mark.parametrize('amount', [0, Decimal('-5'), 'diez'])
    def test_invalid_amount(self, tenant, invoice, amount):
        """Non-positive amounts are rejected."""
        with pytest.raises(DispatchError) as exc:
            dispatch.add_payment(tenant, invoice, amount)

        assert exc.value.code == 'INVALID_AMOUNT'

    def test_debit_requires_reason(self, tenant, invoice):
        """Debit note needs a reason."""
        with pytest.raises(DispatchError) as exc:
            dispatch.add_debit_note(tenant, invoice, Decimal('1'), ' ')

        assert exc.value.code == 'VALIDATION_ERROR'

    def test_other_tenant(self, other_tenant, invoice):
        """Invoice of another tenant is not found."""
        with pytest.raises(DispatchError) as exc:
            dispatch.reconcile(other_tenant, invoice)

        assert exc.value.code == 'INVOICE_NOT_FOUND'

    def test_items_are_immutable(self, invoice):
        """Invoice items cannot be changed."""
        item = invoice.items.first()
        item.total = Decimal('0')

        with pytest.raises(DispatchError) as exc:
            item.save()

        assert exc.value.code == 'IMMUTABLE_RECORD'
