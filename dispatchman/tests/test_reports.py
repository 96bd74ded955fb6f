"""
Tests for aging, invoice listings, the delivery document and pre-liquidation.
"""

import csv
from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest

from dispatchman import dispatch, DispatchError
from dispatchman.adapters import reset_backends
from dispatchman.models import IncidentCause, Invoice, Patient, Payer
from dispatchman.services.reports import bucket_for
from dispatchman.tests.support import make_upload


pytestmark = pytest.mark.django_db


def rows(text):
    return list(csv.reader(StringIO(text)))


@pytest.fixture
def invoice(tenant, stocked, product, other_product, flow, authorization, rules):
    delivery = flow.delivered((product, '30'), (other_product, '5'))
    return dispatch.generate_invoice(tenant, delivery, authorization)


class TestBuckets:

    @pytest.mark.parametrize('days, bucket', [
        (-10, '0-30'), (0, '0-30'), (30, '0-30'),
        (31, '31-60'), (60, '31-60'),
        (61, '61-90'), (90, '61-90'),
        (91, '90+'), (400, '90+'),
    ])
    def test_bucket_for(self, days, bucket):
        """Days map to aging buckets."""
        assert bucket_for(days) == bucket


class TestAging:

    def test_outstanding_by_due_date(self, tenant, invoice, today):
        """Age counts from the due date."""
        Invoice.objects.filter(pk=invoice.pk).update(due_date=today - timedelta(days=45))

        report = dispatch.aging(tenant, as_of=today)

        assert len(report.rows) == 1
        row = report.rows[0]
        assert row.number == invoice.number
        assert row.patient == 'Perez, Ana'
        assert row.days == 45
        assert row.bucket == '31-60'
        assert row.outstanding == Decimal('3550.00')
        assert report.totals['31-60'] == Decimal('3550.00')
        assert report.total == Decimal('3550.00')

    def test_debits_and_payments_reduce(self, tenant, invoice, today):
        """Outstanding discounts debits and payments."""
        dispatch.add_debit_note(tenant, invoice, Decimal('50'), 'Sin firma')
        dispatch.add_payment(tenant, invoice, Decimal('500'))

        report = dispatch.aging(tenant, as_of=today)

        assert report.rows[0].outstanding == Decimal('3000.00')

    def test_age_from_issue_date_without_due_date(self, tenant, invoice, today):
        """Without due date, age counts from issue."""
        report = dispatch.aging(tenant, as_of=today + timedelta(days=100))

        assert report.rows[0].bucket == '90+'

    def test_settled_and_cancelled_left_out(self, tenant, invoice, today):
        """Settled and cancelled invoices are left out."""
        dispatch.add_payment(tenant, invoice, Decimal('3550'))

        assert dispatch.aging(tenant, as_of=today).rows == []

        Invoice.objects.filter(pk=invoice.pk).update(status='CANCELLED')
        assert dispatch.aging(tenant, as_of=today).rows == []

    def test_payer_filter(self, tenant, invoice, today):
        """Report can be narrowed to one payer."""
        other = Payer.objects.create(tenant=tenant, name='Galeno')

        assert dispatch.aging(tenant, as_of=today, payer=other).rows == []
        assert len(dispatch.aging(tenant, as_of=today, payer=invoice.payer).rows) == 1

    def test_other_tenant_sees_nothing(self, other_tenant, invoice, today):
        """Other tenants see nothing."""
        assert dispatch.aging(other_tenant, as_of=today).rows == []


class TestInvoiceExports:

    def test_csv(self, tenant, payer, invoice, product):
        """CSV has one row per invoice line."""
        data = rows(dispatch.invoices_csv(tenant, payer))

        assert data[0] == [
            'Factura', 'ObraSocial', 'Paciente', 'FechaEmision', 'Estado',
            'Item', 'Cantidad', 'PrecioUnitario', 'Honorario', 'Subtotal',
        ]
        assert len(data) == 3
        gauze = next(r for r in data[1:] if r[5] == 'Gasas 10x10')
        assert gauze[0] == invoice.number
        assert gauze[1:3] == ['OSDE', 'Perez, Ana']
        assert gauze[4] == 'Emitida'
        assert gauze[6:] == ['30', '100.00', '10.00', '3300.00']

    def test_csv_date_range(self, tenant, payer, invoice, today):
        """Date range filters by issue date."""
        data = rows(dispatch.invoices_csv(tenant, payer, date_from=today + timedelta(days=1)))

        assert len(data) == 1

    def test_csv_other_tenant_payer(self, other_tenant, payer, invoice):
        """Foreign payer is not found."""
        with pytest.raises(DispatchError) as exc:
            dispatch.invoices_csv(other_tenant, payer)

        assert exc.value.code == 'PAYER_NOT_FOUND'

    def test_pdf(self, tenant, payer, invoice):
        """PDF listing is produced."""
        pdf = dispatch.invoices_pdf(tenant, payer)

        assert pdf.startswith(b'%PDF')
        assert len(pdf) > 1000

    def test_pdf_without_invoices(self, tenant, payer):
        """Empty listing still renders."""
        assert dispatch.invoices_pdf(tenant, payer).startswith(b'%PDF')


class TestPreliquidation:

    def test_authorized_realized_evidenced(self, tenant, stocked, product, other_product, flow):
        """Authorized, realized and evidenced per delivery."""
        delivered = flow.delivered((product, '30'), (other_product, '5'))

        pick_list = flow.frozen((product, '10'))
        dispatch.report_incident(tenant, pick_list.items.get(), Decimal('4'), IncidentCause.INDICATION_CHANGED)
        dispatch.pack(tenant, pick_list)
        pending = dispatch.create_delivery(tenant, pick_list)

        data = rows(dispatch.preliquidation_csv(tenant))

        assert data[0] == [
            'Entrega', 'Paciente', 'Estado', 'FechaEntrega',
            'Autorizado', 'Realizado', 'Evidenciado', 'Evidencias',
        ]
        by_number = {r[0]: r for r in data[1:]}
        assert by_number[delivered.number][1:3] == ['Perez, Ana', 'Entregada']
        assert by_number[delivered.number][3] != ''
        assert by_number[delivered.number][4:] == ['35', '35', 'SI', '1']
        assert by_number[pending.number][3:] == ['', '10', '4', 'NO', '0']

    def test_counts_each_evidence_once(self, tenant, stocked, product, flow):
        """Every evidence file is counted."""
        delivery = flow.delivered((product, '1'), evidence=3)
        dispatch.upload_evidence(tenant, delivery, make_upload())

        data = rows(dispatch.preliquidation_csv(tenant))

        assert data[1][-1] == '4'


class TestDeliveryDocument:

    def test_pdf(self, tenant, stocked, product, other_product, patient, flow):
        """Delivery document renders for a delivered delivery."""
        Patient.objects.filter(pk=patient.pk).update(address='Belgrano 455, Cordoba')
        delivery = flow.delivered((product, '30'), (other_product, '5'))

        pdf = dispatch.delivery_pdf(tenant, delivery)

        assert pdf.startswith(b'%PDF')
        assert f"Remito {delivery.number}".encode() in pdf

    def test_pdf_before_signatures(self, tenant, stocked, product, flow):
        """A packed delivery without signatures still renders."""
        delivery = flow.delivery((product, '1'))

        assert dispatch.delivery_pdf(tenant, delivery).startswith(b'%PDF')

    def test_other_tenant(self, tenant, other_tenant, stocked, product, flow):
        """Delivery of another tenant is not found."""
        delivery = flow.delivery((product, '1'))

        with pytest.raises(DispatchError) as exc:
            dispatch.delivery_pdf(other_tenant, delivery)

        assert exc.value.code == 'DELIVERY_NOT_FOUND'


class TestExportAccess:

    @pytest.fixture
    def no_billing(self, settings):
        settings.DISPATCHMAN = {
            **settings.DISPATCHMAN,
            'MODULE_ACCESS': 'dispatchman.tests.support.NoBillingModuleAccess',
        }
        reset_backends()

    @pytest.mark.parametrize('export', ['invoices_csv', 'invoices_pdf'])
    def test_invoice_exports_need_billing(self, tenant, payer, no_billing, export):
        """Invoice listings are refused without the billing module."""
        with pytest.raises(DispatchError) as exc:
            getattr(dispatch, export)(tenant, payer)

        assert exc.value.code == 'MODULE_FORBIDDEN'

    def test_preliquidation_needs_billing(self, tenant, no_billing):
        """Pre-liquidation is refused without the billing module."""
        with pytest.raises(DispatchError) as exc:
            dispatch.preliquidation_csv(tenant)

        assert exc.value.code == 'MODULE_FORBIDDEN'

    def test_delivery_document_needs_logistics_only(self, tenant, stocked, product, flow, no_billing):
        """Delivery document only needs the logistics module."""
        delivery = flow.delivery((product, '1'))

        assert dispatch.delivery_pdf(tenant, delivery).startswith(b'%PDF')
