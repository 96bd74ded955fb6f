"""
Tests for the admin integration and management commands.
"""

from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.urls import reverse

from dispatchman import dispatch
from dispatchman.models import Authorization, AuthorizationStatus, Invoice, InvoiceStatus, StockLevel


pytestmark = pytest.mark.django_db


@pytest.fixture
def lapsed(tenant, payer, patient, today):
    """Authorization whose end date passed yesterday but still ACTIVE."""
    authorization = dispatch.create_authorization(
        tenant, payer, patient, 'AUT-VIEJA',
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=1),
    )
    Authorization.objects.filter(pk=authorization.pk).update(end_date=today - timedelta(days=1))
    return authorization


class TestExpireAuthorizationsCommand:

    def test_expires(self, tenant, lapsed, authorization):
        """Expires lapsed authorizations of the given tenant only."""
        out = StringIO()

        call_command('expire_authorizations', '--tenant', 'cuidar', stdout=out)

        assert 'cuidar: AUT-VIEJA' in out.getvalue()
        assert '1 autorizacion(es) vencida(s)' in out.getvalue()
        assert Authorization.objects.get(pk=lapsed.pk).status == AuthorizationStatus.EXPIRED
        assert Authorization.objects.get(pk=authorization.pk).status == AuthorizationStatus.ACTIVE

    def test_dry_run(self, tenant, lapsed):
        """--dry-run reports without writing."""
        out = StringIO()

        call_command('expire_authorizations', '--dry-run', stdout=out)

        assert '1 autorizacion(es) venceria(n)' in out.getvalue()
        assert Authorization.objects.get(pk=lapsed.pk).status == AuthorizationStatus.ACTIVE

    def test_unknown_tenant(self, tenant):
        """Unknown tenant slug is a CommandError."""
        with pytest.raises(CommandError):
            call_command('expire_authorizations', '--tenant', 'no-existe', stdout=StringIO())


class TestAdmin:

    @pytest.mark.parametrize('model', [
        'stocklevel', 'stockmovement', 'picklist', 'delivery', 'authorization', 'invoice', 'billingrule',
    ])
    def test_changelists_render(self, admin_client, stocked, model):
        """Changelist pages render for superusers."""
        response = admin_client.get(reverse(f'admin:dispatchman_{model}_changelist'))

        assert response.status_code == 200

    def test_ledger_cannot_be_added(self, admin_client):
        """Movements cannot be added through the admin."""
        response = admin_client.get(reverse('admin:dispatchman_stockmovement_add'))

        assert response.status_code == 403

    def test_recalculate_levels_action(self, admin_client, tenant, stocked, product):
        """Recalculate action re-folds the cache from movements."""
        level = StockLevel.objects.get(tenant=tenant, warehouse=stocked, product=product)
        StockLevel.objects.filter(pk=level.pk).update(_quantity=Decimal('7'))

        response = admin_client.post(
            reverse('admin:dispatchman_stocklevel_changelist'),
            {'action': 'recalculate_levels', '_selected_action': [level.pk]},
        )

        assert response.status_code == 302
        level.refresh_from_db()
        assert level.quantity == Decimal('100')

    def test_reconcile_invoices_action(self, admin_client, tenant, stocked, product, flow, authorization, rules):
        """Reconcile action re-derives invoice status."""
        invoice = dispatch.generate_invoice(tenant, flow.delivered((product, '1')), authorization)
        dispatch.add_payment(tenant, invoice, Decimal('110'))
        Invoice.objects.filter(pk=invoice.pk).update(status=InvoiceStatus.ISSUED)

        response = admin_client.post(
            reverse('admin:dispatchman_invoice_changelist'),
            {'action': 'reconcile_invoices', '_selected_action': [invoice.pk]},
        )

        assert response.status_code == 302
        assert Invoice.objects.get(pk=invoice.pk).status == InvoiceStatus.PAID
