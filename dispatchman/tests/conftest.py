"""
Pytest fixtures for Dispatchman tests.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from dispatchman import dispatch
from dispatchman.adapters import reset_backends
from dispatchman.models import (
    Patient,
    Payer,
    PayerPlan,
    Product,
    Tenant,
    Warehouse,
)
from dispatchman.tests.support import RecordingAuditSink, make_upload


User = get_user_model()


@pytest.fixture(autouse=True)
def clean_backends():
    """Fresh collaborators and an empty audit log for every test."""
    reset_backends()
    RecordingAuditSink.events.clear()
    yield
    reset_backends()


@pytest.fixture
def user(db):
    return User.objects.create_user(username='operador', password='testpass123')


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(slug='cuidar', name='Cuidar Domiciliaria')


@pytest.fixture
def other_tenant(db):
    return Tenant.objects.create(slug='otra', name='Otra Empresa')


@pytest.fixture
def warehouse(tenant):
    return Warehouse.objects.create(tenant=tenant, name='Central', location='Cordoba 1234')


@pytest.fixture
def second_warehouse(tenant):
    return Warehouse.objects.create(tenant=tenant, name='Sucursal Norte')


@pytest.fixture
def product(tenant):
    """Gauze pads."""
    return Product.objects.create(tenant=tenant, sku='GAS-10', name='Gasas 10x10')


@pytest.fixture
def other_product(tenant):
    return Product.objects.create(tenant=tenant, sku='JER-05', name='Jeringa 5ml')


@pytest.fixture
def patient(tenant):
    return Patient.objects.create(tenant=tenant, first_name='Ana', last_name='Perez', dni='30111222')


@pytest.fixture
def other_patient(tenant):
    return Patient.objects.create(tenant=tenant, first_name='Luis', last_name='Gomez', dni='28999888')


@pytest.fixture
def payer(tenant):
    return Payer.objects.create(tenant=tenant, name='OSDE')


@pytest.fixture
def plan(tenant, payer):
    return PayerPlan.objects.create(tenant=tenant, payer=payer, name='210')


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def stocked(tenant, warehouse, product, other_product):
    """100 units of each product in the central warehouse."""
    dispatch.receive(tenant, warehouse, product, Decimal('100'))
    dispatch.receive(tenant, warehouse, other_product, Decimal('100'))
    return warehouse


@pytest.fixture
def rules(tenant, payer, product, other_product):
    """Payer-general rules: gauze 100 + 10, syringe 50 + 0."""
    return [
        dispatch.upsert_billing_rule(tenant, payer, product, Decimal('100'), Decimal('10')),
        dispatch.upsert_billing_rule(tenant, payer, other_product, Decimal('50')),
    ]


@pytest.fixture
def authorization(tenant, payer, patient, today):
    """ACTIVE authorization (payer has no requirements), valid ±30 days."""
    return dispatch.create_authorization(
        tenant, payer, patient, 'AUT-0001',
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=30),
    )


class Flow:
    """Drives an order through pick list and delivery states."""

    def __init__(self, tenant, warehouse, patient, actor):
        self.tenant = tenant
        self.warehouse = warehouse
        self.patient = patient
        self.actor = actor

    def order(self, *lines, patient=None):
        order = dispatch.create_order(self.tenant, patient or self.patient, actor=self.actor)
        for product, qty in lines:
            dispatch.add_order_item(self.tenant, order, product, Decimal(qty))
        return order

    def draft(self, *lines, patient=None):
        order = self.order(*lines, patient=patient)
        pick_list = dispatch.generate_pick_list(self.tenant, order, actor=self.actor)
        for item in pick_list.items.all():
            dispatch.assign_warehouse(self.tenant, item, self.warehouse)
        return pick_list

    def frozen(self, *lines, patient=None):
        pick_list = self.draft(*lines, patient=patient)
        return dispatch.freeze(self.tenant, pick_list, actor=self.actor)

    def packed(self, *lines, patient=None):
        pick_list = self.frozen(*lines, patient=patient)
        return dispatch.pack(self.tenant, pick_list, actor=self.actor)

    def delivery(self, *lines, patient=None):
        pick_list = self.packed(*lines, patient=patient)
        return dispatch.create_delivery(self.tenant, pick_list, actor=self.actor)

    def in_transit(self, *lines, patient=None):
        delivery = self.delivery(*lines, patient=patient)
        return dispatch.mark_in_transit(self.tenant, delivery, 'Juan Chofer', '25000111')

    def delivered(self, *lines, patient=None, evidence=1):
        delivery = self.in_transit(*lines, patient=patient)
        for _ in range(evidence):
            dispatch.upload_evidence(self.tenant, delivery, make_upload(), actor=self.actor)
        return dispatch.mark_delivered(self.tenant, delivery, 'Marta Perez', '31222333', 'hija')


@pytest.fixture
def flow(tenant, warehouse, patient, user):
    return Flow(tenant, warehouse, patient, user)
