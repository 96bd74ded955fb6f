"""
Dispatchman Admin.

Reference entities are editable. Everything with a lifecycle is read-only:
stock, pick lists, deliveries, authorizations and invoices only change
through the dispatch service.
"""

import logging

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from dispatchman.exceptions import DispatchError
from dispatchman.models import (
    ApprovedOrder,
    ApprovedOrderItem,
    Authorization,
    AuthorizationRequirement,
    BillingRule,
    DebitNote,
    Delivery,
    DeliveryEvidence,
    Episode,
    EpisodeWorkflowStage,
    Incident,
    Invoice,
    InvoiceItem,
    KitTemplate,
    KitTemplateItem,
    Patient,
    Payer,
    PayerPlan,
    PayerRequirement,
    Payment,
    PickList,
    PickListItem,
    Product,
    StockLevel,
    StockMovement,
    Tenant,
    Warehouse,
)

logger = logging.getLogger(__name__)


class ReadOnlyAdminMixin:
    """No add, change or delete from the admin."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ReadOnlyInline(ReadOnlyAdminMixin, admin.TabularInline):
    extra = 0
    can_delete = False


# =========================================================================
# REFERENCE ENTITIES (editable)
# =========================================================================

@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['slug', 'name', 'created_at']
    search_fields = ['slug', 'name']


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'location']
    list_filter = ['tenant']
    search_fields = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'unit', 'tenant']
    list_filter = ['tenant']
    search_fields = ['sku', 'name']


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'dni', 'tenant']
    list_filter = ['tenant']
    search_fields = ['last_name', 'first_name', 'dni']


@admin.register(EpisodeWorkflowStage)
class EpisodeWorkflowStageAdmin(admin.ModelAdmin):
    list_display = ['name', 'order', 'is_terminal', 'tenant']
    list_filter = ['tenant', 'is_terminal']


@admin.register(Episode)
class EpisodeAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Episode admin — read-only. Stage and discharge go through the service."""

    list_display = ['patient', 'status', 'workflow_stage', 'start_date', 'end_date']
    list_filter = ['tenant', 'status']


class PayerPlanInline(admin.TabularInline):
    model = PayerPlan
    extra = 0
    fields = ['name', 'tenant']


class PayerRequirementInline(admin.TabularInline):
    model = PayerRequirement
    extra = 0
    fields = ['name', 'is_required', 'tenant']


@admin.register(Payer)
class PayerAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant']
    list_filter = ['tenant']
    search_fields = ['name']
    inlines = [PayerPlanInline, PayerRequirementInline]


@admin.register(BillingRule)
class BillingRuleAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Billing rule admin — read-only. Use dispatch.upsert_billing_rule()."""

    list_display = ['payer', 'plan', 'product', 'unit_price', 'honorarium', 'updated_at']
    list_filter = ['tenant', 'payer']
    search_fields = ['product__name', 'product__sku']


# =========================================================================
# STOCK (read-only)
# =========================================================================

@admin.register(StockLevel)
class StockLevelAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Stock level admin — read-only cache with recalculate action."""

    list_display = ['product', 'warehouse', 'batch', 'quantity_display', 'updated_at']
    list_filter = ['tenant', 'warehouse']
    search_fields = ['product__name', 'product__sku', 'batch']
    actions = ['recalculate_levels']

    @admin.display(description=_('Cantidad'))
    def quantity_display(self, obj):
        return obj.quantity

    @admin.action(description=_('Recalcular desde movimientos'))
    def recalculate_levels(self, request, queryset):
        count = 0
        for level in queryset:
            before = level.quantity
            if level.recalculate() != before:
                count += 1
        self.message_user(request, _('{count} nivel(es) corregido(s).').format(count=count))


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Movement admin — read-only. Immutable ledger."""

    list_display = ['created_at', 'kind', 'product', 'warehouse', 'quantity', 'reason', 'actor']
    list_filter = ['tenant', 'kind', 'warehouse']
    search_fields = ['reason', 'reference_id', 'product__sku']
    date_hierarchy = 'created_at'


# =========================================================================
# ORDERS & PICKING (read-only)
# =========================================================================

class KitTemplateItemInline(admin.TabularInline):
    model = KitTemplateItem
    extra = 0


@admin.register(KitTemplate)
class KitTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'created_at']
    list_filter = ['tenant']
    inlines = [KitTemplateItemInline]


class ApprovedOrderItemInline(ReadOnlyInline):
    model = ApprovedOrderItem


@admin.register(ApprovedOrder)
class ApprovedOrderAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['id', 'patient', 'created_at', 'created_by']
    list_filter = ['tenant']
    inlines = [ApprovedOrderItemInline]


class PickListItemInline(ReadOnlyInline):
    model = PickListItem
    fields = ['product', 'warehouse', 'requested_qty', 'picked_qty', 'incident']


@admin.register(PickList)
class PickListAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['id', 'order', 'status', 'frozen_at', 'packed_at', 'stock_committed_at']
    list_filter = ['tenant', 'status']
    inlines = [PickListItemInline]


@admin.register(Incident)
class IncidentAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['created_at', 'cause', 'description', 'actor']
    list_filter = ['tenant', 'cause']


# =========================================================================
# DELIVERIES (read-only)
# =========================================================================

class DeliveryEvidenceInline(ReadOnlyInline):
    model = DeliveryEvidence
    fields = ['file_name', 'mime_type', 'size', 'uploaded_by', 'created_at']


@admin.register(Delivery)
class DeliveryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['number', 'status', 'carrier_name', 'receiver_name', 'delivered_at']
    list_filter = ['tenant', 'status']
    search_fields = ['number', 'carrier_name', 'receiver_name']
    inlines = [DeliveryEvidenceInline]


# =========================================================================
# AUTHORIZATIONS (read-only)
# =========================================================================

class AuthorizationRequirementInline(ReadOnlyInline):
    model = AuthorizationRequirement
    fields = ['name', 'is_required', 'status', 'file_name', 'submitted_at']


@admin.register(Authorization)
class AuthorizationAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['number', 'payer', 'plan', 'patient', 'status', 'start_date', 'end_date']
    list_filter = ['tenant', 'status', 'payer']
    search_fields = ['number', 'patient__last_name', 'patient__dni']
    inlines = [AuthorizationRequirementInline]


# =========================================================================
# INVOICES (read-only with reconcile action)
# =========================================================================

class InvoiceItemInline(ReadOnlyInline):
    model = InvoiceItem
    fields = ['description', 'quantity', 'unit_price', 'honorarium', 'total', 'delivery']


class DebitNoteInline(ReadOnlyInline):
    model = DebitNote
    fields = ['amount', 'reason', 'actor', 'created_at']


class PaymentInline(ReadOnlyInline):
    model = Payment
    fields = ['amount', 'method', 'reference', 'paid_at']


@admin.register(Invoice)
class InvoiceAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['number', 'payer', 'patient', 'status', 'total_amount', 'issued_at', 'due_date']
    list_filter = ['tenant', 'status', 'payer']
    search_fields = ['number']
    date_hierarchy = 'issued_at'
    inlines = [InvoiceItemInline, DebitNoteInline, PaymentInline]
    actions = ['reconcile_invoices']

    @admin.action(description=_('Reconciliar facturas seleccionadas'))
    def reconcile_invoices(self, request, queryset):
        from dispatchman import dispatch

        count = 0
        for invoice in queryset.select_related('tenant'):
            try:
                dispatch.reconcile(invoice.tenant, invoice)
                count += 1
            except DispatchError as exc:
                logger.warning("reconcile_invoices: failed for %s: %s", invoice.number, exc)

        self.message_user(request, _('{count} factura(s) reconciliada(s).').format(count=count))
