"""
Approved orders and kit templates — what will be picked.
"""

import logging

from django.db import transaction

from dispatchman.exceptions import DispatchError
from dispatchman.models.enums import Module
from dispatchman.models.order import ApprovedOrder, ApprovedOrderItem, KitTemplate, KitTemplateItem
from dispatchman.models.picklist import PickList, PickListItem
from dispatchman.models.reference import Patient, Product
from dispatchman.services.base import audit, get_owned, require_module, to_decimal

logger = logging.getLogger('dispatchman')


class Orders:
    """Order, kit and pick list generation methods."""

    @classmethod
    def create_order(cls, tenant, patient, notes='', actor=None) -> ApprovedOrder:
        require_module(tenant, Module.LOGISTICS)
        with transaction.atomic():
            patient = get_owned(Patient, tenant, patient, 'PATIENT_NOT_FOUND')
            order = ApprovedOrder.objects.create(
                tenant=tenant,
                patient=patient,
                notes=(notes or '').strip(),
                created_by=actor,
            )
            audit(tenant, actor, 'order.created', order, patient_id=patient.pk)
        logger.info("order.created", extra={"tenant_id": tenant.pk, "order_id": order.pk})
        return order

    @classmethod
    def add_order_item(cls, tenant, order, product, quantity, actor=None) -> ApprovedOrderItem:
        """
        Append an item to an order.

        Raises:
            DispatchError('ORDER_LOCKED'): The order already has a pick list
            DispatchError('INVALID_QUANTITY'): quantity <= 0
        """
        require_module(tenant, Module.LOGISTICS)
        quantity = to_decimal(quantity, 'INVALID_QUANTITY', allow_zero=False)

        with transaction.atomic():
            order = get_owned(ApprovedOrder, tenant, order, 'ORDER_NOT_FOUND', for_update=True)
            product = get_owned(Product, tenant, product, 'PRODUCT_NOT_FOUND')
            if PickList.objects.filter(order=order).exists():
                raise DispatchError('ORDER_LOCKED', order_id=order.pk)

            item = ApprovedOrderItem.objects.create(order=order, product=product, quantity=quantity)
            audit(tenant, actor, 'order.item_added', order, product_id=product.pk, quantity=quantity)
            return item

    # ══════════════════════════════════════════════════════════════
    # KITS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def create_kit_template(cls, tenant, name, items=(), description='', actor=None) -> KitTemplate:
        """
        Create a kit with its items.

        Args:
            items: Iterable of (product, quantity)
        """
        require_module(tenant, Module.LOGISTICS)
        name = (name or '').strip()
        if not name:
            raise DispatchError('VALIDATION_ERROR', fields=['name'])

        with transaction.atomic():
            kit = KitTemplate.objects.create(tenant=tenant, name=name, description=description)
            for product, quantity in items:
                cls._add_kit_item(tenant, kit, product, quantity)
            audit(tenant, actor, 'kit.created', kit, items=kit.items.count())
            return kit

    @classmethod
    def add_kit_item(cls, tenant, kit, product, quantity) -> KitTemplateItem:
        require_module(tenant, Module.LOGISTICS)
        with transaction.atomic():
            kit = get_owned(KitTemplate, tenant, kit, 'KIT_TEMPLATE_NOT_FOUND')
            return cls._add_kit_item(tenant, kit, product, quantity)

    @classmethod
    def _add_kit_item(cls, tenant, kit, product, quantity) -> KitTemplateItem:
        quantity = to_decimal(quantity, 'INVALID_QUANTITY', allow_zero=False)
        product = get_owned(Product, tenant, product, 'PRODUCT_NOT_FOUND')
        return KitTemplateItem.objects.create(kit=kit, product=product, quantity=quantity)

    @classmethod
    def apply_kit(cls, tenant, order, kit, multiplier=1, actor=None) -> list[ApprovedOrderItem]:
        """
        Append every kit item, times multiplier, to the order.

        Raises:
            DispatchError('ORDER_LOCKED'): The order already has a pick list
        """
        require_module(tenant, Module.LOGISTICS)
        multiplier = to_decimal(multiplier, 'INVALID_QUANTITY', allow_zero=False)

        with transaction.atomic():
            order = get_owned(ApprovedOrder, tenant, order, 'ORDER_NOT_FOUND', for_update=True)
            kit = get_owned(KitTemplate, tenant, kit, 'KIT_TEMPLATE_NOT_FOUND')
            if PickList.objects.filter(order=order).exists():
                raise DispatchError('ORDER_LOCKED', order_id=order.pk)

            created = [
                ApprovedOrderItem.objects.create(
                    order=order,
                    product_id=kit_item.product_id,
                    quantity=kit_item.quantity * multiplier,
                )
                for kit_item in kit.items.all()
            ]
            audit(tenant, actor, 'order.kit_applied', order, kit_id=kit.pk, multiplier=multiplier)
            return created

    # ══════════════════════════════════════════════════════════════
    # PICK LIST GENERATION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def generate_pick_list(cls, tenant, order, actor=None) -> PickList:
        """
        Create the order's DRAFT pick list, one item per order item.

        Idempotent: returns the existing list if the order already has one.

        Raises:
            DispatchError('ORDER_EMPTY'): The order has no items
        """
        require_module(tenant, Module.LOGISTICS)

        with transaction.atomic():
            order = get_owned(ApprovedOrder, tenant, order, 'ORDER_NOT_FOUND', for_update=True)
            existing = PickList.objects.filter(order=order).first()
            if existing is not None:
                return existing

            order_items = list(order.items.all())
            if not order_items:
                raise DispatchError('ORDER_EMPTY', order_id=order.pk)

            pick_list = PickList.objects.create(tenant=tenant, order=order)
            PickListItem.objects.bulk_create([
                PickListItem(
                    pick_list=pick_list,
                    product_id=item.product_id,
                    requested_qty=item.quantity,
                )
                for item in order_items
            ])
            audit(tenant, actor, 'picklist.created', pick_list, order_id=order.pk)

        logger.info(
            "picklist.created",
            extra={"tenant_id": tenant.pk, "pick_list_id": pick_list.pk, "items": len(order_items)},
        )
        return pick_list
