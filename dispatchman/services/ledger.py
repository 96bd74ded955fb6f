"""
Stock ledger — on-hand, reservations and movements.

Queries:
    on_hand = Σ(IN, ADJUSTMENT) − Σ(OUT)
    reserved = Σ picked_qty of FROZEN/PACKED lists not yet stock-committed
    available = on_hand − reserved

Writes go through StockMovement; state-changing methods run under
transaction.atomic() with the StockLevel rows locked.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from dispatchman.exceptions import DispatchError
from dispatchman.models.enums import Module, MovementKind
from dispatchman.models.movement import StockLevel, StockMovement
from dispatchman.models.picklist import PickListItem
from dispatchman.models.reference import Product, Warehouse
from dispatchman.services.base import get_owned, require_module, to_decimal

logger = logging.getLogger('dispatchman')

ZERO = Decimal('0')


class StockLedger:
    """Stock queries and movements."""

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def on_hand(cls, tenant, product, warehouse) -> Decimal:
        """Physical quantity at warehouse, all batches. O(batches) cache read."""
        return StockLevel.objects.for_tenant(tenant).filter(
            warehouse=warehouse, product=product,
        ).aggregate(t=Coalesce(Sum('_quantity'), ZERO))['t']

    @classmethod
    def reserved(cls, tenant, product, warehouse, exclude_pick_list=None) -> Decimal:
        """
        Quantity held by in-flight pick lists.

        Args:
            exclude_pick_list: Leave this list out (used when freezing it)
        """
        qs = PickListItem.objects.reserving().filter(
            pick_list__tenant=tenant,
            product=product,
            warehouse=warehouse,
        )
        if exclude_pick_list is not None:
            qs = qs.exclude(pick_list=exclude_pick_list)
        return qs.aggregate(t=Coalesce(Sum('picked_qty'), ZERO))['t']

    @classmethod
    def available(cls, tenant, product, warehouse, exclude_pick_list=None) -> Decimal:
        """on_hand − reserved. May be negative after manual OUT corrections."""
        return (
            cls.on_hand(tenant, product, warehouse)
            - cls.reserved(tenant, product, warehouse, exclude_pick_list)
        )

    @classmethod
    def lock_levels(cls, tenant, pairs) -> list[StockLevel]:
        """
        Lock StockLevel rows of every (warehouse_id, product_id) pair.

        Rows are locked in a fixed order so two writers touching the same
        products cannot deadlock. Must run inside transaction.atomic().
        """
        pairs = sorted(set(pairs))
        if not pairs:
            return []
        match = Q()
        for warehouse_id, product_id in pairs:
            match |= Q(warehouse_id=warehouse_id, product_id=product_id)
        return list(
            StockLevel.objects.select_for_update()
            .filter(match, tenant=tenant)
            .order_by('warehouse_id', 'product_id', 'batch')
        )

    # ══════════════════════════════════════════════════════════════
    # MOVEMENTS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def receive(cls, tenant, warehouse, product, quantity, batch='', actor=None,
                reason='Ingreso', reference_type='MANUAL', reference_id=''):
        """
        Stock entry (IN).

        Raises:
            DispatchError('INVALID_QUANTITY'): quantity <= 0 or not finite
        """
        return cls._record(
            tenant, warehouse, product, MovementKind.IN, quantity,
            batch=batch, actor=actor, reason=reason,
            reference_type=reference_type, reference_id=reference_id,
        )

    @classmethod
    def adjust(cls, tenant, warehouse, product, quantity, reason, batch='', actor=None):
        """
        Positive inventory correction (ADJUSTMENT).

        Downward corrections are OUT movements: use issue() with the reason.

        Raises:
            DispatchError('VALIDATION_ERROR'): reason is empty
        """
        if not (reason or '').strip():
            raise DispatchError('VALIDATION_ERROR', fields=['reason'])
        return cls._record(
            tenant, warehouse, product, MovementKind.ADJUSTMENT, quantity,
            batch=batch, actor=actor, reason=f"Ajuste: {reason.strip()}",
            reference_type='MANUAL',
        )

    @classmethod
    def issue(cls, tenant, warehouse, product, quantity, batch='', actor=None,
              reason='Egreso', reference_type='MANUAL', reference_id=''):
        """
        Manual stock exit (OUT).

        Cannot take stock that is reserved by a pick list.

        Raises:
            DispatchError('INSUFFICIENT_STOCK'): quantity > unreserved stock
        """
        return cls._record(
            tenant, warehouse, product, MovementKind.OUT, quantity,
            batch=batch, actor=actor, reason=reason,
            reference_type=reference_type, reference_id=reference_id,
        )

    @classmethod
    def consume(cls, tenant, warehouse, product, quantity, visit_id, actor=None, batch=''):
        """Stock used during a home visit (OUT referencing the visit)."""
        return cls.issue(
            tenant, warehouse, product, quantity, batch=batch, actor=actor,
            reason='Consumo en visita', reference_type='VISIT', reference_id=str(visit_id),
        )

    @classmethod
    def commit_delivery_item(cls, tenant, item, delivery, actor=None) -> StockMovement:
        """
        OUT movement of a delivered pick list item.

        No availability check: the quantity is the item's own reservation.
        Caller holds the transaction and the pick list lock.
        """
        return StockMovement.objects.create(
            tenant=tenant,
            warehouse_id=item.warehouse_id,
            product_id=item.product_id,
            kind=MovementKind.OUT,
            quantity=item.picked_qty,
            reference_type='DELIVERY',
            reference_id=str(delivery.pk),
            reason=f"Entrega {delivery.number}",
            actor=actor,
        )

    @classmethod
    def _record(cls, tenant, warehouse, product, kind, quantity, batch='', actor=None,
                reason='', reference_type='', reference_id=''):
        require_module(tenant, Module.INVENTORY)
        quantity = to_decimal(quantity, 'INVALID_QUANTITY', allow_zero=False)

        with transaction.atomic():
            warehouse = get_owned(Warehouse, tenant, warehouse, 'WAREHOUSE_NOT_FOUND')
            product = get_owned(Product, tenant, product, 'PRODUCT_NOT_FOUND')

            StockLevel.objects.get_or_create(
                tenant=tenant, warehouse=warehouse, product=product, batch=batch,
            )
            cls.lock_levels(tenant, [(warehouse.pk, product.pk)])

            if kind == MovementKind.OUT:
                batch_on_hand = StockLevel.objects.get(
                    tenant=tenant, warehouse=warehouse, product=product, batch=batch,
                ).quantity
                free = min(cls.available(tenant, product, warehouse), batch_on_hand)
                if free < quantity:
                    logger.warning(
                        "stock.issue.insufficient",
                        extra={
                            "tenant_id": tenant.pk,
                            "product_id": product.pk,
                            "warehouse_id": warehouse.pk,
                            "available": str(free),
                            "requested": str(quantity),
                        },
                    )
                    raise DispatchError('INSUFFICIENT_STOCK', available=free, requested=quantity)

            movement = StockMovement.objects.create(
                tenant=tenant,
                warehouse=warehouse,
                product=product,
                batch=batch,
                kind=kind,
                quantity=quantity,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
                actor=actor,
            )
            logger.info(
                "stock.movement",
                extra={
                    "tenant_id": tenant.pk,
                    "kind": kind,
                    "product_id": product.pk,
                    "warehouse_id": warehouse.pk,
                    "qty": str(quantity),
                    "reason": reason,
                },
            )
            return movement
