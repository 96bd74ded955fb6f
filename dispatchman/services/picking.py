"""
Pick list state machine — DRAFT → FROZEN → PACKED.

Freezing is the reservation instant: it checks availability with the stock
levels locked and copies requested_qty into picked_qty. From then on the
list counts in StockLedger.reserved() until its delivery commits stock.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from dispatchman.exceptions import DispatchError
from dispatchman.models.enums import IncidentCause, Module, PickListStatus
from dispatchman.models.picklist import Incident, PickList, PickListItem
from dispatchman.models.reference import Warehouse
from dispatchman.services.base import audit, get_owned, require_module, to_decimal
from dispatchman.services.ledger import StockLedger

logger = logging.getLogger('dispatchman')


def _lock_pick_list(tenant, pick_list) -> PickList:
    return get_owned(PickList, tenant, pick_list, 'PICKLIST_NOT_FOUND', for_update=True)


def _get_item(tenant, item) -> PickListItem:
    pk = getattr(item, 'pk', item)
    try:
        return PickListItem.objects.get(pk=pk, pick_list__tenant=tenant)
    except (PickListItem.DoesNotExist, ValueError, TypeError):
        raise DispatchError('PICKLIST_ITEM_NOT_FOUND', id=pk) from None


class Picking:
    """Pick list transitions."""

    @classmethod
    def assign_warehouse(cls, tenant, item, warehouse, actor=None) -> PickListItem:
        """
        Choose the warehouse an item is picked from.

        Allowed while DRAFT, or while FROZEN for an item without warehouse.

        Raises:
            DispatchError('WAREHOUSE_NOT_FOUND'): Warehouse of another tenant
            DispatchError('INVALID_STATUS'): Any other state
        """
        require_module(tenant, Module.LOGISTICS)

        with transaction.atomic():
            item = _get_item(tenant, item)
            pick_list = _lock_pick_list(tenant, item.pick_list_id)
            item.refresh_from_db()
            warehouse = get_owned(Warehouse, tenant, warehouse, 'WAREHOUSE_NOT_FOUND')

            editable = pick_list.status == PickListStatus.DRAFT or (
                pick_list.status == PickListStatus.FROZEN and item.warehouse_id is None
            )
            if not editable:
                raise DispatchError(
                    'INVALID_STATUS',
                    current=pick_list.status,
                    expected=PickListStatus.DRAFT,
                )

            item.warehouse = warehouse
            item.save(update_fields=['warehouse'])
            audit(tenant, actor, 'picklist.warehouse_assigned', pick_list,
                  item_id=item.pk, warehouse_id=warehouse.pk)
            return item

    @classmethod
    def freeze(cls, tenant, pick_list, actor=None) -> PickList:
        """
        DRAFT → FROZEN. Reserve stock for every item.

        Items of the same product and warehouse are checked together.

        Raises:
            DispatchError('INVALID_STATUS'): Not DRAFT
            DispatchError('WAREHOUSE_REQUIRED'): Some item has no warehouse
            DispatchError('INSUFFICIENT_STOCK'): available < requested

        Concurrency:
            - Locks the pick list, then the StockLevel rows of its products
              in (warehouse, product) order
            - Availability is computed after the locks are held, so two
              lists competing for the same stock serialize and the second
              one sees the first one's reservation
        """
        require_module(tenant, Module.LOGISTICS)

        with transaction.atomic():
            pick_list = _lock_pick_list(tenant, pick_list)
            if pick_list.status != PickListStatus.DRAFT:
                raise DispatchError(
                    'INVALID_STATUS',
                    current=pick_list.status,
                    expected=PickListStatus.DRAFT,
                )

            items = list(pick_list.items.all())
            needed: dict[tuple[int, int], Decimal] = defaultdict(Decimal)
            for item in items:
                if item.warehouse_id is None:
                    raise DispatchError('WAREHOUSE_REQUIRED', item_id=item.pk, product_id=item.product_id)
                needed[(item.warehouse_id, item.product_id)] += item.requested_qty

            StockLedger.lock_levels(tenant, needed.keys())

            for (warehouse_id, product_id), requested in sorted(needed.items()):
                available = StockLedger.available(
                    tenant, product_id, warehouse_id, exclude_pick_list=pick_list,
                )
                if available < requested:
                    logger.warning(
                        "picklist.freeze.insufficient",
                        extra={
                            "tenant_id": tenant.pk,
                            "pick_list_id": pick_list.pk,
                            "product_id": product_id,
                            "warehouse_id": warehouse_id,
                            "available": str(available),
                            "requested": str(requested),
                        },
                    )
                    raise DispatchError(
                        'INSUFFICIENT_STOCK',
                        product_id=product_id,
                        warehouse_id=warehouse_id,
                        available=available,
                        requested=requested,
                    )

            pick_list.items.update(picked_qty=F('requested_qty'))
            pick_list.status = PickListStatus.FROZEN
            pick_list.frozen_at = timezone.now()
            pick_list.save(update_fields=['status', 'frozen_at'])
            audit(tenant, actor, 'picklist.frozen', pick_list, items=len(items))

        logger.info("picklist.frozen", extra={"tenant_id": tenant.pk, "pick_list_id": pick_list.pk})
        return pick_list

    @classmethod
    def report_incident(cls, tenant, item, new_qty, cause, description='', actor=None) -> Incident:
        """
        Lower an item's picked_qty on a FROZEN list, recording why.

        Raises:
            DispatchError('VALIDATION_ERROR'): Unknown cause
            DispatchError('INVALID_QUANTITY'): new_qty negative or not finite
            DispatchError('PICKLIST_NOT_FROZEN'): List is not FROZEN
            DispatchError('INCIDENT_REQUIRED_ONLY_FOR_REDUCTION'): new_qty >= requested_qty
        """
        require_module(tenant, Module.LOGISTICS)
        if cause not in IncidentCause.values:
            raise DispatchError('VALIDATION_ERROR', fields=['cause'], cause=cause)
        new_qty = to_decimal(new_qty, 'INVALID_QUANTITY')

        with transaction.atomic():
            item = _get_item(tenant, item)
            pick_list = _lock_pick_list(tenant, item.pick_list_id)
            item.refresh_from_db()

            if pick_list.status != PickListStatus.FROZEN:
                raise DispatchError('PICKLIST_NOT_FROZEN', current=pick_list.status)
            if new_qty >= item.requested_qty:
                raise DispatchError(
                    'INCIDENT_REQUIRED_ONLY_FOR_REDUCTION',
                    requested=item.requested_qty,
                    new_qty=new_qty,
                )

            incident = Incident.objects.create(
                tenant=tenant,
                cause=cause,
                description=(description or '').strip(),
                actor=actor,
            )
            previous = item.picked_qty
            item.picked_qty = new_qty
            item.incident = incident
            item.save(update_fields=['picked_qty', 'incident'])
            audit(tenant, actor, 'picklist.incident', pick_list,
                  item_id=item.pk, cause=cause, previous=previous, picked=new_qty)

        logger.info(
            "picklist.incident",
            extra={
                "tenant_id": tenant.pk,
                "item_id": item.pk,
                "cause": cause,
                "previous": str(previous),
                "picked": str(new_qty),
            },
        )
        return incident

    @classmethod
    def pack(cls, tenant, pick_list, actor=None) -> PickList:
        """
        FROZEN → PACKED. No stock check; the reservation stays.

        Raises:
            DispatchError('INVALID_STATUS'): Not FROZEN
        """
        require_module(tenant, Module.LOGISTICS)

        with transaction.atomic():
            pick_list = _lock_pick_list(tenant, pick_list)
            if pick_list.status != PickListStatus.FROZEN:
                raise DispatchError(
                    'INVALID_STATUS',
                    current=pick_list.status,
                    expected=PickListStatus.FROZEN,
                )
            pick_list.status = PickListStatus.PACKED
            pick_list.packed_at = timezone.now()
            pick_list.save(update_fields=['status', 'packed_at'])
            audit(tenant, actor, 'picklist.packed', pick_list)

        logger.info("picklist.packed", extra={"tenant_id": tenant.pk, "pick_list_id": pick_list.pk})
        return pick_list
