"""
Delivery state machine — PACKED → IN_TRANSIT → DELIVERED → CLOSED.

Marking a delivery DELIVERED commits stock: one OUT movement per picked
item, then PickList.stock_committed_at, which releases the reservation.
This happens once per pick list, guarded under the pick list row lock.
"""

import logging

from django.db import transaction
from django.utils import timezone

from dispatchman.conf import dispatchman_settings
from dispatchman.exceptions import DispatchError
from dispatchman.models.delivery import Delivery, DeliveryEvidence
from dispatchman.models.enums import DeliveryStatus, Module, PickListStatus
from dispatchman.models.picklist import PickList
from dispatchman.services.base import audit, get_owned, require_module, require_text, store_upload
from dispatchman.services.ledger import StockLedger
from dispatchman.services.sequences import Sequences

logger = logging.getLogger('dispatchman')


def _lock_delivery(tenant, delivery) -> Delivery:
    return get_owned(Delivery, tenant, delivery, 'DELIVERY_NOT_FOUND', for_update=True)


def _expect(delivery: Delivery, expected: str) -> None:
    if delivery.status != expected:
        raise DispatchError('INVALID_STATUS', current=delivery.status, expected=expected)


class Deliveries:
    """Delivery transitions and evidence."""

    @classmethod
    def create_delivery(cls, tenant, pick_list, actor=None) -> Delivery:
        """
        Create the delivery of a PACKED pick list.

        Idempotent: a second call for the same list returns the first
        delivery unchanged.

        Raises:
            DispatchError('INVALID_STATUS'): Pick list is not PACKED
        """
        require_module(tenant, Module.LOGISTICS)

        pick_list = get_owned(PickList, tenant, pick_list, 'PICKLIST_NOT_FOUND')
        existing = Delivery.objects.filter(pick_list=pick_list).first()
        if existing is not None:
            return existing
        if pick_list.status != PickListStatus.PACKED:
            raise DispatchError('INVALID_STATUS', current=pick_list.status, expected=PickListStatus.PACKED)

        # Allocated before the write: numbers are never handed back
        number = Sequences.next_number(tenant, 'delivery', dispatchman_settings.DELIVERY_NUMBER_PREFIX)

        with transaction.atomic():
            pick_list = get_owned(PickList, tenant, pick_list, 'PICKLIST_NOT_FOUND', for_update=True)
            existing = Delivery.objects.filter(pick_list=pick_list).first()
            if existing is not None:
                return existing
            if pick_list.status != PickListStatus.PACKED:
                raise DispatchError('INVALID_STATUS', current=pick_list.status, expected=PickListStatus.PACKED)

            delivery = Delivery.objects.create(
                tenant=tenant,
                pick_list=pick_list,
                order_id=pick_list.order_id,
                number=number,
            )
            audit(tenant, actor, 'delivery.created', delivery, number=number, pick_list_id=pick_list.pk)

        logger.info("delivery.created", extra={"tenant_id": tenant.pk, "number": number})
        return delivery

    @classmethod
    def upload_evidence(cls, tenant, delivery, upload, actor=None) -> DeliveryEvidence:
        """
        Store a proof-of-delivery file and append its evidence row.

        The file is written to storage before the database; a storage
        failure leaves nothing behind in the database.

        Raises:
            DispatchError('FILE_REQUIRED' | 'FILE_TOO_LARGE' | 'UNSUPPORTED_FILE_TYPE')
            DispatchError('INVALID_STATUS'): Delivery is CLOSED
        """
        require_module(tenant, Module.LOGISTICS)
        delivery = get_owned(Delivery, tenant, delivery, 'DELIVERY_NOT_FOUND')
        if delivery.status == DeliveryStatus.CLOSED:
            raise DispatchError('INVALID_STATUS', current=delivery.status)

        stored = store_upload(f"tenants/{tenant.pk}/deliveries/{delivery.number}", upload)

        with transaction.atomic():
            delivery = _lock_delivery(tenant, delivery)
            if delivery.status == DeliveryStatus.CLOSED:
                raise DispatchError('INVALID_STATUS', current=delivery.status)
            evidence = DeliveryEvidence.objects.create(
                delivery=delivery,
                file_key=stored.key,
                file_name=stored.name,
                mime_type=stored.mime_type,
                size=stored.size,
                uploaded_by=actor,
            )
            audit(tenant, actor, 'delivery.evidence_uploaded', delivery, key=stored.key)
            return evidence

    @classmethod
    def mark_in_transit(cls, tenant, delivery, carrier_name, carrier_dni, actor=None) -> Delivery:
        """
        PACKED → IN_TRANSIT with the carrier's signature.

        Raises:
            DispatchError('VALIDATION_ERROR'): Missing carrier name or DNI
            DispatchError('INVALID_STATUS'): Not PACKED
        """
        require_module(tenant, Module.LOGISTICS)
        carrier = require_text(carrier_name=carrier_name, carrier_dni=carrier_dni)

        with transaction.atomic():
            delivery = _lock_delivery(tenant, delivery)
            _expect(delivery, DeliveryStatus.PACKED)

            delivery.carrier_name = carrier['carrier_name']
            delivery.carrier_dni = carrier['carrier_dni']
            delivery.carrier_signed_at = timezone.now()
            delivery.status = DeliveryStatus.IN_TRANSIT
            delivery.save(update_fields=['carrier_name', 'carrier_dni', 'carrier_signed_at', 'status'])
            audit(tenant, actor, 'delivery.in_transit', delivery, carrier=delivery.carrier_name)

        logger.info("delivery.in_transit", extra={"tenant_id": tenant.pk, "number": delivery.number})
        return delivery

    @classmethod
    def mark_delivered(cls, tenant, delivery, receiver_name, receiver_dni, receiver_relation,
                       actor=None) -> Delivery:
        """
        IN_TRANSIT → DELIVERED with the receiver's signature. Commits stock.

        Raises:
            DispatchError('VALIDATION_ERROR'): Missing receiver data
            DispatchError('INVALID_STATUS'): Not IN_TRANSIT
            DispatchError('CARRIER_SIGNATURE_REQUIRED'): No carrier signature
            DispatchError('EVIDENCE_REQUIRED'): Fewer files than DELIVERY_MIN_EVIDENCE
            DispatchError('WAREHOUSE_REQUIRED'): A picked item has no warehouse

        Concurrency:
            - Locks the delivery, then its pick list
            - OUT movements are written only while stock_committed_at is
              null; all of them and the timestamp commit together or not
              at all
        """
        require_module(tenant, Module.LOGISTICS)
        receiver = require_text(
            receiver_name=receiver_name,
            receiver_dni=receiver_dni,
            receiver_relation=receiver_relation,
        )

        with transaction.atomic():
            delivery = _lock_delivery(tenant, delivery)
            _expect(delivery, DeliveryStatus.IN_TRANSIT)

            if not delivery.has_carrier_signature:
                raise DispatchError('CARRIER_SIGNATURE_REQUIRED')

            minimum = dispatchman_settings.DELIVERY_MIN_EVIDENCE
            count = delivery.evidence.count()
            if count < minimum:
                raise DispatchError('EVIDENCE_REQUIRED', count=count, minimum=minimum)

            pick_list = get_owned(PickList, tenant, delivery.pick_list_id, 'PICKLIST_NOT_FOUND', for_update=True)
            movements = 0
            if pick_list.stock_committed_at is None:
                for item in pick_list.items.all():
                    if item.picked_qty <= 0:
                        continue
                    if item.warehouse_id is None:
                        raise DispatchError('WAREHOUSE_REQUIRED', item_id=item.pk, product_id=item.product_id)
                    StockLedger.commit_delivery_item(tenant, item, delivery, actor=actor)
                    movements += 1
                pick_list.stock_committed_at = timezone.now()
                pick_list.save(update_fields=['stock_committed_at'])

            now = timezone.now()
            delivery.receiver_name = receiver['receiver_name']
            delivery.receiver_dni = receiver['receiver_dni']
            delivery.receiver_relation = receiver['receiver_relation']
            delivery.receiver_signed_at = now
            delivery.delivered_at = now
            delivery.status = DeliveryStatus.DELIVERED
            delivery.save(update_fields=[
                'receiver_name', 'receiver_dni', 'receiver_relation',
                'receiver_signed_at', 'delivered_at', 'status',
            ])
            audit(tenant, actor, 'delivery.delivered', delivery,
                  receiver=delivery.receiver_name, movements=movements)

        logger.info(
            "delivery.delivered",
            extra={"tenant_id": tenant.pk, "number": delivery.number, "movements": movements},
        )
        return delivery

    @classmethod
    def close_delivery(cls, tenant, delivery, actor=None) -> Delivery:
        """
        DELIVERED → CLOSED.

        Raises:
            DispatchError('INVALID_STATUS'): Not DELIVERED
        """
        require_module(tenant, Module.LOGISTICS)

        with transaction.atomic():
            delivery = _lock_delivery(tenant, delivery)
            _expect(delivery, DeliveryStatus.DELIVERED)
            delivery.status = DeliveryStatus.CLOSED
            delivery.closed_at = timezone.now()
            delivery.save(update_fields=['status', 'closed_at'])
            audit(tenant, actor, 'delivery.closed', delivery)

        logger.info("delivery.closed", extra={"tenant_id": tenant.pk, "number": delivery.number})
        return delivery
