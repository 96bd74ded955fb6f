"""
Dispatch Service — The single public interface for fulfillment and billing.

Usage:
    from dispatchman import dispatch, DispatchError

    pick_list = dispatch.generate_pick_list(tenant, order)
    dispatch.freeze(tenant, pick_list)
    dispatch.pack(tenant, pick_list)
    delivery = dispatch.create_delivery(tenant, pick_list)
    ...
    invoice = dispatch.generate_invoice(tenant, delivery, authorization)

Parameter convention: (tenant, subject, ...). tenant is always explicit;
every lookup is filtered by it and rows of other tenants are reported as
*_NOT_FOUND.
"""

from dispatchman.services import (
    Authorizations,
    BillingRules,
    Deliveries,
    Episodes,
    Exports,
    Invoicing,
    Orders,
    Picking,
    Reports,
    Sequences,
    StockLedger,
)


class Dispatch(
    StockLedger,
    Orders,
    Picking,
    Deliveries,
    Authorizations,
    BillingRules,
    Invoicing,
    Episodes,
    Reports,
    Exports,
    Sequences,
):
    """
    Single interface for all operations.

    IMPORTANT: All state-changing methods run in one atomic transaction
    and either complete or raise DispatchError leaving nothing written.
    See each method's docstring for its locks.
    """
