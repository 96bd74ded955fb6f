"""
Django Dispatchman — order-to-cash for home-care logistics.

Approved order → pick list → delivery → invoice, with stock reservation,
double-signature delivery, payer authorizations and reconciliation.

Uso:
    from dispatchman import dispatch, DispatchError

    dispatch.freeze(tenant, pick_list)
    dispatch.mark_delivered(tenant, delivery, "Ana Perez", "30111222", "hija")
    dispatch.generate_invoice(tenant, delivery, authorization)
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'dispatch':
        from dispatchman.service import Dispatch
        return Dispatch
    elif name == 'DispatchError':
        from dispatchman.exceptions import DispatchError
        return DispatchError
    elif name == 'StockMovement':
        from dispatchman.models.movement import StockMovement
        return StockMovement
    elif name == 'PickList':
        from dispatchman.models.picklist import PickList
        return PickList
    elif name == 'Delivery':
        from dispatchman.models.delivery import Delivery
        return Delivery
    elif name == 'Authorization':
        from dispatchman.models.authorization import Authorization
        return Authorization
    elif name == 'Invoice':
        from dispatchman.models.billing import Invoice
        return Invoice
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'dispatch',
    'DispatchError',
    'StockMovement',
    'PickList',
    'Delivery',
    'Authorization',
    'Invoice',
]

__version__ = '0.1.0'
