"""
Dispatch services — one class of classmethods per concern.

    from dispatchman.services import StockLedger, Picking, Deliveries, Invoicing
"""

from dispatchman.services.authorizations import Authorizations
from dispatchman.services.deliveries import Deliveries
from dispatchman.services.episodes import Episodes
from dispatchman.services.exports import Exports
from dispatchman.services.invoicing import Invoicing
from dispatchman.services.ledger import StockLedger
from dispatchman.services.orders import Orders
from dispatchman.services.picking import Picking
from dispatchman.services.reports import Reports
from dispatchman.services.rules import BillingRules
from dispatchman.services.sequences import Sequences

__all__ = [
    'StockLedger',
    'Orders',
    'Picking',
    'Deliveries',
    'Authorizations',
    'BillingRules',
    'Invoicing',
    'Episodes',
    'Reports',
    'Exports',
    'Sequences',
]
