"""
Dispatchman Models.

- Reference: Tenant, Warehouse, Product, Patient, Episode, Payer...
- StockMovement: Immutable stock ledger; StockLevel caches its fold
- ApprovedOrder / KitTemplate: What was approved to ship
- PickList / Incident: Picking and justified shortfalls
- Delivery / DeliveryEvidence: Shipping with double signature
- Authorization: Payer permission with requirements and caps
- BillingRule / Invoice: Pricing, invoicing and reconciliation
"""

from dispatchman.models.authorization import Authorization, AuthorizationRequirement
from dispatchman.models.billing import (
    BillingRule,
    DebitNote,
    EvidenceFile,
    EvidenceSnapshot,
    Invoice,
    InvoiceItem,
    Payment,
)
from dispatchman.models.delivery import Delivery, DeliveryEvidence
from dispatchman.models.enums import (
    AuthorizationStatus,
    DeliveryStatus,
    EpisodeStatus,
    IncidentCause,
    InvoiceStatus,
    Module,
    MovementKind,
    PickListStatus,
    RequirementStatus,
)
from dispatchman.models.movement import StockLevel, StockMovement
from dispatchman.models.order import ApprovedOrder, ApprovedOrderItem, KitTemplate, KitTemplateItem
from dispatchman.models.picklist import Incident, PickList, PickListItem
from dispatchman.models.reference import (
    Episode,
    EpisodeWorkflowStage,
    Patient,
    Payer,
    PayerPlan,
    PayerRequirement,
    Product,
    Tenant,
    Warehouse,
)
from dispatchman.models.sequence import Sequence

__all__ = [
    'AuthorizationStatus',
    'DeliveryStatus',
    'EpisodeStatus',
    'IncidentCause',
    'InvoiceStatus',
    'Module',
    'MovementKind',
    'PickListStatus',
    'RequirementStatus',
    'Tenant',
    'Warehouse',
    'Product',
    'Patient',
    'Episode',
    'EpisodeWorkflowStage',
    'Payer',
    'PayerPlan',
    'PayerRequirement',
    'Sequence',
    'StockMovement',
    'StockLevel',
    'KitTemplate',
    'KitTemplateItem',
    'ApprovedOrder',
    'ApprovedOrderItem',
    'PickList',
    'PickListItem',
    'Incident',
    'Delivery',
    'DeliveryEvidence',
    'Authorization',
    'AuthorizationRequirement',
    'BillingRule',
    'Invoice',
    'InvoiceItem',
    'DebitNote',
    'Payment',
    'EvidenceFile',
    'EvidenceSnapshot',
]
