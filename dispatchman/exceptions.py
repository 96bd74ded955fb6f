"""
Exceptions for Dispatchman.

All errors are DispatchError with a structured code for programmatic handling.
"""

from decimal import Decimal
from typing import Any


class BaseError(Exception):
    """
    Exception with a stable code, a human message and context data.

    Subclasses provide `_default_messages` so callers only pass the code:

        raise DispatchError('INSUFFICIENT_STOCK', available=3, requested=5)
    """

    _default_messages: dict[str, str] = {}

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(f"[{code}] {self.message}")

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': self.data,
        }


# Error taxonomy. Codes not listed here ending in _NOT_FOUND are referential.
CATEGORIES = {
    'precondition': {
        'INVALID_STATUS', 'PICKLIST_NOT_FROZEN', 'WORKFLOW_NOT_TERMINAL',
        'ORDER_LOCKED', 'ORDER_EMPTY', 'IMMUTABLE_RECORD',
        'DELIVERY_NOT_READY', 'AUTHORIZATION_NOT_ACTIVE',
        'AUTHORIZATION_NOT_STARTED', 'AUTHORIZATION_EXPIRED',
    },
    'validation': {
        'VALIDATION_ERROR', 'INVALID_QUANTITY', 'INVALID_UNIT_PRICE',
        'INVALID_HONORARIUM', 'INVALID_AMOUNT', 'FILE_REQUIRED',
        'FILE_TOO_LARGE', 'UNSUPPORTED_FILE_TYPE',
        'INCIDENT_REQUIRED_ONLY_FOR_REDUCTION',
    },
    'referential': {
        'EPISODE_PATIENT_MISMATCH', 'AUTHORIZATION_MISMATCH',
        'PLAN_PAYER_MISMATCH',
    },
    'capacity': {
        'INSUFFICIENT_STOCK', 'AUTHORIZATION_LIMIT_UNITS',
        'AUTHORIZATION_LIMIT_AMOUNT',
    },
    'completeness': {
        'EVIDENCE_REQUIRED', 'AUTHORIZATION_REQUIREMENTS_PENDING',
        'CARRIER_SIGNATURE_REQUIRED', 'WAREHOUSE_REQUIRED',
        'BILLING_RULE_MISSING', 'NO_BILLABLE_ITEMS',
    },
    'conflict': {
        'DELIVERY_ALREADY_INVOICED',
    },
    'access': {
        'MODULE_FORBIDDEN',
    },
}


class DispatchError(BaseError):
    """
    Structured exception for fulfillment and billing operations.

    Usage:
        try:
            dispatch.freeze(tenant, pick_list)
        except DispatchError as e:
            if e.code == 'INSUFFICIENT_STOCK':
                print(f"Solo hay {e.available} disponible")

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages = {
        # Precondition / state
        'INVALID_STATUS': 'Estado invalido para esta operacion.',
        'PICKLIST_NOT_FROZEN': 'La picklist no esta congelada.',
        'WORKFLOW_NOT_TERMINAL': 'El episodio no esta en estado terminal.',
        'ORDER_LOCKED': 'La orden ya tiene picklist y no admite cambios.',
        'ORDER_EMPTY': 'La orden no tiene items.',
        'IMMUTABLE_RECORD': 'El registro es inmutable.',
        # Validation
        'VALIDATION_ERROR': 'Datos invalidos. Revisa los campos.',
        'INVALID_QUANTITY': 'Cantidad invalida.',
        'INVALID_UNIT_PRICE': 'Precio unitario invalido.',
        'INVALID_HONORARIUM': 'Honorario invalido.',
        'INVALID_AMOUNT': 'Monto invalido.',
        'FILE_REQUIRED': 'Tenes que adjuntar un archivo.',
        'FILE_TOO_LARGE': 'El archivo supera el tamaño permitido.',
        'UNSUPPORTED_FILE_TYPE': 'Tipo de archivo no permitido.',
        'INCIDENT_REQUIRED_ONLY_FOR_REDUCTION': 'El incidente solo aplica a reducciones de cantidad.',
        # Referential
        'NOT_FOUND': 'No se encontro el recurso solicitado.',
        'TENANT_NOT_FOUND': 'Tenant no encontrado.',
        'PATIENT_NOT_FOUND': 'Paciente no encontrado.',
        'PRODUCT_NOT_FOUND': 'Producto no encontrado.',
        'WAREHOUSE_NOT_FOUND': 'Deposito no encontrado.',
        'ORDER_NOT_FOUND': 'Orden no encontrada.',
        'KIT_TEMPLATE_NOT_FOUND': 'Kit no encontrado.',
        'PICKLIST_NOT_FOUND': 'Picklist no encontrada.',
        'PICKLIST_ITEM_NOT_FOUND': 'Item de picklist no encontrado.',
        'DELIVERY_NOT_FOUND': 'Entrega no encontrada.',
        'AUTHORIZATION_NOT_FOUND': 'Autorizacion no encontrada.',
        'REQUIREMENT_NOT_FOUND': 'Requisito no encontrado.',
        'PAYER_NOT_FOUND': 'Obra social no encontrada.',
        'PLAN_NOT_FOUND': 'Plan no encontrado.',
        'EPISODE_NOT_FOUND': 'Episodio no encontrado.',
        'STAGE_NOT_FOUND': 'Etapa de workflow no encontrada.',
        'INVOICE_NOT_FOUND': 'Factura no encontrada.',
        'BILLING_RULE_NOT_FOUND': 'Regla de facturacion no encontrada.',
        'EPISODE_PATIENT_MISMATCH': 'El episodio no corresponde al paciente.',
        'AUTHORIZATION_MISMATCH': 'Autorizacion no corresponde al paciente.',
        'PLAN_PAYER_MISMATCH': 'El plan no corresponde a la obra social.',
        # Capacity
        'INSUFFICIENT_STOCK': 'Stock insuficiente.',
        'AUTHORIZATION_LIMIT_UNITS': 'Se excede el limite de unidades.',
        'AUTHORIZATION_LIMIT_AMOUNT': 'Se excede el limite de monto.',
        # Completeness
        'EVIDENCE_REQUIRED': 'Falta evidencia obligatoria.',
        'AUTHORIZATION_REQUIREMENTS_PENDING': 'Requisitos de autorizacion pendientes.',
        'CARRIER_SIGNATURE_REQUIRED': 'Falta la firma del transportista.',
        'WAREHOUSE_REQUIRED': 'Falta asignar deposito.',
        'BILLING_RULE_MISSING': 'Faltan reglas de facturacion para algun item.',
        'NO_BILLABLE_ITEMS': 'No hay items facturables.',
        # Readiness / authorization validity
        'DELIVERY_NOT_READY': 'La entrega no esta lista para facturar.',
        'AUTHORIZATION_NOT_ACTIVE': 'Autorizacion no activa.',
        'AUTHORIZATION_NOT_STARTED': 'Autorizacion aun no vigente.',
        'AUTHORIZATION_EXPIRED': 'Autorizacion vencida.',
        # Conflict
        'DELIVERY_ALREADY_INVOICED': 'La entrega ya fue facturada.',
        # Access
        'MODULE_FORBIDDEN': 'El modulo no esta habilitado para el tenant.',
    }

    @property
    def category(self) -> str:
        """Taxonomy bucket of this error's code."""
        for name, codes in CATEGORIES.items():
            if self.code in codes:
                return name
        if self.code.endswith('NOT_FOUND'):
            return 'referential'
        return 'unknown'

    @property
    def available(self) -> Decimal:
        """Shortcut for data['available']."""
        return self.data.get('available', Decimal('0'))

    @property
    def requested(self) -> Decimal:
        """Shortcut for data['requested']."""
        return self.data.get('requested', Decimal('0'))

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'category': self.category,
            'message': self.message,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
            }
        }
