"""
Enums for Dispatchman models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class MovementKind(models.TextChoices):
    """
    Direction of a stock movement.

    IN and ADJUSTMENT add to on-hand, OUT subtracts. Quantities are always
    positive; the kind carries the sign.
    """
    IN = 'IN', _('Ingreso')
    OUT = 'OUT', _('Egreso')
    ADJUSTMENT = 'ADJUSTMENT', _('Ajuste')


class PickListStatus(models.TextChoices):
    """Pick list lifecycle status."""
    DRAFT = 'DRAFT', _('Borrador')      # Editable, no reservation
    FROZEN = 'FROZEN', _('Congelada')   # Stock reserved via pickedQty
    PACKED = 'PACKED', _('Armada')      # Ready for delivery creation


class DeliveryStatus(models.TextChoices):
    """Delivery lifecycle status. Strictly forward."""
    PACKED = 'PACKED', _('Armada')
    IN_TRANSIT = 'IN_TRANSIT', _('En transito')
    DELIVERED = 'DELIVERED', _('Entregada')
    CLOSED = 'CLOSED', _('Cerrada')
    INCIDENT = 'INCIDENT', _('Con incidente')


class IncidentCause(models.TextChoices):
    """Why a picked quantity is lower than requested."""
    OUT_OF_STOCK = 'SIN_STOCK', _('Sin stock')
    INDICATION_CHANGED = 'CAMBIO_INDICACION', _('Cambio de indicacion')
    HOME_REFUSAL = 'RECHAZO_DOMICILIO', _('Rechazo en domicilio')
    NON_COMPLIANCE = 'INCUMPLIMIENTO', _('Incumplimiento')


class AuthorizationStatus(models.TextChoices):
    """Authorization lifecycle status."""
    PENDING = 'PENDING', _('Pendiente')
    ACTIVE = 'ACTIVE', _('Activa')
    EXPIRED = 'EXPIRED', _('Vencida')
    DENIED = 'DENIED', _('Denegada')
    SUSPENDED = 'SUSPENDED', _('Suspendida')


class RequirementStatus(models.TextChoices):
    """Status of one required document of an authorization."""
    PENDING = 'PENDING', _('Pendiente')
    SUBMITTED = 'SUBMITTED', _('Presentado')
    APPROVED = 'APPROVED', _('Aprobado')
    REJECTED = 'REJECTED', _('Rechazado')

    @classmethod
    def cleared(cls) -> list[str]:
        """Statuses that satisfy a required document."""
        return [cls.SUBMITTED, cls.APPROVED]


class InvoiceStatus(models.TextChoices):
    """Invoice status, derived by reconciliation (except CANCELLED)."""
    ISSUED = 'ISSUED', _('Emitida')
    PARTIAL = 'PARTIAL', _('Pago parcial')
    PAID = 'PAID', _('Pagada')
    CANCELLED = 'CANCELLED', _('Anulada')


class EpisodeStatus(models.TextChoices):
    """Care episode status."""
    ACTIVE = 'ACTIVE', _('Activo')
    DISCHARGED = 'DISCHARGED', _('Alta')
    CANCELLED = 'CANCELLED', _('Cancelado')


class Module(models.TextChoices):
    """Tenant modules gated by the entitlement collaborator."""
    INVENTORY = 'INVENTORY', _('Inventario')
    LOGISTICS = 'LOGISTICS', _('Logistica')
    AUTHORIZATIONS = 'AUTHORIZATIONS', _('Autorizaciones')
    BILLING = 'BILLING', _('Facturacion')
