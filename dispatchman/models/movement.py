"""
StockMovement and StockLevel — the stock ledger.

StockMovement is the source of truth: an append-only log of facts.
StockLevel is a cache of the fold, kept in step by StockMovement.save().
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.db.models import Case, F, Sum, Value, When
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from dispatchman.models.enums import MovementKind
from dispatchman.models.immutable import ImmutableModel
from dispatchman.models.reference import TenantQuerySet

logger = logging.getLogger('dispatchman')


class MovementQuerySet(TenantQuerySet):

    def at(self, warehouse, product, batch=None):
        qs = self.filter(warehouse=warehouse, product=product)
        if batch is not None:
            qs = qs.filter(batch=batch)
        return qs

    def on_hand(self) -> Decimal:
        """Σ(IN, ADJUSTMENT) − Σ(OUT) over the current queryset."""
        return self.aggregate(
            total=Coalesce(
                Sum(
                    Case(
                        When(kind=MovementKind.OUT, then=-F('quantity')),
                        default=F('quantity'),
                        output_field=models.DecimalField(max_digits=14, decimal_places=3),
                    )
                ),
                Value(Decimal('0')),
                output_field=models.DecimalField(max_digits=14, decimal_places=3),
            )
        )['total']


class StockMovement(ImmutableModel):
    """
    Immutable record of a stock change.

    Rules:
    - quantity is always positive, kind carries the sign
    - never updated or deleted; corrections are new movements
    - save() updates the matching StockLevel atomically
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='+')
    warehouse = models.ForeignKey(
        'dispatchman.Warehouse',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Deposito'),
    )
    product = models.ForeignKey(
        'dispatchman.Product',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Producto'),
    )
    batch = models.CharField(max_length=50, blank=True, default='', verbose_name=_('Lote'))
    kind = models.CharField(max_length=12, choices=MovementKind.choices, verbose_name=_('Tipo'))
    quantity = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_('Cantidad'))

    # What caused the movement: DELIVERY, VISIT, MANUAL...
    reference_type = models.CharField(max_length=30, blank=True, default='', verbose_name=_('Tipo de referencia'))
    reference_id = models.CharField(max_length=64, blank=True, default='', verbose_name=_('ID de referencia'))
    reason = models.CharField(max_length=255, blank=True, default='', verbose_name=_('Motivo'))

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Usuario'),
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True, verbose_name=_('Fecha'))

    objects = MovementQuerySet.as_manager()

    class Meta:
        verbose_name = _('Movimiento de stock')
        verbose_name_plural = _('Movimientos de stock')
        ordering = ['created_at', 'pk']
        indexes = [
            models.Index(fields=['tenant', 'warehouse', 'product'], name='movement_tenant_wh_prod_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='movement_reference_idx'),
        ]

    @property
    def delta(self) -> Decimal:
        """Signed quantity."""
        return -self.quantity if self.kind == MovementKind.OUT else self.quantity

    def save(self, *args, **kwargs):
        """Save movement and update the stock level cache atomically."""
        if self.quantity is None or self.quantity <= 0:
            raise ValueError("La cantidad de un movimiento debe ser positiva")

        with transaction.atomic():
            super().save(*args, **kwargs)
            level, _created = StockLevel.objects.get_or_create(
                tenant_id=self.tenant_id,
                warehouse_id=self.warehouse_id,
                product_id=self.product_id,
                batch=self.batch,
            )
            StockLevel.objects.filter(pk=level.pk).update(
                _quantity=F('_quantity') + self.delta,
                updated_at=timezone.now(),
            )

    def __str__(self) -> str:
        sign = '-' if self.kind == MovementKind.OUT else '+'
        return f"{sign}{self.quantity} {self.product} @ {self.warehouse}"


class StockLevel(models.Model):
    """
    On-hand cache at (tenant, warehouse, product, batch).

    Read is O(1). Rows are also the lock target for every write that
    depends on availability (freeze, OUT movements).
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='+')
    warehouse = models.ForeignKey('dispatchman.Warehouse', on_delete=models.PROTECT, related_name='levels')
    product = models.ForeignKey('dispatchman.Product', on_delete=models.PROTECT, related_name='levels')
    batch = models.CharField(max_length=50, blank=True, default='')

    _quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        verbose_name=_('Cantidad'),
    )
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Nivel de stock')
        verbose_name_plural = _('Niveles de stock')
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'warehouse', 'product', 'batch'],
                name='unique_stock_level_coordinate',
            ),
        ]

    @property
    def quantity(self) -> Decimal:
        return self._quantity

    def movements(self):
        return StockMovement.objects.for_tenant(self.tenant_id).at(
            self.warehouse_id, self.product_id, self.batch,
        )

    def recalculate(self) -> Decimal:
        """
        Re-fold quantity from movements and fix the cache on drift.

        Returns:
            Quantity according to the ledger
        """
        total = self.movements().on_hand()

        if total != self._quantity:
            old = self._quantity
            self._quantity = total
            self.save(update_fields=['_quantity', 'updated_at'])
            logger.warning(
                "stock.level.recalculated",
                extra={
                    "level_id": self.pk,
                    "old": str(old),
                    "new": str(total),
                    "diff": str(total - old),
                },
            )

        return total

    def __str__(self) -> str:
        batch = f" [{self.batch}]" if self.batch else ''
        return f"{self.product} @ {self.warehouse}{batch}: {self._quantity}"
