"""
Reports — receivables aging.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db.models import DecimalField, OuterRef, Subquery, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from dispatchman.models.billing import DebitNote, Invoice, Payment

ZERO = Decimal('0')

BUCKETS = ('0-30', '31-60', '61-90', '90+')


def bucket_for(days: int) -> str:
    """Aging bucket for days past the reference date (negative = not due yet)."""
    if days <= 30:
        return '0-30'
    if days <= 60:
        return '31-60'
    if days <= 90:
        return '61-90'
    return '90+'


@dataclass(frozen=True)
class AgingRow:
    number: str
    payer: str
    patient: str
    reference_date: date
    days: int
    outstanding: Decimal

    @property
    def bucket(self) -> str:
        return bucket_for(self.days)


@dataclass
class AgingReport:
    as_of: date
    rows: list[AgingRow] = field(default_factory=list)

    @property
    def totals(self) -> dict[str, Decimal]:
        totals = {name: ZERO for name in BUCKETS}
        for row in self.rows:
            totals[row.bucket] += row.outstanding
        return totals

    @property
    def total(self) -> Decimal:
        return sum((row.outstanding for row in self.rows), ZERO)


def _sum_of(model):
    amounts = (
        model.objects.filter(invoice=OuterRef('pk'))
        .order_by()
        .values('invoice')
        .annotate(t=Sum('amount'))
        .values('t')
    )
    return Coalesce(
        Subquery(amounts, output_field=DecimalField(max_digits=14, decimal_places=2)),
        Value(ZERO),
        output_field=DecimalField(max_digits=14, decimal_places=2),
    )


class Reports:

    @classmethod
    def aging(cls, tenant, as_of: date | None = None, payer=None) -> AgingReport:
        """
        Outstanding balance per invoice, bucketed by age.

        Age counts from due_date, or from the issue date when there is none.
        outstanding = max(total − debits − payments, 0); settled and
        cancelled invoices are left out.
        """
        as_of = as_of or timezone.localdate()
        qs = (
            Invoice.objects.for_tenant(tenant).open()
            .select_related('payer', 'patient')
            .annotate(debits=_sum_of(DebitNote), paid=_sum_of(Payment))
            .order_by('issued_at', 'pk')
        )
        if payer is not None:
            qs = qs.filter(payer=payer)

        report = AgingReport(as_of=as_of)
        for invoice in qs:
            outstanding = max(invoice.total_amount - invoice.debits - invoice.paid, ZERO)
            if outstanding == 0:
                continue
            reference = invoice.due_date or timezone.localtime(invoice.issued_at).date()
            report.rows.append(AgingRow(
                number=invoice.number,
                payer=invoice.payer.name,
                patient=invoice.patient.full_name,
                reference_date=reference,
                days=(as_of - reference).days,
                outstanding=outstanding,
            ))
        return report
