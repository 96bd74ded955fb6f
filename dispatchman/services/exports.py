"""
Exports — invoice listings (CSV / PDF), delivery document (PDF) and
pre-liquidation CSV.

CSV is written with the csv module; PDFs are reportlab platypus documents.
"""

from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal
from io import BytesIO, StringIO
from xml.sax.saxutils import escape

from django.db.models import Count, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from dispatchman.conf import dispatchman_settings
from dispatchman.models.billing import InvoiceItem
from dispatchman.models.delivery import Delivery
from dispatchman.models.enums import Module
from dispatchman.models.reference import Payer
from dispatchman.services.base import get_owned, require_module

ZERO = Decimal('0')

INVOICE_COLUMNS = [
    'Factura', 'ObraSocial', 'Paciente', 'FechaEmision', 'Estado',
    'Item', 'Cantidad', 'PrecioUnitario', 'Honorario', 'Subtotal',
]

PRELIQUIDATION_COLUMNS = [
    'Entrega', 'Paciente', 'Estado', 'FechaEntrega',
    'Autorizado', 'Realizado', 'Evidenciado', 'Evidencias',
]


def _fmt_date(value) -> str:
    if not value:
        return ''
    if hasattr(value, 'tzinfo'):
        value = timezone.localtime(value)
    return value.strftime('%Y-%m-%d')


def _fmt_qty(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.to_integral_value())
    return format(value.normalize(), 'f')


def _invoice_lines(tenant, payer, date_from: date | None = None, date_to: date | None = None):
    qs = (
        InvoiceItem.objects
        .filter(invoice__tenant=tenant, invoice__payer=payer)
        .select_related('invoice', 'invoice__patient', 'invoice__payer')
        .order_by('invoice__issued_at', 'invoice__number', 'pk')
    )
    if date_from:
        qs = qs.filter(invoice__issued_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(invoice__issued_at__date__lte=date_to)
    return qs


def _invoice_row(item) -> list[str]:
    invoice = item.invoice
    return [
        invoice.number,
        invoice.payer.name,
        invoice.patient.full_name,
        _fmt_date(invoice.issued_at),
        invoice.get_status_display(),
        item.description,
        _fmt_qty(item.quantity),
        f"{item.unit_price:.2f}",
        f"{item.honorarium:.2f}",
        f"{item.total:.2f}",
    ]


class Exports:
    """Rendered listings for payers and pre-liquidation."""

    @classmethod
    def invoices_csv(cls, tenant, payer, date_from=None, date_to=None) -> str:
        """One row per invoice line of the payer's invoices."""
        require_module(tenant, Module.BILLING)
        payer = get_owned(Payer, tenant, payer, 'PAYER_NOT_FOUND')
        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(INVOICE_COLUMNS)
        for item in _invoice_lines(tenant, payer, date_from, date_to):
            writer.writerow(_invoice_row(item))
        return output.getvalue()

    @classmethod
    def invoices_pdf(cls, tenant, payer, date_from=None, date_to=None) -> bytes:
        """Same lines as invoices_csv, laid out as a landscape A4 table."""
        require_module(tenant, Module.BILLING)
        payer = get_owned(Payer, tenant, payer, 'PAYER_NOT_FOUND')
        styles = getSampleStyleSheet()
        lines = list(_invoice_lines(tenant, payer, date_from, date_to))
        total = sum((item.total for item in lines), ZERO)

        data = [INVOICE_COLUMNS] + [_invoice_row(item) for item in lines]
        data.append([''] * (len(INVOICE_COLUMNS) - 2) + ['Total', f"{total:.2f}"])

        table = Table(data, repeatRows=1)
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#E8EEF4")),
            ("LINEBELOW", (0, 0), (-1, -2), 0.25, colors.grey),
            ("ALIGN", (6, 1), (-1, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))

        period = ''
        if date_from or date_to:
            period = f" ({_fmt_date(date_from) or '...'} a {_fmt_date(date_to) or '...'})"

        buf = BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=landscape(A4),
            leftMargin=12 * mm,
            rightMargin=12 * mm,
            topMargin=12 * mm,
            bottomMargin=12 * mm,
            title=f"Facturas {payer.name}",
        )
        doc.build([
            Paragraph(escape(f"Facturas - {payer.name}{period}"), styles["Title"]),
            Paragraph(escape(f"Moneda: {dispatchman_settings.CURRENCY}"), styles["Normal"]),
            Spacer(1, 4 * mm),
            table,
        ])
        return buf.getvalue()

    @classmethod
    def delivery_pdf(cls, tenant, delivery) -> bytes:
        """
        Delivery document (remito / acta de entrega) for one delivery.

        Patient data, requested vs. picked quantity per item and both
        signatures, as recorded so far.

        Raises:
            DispatchError('DELIVERY_NOT_FOUND'): Delivery of another tenant
        """
        require_module(tenant, Module.LOGISTICS)
        delivery = get_owned(Delivery, tenant, delivery, 'DELIVERY_NOT_FOUND')
        patient = delivery.order.patient
        styles = getSampleStyleSheet()

        items = delivery.pick_list.items.select_related('product').order_by('pk')
        data = [['Item', 'Solicitado', 'Entregado']]
        data += [
            [item.product.name, _fmt_qty(item.requested_qty), _fmt_qty(item.picked_qty)]
            for item in items
        ]
        table = Table(data, repeatRows=1, colWidths=[110 * mm, 30 * mm, 30 * mm])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#E8EEF4")),
            ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.grey),
            ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ]))

        def line(label, value):
            return Paragraph(f"<b>{escape(label)}:</b> {escape(str(value or '-'))}", styles["Normal"])

        buf = BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=A4,
            leftMargin=15 * mm,
            rightMargin=15 * mm,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=f"Remito {delivery.number}",
        )
        doc.build([
            Paragraph("Remito / Acta de Entrega", styles["Title"]),
            line("Entrega", delivery.number),
            line("Estado", delivery.get_status_display()),
            line("Paciente", patient.full_name),
            line("DNI", patient.dni),
            line("Direccion", patient.address),
            Spacer(1, 4 * mm),
            Paragraph("Detalle de items", styles["Heading3"]),
            table,
            Spacer(1, 4 * mm),
            Paragraph("Firmas", styles["Heading3"]),
            line("Retirante", f"{delivery.carrier_name or '-'} DNI {delivery.carrier_dni or '-'}"),
            line("Firma retirante", _fmt_date(delivery.carrier_signed_at)),
            line("Receptor", f"{delivery.receiver_name or '-'} DNI {delivery.receiver_dni or '-'}"),
            line("Vinculo", delivery.receiver_relation),
            line("Firma receptor", _fmt_date(delivery.receiver_signed_at)),
        ])
        return buf.getvalue()

    @classmethod
    def preliquidation_csv(cls, tenant, date_from=None, date_to=None) -> str:
        """
        Authorized vs. realized vs. evidenced, one row per delivery.

        Autorizado = Σ requested_qty, Realizado = Σ picked_qty.
        """
        require_module(tenant, Module.BILLING)
        minimum = dispatchman_settings.DELIVERY_MIN_EVIDENCE
        qs = (
            Delivery.objects.for_tenant(tenant)
            .select_related('order__patient')
            .annotate(evidence_count=Count('evidence', distinct=True))
            .order_by('created_at', 'pk')
        )
        if date_from:
            qs = qs.filter(created_at__date__gte=date_from)
        if date_to:
            qs = qs.filter(created_at__date__lte=date_to)

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(PRELIQUIDATION_COLUMNS)
        for delivery in qs:
            totals = delivery.pick_list.items.aggregate(
                requested=Coalesce(Sum('requested_qty'), ZERO),
                picked=Coalesce(Sum('picked_qty'), ZERO),
            )
            writer.writerow([
                delivery.number,
                delivery.order.patient.full_name,
                delivery.get_status_display(),
                _fmt_date(delivery.delivered_at),
                _fmt_qty(totals['requested']),
                _fmt_qty(totals['picked']),
                'SI' if delivery.evidence_count >= minimum else 'NO',
                delivery.evidence_count,
            ])
        return output.getvalue()
