from io import BytesIO
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .. import schemas
from ..models.invoice import ClientInvoiceStatus

STATUS_COLORS = {
    ClientInvoiceStatus.DRAFT: colors.HexColor("#6b7280"),
    ClientInvoiceStatus.SENT: colors.HexColor("#f59e0b"),
    ClientInvoiceStatus.PAID: colors.HexColor("#16a34a"),
    ClientInvoiceStatus.CANCELLED: colors.HexColor("#dc2626"),
}


def render_client_invoice_pdf(
    invoice: schemas.ClientInvoice,
    system: Optional[schemas.SystemSettings] = None,
    client: Optional[schemas.Client] = None,
) -> bytes:
    """Render a client invoice with ReportLab Platypus.

    Layout: company header with status badge, summary grid, bill-to block,
    one row per line item, then the total and the footer text from settings.
    Pure function of its arguments.
    """
    system = system or schemas.SystemSettings()
    currency = invoice.currency or system.finance.currency

    def _money(v) -> str:
        return f"{currency} {float(v or 0):,.2f}"

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=16 * mm,
        bottomMargin=16 * mm,
        title=f"Invoice {invoice.invoice_number}",
        author=system.general.company_name,
    )
    muted = colors.HexColor("#6b7280")
    border = colors.HexColor("#e5e7eb")

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="TitleBrand", parent=styles["Heading1"], fontName="Helvetica-Bold", fontSize=18, spaceAfter=6))
    styles.add(ParagraphStyle(name="Muted", parent=styles["Normal"], fontName="Helvetica", fontSize=9, textColor=muted))
    styles.add(ParagraphStyle(name="Strong", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=10))
    styles.add(ParagraphStyle(name="NormalSmall", parent=styles["Normal"], fontName="Helvetica", fontSize=10))

    story = []

    badge = ParagraphStyle(
        name="StatusBadge",
        parent=styles["Normal"],
        textColor=STATUS_COLORS.get(invoice.status, muted),
        backColor=colors.whitesmoke,
        leading=12,
        fontName="Helvetica-Bold",
        alignment=1,
    )
    header_tbl = Table(
        [[Paragraph(f"<b>{escape(system.general.company_name)}</b>", styles["TitleBrand"]), Paragraph(invoice.status.value, badge)]],
        colWidths=[doc.width * 0.75, doc.width * 0.25],
        hAlign="LEFT",
    )
    header_tbl.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "MIDDLE"), ("ALIGN", (1, 0), (1, 0), "RIGHT")]))
    story.append(header_tbl)
    if system.general.business_address:
        story.append(Paragraph(escape(system.general.business_address), styles["Muted"]))
    story.append(Spacer(1, 6))

    period = "-"
    if invoice.period_start and invoice.period_end:
        period = f"{invoice.period_start:%d %b %Y} to {invoice.period_end:%d %b %Y}"
    label = lambda text: Paragraph(f"<font color='#6b7280'>{text}</font>", styles["NormalSmall"])  # noqa: E731
    summary_tbl = Table(
        [
            [label("Invoice #"), Paragraph(escape(invoice.invoice_number), styles["Strong"]),
             label("Issued"), Paragraph(f"{invoice.issue_date:%Y-%m-%d}", styles["NormalSmall"])],
            [label("Period"), Paragraph(period, styles["NormalSmall"]),
             label("Due"), Paragraph(f"{invoice.due_date:%Y-%m-%d}", styles["NormalSmall"])],
            [label("Currency"), Paragraph(currency, styles["NormalSmall"]),
             label("Amount"), Paragraph(_money(invoice.total_amount), styles["Strong"])],
        ],
        colWidths=[doc.width * 0.15, doc.width * 0.35, doc.width * 0.15, doc.width * 0.35],
    )
    summary_tbl.setStyle(TableStyle([
        ("INNERGRID", (0, 0), (-1, -1), 0.25, border),
        ("BOX", (0, 0), (-1, -1), 0.25, border),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BACKGROUND", (0, 0), (-1, -1), colors.whitesmoke),
        ("LEFTPADDING", (0, 0), (-1, -1), 6), ("RIGHTPADDING", (0, 0), (-1, -1), 6),
        ("TOPPADDING", (0, 0), (-1, -1), 4), ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    story.append(summary_tbl)
    story.append(Spacer(1, 8))

    bill_to = [escape(invoice.client_name or (client.company_name if client else "") or invoice.client_id)]
    if client and client.billing_address:
        bill_to.append(escape(client.billing_address))
    if client and client.email:
        bill_to.append(escape(client.email))
    story.append(Paragraph("Bill To", styles["Muted"]))
    story.append(Paragraph("<br/>".join(bill_to), styles["NormalSmall"]))
    story.append(Spacer(1, 8))

    rows = [[Paragraph(h, styles["Strong"]) for h in ("Description", "Units", "Rate", "Total")]]
    for item in invoice.items:
        rows.append([
            Paragraph(escape(item.description), styles["NormalSmall"]),
            Paragraph(f"{item.units:g}", styles["NormalSmall"]),
            Paragraph(_money(item.rate), styles["NormalSmall"]),
            Paragraph(_money(item.total), styles["NormalSmall"]),
        ])
    items_tbl = Table(rows, colWidths=[doc.width * 0.55, doc.width * 0.1, doc.width * 0.15, doc.width * 0.2])
    items_tbl.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.25, border),
        ("INNERGRID", (0, 0), (-1, -1), 0.25, border),
        ("BACKGROUND", (0, 0), (-1, 0), colors.Color(0.95, 0.95, 0.97)),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    story.append(items_tbl)
    story.append(Spacer(1, 6))

    totals_rows = [[Paragraph("Total", styles["Strong"]), Paragraph(_money(invoice.total_amount), styles["Strong"])]]
    totals_tbl = Table(totals_rows, colWidths=[doc.width * 0.65, doc.width * 0.35])
    totals_tbl.setStyle(TableStyle([("ALIGN", (1, 0), (1, -1), "RIGHT"), ("TOPPADDING", (0, 0), (-1, -1), 2), ("BOTTOMPADDING", (0, 0), (-1, -1), 2)]))
    story.append(totals_tbl)

    story.append(Spacer(1, 12))
    if system.finance.vat_number:
        story.append(Paragraph(f"VAT No. {escape(system.finance.vat_number)}", styles["Muted"]))
    footer = system.finance.invoice_footer_text or f"Payment due within {(invoice.due_date - invoice.issue_date).days} days."
    story.append(Paragraph(escape(footer), styles["Muted"]))

    doc.build(story)
    buffer.seek(0)
    return buffer.read()
