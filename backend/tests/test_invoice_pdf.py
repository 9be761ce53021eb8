import datetime as dt

from app.schemas import Client, ClientInvoice, InvoiceLineItem, SystemSettings
from app.services.invoice_pdf import render_client_invoice_pdf


def _invoice(**overrides):
    data = dict(
        id="inv-1",
        client_id="client-nhs",
        client_name="Northside NHS Trust",
        invoice_number="INV-00007",
        issue_date=dt.date(2024, 7, 1),
        due_date=dt.date(2024, 7, 31),
        period_start=dt.date(2024, 6, 1),
        period_end=dt.date(2024, 6, 30),
        total_amount=106.8,
        items=[
            InvoiceLineItem(description="Face-to-Face English to Romanian on 2024-06-01", units=1, rate=40, total=40),
            InvoiceLineItem(description="Telephone English to <Arabic> & more", units=1.67, rate=40, total=66.8),
        ],
    )
    data.update(overrides)
    return ClientInvoice(**data)


def test_renders_pdf_bytes():
    pdf = render_client_invoice_pdf(
        _invoice(),
        SystemSettings(),
        Client(id="client-nhs", company_name="Northside NHS Trust", billing_address="1 Hospital Road"),
    )
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_renders_without_settings_or_client():
    pdf = render_client_invoice_pdf(_invoice(items=[], total_amount=0, period_start=None, status="CANCELLED"))
    assert pdf.startswith(b"%PDF")
