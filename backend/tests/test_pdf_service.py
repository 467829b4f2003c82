"""Invoice PDF rendering."""
from invoicing.services.pdf_service import pdf_renderer, pdf_filename

DETAIL = {
    "invoice_id": "IVC-0123456789ABCDEF",
    "invoice_number": "INV-2026-0001",
    "issue_date": "2026-03-01",
    "due_date": "2026-03-15",
    "status": "sent",
    "currency": "GEL",
    "subtotal": 100,
    "vat_rate": 18,
    "vat_amount": 18,
    "total": 118,
    "notes": "Thanks <for> the order\nSecond line",
    "company": {"name": "Test LLC", "tax_id": "405123456", "city": "Tbilisi"},
    "client": {"name": "Client LLC", "tax_id": "401000001", "email": "client@example.ge"},
    "items": [{"description": "Consulting", "quantity": 2, "unit_price": 50, "line_total": 100}],
    "bank_accounts": [{"bank_name": "TBC", "account_number": "GE00TB0000000000000001", "is_default": True}],
}


def test_render_produces_pdf_document():
    content = pdf_renderer.render(DETAIL)
    assert content.startswith(b"%PDF")
    assert len(content) > 1000


def test_render_without_optional_sections():
    content = pdf_renderer.render({**DETAIL, "notes": None, "bank_accounts": [], "items": []})
    assert content.startswith(b"%PDF")


def test_pdf_filename():
    assert pdf_filename(DETAIL) == "invoice-INV-2026-0001.pdf"
    assert pdf_filename({"invoice_id": "IVC-0123456789ABCDEF"}) == "invoice-IVC-01234567.pdf"
