"""Invoice PDF rendering with reportlab.

Georgian text needs a Unicode TTF font. PDF_FONT_PATH (default: DejaVu Sans)
is registered on first use; without it the built-in Helvetica is used and
Georgian glyphs will not render.
"""

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.enums import TA_RIGHT
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, HRFlowable
from xml.sax.saxutils import escape
from typing import Dict, Any, List, Optional
import io
import logging
import os

from invoicing.models.invoice import CURRENCY_SYMBOLS, STATUS_LABELS

logger = logging.getLogger(__name__)

PDF_FONT_PATH = os.getenv("PDF_FONT_PATH", "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf")
PDF_FONT_BOLD_PATH = os.getenv("PDF_FONT_BOLD_PATH", "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf")

PRIMARY = colors.Color(0.043, 0.114, 0.227)
MUTED = colors.Color(0.42, 0.45, 0.5)

_fonts: Optional[Dict[str, str]] = None


def _register_fonts() -> Dict[str, str]:
    """Register the Unicode font once and return the regular/bold names."""
    global _fonts
    if _fonts is not None:
        return _fonts

    _fonts = {"regular": "Helvetica", "bold": "Helvetica-Bold"}
    if os.path.exists(PDF_FONT_PATH):
        pdfmetrics.registerFont(TTFont("InvoiceSans", PDF_FONT_PATH))
        _fonts["regular"] = "InvoiceSans"
        _fonts["bold"] = "InvoiceSans"
        if os.path.exists(PDF_FONT_BOLD_PATH):
            pdfmetrics.registerFont(TTFont("InvoiceSans-Bold", PDF_FONT_BOLD_PATH))
            _fonts["bold"] = "InvoiceSans-Bold"
    else:
        logger.warning(f"PDF font not found at {PDF_FONT_PATH}; Georgian text will not render")
    return _fonts


def _money(amount, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    return f"{float(amount or 0):,.2f} {symbol}"


def _text(value) -> str:
    return escape(str(value)) if value not in (None, "") else ""


def _address_lines(party: Dict[str, Any]) -> List[str]:
    lines = [party.get("address_line1"), party.get("address_line2")]
    city = " ".join(p for p in [party.get("city"), party.get("postal_code")] if p)
    lines.append(city)
    return [_text(line) for line in lines if line]


def pdf_filename(invoice: Dict[str, Any]) -> str:
    return f"invoice-{invoice.get('invoice_number') or invoice['invoice_id'][:12]}.pdf"


class InvoicePdfRenderer:
    """Builds the PDF for one invoice detail dict (invoice + company + client + items)."""

    def styles(self) -> Dict[str, ParagraphStyle]:
        fonts = _register_fonts()
        base = getSampleStyleSheet()
        return {
            "title": ParagraphStyle(
                "InvoiceTitle", parent=base["Title"], fontName=fonts["bold"],
                textColor=PRIMARY, fontSize=20, alignment=TA_RIGHT, spaceAfter=4,
            ),
            "heading": ParagraphStyle(
                "InvoiceHeading", parent=base["Heading4"], fontName=fonts["bold"],
                textColor=PRIMARY, fontSize=10, spaceAfter=2,
            ),
            "body": ParagraphStyle("InvoiceBody", parent=base["Normal"], fontName=fonts["regular"], fontSize=9),
            "right": ParagraphStyle(
                "InvoiceRight", parent=base["Normal"], fontName=fonts["regular"], fontSize=9, alignment=TA_RIGHT,
            ),
            "small": ParagraphStyle(
                "InvoiceSmall", parent=base["Normal"], fontName=fonts["regular"], fontSize=8, textColor=MUTED,
            ),
        }

    def render(self, detail: Dict[str, Any]) -> bytes:
        fonts = _register_fonts()
        styles = self.styles()
        company = detail.get("company") or {}
        client = detail.get("client") or {}
        currency = detail.get("currency", "GEL")

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=18 * mm,
            leftMargin=18 * mm,
            topMargin=18 * mm,
            bottomMargin=18 * mm,
            title=f"ინვოისი {detail.get('invoice_number', '')}",
        )
        elements = []

        seller = [f"<b>{_text(company.get('name'))}</b>"]
        if company.get("tax_id"):
            seller.append(f"ს/კ: {_text(company['tax_id'])}")
        seller.extend(_address_lines(company))
        for key in ("phone", "email"):
            if company.get(key):
                seller.append(_text(company[key]))

        meta = [
            f"ინვოისი #{_text(detail.get('invoice_number'))}",
            f"გამოწერის თარიღი: {_text(detail.get('issue_date'))}",
            f"გადახდის ვადა: {_text(detail.get('due_date'))}",
            f"სტატუსი: {STATUS_LABELS.get(detail.get('status'), _text(detail.get('status')))}",
        ]
        header = Table(
            [[Paragraph("<br/>".join(seller), styles["body"]),
              [Paragraph("ინვოისი", styles["title"]), Paragraph("<br/>".join(meta), styles["right"])]]],
            colWidths=[90 * mm, 84 * mm],
        )
        header.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        elements.append(header)
        elements.append(HRFlowable(width="100%", thickness=1.5, color=PRIMARY, spaceBefore=6, spaceAfter=10))

        buyer = [f"<b>{_text(client.get('name'))}</b>"]
        if client.get("tax_id"):
            buyer.append(f"ს/კ: {_text(client['tax_id'])}")
        buyer.extend(_address_lines(client))
        if client.get("email"):
            buyer.append(_text(client["email"]))
        elements.append(Paragraph("მყიდველი", styles["heading"]))
        elements.append(Paragraph("<br/>".join(buyer), styles["body"]))
        elements.append(Spacer(1, 10))

        rows = [["#", "აღწერა", "რაოდენობა", "ფასი", "ჯამი"]]
        for index, item in enumerate(detail.get("items") or [], start=1):
            rows.append([
                str(index),
                Paragraph(_text(item.get("description")), styles["body"]),
                f"{float(item.get('quantity') or 0):g}",
                _money(item.get("unit_price"), currency),
                _money(item.get("line_total"), currency),
            ])
        items_table = Table(rows, colWidths=[10 * mm, 84 * mm, 24 * mm, 28 * mm, 28 * mm], repeatRows=1)
        items_table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), PRIMARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), fonts["bold"]),
            ("FONTNAME", (0, 1), (-1, -1), fonts["regular"]),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.Color(0.97, 0.97, 0.97)]),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.Color(0.8, 0.8, 0.8)),
            ("TOPPADDING", (0, 0), (-1, -1), 5),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ]))
        elements.append(items_table)
        elements.append(Spacer(1, 8))

        totals = Table(
            [
                ["ქვეჯამი:", _money(detail.get("subtotal"), currency)],
                [f"დღგ ({float(detail.get('vat_rate') or 0):g}%):", _money(detail.get("vat_amount"), currency)],
                ["სულ გადასახდელი:", _money(detail.get("total"), currency)],
            ],
            colWidths=[40 * mm, 34 * mm],
            hAlign="RIGHT",
        )
        totals.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, -1), fonts["regular"]),
            ("FONTNAME", (0, -1), (-1, -1), fonts["bold"]),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
            ("LINEABOVE", (0, -1), (-1, -1), 1, PRIMARY),
        ]))
        elements.append(totals)

        accounts = detail.get("bank_accounts") or []
        if accounts:
            elements.append(Spacer(1, 12))
            elements.append(Paragraph("საბანკო რეკვიზიტები", styles["heading"]))
            for account in accounts:
                line = f"{_text(account.get('bank_name'))}: {_text(account.get('account_number'))}"
                if account.get("account_name"):
                    line += f" ({_text(account['account_name'])})"
                elements.append(Paragraph(line, styles["body"]))

        if detail.get("notes"):
            elements.append(Spacer(1, 12))
            elements.append(Paragraph("შენიშვნა", styles["heading"]))
            elements.append(Paragraph(_text(detail["notes"]).replace("\n", "<br/>"), styles["body"]))

        doc.build(elements)
        buffer.seek(0)
        return buffer.getvalue()


pdf_renderer = InvoicePdfRenderer()
