from __future__ import annotations

import os
from datetime import date, timedelta
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from models import ExportMetadata, Quote

def format_money(amount: float, currency: str) -> str:
    """
    Format an amount for the proposal, Brazilian style for BRL ("R$ 1.234,56").

    Other currencies keep the ISO code and the usual "1,234.56" grouping.
    """
    if currency.upper() == "BRL":
        s = f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
        return f"R$ {s}"
    return f"{currency.upper()} {amount:,.2f}"

def make_proposal_pdf_bytes(
    metadata: ExportMetadata,
    quote: Quote,
    issued_on: Optional[date] = None,
) -> bytes:
    """
    Render the commercial proposal for a quote.

    Layout: letterhead (company + contact), client block, line items table
    (continues on extra pages when long), total, timeline/payment terms and
    the narrative, then a validity footer on the last page.
    """
    issued_on = issued_on or date.today()
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    # Uncompressed so tests can look for text markers in the bytes.
    c.setPageCompression(0)
    c.setTitle("Proposta Comercial")
    w, h = A4

    margin = 0.75 * inch
    x0 = margin
    x1 = w - margin
    y = h - margin

    # Letterhead
    company = metadata.company_name or os.getenv("PROPOSAL_COMPANY_NAME", "")
    c.setFont("Helvetica-Bold", 16)
    c.drawString(x0, y - 0.1 * inch, company or "-")
    c.setFont("Helvetica", 9)
    contact = " | ".join(p for p in (metadata.contact_name, metadata.email, metadata.phone) if p)
    c.drawString(x0, y - 0.35 * inch, contact)
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(x1, y - 0.1 * inch, "Proposta Comercial")
    c.setFont("Helvetica", 9)
    c.drawRightString(x1, y - 0.35 * inch, f"Data: {issued_on.strftime('%d/%m/%Y')}")
    y -= 0.55 * inch
    c.setStrokeColor(colors.grey)
    c.line(x0, y, x1, y)
    c.setStrokeColor(colors.black)
    y -= 0.35 * inch

    if metadata.client_name:
        c.setFont("Helvetica-Bold", 10)
        c.drawString(x0, y, f"Cliente: {metadata.client_name}")
        y -= 0.35 * inch

    # Line items
    row_h = 0.26 * inch
    bottom = margin + 0.5 * inch
    y = _draw_items_header(c, x0, x1, y)
    c.setFont("Helvetica", 9)
    for item in quote.line_items:
        if y - row_h < bottom:
            c.showPage()
            y = h - margin
            c.setFont("Helvetica-Bold", 10)
            c.drawString(x0, y, "ESCOPO - CONTINUAÇÃO")
            y = _draw_items_header(c, x0, x1, y - 0.3 * inch)
            c.setFont("Helvetica", 9)
        desc = _truncate(c, item.description, "Helvetica", 9, (x1 - x0) - 2.4 * inch)
        c.drawString(x0 + 4, y - row_h + 8, desc)
        if item.hours is not None:
            c.drawRightString(x1 - 1.4 * inch, y - row_h + 8, f"{item.hours:g}")
        c.drawRightString(x1 - 4, y - row_h + 8, format_money(item.amount, quote.currency))
        y -= row_h

    # Total
    c.line(x0, y, x1, y)
    y -= 0.3 * inch
    c.setFont("Helvetica-Bold", 11)
    c.drawString(x0 + 4, y, "Investimento total")
    c.drawRightString(x1 - 4, y, format_money(quote.total_price, quote.currency))
    y -= 0.45 * inch

    # Terms and narrative
    text_w = x1 - x0
    blocks = [
        ("Prazo", quote.timeline),
        ("Condições de pagamento", quote.payment_terms),
        ("Sobre a proposta", quote.narrative),
    ]
    for title, body in blocks:
        if not body:
            continue
        lines = simpleSplit(body, "Helvetica", 10, text_w)
        needed = 0.25 * inch + len(lines) * 0.18 * inch
        if y - needed < bottom:
            c.showPage()
            y = h - margin
        c.setFont("Helvetica-Bold", 10)
        c.drawString(x0, y, title)
        y -= 0.22 * inch
        c.setFont("Helvetica", 10)
        for ln in lines:
            if y < bottom:
                c.showPage()
                y = h - margin
                c.setFont("Helvetica", 10)
            c.drawString(x0, y, ln)
            y -= 0.18 * inch
        y -= 0.15 * inch

    # Validity footer
    valid_until = issued_on + timedelta(days=max(0, metadata.validity_days))
    c.setFont("Helvetica", 8)
    c.setFillColor(colors.grey)
    c.drawString(
        x0, margin,
        f"Proposta válida por {metadata.validity_days} dias (até {valid_until.strftime('%d/%m/%Y')}).",
    )
    c.setFillColor(colors.black)

    c.showPage()
    c.save()
    return buf.getvalue()

def _draw_items_header(c: canvas.Canvas, x0: float, x1: float, y: float) -> float:
    header_h = 0.28 * inch
    c.setFillColor(colors.HexColor("#EEEEEE"))
    c.rect(x0, y - header_h, x1 - x0, header_h, stroke=0, fill=1)
    c.setFillColor(colors.black)
    c.setFont("Helvetica-Bold", 9)
    c.drawString(x0 + 4, y - header_h + 8, "Item")
    c.drawRightString(x1 - 1.4 * inch, y - header_h + 8, "Horas")
    c.drawRightString(x1 - 4, y - header_h + 8, "Valor")
    return y - header_h

def _truncate(c: canvas.Canvas, text: str, font: str, size: float, max_width: float) -> str:
    s = (text or "").strip()
    if c.stringWidth(s, font, size) <= max_width:
        return s
    ell = "..."
    while s and c.stringWidth(s + ell, font, size) > max_width:
        s = s[:-1]
    return s + ell
