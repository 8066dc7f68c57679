from __future__ import annotations

import io

from reportlab.lib.colors import HexColor
from reportlab.pdfgen import canvas

from bk_billing.domain.invoices.builder import DEFAULT_VAT_RATE_PERCENT, InvoiceData
from bk_billing.rendering.layout import (
    FONT_BOLD,
    FONT_REGULAR,
    PDF_LAYOUT,
    CompanyInfo,
    InvoiceLayout,
    LayoutConstants,
    LineOp,
    RectOp,
    TextOp,
    layout_invoice,
)

# Baseline sits this fraction of the font size below the top of the text box.
_ASCENT = 0.8


def _draw_text(pdf: canvas.Canvas, op: TextOp, page_height: float) -> None:
    pdf.setFont(FONT_BOLD if op.bold else FONT_REGULAR, op.size)
    pdf.setFillColor(HexColor(op.color))
    baseline = page_height - op.y - op.size * _ASCENT
    if op.align == "right":
        pdf.drawRightString(op.x, baseline, op.text)
    elif op.align == "center":
        pdf.drawCentredString(op.x, baseline, op.text)
    else:
        pdf.drawString(op.x, baseline, op.text)


def render_layout(layout: InvoiceLayout, title: str, author: str, constants: LayoutConstants = PDF_LAYOUT) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(
        buffer,
        pagesize=(constants.page_width, constants.page_height),
        pageCompression=0,
    )
    pdf.setTitle(title)
    pdf.setAuthor(author)

    height = constants.page_height
    for ops in layout.pages:
        for op in ops:
            if isinstance(op, RectOp):
                pdf.setFillColor(HexColor(op.fill))
                pdf.rect(op.x, height - op.y - op.height, op.width, op.height, stroke=0, fill=1)
            elif isinstance(op, LineOp):
                pdf.setStrokeColor(HexColor(op.color))
                pdf.setLineWidth(op.width)
                pdf.line(op.x1, height - op.y1, op.x2, height - op.y2)
            else:
                _draw_text(pdf, op, height)
        pdf.showPage()

    pdf.save()
    return buffer.getvalue()


def generate_invoice_pdf(
    invoice: InvoiceData,
    company: CompanyInfo | None = None,
    vat_rate_percent: int = DEFAULT_VAT_RATE_PERCENT,
) -> bytes:
    company = company or CompanyInfo()
    layout = layout_invoice(invoice, company=company, vat_rate_percent=vat_rate_percent)
    return render_layout(layout, title=f"Facture {invoice.invoice_number}", author=company.name)
