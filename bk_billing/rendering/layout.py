"""Invoice page layout.

Everything here is plain coordinate arithmetic: the layout is computed as a
list of drawing operations per page, with ``y`` growing downward from the top
edge of the page. ``bk_billing.rendering.pdf`` turns the operations into PDF
drawing calls.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from reportlab.pdfbase.pdfmetrics import stringWidth

from bk_billing.core.clock import french_date
from bk_billing.domain.enums import PAYMENT_METHOD_LABELS
from bk_billing.domain.invoices.builder import DEFAULT_VAT_RATE_PERCENT, InvoiceData
from bk_billing.domain.money import format_money

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
ELLIPSIS = "..."


@dataclass(frozen=True)
class LayoutConstants:
    # A4 in points
    page_width: float = 595.28
    page_height: float = 841.89

    margin_top: float = 80
    margin_bottom: float = 60
    margin_left: float = 60
    margin_right: float = 60

    logo_padding_top: float = 20

    font_title: float = 24
    font_heading: float = 18
    font_subheading: float = 14
    font_body: float = 11
    font_small: float = 9

    col_product: float = 280
    col_quantity: float = 60
    col_unit_price: float = 90
    col_total: float = 90
    row_height: float = 24
    header_height: float = 30
    cell_padding: float = 10

    totals_width: float = 200
    totals_block_height: float = 110

    black: str = "#000000"
    dark_grey: str = "#333333"
    light_grey: str = "#f5f5f5"
    border_grey: str = "#e0e0e0"

    @property
    def content_width(self) -> float:
        return self.page_width - self.margin_left - self.margin_right

    @property
    def right_edge(self) -> float:
        return self.page_width - self.margin_right

    @property
    def footer_y(self) -> float:
        return self.page_height - self.margin_bottom

    @property
    def body_limit(self) -> float:
        # Keep two footer lines free at the bottom of every page.
        return self.footer_y - 20


PDF_LAYOUT = LayoutConstants()


@dataclass(frozen=True)
class CompanyInfo:
    name: str = "BK Agencements"
    tagline: str = "Mobilier sur-mesure d'exception"
    country: str = "Maroc"


@dataclass(frozen=True)
class TextOp:
    text: str
    x: float
    y: float
    size: float
    bold: bool = False
    color: str = "#000000"
    align: str = "left"


@dataclass(frozen=True)
class RectOp:
    x: float
    y: float
    width: float
    height: float
    fill: str


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str
    width: float = 0.5


@dataclass(frozen=True)
class TableRow:
    index: int
    page: int
    y: float
    product_name: str
    quantity: str
    unit_price: str
    total: str
    shaded: bool


@dataclass
class InvoiceLayout:
    pages: list[list[TextOp | RectOp | LineOp]] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    totals: list[tuple[str, str]] = field(default_factory=list)

    def texts(self) -> list[str]:
        return [op.text for page in self.pages for op in page if isinstance(op, TextOp)]


def truncate_text(text: str, max_width: float, font: str, size: float) -> str:
    if stringWidth(text, font, size) <= max_width:
        return text
    cut = len(text)
    while cut > 0 and stringWidth(text[:cut].rstrip() + ELLIPSIS, font, size) > max_width:
        cut -= 1
    return text[:cut].rstrip() + ELLIPSIS


class _PageWriter:
    def __init__(self, constants: LayoutConstants, company: CompanyInfo):
        self.c = constants
        self.company = company
        self.layout = InvoiceLayout()
        self.new_page()

    @property
    def ops(self) -> list[TextOp | RectOp | LineOp]:
        return self.layout.pages[-1]

    @property
    def page_index(self) -> int:
        return len(self.layout.pages) - 1

    def new_page(self) -> None:
        self.layout.pages.append([])
        c = self.c
        self.text(f"{self.company.name} — {self.company.tagline}", c.page_width / 2, c.footer_y, c.font_small, color=c.dark_grey, align="center")
        self.text("Merci pour votre confiance", c.page_width / 2, c.footer_y + 12, c.font_small, color=c.dark_grey, align="center")

    def text(self, text: str, x: float, y: float, size: float, bold: bool = False, color: str | None = None, align: str = "left") -> None:
        self.ops.append(TextOp(text=text, x=x, y=y, size=size, bold=bold, color=color or self.c.black, align=align))


def _table_header(writer: _PageWriter, y: float) -> float:
    c = writer.c
    writer.ops.append(RectOp(c.margin_left, y, c.content_width, c.header_height, fill=c.light_grey))
    x = c.margin_left
    for label, width in (
        ("Produit", c.col_product),
        ("Qté", c.col_quantity),
        ("Prix unit.", c.col_unit_price),
        ("Total", c.col_total),
    ):
        writer.text(label, x + c.cell_padding, y + 8, c.font_small, bold=True)
        x += width
    return y + c.header_height


def layout_invoice(
    invoice: InvoiceData,
    company: CompanyInfo | None = None,
    constants: LayoutConstants = PDF_LAYOUT,
    vat_rate_percent: int = DEFAULT_VAT_RATE_PERCENT,
) -> InvoiceLayout:
    c = constants
    writer = _PageWriter(c, company or CompanyInfo())
    currency = invoice.currency

    # Header
    y = c.logo_padding_top
    writer.text(writer.company.name, c.margin_left, y, c.font_heading, bold=True)
    y += 40

    writer.text(writer.company.name, c.margin_left, y, c.font_small, color=c.dark_grey)
    writer.text(writer.company.tagline, c.margin_left, y + 12, c.font_small, color=c.dark_grey)
    writer.text(writer.company.country, c.margin_left, y + 24, c.font_small, color=c.dark_grey)

    writer.text("FACTURE", c.right_edge, y, c.font_title, bold=True, align="right")
    writer.text(f"N° {invoice.invoice_number}", c.right_edge, y + 30, c.font_body, align="right")
    writer.text(f"Date: {french_date(invoice.created_at)}", c.right_edge, y + 48, c.font_small, color=c.dark_grey, align="right")
    y += 80

    # Customer
    writer.text("Facturé à:", c.margin_left, y, c.font_subheading, bold=True)
    y += 20
    address = invoice.billing_address
    city_line = address.city + (f" {address.postal_code}" if address.postal_code else "")
    customer_lines = [
        invoice.customer_name,
        address.address,
        city_line,
        address.country,
        invoice.customer_email or "",
        invoice.customer_phone,
    ]
    for offset, line in enumerate(customer_lines):
        if line:
            writer.text(line, c.margin_left, y + offset * 14, c.font_body)
    y += 100

    # Items
    y = _table_header(writer, y)
    name_width = c.col_product - 2 * c.cell_padding
    qty_x = c.margin_left + c.col_product
    unit_x = qty_x + c.col_quantity
    total_x = unit_x + c.col_unit_price
    for index, item in enumerate(invoice.items):
        if y + c.row_height > c.body_limit:
            writer.new_page()
            y = _table_header(writer, c.margin_top)

        shaded = index % 2 == 0
        if shaded:
            writer.ops.append(RectOp(c.margin_left, y, c.content_width, c.row_height, fill=c.light_grey))

        row = TableRow(
            index=index,
            page=writer.page_index,
            y=y,
            product_name=truncate_text(item.product_name, name_width, FONT_REGULAR, c.font_body),
            quantity=str(item.quantity),
            unit_price=format_money(item.unit_price, currency),
            total=format_money(item.total, currency),
            shaded=shaded,
        )
        writer.layout.rows.append(row)
        writer.text(row.product_name, c.margin_left + c.cell_padding, y + 6, c.font_body)
        writer.text(row.quantity, qty_x + c.col_quantity / 2, y + 6, c.font_body, align="center")
        writer.text(row.unit_price, unit_x + c.col_unit_price - c.cell_padding, y + 6, c.font_body, align="right")
        writer.text(row.total, total_x + c.col_total - c.cell_padding, y + 6, c.font_body, align="right")
        writer.ops.append(LineOp(c.margin_left, y + c.row_height, c.right_edge, y + c.row_height, color=c.border_grey))
        y += c.row_height

    y += 20

    # Totals
    if y + c.totals_block_height > c.body_limit:
        writer.new_page()
        y = c.margin_top

    label_x = c.right_edge - 120
    totals = [
        ("Sous-total HT:", format_money(invoice.subtotal, currency)),
        (f"TVA ({vat_rate_percent}%):", format_money(invoice.tax, currency)),
    ]
    if invoice.shipping > 0:
        totals.append(("Livraison:", format_money(invoice.shipping, currency)))
    for offset, (label, value) in enumerate(totals):
        writer.text(label, label_x, y + offset * 18, c.font_body, color=c.dark_grey, align="right")
        writer.text(value, c.right_edge, y + offset * 18, c.font_body, color=c.dark_grey, align="right")

    total_y = y + len(totals) * 18 + (6 if invoice.shipping > 0 else 0)
    writer.ops.append(LineOp(c.right_edge - c.totals_width, total_y - 10, c.right_edge, total_y - 10, color=c.black, width=1))
    grand_total = ("Total TTC:", format_money(invoice.total, currency))
    writer.text(grand_total[0], label_x - 20, total_y, c.font_heading, bold=True, align="right")
    writer.text(grand_total[1], c.right_edge, total_y, c.font_heading, bold=True, align="right")
    writer.layout.totals = totals + [grand_total]

    payment_label = PAYMENT_METHOD_LABELS.get(invoice.payment_method, invoice.payment_method)
    writer.text(f"Mode de paiement: {payment_label}", c.right_edge, total_y + 30, c.font_small, color=c.dark_grey, align="right")

    return writer.layout
