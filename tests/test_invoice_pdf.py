from __future__ import annotations

from datetime import datetime, timezone

from reportlab.pdfbase.pdfmetrics import stringWidth

from bk_billing.domain.invoices.builder import BillingAddress, InvoiceData, InvoiceLine
from bk_billing.domain.money import percent_of
from bk_billing.rendering.layout import (
    FONT_REGULAR,
    PDF_LAYOUT,
    CompanyInfo,
    layout_invoice,
    truncate_text,
)
from bk_billing.rendering.pdf import generate_invoice_pdf


def _invoice(items: list[InvoiceLine], shipping: int = 0, payment_method: str = "card") -> InvoiceData:
    subtotal = sum(item.total for item in items)
    tax = percent_of(subtotal, 20)
    return InvoiceData(
        invoice_number="BK-2026-004242",
        order_id="3f2b9c1e-0000-4000-8000-000000000001",
        customer_name="Amina Benali",
        customer_email="amina@example.com",
        customer_phone="+212 600 000 000",
        billing_address=BillingAddress(address="12 rue des Cèdres", city="Casablanca", country="Maroc", postal_code="20250"),
        items=items,
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
        currency="EUR",
        payment_method=payment_method,
        status="paid",
        created_at=datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc),
    )


def _lines(count: int) -> list[InvoiceLine]:
    return [InvoiceLine(product_name=f"Article {n}", quantity=1, unit_price=1000 + n, total=1000 + n) for n in range(count)]


def test_every_item_appears_once_in_order():
    items = [
        InvoiceLine(product_name="Chaise en noyer", quantity=2, unit_price=2500, total=5000),
        InvoiceLine(product_name="Table basse", quantity=1, unit_price=123456, total=123456),
    ]
    layout = layout_invoice(_invoice(items))

    assert [row.product_name for row in layout.rows] == ["Chaise en noyer", "Table basse"]
    assert [row.quantity for row in layout.rows] == ["2", "1"]
    assert layout.rows[1].unit_price == "1 234,56 €"
    assert [row.shaded for row in layout.rows] == [True, False]
    texts = layout.texts()
    assert texts.count("Chaise en noyer") == 1
    assert texts.count("Table basse") == 1


def test_header_and_customer_block():
    layout = layout_invoice(_invoice(_lines(1)), company=CompanyInfo(name="BK Agencements", tagline="Sur-mesure", country="Maroc"))
    texts = layout.texts()

    assert "FACTURE" in texts
    assert "N° BK-2026-004242" in texts
    assert "Date: 19 octobre 2026" in texts
    assert "Casablanca 20250" in texts
    assert "amina@example.com" in texts
    assert "Mode de paiement: Carte bancaire" in texts


def test_totals_reconcile_and_shipping_is_hidden_when_zero():
    invoice = _invoice([InvoiceLine(product_name="Buffet", quantity=1, unit_price=10000, total=10000)])
    layout = layout_invoice(invoice)

    assert layout.totals == [
        ("Sous-total HT:", "100,00 €"),
        ("TVA (20%):", "20,00 €"),
        ("Total TTC:", "120,00 €"),
    ]

    with_shipping = layout_invoice(
        _invoice([InvoiceLine(product_name="Buffet", quantity=1, unit_price=10000, total=10000)], shipping=1500)
    )
    assert ("Livraison:", "15,00 €") in with_shipping.totals
    assert with_shipping.totals[-1] == ("Total TTC:", "135,00 €")


def test_long_product_names_are_truncated_to_the_column():
    name = "Bibliothèque murale modulable en chêne massif avec éclairage intégré et portes vitrées"
    layout = layout_invoice(_invoice([InvoiceLine(product_name=name, quantity=1, unit_price=100, total=100)]))
    shown = layout.rows[0].product_name

    assert shown.endswith("...")
    assert name.startswith(shown[:-3])
    limit = PDF_LAYOUT.col_product - 2 * PDF_LAYOUT.cell_padding
    assert stringWidth(shown, FONT_REGULAR, PDF_LAYOUT.font_body) <= limit


def test_truncate_text_keeps_short_text():
    assert truncate_text("Lampe", 200, FONT_REGULAR, 11) == "Lampe"


def test_many_items_spill_onto_extra_pages():
    layout = layout_invoice(_invoice(_lines(60)))

    assert len(layout.pages) > 1
    assert [row.index for row in layout.rows] == list(range(60))
    assert layout.rows[0].page == 0
    assert layout.rows[-1].page >= 2
    for row in layout.rows:
        assert row.y + PDF_LAYOUT.row_height <= PDF_LAYOUT.body_limit
    pages_with_footer = [
        page for page in layout.pages if any(getattr(op, "text", "") == "Merci pour votre confiance" for op in page)
    ]
    assert len(pages_with_footer) == len(layout.pages)


def test_generate_invoice_pdf_returns_pdf_bytes():
    data = generate_invoice_pdf(_invoice(_lines(3)))

    assert data.startswith(b"%PDF-")
    assert data.rstrip().endswith(b"%%EOF")
    assert b"BK-2026-004242" in data


def test_multi_page_pdf_has_one_page_per_layout_page():
    invoice = _invoice(_lines(60))
    pages = len(layout_invoice(invoice).pages)
    data = generate_invoice_pdf(invoice)

    assert pages > 1
    assert f"/Count {pages}".encode() in data
