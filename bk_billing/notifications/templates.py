from __future__ import annotations

from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from bk_billing.core.clock import french_date
from bk_billing.domain.enums import PAYMENT_METHOD_LABELS, REFUND_METHOD_LABELS
from bk_billing.domain.money import format_money


def short_order_ref(order_id: str) -> str:
    return order_id[:8]


_env = Environment(
    loader=PackageLoader("bk_billing.notifications", "templates"),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["money"] = format_money
_env.filters["french_date"] = french_date
_env.filters["order_ref"] = short_order_ref
_env.filters["refund_method"] = lambda value: REFUND_METHOD_LABELS.get(value, value)
_env.filters["payment_method"] = lambda value: PAYMENT_METHOD_LABELS.get(value, value)


def render_email(name: str, context: dict[str, Any]) -> tuple[str, str]:
    """Render ``{name}.html`` and ``{name}.txt``; returns ``(html, text)``."""
    html = _env.get_template(f"{name}.html").render(**context)
    text = _env.get_template(f"{name}.txt").render(**context).strip()
    return html, text
