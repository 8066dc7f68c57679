from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from datetime import datetime

import uvicorn

from bk_billing.core.config import get_settings
from bk_billing.core.logging import configure_logging
from bk_billing.domain.errors import BillingError, RefundValidationError
from bk_billing.domain.invoices.service import InvoiceService
from bk_billing.domain.refunds import RefundService
from bk_billing.notifications import NotificationDispatcher
from bk_billing.persistence.pg import init_db


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    return str(value)


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=_json_default))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bk-billing", description="BK Agencements refunds and invoices")
    parser.add_argument("--no-notify", action="store_true", help="Do not send customer/admin emails")
    top = parser.add_subparsers(dest="command", required=True)

    refund = top.add_parser("refund", help="Refund operations")
    refund_sub = refund.add_subparsers(dest="refund_command", required=True)

    create = refund_sub.add_parser("create", help="Create a pending refund")
    create.add_argument("order_id")
    create.add_argument("amount", type=int, help="Amount in cents")
    create.add_argument("--reason", required=True)
    create.add_argument("--method", choices=["original", "manual", "cash"], default="original")

    for name, help_text in (("approve", "Approve a pending refund"), ("process", "Process an approved refund")):
        action = refund_sub.add_parser(name, help=help_text)
        action.add_argument("refund_id")

    listing = refund_sub.add_parser("list", help="Refund history, newest first")
    listing.add_argument("--order-id", default=None)

    invoice = top.add_parser("invoice", help="Invoice operations")
    invoice_sub = invoice.add_subparsers(dest="invoice_command", required=True)

    inv_create = invoice_sub.add_parser("create", help="Create an invoice for an order")
    inv_create.add_argument("order_id")
    inv_create.add_argument("--no-pdf", action="store_true", help="Skip PDF generation and emails")

    pdf = invoice_sub.add_parser("pdf", help="Regenerate the PDF of an existing invoice")
    pdf.add_argument("invoice_id")

    serve = top.add_parser("serve", help="Run the admin HTTP API")
    serve.add_argument("--host", default=None, help="Defaults to BK_API_HOST")
    serve.add_argument("--port", type=int, default=None, help="Defaults to BK_API_PORT")
    serve.add_argument("--reload", action="store_true")

    return parser


def _run_refund(args: argparse.Namespace, notifier: NotificationDispatcher | None) -> int:
    service = RefundService(notifier=notifier)
    if args.refund_command == "create":
        _print(asdict(service.create(args.order_id, args.amount, args.reason, args.method)))
    elif args.refund_command == "approve":
        _print(asdict(service.approve(args.refund_id)))
    elif args.refund_command == "process":
        _print(asdict(service.process(args.refund_id)))
    else:
        items = service.list_refunds_by_order(args.order_id) if args.order_id else service.list_refunds()
        _print([asdict(item) for item in items])
    return 0


def _run_invoice(args: argparse.Namespace, notifier: NotificationDispatcher | None) -> int:
    service = InvoiceService.from_settings(notifier=notifier)
    if args.invoice_command == "create":
        invoice = service.create_invoice(args.order_id) if args.no_pdf else service.create_invoice_with_pdf(args.order_id)
    else:
        invoice = service.generate_pdf(args.invoice_id)
    _print(asdict(invoice))
    return 0


def _serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "bk_billing.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging()
    init_db()
    if args.command == "serve":
        return _serve(args)
    notifier = None if args.no_notify else NotificationDispatcher.from_settings()

    try:
        if args.command == "refund":
            return _run_refund(args, notifier)
        if args.command == "invoice":
            return _run_invoice(args, notifier)
    except RefundValidationError as exc:
        _print({"error": "refund_validation", "errors": exc.errors})
        return 1
    except BillingError as exc:
        _print({"error": type(exc).__name__, "detail": str(exc)})
        return 1

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
