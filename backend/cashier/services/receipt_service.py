# Overview: Receipt rendering for completed transactions.

"""
Receipt Service

A receipt is a view, never a source of truth: it is regenerated from the
stored transaction on every print/resend and is not persisted. render() is
pure; the same transaction and metadata always produce identical text.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ReceiptNotAvailable
from ..extensions import db
from ..models import User
from ..models.transactions import STATUS_COMPLETED
from ..money import format_cents
from .catalog_service import current_store

SEPARATOR = "-" * 40
DEFAULT_FOOTER = "Thank you for your purchase!"
DATE_FORMAT = "%d/%m/%Y %H:%M"


def _ensure_completed(transaction) -> None:
    if transaction.status != STATUS_COMPLETED:
        raise ReceiptNotAvailable(
            "Receipt is only available for completed transactions",
            details={"transaction_id": transaction.id, "status": transaction.status},
        )


def render(
    transaction,
    store_name: str,
    store_address: str,
    cashier_name: str,
    *,
    currency_prefix: str = "Rp",
    footer: str = DEFAULT_FOOTER,
) -> str:
    _ensure_completed(transaction)

    def money(cents: int) -> str:
        return format_cents(cents, currency_prefix)

    lines = [
        store_name.upper(),
        store_address,
        "",
        f"Date: {transaction.transaction_date.strftime(DATE_FORMAT)}",
        f"Cashier: {cashier_name}",
        f"Transaction ID: {transaction.id}",
        f"Receipt No: {transaction.transaction_number}",
        SEPARATOR,
    ]
    for item in transaction.items:
        lines.append(item.name)
        lines.append(f"{item.quantity} x {money(item.price_cents)} = {money(item.line_total_cents)}")

    lines.append(SEPARATOR)
    lines.append(f"Subtotal: {money(transaction.subtotal_cents)}")
    if transaction.discount_cents > 0:
        lines.append(f"Discount: {money(transaction.discount_cents)}")
    lines.append(f"Tax: {money(transaction.tax_cents)}")
    lines.append(f"Total: {money(transaction.total_cents)}")
    lines.append(f"Payment: {transaction.payment_method.upper()}")
    if footer:
        lines.append("")
        lines.append(footer)

    return "\n".join(lines) + "\n"


def render_payload(
    transaction,
    store_name: str,
    store_address: str,
    cashier_name: str,
    *,
    currency_prefix: str = "Rp",
    footer: str = DEFAULT_FOOTER,
) -> dict:
    """Structured receipt for print/email/chat delivery, including the rendered text."""
    text = render(
        transaction,
        store_name,
        store_address,
        cashier_name,
        currency_prefix=currency_prefix,
        footer=footer,
    )
    return {
        "store": {"name": store_name, "address": store_address},
        "cashier": cashier_name,
        "transaction_id": transaction.id,
        "transaction_number": transaction.transaction_number,
        "transaction_date": transaction.transaction_date.strftime(DATE_FORMAT),
        "items": [
            {
                "name": item.name,
                "quantity": item.quantity,
                "price_cents": item.price_cents,
                "line_total_cents": item.line_total_cents,
            }
            for item in transaction.items
        ],
        "subtotal_cents": transaction.subtotal_cents,
        "discount_cents": transaction.discount_cents,
        "tax_cents": transaction.tax_cents,
        "total_cents": transaction.total_cents,
        "payment_method": transaction.payment_method,
        "currency_prefix": currency_prefix,
        "text": text,
    }


def render_for_transaction(transaction) -> dict:
    """Resolve store/cashier metadata and app receipt settings, then render."""
    _ensure_completed(transaction)
    store = current_store(transaction.store_id)
    # deactivated cashiers still appear on reprints of their old sales
    cashier = db.session.get(User, transaction.user_id)
    cashier_name = cashier.cashier_name if cashier else f"User {transaction.user_id}"
    config = current_app.config
    return render_payload(
        transaction,
        store.name,
        store.address or "",
        cashier_name,
        currency_prefix=config.get("RECEIPT_CURRENCY_PREFIX", "Rp"),
        footer=config.get("RECEIPT_FOOTER", DEFAULT_FOOTER),
    )
