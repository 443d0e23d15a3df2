# Overview: Flask API routes for checkout; parses input and returns JSON responses.

# backend/cashier/routes/checkout.py
"""Checkout API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CheckoutError
from ..services import cart_service, stock_service, transaction_service, receipt_service
from ..services.catalog_service import store_catalog_lookup
from ..decorators import require_identity


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


def _build_request(data: dict, catalog_lookup=None, default_tax_rate_bps=None):
    if default_tax_rate_bps is None:
        store = g.current_user.store
        default_tax_rate_bps = store.tax_rate_bps if store.tax_rate_bps else current_app.config["DEFAULT_TAX_RATE_BPS"]
    return cart_service.checkout_request_from_payload(
        data,
        catalog_lookup or store_catalog_lookup(g.store_id),
        default_tax_rate_bps=default_tax_rate_bps,
    )


@checkout_bp.post("/validate")
@require_identity
def validate_route():
    """
    Advisory stock check for a cart.

    Returns 200 with {"checkout": ..., "stock": {"ok": bool, "shortfalls": [...]}}.
    Nothing is reserved; stock is re-checked at commit.
    """
    try:
        data = request.get_json(silent=True) or {}
        checkout_request = _build_request(data)
        report = stock_service.validate(checkout_request, store_catalog_lookup(g.store_id))
        return jsonify({"checkout": checkout_request.to_dict(), "stock": report.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate checkout")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("")
@require_identity
def checkout_route():
    """
    Commit a checkout.

    Body: lines, discount_cents, tax_rate_bps or tax_rate, payment_method,
    customer_id, notes, idempotency_key (also accepted as an Idempotency-Key
    header).

    Returns 201 with transaction + receipt, or 200 when the idempotency key
    matched an already committed transaction. A retried key skips the
    advisory stock check: the stock it needs was already taken by the
    original commit.
    """
    try:
        data = request.get_json(silent=True) or {}

        customer_id = data.get("customer_id")
        if customer_id is not None and (isinstance(customer_id, bool) or not isinstance(customer_id, int)):
            return jsonify({"error": "customer_id must be an integer"}), 400

        idempotency_key = data.get("idempotency_key") or request.headers.get("Idempotency-Key")
        if idempotency_key is not None and not isinstance(idempotency_key, str):
            return jsonify({"error": "idempotency_key must be a string"}), 400
        idempotency_key = (idempotency_key or "").strip() or None

        existing = transaction_service.find_by_idempotency_key(idempotency_key) if idempotency_key else None
        if existing is not None:
            # Rebuild with the committed price snapshots and tax rate so the
            # retry fingerprints exactly like the original request
            checkout_request = _build_request(
                data,
                transaction_service.replay_catalog_lookup(existing, store_catalog_lookup(g.store_id)),
                default_tax_rate_bps=existing.tax_rate_bps,
            )
        else:
            checkout_request = _build_request(data)
            report = stock_service.validate(checkout_request, store_catalog_lookup(g.store_id))
            report.raise_for_shortfalls()

        result = transaction_service.commit(
            checkout_request,
            store_id=g.store_id,
            user_id=g.current_user.id,
            customer_id=customer_id,
            idempotency_key=idempotency_key,
        )

        tx = result.transaction
        return jsonify({
            "transaction": tx.to_dict(),
            "receipt": receipt_service.render_for_transaction(tx),
            "replayed": result.replayed,
        }), 200 if result.replayed else 201

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit checkout")
        return jsonify({"error": "Internal server error"}), 500
