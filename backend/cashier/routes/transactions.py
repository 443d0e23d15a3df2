# Overview: Flask API routes for committed transactions and receipts.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CheckoutError, NotFound, ValidationError
from ..services import transaction_service, receipt_service
from ..decorators import require_identity
from ..time_utils import parse_iso_datetime


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _get_store_transaction(transaction_id: str):
    tx = transaction_service.get_transaction(transaction_id)
    # Other stores' transactions are reported as missing
    if tx.store_id != g.store_id:
        raise NotFound("Transaction not found", details={"transaction_id": transaction_id})
    return tx


@transactions_bp.get("")
@require_identity
def list_transactions_route():
    """List the cashier's store transactions, newest first. ?start=&end= are ISO-8601, inclusive."""
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 datetimes")
        limit = request.args.get("limit", type=int)

        transactions = transaction_service.list_transactions(g.store_id, start=start, end=end, limit=limit)
        return jsonify({"transactions": [tx.to_dict(include_items=False) for tx in transactions]}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<transaction_id>")
@require_identity
def get_transaction_route(transaction_id: str):
    try:
        tx = _get_store_transaction(transaction_id)
        return jsonify({"transaction": tx.to_dict()}), 200
    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code


@transactions_bp.get("/<transaction_id>/receipt")
@require_identity
def receipt_route(transaction_id: str):
    """
    Render the receipt for reprint/resend.

    ?format=text returns text/plain; default is the JSON payload.
    """
    try:
        tx = _get_store_transaction(transaction_id)
        payload = receipt_service.render_for_transaction(tx)
        if request.args.get("format") == "text":
            return payload["text"], 200, {"Content-Type": "text/plain; charset=utf-8"}
        return jsonify({"receipt": payload}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to render receipt")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<transaction_id>/status")
@require_identity
def update_status_route(transaction_id: str):
    """Move a pending transaction to completed or cancelled."""
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        _get_store_transaction(transaction_id)
        tx = transaction_service.update_status(transaction_id, status)
        return jsonify({"transaction": tx.to_dict()}), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update transaction status")
        return jsonify({"error": "Internal server error"}), 500
