# Overview: Service-layer operations for transactions; the atomic checkout commit.

"""
Transaction Committer

WHY: Turning a cart into a sale touches shared state (stock rows) from many
cashiers at once. Everything below happens in ONE unit of work: either the
transaction, its items, the stock decrements and the customer's loyalty
totals are all written, or nothing is.

Commit sequence (authoritative):
1. Take the write lock (BEGIN IMMEDIATE on SQLite, row locks elsewhere).
2. Look up the idempotency key. A hit returns the stored transaction and
   writes nothing.
3. Re-read every touched product row under lock, in product-id order.
4. Any shortfall aborts with InsufficientStock listing all short products.
5. Decrement stock with UPDATE ... WHERE version_id = :seen AND stock >= :qty.
   Zero rows updated means another writer got there first: StaleDataError,
   roll back, retry the whole unit of work.
6. Insert the transaction (status=completed) and one item per product.
7. Commit.

Lock/timeout/conflict failures are retried with backoff. When retries run
out, or storage fails any other way, the session is rolled back and
CommitFailed is raised. Its outcome may be unknown to the caller (e.g. a
timeout on COMMIT); retrying with the same idempotency key is always safe.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Customer, Product, Transaction, TransactionItem, TransactionSequence
from ..models.transactions import STATUS_COMPLETED, VALID_STATUSES
from ..errors import (
    CheckoutError,
    CommitFailed,
    DuplicateTransaction,
    InsufficientStock,
    InvalidStatusTransition,
    NotFound,
    UnknownProduct,
    ValidationError,
)
from ..time_utils import utcnow
from .catalog_service import ProductSnapshot, current_store, current_user
from .concurrency import RETRYABLE_ERRORS, begin_write_transaction, lock_for_update, run_with_retry
from .stock_service import Shortfall

COMMIT_RETRYABLE_ERRORS = RETRYABLE_ERRORS + (IntegrityError,)

# Unique constraints two concurrent committers can collide on. The retry
# observes the winner's row. Any other IntegrityError is permanent.
RACE_CONSTRAINT_MARKERS = (
    "idempotency_key",
    "transaction_sequences",
    "transaction_number",
    "uq_transactions_store_number",
)

MAX_IDEMPOTENCY_KEY_LENGTH = 128


def _is_commit_race(exc: IntegrityError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in RACE_CONSTRAINT_MARKERS)


@dataclass(frozen=True)
class CommitResult:
    transaction: Transaction
    replayed: bool = False


def find_by_idempotency_key(key: str) -> Transaction | None:
    return db.session.query(Transaction).filter_by(idempotency_key=key).first()


def replay_catalog_lookup(transaction: Transaction, fallback):
    """
    Catalog lookup that prices products from a committed transaction's items.

    A retried checkout must rebuild the same request it sent the first time,
    even if the catalog price changed or the product was deactivated since.
    A product the transaction does not contain is looked up via `fallback`;
    if the catalog rejects it, the retry cannot match and is a duplicate.
    """
    items = {item.product_id: item for item in transaction.items}

    def _lookup(product_id: int) -> ProductSnapshot:
        item = items.get(product_id)
        if item is not None:
            return ProductSnapshot(
                id=product_id,
                store_id=transaction.store_id,
                name=item.name,
                unit_price_cents=item.price_cents,
                stock=0,
            )
        try:
            return fallback(product_id)
        except UnknownProduct:
            raise DuplicateTransaction(
                "Idempotency key was already used for a different checkout",
                details={"idempotency_key": transaction.idempotency_key, "transaction_id": transaction.id},
            )
    return _lookup


def get_transaction(transaction_id: str) -> Transaction:
    tx = db.session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFound("Transaction not found", details={"transaction_id": transaction_id})
    return tx


def list_transactions(
    store_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[Transaction]:
    """Transactions for a store, newest first. Date bounds are inclusive."""
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
        raise ValidationError("limit must be a positive integer", details={"limit": limit})
    q = db.session.query(Transaction).filter(Transaction.store_id == store_id)
    if start is not None:
        q = q.filter(Transaction.transaction_date >= start)
    if end is not None:
        q = q.filter(Transaction.transaction_date <= end)
    q = q.order_by(Transaction.transaction_date.desc(), Transaction.transaction_number.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def _next_transaction_number(store_id: int, when: datetime) -> str:
    """
    Allocate the next per-store, per-day number, e.g. 20261018-0007.

    Runs inside the caller's unit of work so a rolled-back commit never
    consumes a number.
    """
    business_date = when.strftime("%Y%m%d")
    stmt = (
        update(TransactionSequence)
        .where(
            TransactionSequence.store_id == store_id,
            TransactionSequence.business_date == business_date,
        )
        .values(next_number=TransactionSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(TransactionSequence.next_number)
            .filter_by(store_id=store_id, business_date=business_date)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(TransactionSequence(store_id=store_id, business_date=business_date, next_number=2))
        db.session.flush()
        number = 1
    return f"{business_date}-{number:04d}"


def _check_replay(existing: Transaction, store_id: int, fingerprint: str) -> None:
    if existing.store_id != store_id or existing.request_fingerprint != fingerprint:
        raise DuplicateTransaction(
            "Idempotency key was already used for a different checkout",
            details={"idempotency_key": existing.idempotency_key, "transaction_id": existing.id},
        )


def _lock_products(store_id: int, quantities: dict[int, int]) -> dict[int, Product]:
    products = lock_for_update(
        db.session.query(Product)
        .filter(Product.id.in_(sorted(quantities)))
        .order_by(Product.id)
        .populate_existing()
    ).all()
    by_id = {p.id: p for p in products}

    for product_id in quantities:
        product = by_id.get(product_id)
        if product is None:
            raise UnknownProduct(product_id)
        if product.store_id != store_id:
            raise UnknownProduct(product_id, "product does not belong to store")
        if not product.is_active:
            raise UnknownProduct(product_id, "product is inactive")
    return by_id


def _decrement_stock(product: Product, quantity: int) -> None:
    stmt = (
        update(Product)
        .where(
            Product.id == product.id,
            Product.version_id == product.version_id,
            Product.stock >= quantity,
        )
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise StaleDataError(f"product {product.id} changed during commit")


def _apply_loyalty(customer: Customer, total_cents: int, now: datetime) -> None:
    cents_per_point = current_app.config.get("LOYALTY_CENTS_PER_POINT", 10000)
    customer.total_spent_cents = (customer.total_spent_cents or 0) + total_cents
    if cents_per_point > 0:
        customer.points = (customer.points or 0) + total_cents // cents_per_point
    customer.last_visit_at = now


def commit(
    checkout_request,
    store_id: int,
    user_id: int,
    customer_id: int | None = None,
    idempotency_key: str | None = None,
) -> CommitResult:
    """
    Atomically decrement stock and persist a completed transaction.

    Returns CommitResult(transaction, replayed). `replayed` is True when the
    idempotency key matched an already committed transaction; in that case
    nothing was written.
    """
    key = (idempotency_key or "").strip() or str(uuid.uuid4())
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(f"idempotency_key exceeds {MAX_IDEMPOTENCY_KEY_LENGTH} characters")

    fingerprint = checkout_request.fingerprint()
    quantities = checkout_request.quantities_by_product()
    config = current_app.config
    logger = current_app.logger

    # Identity checks are plain reads, done before any lock is taken
    current_store(store_id)
    user = current_user(user_id)
    if user.store_id != store_id:
        raise ValidationError("User does not belong to store", details={"user_id": user_id, "store_id": store_id})
    if customer_id is not None:
        customer = db.session.get(Customer, customer_id)
        if customer is None or customer.store_id != store_id:
            raise NotFound("Customer not found", details={"customer_id": customer_id})

    def _op() -> CommitResult:
        begin_write_transaction()

        existing = find_by_idempotency_key(key)
        if existing is not None:
            _check_replay(existing, store_id, fingerprint)
            db.session.rollback()
            logger.info("Replayed transaction %s for idempotency key %s", existing.id, key)
            return CommitResult(existing, replayed=True)

        products = _lock_products(store_id, quantities)

        shortfalls = [
            Shortfall(product_id, qty, products[product_id].stock)
            for product_id, qty in quantities.items()
            if qty > products[product_id].stock
        ]
        if shortfalls:
            raise InsufficientStock(shortfalls)

        names = {product_id: products[product_id].name for product_id in quantities}
        for product_id in sorted(quantities):
            _decrement_stock(products[product_id], quantities[product_id])
            db.session.expire(products[product_id])

        now = utcnow()
        tx = Transaction(
            id=str(uuid.uuid4()),
            transaction_number=_next_transaction_number(store_id, now),
            idempotency_key=key,
            request_fingerprint=fingerprint,
            store_id=store_id,
            user_id=user_id,
            customer_id=customer_id,
            subtotal_cents=checkout_request.subtotal_cents,
            discount_cents=checkout_request.discount_cents,
            tax_rate_bps=checkout_request.tax_rate_bps,
            tax_cents=checkout_request.tax_cents,
            total_cents=checkout_request.total_cents,
            payment_method=checkout_request.payment_method,
            status=STATUS_COMPLETED,
            notes=checkout_request.notes,
            transaction_date=now,
        )
        for line_number, line in enumerate(checkout_request.lines, start=1):
            tx.items.append(TransactionItem(
                product_id=line.product_id,
                line_number=line_number,
                name=names[line.product_id],
                price_cents=line.unit_price_cents,
                quantity=line.quantity,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(tx)

        if customer_id is not None:
            customer = lock_for_update(
                db.session.query(Customer).filter_by(id=customer_id).populate_existing()
            ).one()
            _apply_loyalty(customer, checkout_request.total_cents, now)

        db.session.commit()
        logger.info(
            "Committed transaction %s (%s) store=%s total_cents=%s",
            tx.id, tx.transaction_number, store_id, tx.total_cents,
        )
        return CommitResult(tx, replayed=False)

    def _guarded_op() -> CommitResult:
        try:
            return _op()
        except IntegrityError as exc:
            if _is_commit_race(exc):
                raise
            db.session.rollback()
            logger.error("Commit for idempotency key %s violates a constraint: %s", key, exc.orig)
            raise CommitFailed(
                "Checkout violates a storage constraint",
                idempotency_key=key,
                retryable=False,
            ) from exc

    try:
        return run_with_retry(
            _guarded_op,
            attempts=config.get("COMMIT_RETRY_ATTEMPTS", 3),
            backoff_base=config.get("COMMIT_RETRY_BACKOFF_SECONDS", 0.05),
            retry_on=COMMIT_RETRYABLE_ERRORS,
        )
    except CheckoutError:
        db.session.rollback()
        raise
    except COMMIT_RETRYABLE_ERRORS as exc:
        # run_with_retry already rolled back
        logger.warning("Commit retries exhausted for idempotency key %s: %s", key, exc)
        raise CommitFailed(idempotency_key=key) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Commit failed for idempotency key %s", key)
        raise CommitFailed(idempotency_key=key) from exc


def update_status(transaction_id: str, new_status: str) -> Transaction:
    """Move a pending transaction to completed or cancelled."""
    if new_status not in VALID_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(VALID_STATUSES)}",
            details={"status": new_status},
        )

    def _op():
        begin_write_transaction()
        tx = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id).populate_existing()
        ).first()
        if tx is None:
            raise NotFound("Transaction not found", details={"transaction_id": transaction_id})
        if not tx.can_transition_to(new_status):
            raise InvalidStatusTransition(
                f"Cannot move transaction from {tx.status} to {new_status}",
                details={"transaction_id": transaction_id, "status": tx.status},
            )
        tx.status = new_status
        db.session.commit()
        return tx

    try:
        return run_with_retry(_op)
    except CheckoutError:
        db.session.rollback()
        raise
