from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)

# pending is the only non-terminal state
ALLOWED_STATUS_TRANSITIONS = {
    STATUS_PENDING: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_TRANSFER = "transfer"

VALID_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_TRANSFER)


class Transaction(db.Model):
    """
    Committed sale.

    IMMUTABLE: Totals and items never change after insert. The only allowed
    mutation is a status move away from `pending`.

    IDEMPOTENCY: `idempotency_key` is unique. A retried commit carrying the
    same key finds this row instead of decrementing stock a second time;
    `request_fingerprint` detects a key reused for a different cart.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("idempotency_key", name="uq_transactions_idempotency_key"),
        db.UniqueConstraint("store_id", "transaction_number", name="uq_transactions_store_number"),
        db.CheckConstraint("total_cents >= 0", name="ck_transactions_total_non_negative"),
        db.CheckConstraint("discount_cents >= 0", name="ck_transactions_discount_non_negative"),
        db.CheckConstraint(
            "payment_method IN ('cash', 'card', 'transfer')",
            name="ck_transactions_payment_method",
        ),
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="ck_transactions_status",
        ),
        db.Index("ix_transactions_store_date", "store_id", "transaction_date"),
    )

    id = db.Column(db.String(36), primary_key=True)
    transaction_number = db.Column(db.String(32), nullable=False)
    idempotency_key = db.Column(db.String(128), nullable=False)
    request_fingerprint = db.Column(db.String(64), nullable=False)

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("transactions", lazy=True))
    user = db.relationship("User")
    customer = db.relationship("Customer")
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ALLOWED_STATUS_TRANSITIONS.get(self.status, set())

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "idempotency_key": self.idempotency_key,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "transaction_date": to_utc_z(self.transaction_date),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """Line of a committed transaction with denormalized name/price snapshots."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        db.CheckConstraint("price_cents >= 0", name="ck_transaction_items_price_non_negative"),
    )

    transaction_id = db.Column(db.String(36), db.ForeignKey("transactions.id"), primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)

    line_number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "line_number": self.line_number,
            "name": self.name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }


class TransactionSequence(db.Model):
    """Per-store, per-day counter behind human-readable transaction numbers."""
    __tablename__ = "transaction_sequences"
    __table_args__ = (
        db.UniqueConstraint("store_id", "business_date", name="uq_transaction_sequences_store_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
