from __future__ import annotations

from ..extensions import db


class Customer(db.Model):
    """
    Customer attached to a sale for loyalty tracking.

    Denormalized aggregates are updated by the committer inside the same
    unit of work as the transaction that earned them.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_store_id", "store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    points = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}
