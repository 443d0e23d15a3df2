from __future__ import annotations

from ..extensions import db


class Product(db.Model):
    """
    Product master data, owned by the catalog.

    STOCK: `stock` is a stored on-hand count. Only the transaction committer
    decrements it, always inside its unit of work and always guarded by
    `version_id` plus a `stock >= quantity` predicate. The CHECK constraint is
    the last line: no reader may ever observe a negative count.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"
