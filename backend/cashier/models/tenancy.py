from __future__ import annotations

from ..extensions import db


class Store(db.Model):
    """
    Store that owns products, cashiers and transactions.

    Name and address are printed in the receipt header.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)

    # Flat tax rate for the store
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # Basis points (e.g., 1100 = 11%)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"


class User(db.Model):
    """Cashier identity. Authentication itself lives outside the checkout core."""
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("store_id", "username", name="uq_users_store_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    username = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} store_id={self.store_id}>"

    @property
    def cashier_name(self) -> str:
        return self.display_name or self.username
