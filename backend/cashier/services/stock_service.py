# Overview: Advisory stock validation ahead of commit.

"""
Stock Validator

The check here is advisory: it catches the common "not enough on the shelf"
case before the cashier commits, but stock can move between validation and
commit. The committer re-reads stock under lock and is the only authority.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product
from ..errors import InsufficientStock, UnknownProduct


@dataclass(frozen=True)
class Shortfall:
    product_id: int
    requested: int
    available: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "requested_quantity": self.requested,
            "available": self.available,
        }


@dataclass(frozen=True)
class StockReport:
    shortfalls: tuple[Shortfall, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.shortfalls

    def raise_for_shortfalls(self) -> None:
        if self.shortfalls:
            raise InsufficientStock(self.shortfalls)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "shortfalls": [s.to_dict() for s in self.shortfalls],
        }


def validate(checkout_request, catalog_lookup) -> StockReport:
    """
    Compare requested quantities with current catalog stock.

    Quantities are aggregated per product. A product the catalog does not
    know is reported as a shortfall with nothing available. Performs reads
    only.
    """
    shortfalls = []
    for product_id, requested in checkout_request.quantities_by_product().items():
        try:
            available = catalog_lookup(product_id).stock
        except UnknownProduct:
            available = 0
        if requested > available:
            shortfalls.append(Shortfall(product_id, requested, available))
    return StockReport(tuple(shortfalls))


def low_stock(store_id: int, threshold: int) -> list[Product]:
    """Active products at or below the low-stock threshold, lowest first."""
    return (
        db.session.query(Product)
        .filter(
            Product.store_id == store_id,
            Product.is_active.is_(True),
            Product.stock <= threshold,
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
