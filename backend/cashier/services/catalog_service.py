# Overview: Read-only boundary to the catalog and identity collaborators.

"""
Catalog / identity boundary

Rows from the catalog are mapped to frozen snapshots here, once, so the cart
and the stock validator work with typed values instead of live ORM objects.
Nothing in this module writes; stock is decremented only by the committer.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product, Store, User
from ..errors import NotFound, UnknownProduct


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    store_id: int
    name: str
    unit_price_cents: int
    stock: int
    is_active: bool = True

    @classmethod
    def from_model(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            store_id=product.store_id,
            name=product.name,
            unit_price_cents=product.price_cents,
            stock=product.stock,
            is_active=product.is_active,
        )


def get_product(product_id: int) -> ProductSnapshot:
    """Fetch the current catalog state of one product."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise UnknownProduct(product_id)
    return ProductSnapshot.from_model(product)


def store_catalog_lookup(store_id: int):
    """
    Return a product lookup scoped to one store.

    Products from another store, or inactive ones, are reported as unknown.
    """
    def _lookup(product_id: int) -> ProductSnapshot:
        snapshot = get_product(product_id)
        if snapshot.store_id != store_id:
            raise UnknownProduct(product_id, "product does not belong to store")
        if not snapshot.is_active:
            raise UnknownProduct(product_id, "product is inactive")
        return snapshot
    return _lookup


def current_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFound("User not found", details={"user_id": user_id})
    return user


def current_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFound("Store not found", details={"store_id": store_id})
    return store
