# Overview: Cart aggregation and immutable checkout request construction.

"""
Cart Service - in-progress sale for a single cashier session.

WHY: The cart is plain in-memory state owned by whoever is ringing up the
sale. It never touches storage; the first write happens in the committer.
A Cart is passed around explicitly, there is no shared module-level cart.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field

from ..errors import EmptyCart, InvalidDiscount, InvalidPaymentMethod, InvalidQuantity, ValidationError
from ..models.transactions import VALID_PAYMENT_METHODS
from ..money import MAX_AMOUNT_CENTS, apply_rate_bps, coerce_cents, rate_to_bps


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    name: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Immutable snapshot of a cart at the moment checkout starts.

    Derived amounts are computed once in __post_init__:
        subtotal = sum(unit_price * quantity)
        tax      = round_half_up((subtotal - discount) * tax_rate)
        total    = subtotal - discount + tax
    """
    lines: tuple[CartLine, ...]
    discount_cents: int
    tax_rate_bps: int
    payment_method: str
    notes: str | None = None

    subtotal_cents: int = field(init=False)
    tax_cents: int = field(init=False)
    total_cents: int = field(init=False)

    def __post_init__(self):
        if not self.lines:
            raise EmptyCart("Cannot check out an empty cart")
        if self.payment_method not in VALID_PAYMENT_METHODS:
            raise InvalidPaymentMethod(
                f"payment_method must be one of {', '.join(VALID_PAYMENT_METHODS)}",
                details={"payment_method": self.payment_method},
            )
        if self.tax_rate_bps < 0:
            raise ValidationError("tax_rate_bps must be non-negative")

        # One line per product, same merge rule as Cart.add_line
        merged: dict[int, CartLine] = {}
        for line in self.lines:
            existing = merged.get(line.product_id)
            if existing is None:
                merged[line.product_id] = line
            elif existing.unit_price_cents != line.unit_price_cents:
                raise ValidationError(
                    "Lines for the same product must share one unit price",
                    details={"product_id": line.product_id},
                )
            else:
                merged[line.product_id] = CartLine(
                    line.product_id,
                    existing.quantity + line.quantity,
                    existing.unit_price_cents,
                    existing.name or line.name,
                )
        object.__setattr__(self, "lines", tuple(merged.values()))

        subtotal = sum(line.line_total_cents for line in self.lines)
        if self.discount_cents < 0 or self.discount_cents > subtotal:
            raise InvalidDiscount(
                "Discount must be between 0 and the subtotal",
                details={"discount_cents": self.discount_cents, "subtotal_cents": subtotal},
            )
        tax = apply_rate_bps(subtotal - self.discount_cents, self.tax_rate_bps)

        object.__setattr__(self, "subtotal_cents", subtotal)
        object.__setattr__(self, "tax_cents", tax)
        object.__setattr__(self, "total_cents", subtotal - self.discount_cents + tax)

    def quantities_by_product(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for line in self.lines:
            totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
        return totals

    def fingerprint(self) -> str:
        """Stable hash of the request content, for detecting reused idempotency keys."""
        canonical = {
            "lines": sorted(
                [line.product_id, line.quantity, line.unit_price_cents] for line in self.lines
            ),
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "payment_method": self.payment_method,
            "notes": self.notes,
        }
        encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
        }


class Cart:
    """Ordered product_id -> CartLine mapping plus a discount."""

    def __init__(self):
        self._lines: dict[int, CartLine] = {}
        self.discount_cents = 0

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    @property
    def subtotal_cents(self) -> int:
        return sum(line.line_total_cents for line in self._lines.values())

    def add_line(self, product_id: int, quantity: int, unit_price_cents: int, name: str | None = None) -> CartLine:
        """Insert a line, or merge into the existing line for the same product."""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(
                "quantity must be a positive integer",
                details={"product_id": product_id, "quantity": quantity},
            )
        if isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int):
            raise ValidationError(
                "unit_price_cents must be an integer number of cents",
                details={"product_id": product_id, "unit_price_cents": unit_price_cents},
            )
        if unit_price_cents < 0 or unit_price_cents > MAX_AMOUNT_CENTS:
            raise ValidationError("unit_price_cents out of range", details={"product_id": product_id})

        existing = self._lines.get(product_id)
        if existing is not None:
            # keep the original price snapshot; only the quantity grows
            line = CartLine(
                product_id=product_id,
                quantity=existing.quantity + quantity,
                unit_price_cents=existing.unit_price_cents,
                name=existing.name or name,
            )
        else:
            line = CartLine(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents, name=name)
        self._lines[product_id] = line
        return line

    def add_product(self, product, quantity: int = 1) -> CartLine:
        """Add a catalog ProductSnapshot, capturing its current price."""
        return self.add_line(product.id, quantity, product.unit_price_cents, name=product.name)

    def set_quantity(self, product_id: int, quantity: int) -> CartLine | None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidQuantity(
                "quantity must be a non-negative integer",
                details={"product_id": product_id, "quantity": quantity},
            )
        existing = self._lines.get(product_id)
        if existing is None:
            raise InvalidQuantity("product is not in the cart", details={"product_id": product_id})
        if quantity == 0:
            self.remove_line(product_id)
            return None
        line = CartLine(product_id, quantity, existing.unit_price_cents, existing.name)
        self._lines[product_id] = line
        return line

    def remove_line(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def set_discount(self, amount_cents: int) -> None:
        subtotal = self.subtotal_cents
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents < 0 or amount_cents > subtotal:
            raise InvalidDiscount(
                "Discount must be between 0 and the subtotal",
                details={"discount_cents": amount_cents, "subtotal_cents": subtotal},
            )
        self.discount_cents = amount_cents

    def clear(self) -> None:
        self._lines.clear()
        self.discount_cents = 0

    def refresh_prices(self, catalog_lookup) -> None:
        """Re-snapshot every line's unit price and name from the catalog."""
        for product_id, line in list(self._lines.items()):
            product = catalog_lookup(product_id)
            self._lines[product_id] = CartLine(product_id, line.quantity, product.unit_price_cents, product.name)

    def build_checkout_request(self, tax_rate_bps: int, payment_method: str, notes: str | None = None) -> CheckoutRequest:
        """Snapshot the cart. The cart itself stays editable."""
        if not self._lines:
            raise EmptyCart("Cannot check out an empty cart")
        return CheckoutRequest(
            lines=self.lines,
            discount_cents=self.discount_cents,
            tax_rate_bps=tax_rate_bps,
            payment_method=(payment_method or "").strip().lower(),
            notes=notes,
        )


def _coerce_quantity(value, product_id) -> int:
    if isinstance(value, bool):
        raise InvalidQuantity("quantity must be a positive integer", details={"product_id": product_id})
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise InvalidQuantity(
            "quantity must be a positive integer",
            details={"product_id": product_id, "quantity": value},
        )
    return value


def _coerce_product_id(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("product_id must be a positive integer", details={"product_id": value})
    return value


def resolve_tax_rate_bps(data: dict, default_bps: int) -> int:
    """Pick tax_rate_bps, else a fractional tax_rate, else the default."""
    if data.get("tax_rate_bps") is not None:
        bps = data["tax_rate_bps"]
        if isinstance(bps, bool) or not isinstance(bps, int) or not 0 <= bps <= 10_000:
            raise ValidationError("tax_rate_bps must be an integer between 0 and 10000")
        return bps
    if data.get("tax_rate") is not None:
        return rate_to_bps(data["tax_rate"])
    return default_bps


def checkout_request_from_payload(data: dict, catalog_lookup, *, default_tax_rate_bps: int) -> CheckoutRequest:
    """
    Build a CheckoutRequest from a JSON body.

    Lines without `unit_price_cents` take the current catalog price. Lines
    that repeat a product are merged exactly like Cart.add_line.
    """
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    raw_lines = data.get("lines") or []
    if not isinstance(raw_lines, list):
        raise ValidationError("lines must be a list")

    cart = Cart()
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("each line must be an object")
        product_id = _coerce_product_id(raw.get("product_id"))
        quantity = _coerce_quantity(raw.get("quantity"), product_id)
        product = catalog_lookup(product_id)
        if raw.get("unit_price_cents") is not None:
            unit_price = coerce_cents(raw["unit_price_cents"], field="unit_price_cents")
        else:
            unit_price = product.unit_price_cents
        cart.add_line(product_id, quantity, unit_price, name=product.name)

    if not len(cart):
        raise EmptyCart("Cannot check out an empty cart")

    if data.get("discount_cents") is not None:
        cart.set_discount(data["discount_cents"])

    return cart.build_checkout_request(
        tax_rate_bps=resolve_tax_rate_bps(data, default_tax_rate_bps),
        payment_method=str(data.get("payment_method") or ""),
        notes=data.get("notes"),
    )
