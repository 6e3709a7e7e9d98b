"""Cart line items — price snapshots keyed by product and variant.

A line is identified by ``(product_id, variant signature)``. The signature is
canonical JSON of the flat variant mapping, so ``{"size": "M", "color": "Red"}``
and ``{"color": "Red", "size": "M"}`` address the same line.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any, NamedTuple

from protean.exceptions import ValidationError


class LineKey(NamedTuple):
    product_id: str
    variant: str


def variant_signature(variant: Mapping[str, Any] | None) -> str:
    if not variant:
        return ""
    return json.dumps(dict(variant), sort_keys=True, separators=(",", ":"))


def line_key(product_id: str, variant: Mapping[str, Any] | None = None) -> LineKey:
    return LineKey(str(product_id), variant_signature(variant))


def sanitize(data: Mapping[str, Any]) -> dict[str, Any]:
    """Drop fields without a value; the durable store rejects them."""
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class CartLine:
    """One product (plus optional variant) with its quantity and price snapshot."""

    product_id: str
    name: str
    unit_price: float
    original_unit_price: float
    quantity: int
    vendor_id: str | None = None
    vendor_name: str | None = None
    image: str | None = None
    selected_variant: dict[str, str] | None = None
    added_at: str | None = None

    @property
    def key(self) -> LineKey:
        return line_key(self.product_id, self.selected_variant)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def to_document(self) -> dict[str, Any]:
        return sanitize(
            {
                "product_id": self.product_id,
                "name": self.name,
                "unit_price": self.unit_price,
                "original_unit_price": self.original_unit_price,
                "quantity": self.quantity,
                "vendor_id": self.vendor_id,
                "vendor_name": self.vendor_name,
                "image": self.image,
                "selected_variant": dict(self.selected_variant) if self.selected_variant else None,
                "added_at": self.added_at,
            }
        )

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "CartLine":
        unit_price = float(data["unit_price"])
        variant = data.get("selected_variant")
        return cls(
            product_id=str(data["product_id"]),
            name=data.get("name") or "",
            unit_price=unit_price,
            original_unit_price=float(data.get("original_unit_price") or unit_price),
            quantity=int(data["quantity"]),
            vendor_id=data.get("vendor_id"),
            vendor_name=data.get("vendor_name"),
            image=data.get("image"),
            selected_variant=dict(variant) if variant else None,
            added_at=data.get("added_at"),
        )

    @classmethod
    def from_product(
        cls,
        product: Mapping[str, Any],
        quantity: int,
        variant: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> "CartLine":
        """Snapshot a catalogue product. The sale price wins when the product has one."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if product.get("id") is None or product.get("price") is None:
            raise ValidationError({"product": ["Product must have an id and a price"]})

        list_price = float(product["price"])
        sale_price = product.get("sale_price")
        images = product.get("images") or []
        return cls(
            product_id=str(product["id"]),
            name=product.get("name") or "",
            unit_price=float(sale_price) if sale_price else list_price,
            original_unit_price=list_price,
            quantity=quantity,
            vendor_id=product.get("vendor_id"),
            vendor_name=product.get("vendor_name"),
            image=product.get("image") or (images[0] if images else None),
            selected_variant={str(k): str(v) for k, v in variant.items()} if variant else None,
            added_at=(now or datetime.now(UTC)).isoformat(),
        )


def merge_lines(base: Iterable[CartLine], incoming: Iterable[CartLine]) -> list[CartLine]:
    """Fold ``incoming`` into ``base``: quantities add up on a shared key, new keys append."""
    merged = list(base)
    positions = {line.key: index for index, line in enumerate(merged)}
    for line in incoming:
        index = positions.get(line.key)
        if index is None:
            positions[line.key] = len(merged)
            merged.append(line)
        else:
            merged[index] = merged[index].with_quantity(merged[index].quantity + line.quantity)
    return merged


def cart_total(lines: Iterable[CartLine]) -> float:
    return sum(line.unit_price * line.quantity for line in lines)


def cart_count(lines: Iterable[CartLine]) -> int:
    return sum(line.quantity for line in lines)


def cart_document(user_id: str, lines: Iterable[CartLine], revision: int, now: datetime | None = None) -> dict:
    """The remote cart document for an authenticated user."""
    updated_at = now or datetime.now(UTC)
    return {
        "user_id": user_id,
        "items": [line.to_document() for line in lines],
        "revision": revision,
        "updated_at": int(updated_at.timestamp() * 1000),
    }


def lines_from_document(document: Mapping[str, Any] | None) -> list[CartLine]:
    if not document:
        return []
    return [CartLine.from_document(item) for item in document.get("items") or [] if int(item.get("quantity", 0)) >= 1]
