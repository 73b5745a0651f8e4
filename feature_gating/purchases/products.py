"""
Product data models for purchase-gated features.

A ``Product`` describes something that can be bought in the application.
It is identified only by its ``product_id``: two products with the same ID
are the same product, whatever their name or description says.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ProductKind(str, Enum):
    """Product variants."""
    NON_CONSUMABLE = "non_consumable"
    CONSUMABLE = "consumable"
    SUBSCRIPTION = "subscription"


@dataclass(frozen=True, eq=False)
class Product:
    """A purchasable product.

    Use the ``non_consumable``, ``consumable`` and ``subscription``
    constructors rather than building one directly.

    ``name`` and ``description`` are for debugging and diagnostics only.
    ``quantity`` is informational and only set for consumables; the engine
    never enforces it.
    """
    product_id: str
    kind: ProductKind
    name: str
    description: Optional[str] = None
    quantity: Optional[int] = field(default=None)

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id must not be empty")
        if self.quantity is not None and self.kind != ProductKind.CONSUMABLE:
            raise ValueError(f"Only consumable products carry a quantity: {self.product_id}")

    @classmethod
    def non_consumable(cls, product_id: str, name: str, description: Optional[str] = None) -> "Product":
        return cls(product_id=product_id, kind=ProductKind.NON_CONSUMABLE, name=name, description=description)

    @classmethod
    def consumable(
        cls,
        product_id: str,
        name: str,
        description: Optional[str] = None,
        quantity: Optional[int] = None
    ) -> "Product":
        return cls(
            product_id=product_id,
            kind=ProductKind.CONSUMABLE,
            name=name,
            description=description,
            quantity=quantity
        )

    @classmethod
    def subscription(cls, product_id: str, name: str, description: Optional[str] = None) -> "Product":
        return cls(product_id=product_id, kind=ProductKind.SUBSCRIPTION, name=name, description=description)

    @property
    def is_consumable(self) -> bool:
        return self.kind == ProductKind.CONSUMABLE

    def __eq__(self, other) -> bool:
        if not isinstance(other, Product):
            return NotImplemented
        return self.product_id == other.product_id

    def __hash__(self) -> int:
        return hash(self.product_id)

    def __str__(self) -> str:
        return self.product_id
