from dataclasses import dataclass
from typing import Optional, Dict, Any, Union
from decimal import Decimal

DEFAULT_ITEM_WEIGHT_OZ = Decimal("4")


@dataclass
class CartItem:
    """
    A line of the buyer's cart as submitted for shipping estimation.

    Carts live on the client; this object is never persisted. Orders store
    derived line items instead.
    """
    listing_id: Optional[int]
    seller_id: Union[int, str]
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    weight_oz: Optional[Decimal] = None  # None -> DEFAULT_ITEM_WEIGHT_OZ

    def effective_weight(self, default: Decimal = DEFAULT_ITEM_WEIGHT_OZ) -> Decimal:
        """Per-unit weight, falling back to the default when not given"""
        return self.weight_oz if self.weight_oz is not None else default

    def total_weight(self, default: Decimal = DEFAULT_ITEM_WEIGHT_OZ) -> Decimal:
        return self.effective_weight(default) * self.quantity

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        return cls(
            listing_id=data.get("listing_id"),
            seller_id=data.get("seller_id"),
            quantity=data.get("quantity", 1),
            unit_price=data.get("price") or Decimal("0"),
            weight_oz=data.get("weight_oz"),
        )
