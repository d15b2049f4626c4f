from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal
from enum import Enum

from marketplace.utils.money import money_to_float


class OrderStatus(Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


@dataclass
class OrderLine:
    """A cart line submitted at checkout"""
    listing_id: int
    price: Decimal  # Unit price at purchase
    quantity: int


@dataclass
class OrderRequest:
    """
    Checkout payload.

    total, tax and subtotal are the client's pre-computed batch figures.
    tax is apportioned as given; subtotal and total are only compared with
    the recomputed values.
    """
    buyer_id: Optional[int]
    items: List[OrderLine]
    shipping_info: Optional[Dict[str, Any]] = None
    payment_id: Optional[str] = None
    tax_rate: Decimal = Decimal("0")
    tax: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    total: Optional[Decimal] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_id is not None


@dataclass
class OrderCreationResult:
    order_ids: List[int]
    message: str = "Order created successfully"

    @property
    def order_id(self) -> Optional[int]:
        """First id, kept for clients that expect a single order"""
        return self.order_ids[0] if self.order_ids else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "orderIds": self.order_ids,
            "orderId": self.order_id,
        }


@dataclass
class OrderItem:
    """Represents an item within an order"""
    id: Optional[int]  # None for items synthesized from the order row
    listing_id: int
    quantity: int
    price: Decimal
    title: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "quantity": self.quantity,
            "price": money_to_float(self.price),
            "title": self.title,
            "image_url": self.image_url,
        }


@dataclass
class Order:
    """A purchased cart line with its listing and line items"""
    id: int
    buyer_id: int
    listing_id: int
    price_at_purchase: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    tax_rate: Decimal
    status: OrderStatus
    is_paid: bool
    created_at: datetime
    payment_id: Optional[str] = None
    shipping_info: Optional[Dict[str, Any]] = None
    title: Optional[str] = None
    image_url: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "user_id": self.buyer_id,
            "listing_id": self.listing_id,
            "total_amount": money_to_float(self.price_at_purchase),
            "subtotal": money_to_float(self.subtotal),
            "tax_amount": money_to_float(self.tax_amount),
            "tax_rate": float(self.tax_rate),
            "payment_id": self.payment_id,
            "status": self.status.value,
            "shipping_info": self.shipping_info,
            "created_at": self.created_at.isoformat(),
            "is_paid": self.is_paid,
            "title": self.title,
            "image_url": self.image_url,
            "items": [item.to_dict() for item in self.items],
        }
