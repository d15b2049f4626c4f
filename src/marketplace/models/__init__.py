from .cart import CartItem
from .order import Order, OrderItem, OrderLine, OrderRequest, OrderCreationResult, OrderStatus
from .shipping import PolicyKind, SellerGroup, SellerShippingPolicy, ShippingMethod, ShippingProvider
from .user import Caller

__all__ = [
    "CartItem",
    "Order", "OrderItem", "OrderLine", "OrderRequest", "OrderCreationResult", "OrderStatus",
    "PolicyKind", "SellerGroup", "SellerShippingPolicy", "ShippingMethod", "ShippingProvider",
    "Caller",
]
