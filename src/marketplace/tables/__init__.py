# Re-export all tables from a single entry point:
#   from marketplace.tables import Order, OrderItem
#
# Importing them here also registers every table with Base.metadata before
# Base.metadata.create_all() runs.

from marketplace.tables.listing import Listing
from marketplace.tables.order import Order, OrderItem
from marketplace.tables.shipping import SellerProfile, ShippingMethod

__all__ = [
    "Listing",
    "Order",
    "OrderItem",
    "SellerProfile",
    "ShippingMethod",
]
