from marketplace.routes.orders import orders_bp
from marketplace.routes.shipping import shipping_bp

__all__ = ["orders_bp", "shipping_bp"]
