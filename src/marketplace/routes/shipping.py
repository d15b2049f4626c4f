import logging

from flask import Blueprint

from marketplace.core.dependencies import resolve
from marketplace.models.cart import CartItem
from marketplace.models.shipping import SellerShippingPolicy
from marketplace.routes.schemas import CalculateShippingSchema, SellerShippingPolicySchema
from marketplace.routes.utils import flat_response, get_current_caller, load_body, success_response
from marketplace.services.shipping_service import ShippingService

logger = logging.getLogger(__name__)

shipping_bp = Blueprint("shipping", __name__)

_calculate_schema = CalculateShippingSchema()
_policy_schema = SellerShippingPolicySchema()


@shipping_bp.route("/methods", methods=["GET"])
def list_methods():
    methods = resolve(ShippingService).list_methods()
    return success_response([m.to_dict() for m in methods])


@shipping_bp.route("/calculate", methods=["POST"])
def calculate_shipping():
    """
    Estimate shipping for a cart.

    Body: {items: [{id, seller_id, quantity, price, weight_oz}],
           shipping_method_id, to_zipcode}
    """
    body = load_body(_calculate_schema)
    items = [CartItem.from_dict(item) for item in body["items"]]

    quote = resolve(ShippingService).calculate(items, body["shipping_method_id"], body["to_zipcode"])
    return flat_response(quote.model_dump())


@shipping_bp.route("/policy/<int:seller_id>", methods=["GET"])
def get_policy(seller_id: int):
    policy = resolve(ShippingService).get_policy(seller_id)
    return success_response(policy.to_dict())


@shipping_bp.route("/policy/<int:seller_id>", methods=["PUT"])
def update_policy(seller_id: int):
    """Replace the seller's shipping settings (seller or admin only)."""
    caller = get_current_caller()
    body = load_body(_policy_schema)

    policy = SellerShippingPolicy(
        seller_id=seller_id,
        offers_free_shipping=body["offers_free_shipping"],
        standard_shipping_fee=body["standard_shipping_fee"],
        uses_calculated_shipping=body["uses_calculated_shipping"],
        policy_text=body["shipping_policy"],
    )
    updated = resolve(ShippingService).update_policy(seller_id, policy, caller)
    return success_response(updated.to_dict(), "Shipping policy updated")
