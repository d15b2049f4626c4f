import logging

from flask import Blueprint, g, request

from marketplace.core.config import Config
from marketplace.core.dependencies import resolve
from marketplace.models.order import OrderLine, OrderRequest
from marketplace.routes.schemas import CreateOrderSchema
from marketplace.routes.utils import flat_response, get_current_caller, load_body, parse_int, success_response
from marketplace.services.order_service import OrderService

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__)

_create_order_schema = CreateOrderSchema()


@orders_bp.route("", methods=["POST"])
def create_order():
    """
    Checkout: one order row per cart line, written in a single transaction.

    Body: {items: [{id, price, quantity}], shippingInfo, paymentId,
           total, tax, subtotal, taxRate}
    """
    caller = get_current_caller()
    body = load_body(_create_order_schema)

    order_request = OrderRequest(
        buyer_id=caller.user_id,
        items=[
            OrderLine(listing_id=item["id"], price=item["price"], quantity=item["quantity"])
            for item in body["items"]
        ],
        shipping_info=body["shipping_info"],
        payment_id=body["payment_id"],
        tax_rate=body["tax_rate"],
        tax=body["tax"],
        subtotal=body["subtotal"],
        total=body["total"],
    )

    result = resolve(OrderService).create_orders(order_request, g.deadline)
    return flat_response(result.to_dict(), 201)


@orders_bp.route("/my-orders", methods=["GET"])
def list_my_orders():
    """The caller's orders, newest first."""
    caller = get_current_caller()
    api = resolve(Config).api

    page = parse_int(request.args.get("page"), 1, min_val=1, field_name="page")
    limit = parse_int(
        request.args.get("limit"),
        api.default_page_size,
        min_val=1,
        max_val=api.max_page_size,
        field_name="limit",
    )

    return flat_response(resolve(OrderService).list_orders(caller.user_id, page, limit))


@orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    """Single order with its line items; buyers see only their own."""
    caller = get_current_caller()
    return success_response(resolve(OrderService).get_order(order_id, caller))
