from decimal import Decimal

from marshmallow import EXCLUDE, Schema, fields, validate


class OrderItemSchema(Schema):
    """One cart line at checkout; numeric strings are accepted and coerced"""

    class Meta:
        unknown = EXCLUDE

    id = fields.Int(required=True)
    price = fields.Decimal(required=True, validate=validate.Range(min=0))
    quantity = fields.Int(required=True, validate=validate.Range(min=1))


class CreateOrderSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    items = fields.List(
        fields.Nested(OrderItemSchema),
        required=True,
        validate=validate.Length(min=1, error="Items must contain at least one item"),
    )
    shipping_info = fields.Dict(data_key="shippingInfo", load_default=None, allow_none=True)
    payment_id = fields.Str(data_key="paymentId", load_default=None, allow_none=True)
    total = fields.Decimal(load_default=None, allow_none=True, validate=validate.Range(min=0))
    tax = fields.Decimal(load_default=None, allow_none=True, validate=validate.Range(min=0))
    subtotal = fields.Decimal(load_default=None, allow_none=True, validate=validate.Range(min=0))
    tax_rate = fields.Decimal(
        data_key="taxRate",
        load_default=Decimal("0"),
        validate=validate.Range(min=0, max=1, max_inclusive=False),
    )


class ShippingItemSchema(Schema):
    """
    Cart line for shipping estimation.

    seller_id is optional here but must be positive when given; the
    estimator rejects lines without one and names them in the error.
    """

    class Meta:
        unknown = EXCLUDE

    listing_id = fields.Int(data_key="id", load_default=None, allow_none=True)
    seller_id = fields.Int(load_default=None, allow_none=True, validate=validate.Range(min=1))
    quantity = fields.Int(load_default=1, validate=validate.Range(min=1))
    price = fields.Decimal(load_default=None, allow_none=True, validate=validate.Range(min=0))
    weight_oz = fields.Decimal(load_default=None, allow_none=True, validate=validate.Range(min=0))


class CalculateShippingSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    items = fields.List(fields.Nested(ShippingItemSchema), load_default=list)
    shipping_method_id = fields.Int(required=True)
    to_zipcode = fields.Str(load_default=None, allow_none=True)


class SellerShippingPolicySchema(Schema):
    """Full replacement of a seller's shipping settings; omitted fields reset to defaults"""

    class Meta:
        unknown = EXCLUDE

    offers_free_shipping = fields.Bool(load_default=False)
    standard_shipping_fee = fields.Decimal(load_default=Decimal("0"), validate=validate.Range(min=0))
    shipping_policy = fields.Str(load_default="", validate=validate.Length(max=2000))
    uses_calculated_shipping = fields.Bool(load_default=False)
