from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator


class RateTier(BaseModel):
    """
    Weight-banded rate card for one carrier.

    Pricing by total group weight in ounces:
      weight <= 16 oz  -> first_pound
      weight <= 32 oz  -> second_pound
      otherwise        -> over_two_pounds + (floor(weight / 16) - 2) * per_additional_pound
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "first_pound": "4.50",
                "second_pound": "5.50",
                "over_two_pounds": "7.50",
                "per_additional_pound": "1.25",
            }
        },
    )

    first_pound: Decimal = Field(ge=0, description="Rate for 16 oz or less")
    second_pound: Decimal = Field(ge=0, description="Rate for 32 oz or less")
    over_two_pounds: Decimal = Field(ge=0, description="Base rate above 32 oz")
    per_additional_pound: Decimal = Field(ge=0, description="Increment per extra 16 oz")


def parse_rate_table(raw: Dict[str, Any]) -> Dict[str, RateTier]:
    """Validate a {provider: tier} mapping, e.g. loaded from SHIPPING_RATE_TABLE."""
    if not isinstance(raw, dict):
        raise ValueError("rate table must be an object keyed by provider")
    try:
        return {provider: RateTier.model_validate(tier) for provider, tier in raw.items()}
    except ValidationError as e:
        raise ValueError(str(e)) from e


class SellerShippingCost(BaseModel):
    """Per-seller line of a shipping quote"""
    seller_id: Union[int, str] = Field(description="Seller the items belong to")
    item_count: int = Field(ge=0, description="Number of cart lines from this seller")
    free_shipping: bool = Field(description="Whether the seller offers free shipping")
    shipping_cost: Decimal = Field(ge=0, description="Resolved cost for this seller group")

    @field_serializer("shipping_cost")
    def serialize_cost(self, value: Decimal) -> float:
        return float(value)


class ShippingQuoteResponse(BaseModel):
    """Shipping estimate returned by POST /shipping/calculate"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "shipping_method_id": 1,
                "provider": "USPS",
                "service": "usps_priority",
                "cost": 10.5,
                "estimated_delivery_days": 3,
                "to_zipcode": "94103",
                "breakdown": [
                    {"seller_id": 5, "item_count": 1, "free_shipping": False, "shipping_cost": 5.5},
                    {"seller_id": 7, "item_count": 2, "free_shipping": False, "shipping_cost": 5.0},
                ],
            }
        }
    )

    shipping_method_id: int
    provider: str
    service: str
    cost: Decimal = Field(ge=0)
    estimated_delivery_days: Optional[int] = None
    to_zipcode: Optional[str] = None
    breakdown: List[SellerShippingCost] = Field(default_factory=list)

    @field_serializer("cost")
    def serialize_cost(self, value: Decimal) -> float:
        return float(value)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        if not v:
            raise ValueError("provider cannot be empty")
        return v
