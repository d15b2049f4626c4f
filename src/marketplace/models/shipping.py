from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from marketplace.models.cart import CartItem
from marketplace.utils.money import money_to_float


class ShippingProvider(str, Enum):
    """Carriers with dedicated rate tables"""
    USPS = "USPS"
    UPS = "UPS"
    FEDEX = "FedEx"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "ShippingProvider":
        for provider in cls:
            if provider.value.lower() == (value or "").lower():
                return provider
        return cls.OTHER


class PolicyKind(Enum):
    """How a seller's shipping cost is derived, in precedence order"""
    FREE = "free"
    FLAT_FEE = "flat_fee"
    CALCULATED = "calculated"
    DEFAULT = "default"


@dataclass
class ShippingMethod:
    """A carrier service the buyer can pick at checkout"""
    id: int
    name: str
    display_name: str
    provider: str
    service_code: str
    description: Optional[str] = None
    is_active: bool = True

    @property
    def provider_kind(self) -> ShippingProvider:
        return ShippingProvider.parse(self.provider)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "provider": self.provider,
            "service_code": self.service_code,
            "description": self.description,
            "is_active": self.is_active,
        }


@dataclass
class SellerShippingPolicy:
    """Shipping settings of one seller (seller_profiles columns)"""
    seller_id: Union[int, str]
    offers_free_shipping: bool = False
    standard_shipping_fee: Decimal = Decimal("0")
    uses_calculated_shipping: bool = False
    policy_text: str = ""

    @classmethod
    def defaults(cls, seller_id: Union[int, str]) -> "SellerShippingPolicy":
        """Policy used for sellers without a profile row"""
        return cls(seller_id=seller_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seller_id": self.seller_id,
            "offers_free_shipping": self.offers_free_shipping,
            "standard_shipping_fee": money_to_float(self.standard_shipping_fee),
            "uses_calculated_shipping": self.uses_calculated_shipping,
            "shipping_policy": self.policy_text,
        }


@dataclass
class SellerGroup:
    """Cart lines that ship together from one seller"""
    seller_id: Union[int, str]
    items: List[CartItem] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def total_weight(self, default_weight: Decimal) -> Decimal:
        return sum((item.total_weight(default_weight) for item in self.items), Decimal("0"))


def group_by_seller(items: List[CartItem]) -> List[SellerGroup]:
    """Group cart lines by seller, groups ordered by each seller's first appearance"""
    groups: Dict[Any, SellerGroup] = {}
    for item in items:
        group = groups.get(item.seller_id)
        if group is None:
            group = groups[item.seller_id] = SellerGroup(seller_id=item.seller_id)
        group.items.append(item)
    return list(groups.values())
