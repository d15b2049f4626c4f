from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
import logging

from marketplace.core.config import ShippingConfig
from marketplace.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from marketplace.models.cart import CartItem
from marketplace.models.shipping import (
    PolicyKind, SellerGroup, SellerShippingPolicy, ShippingMethod, group_by_seller
)
from marketplace.models.user import Caller
from marketplace.repositories.shipping_repository import ShippingRepository
from marketplace.schemas.shipping_schemas import RateTier, SellerShippingCost, ShippingQuoteResponse
from marketplace.utils.money import ZERO, quantize_money

logger = logging.getLogger(__name__)

OUNCES_PER_POUND = Decimal("16")

# First matching rule wins; a seller matching none falls back to DEFAULT.
POLICY_RULES: Tuple[Tuple[PolicyKind, Callable[[SellerShippingPolicy], bool]], ...] = (
    (PolicyKind.FREE, lambda policy: policy.offers_free_shipping),
    (PolicyKind.FLAT_FEE, lambda policy: policy.standard_shipping_fee > 0),
    (PolicyKind.CALCULATED, lambda policy: policy.uses_calculated_shipping),
)


def classify_policy(policy: SellerShippingPolicy) -> PolicyKind:
    """Resolve which pricing rule applies to a seller (free > flat fee > calculated > default)"""
    for kind, matches in POLICY_RULES:
        if matches(policy):
            return kind
    return PolicyKind.DEFAULT


def weight_based_rate(tier: RateTier, weight_oz: Decimal) -> Decimal:
    """
    Price a parcel from its total weight

    Up to one pound uses first_pound, up to two pounds second_pound; heavier
    parcels pay over_two_pounds plus per_additional_pound for every whole
    pound beyond the second.
    """
    if weight_oz <= OUNCES_PER_POUND:
        return tier.first_pound
    if weight_oz <= 2 * OUNCES_PER_POUND:
        return tier.second_pound
    whole_pounds = int(weight_oz // OUNCES_PER_POUND)
    return tier.over_two_pounds + (whole_pounds - 2) * tier.per_additional_pound


class ShippingService:
    """
    Shipping estimation and seller shipping policies

    Responsibilities:
    - Validate estimation requests and the chosen shipping method
    - Price each seller's share of a cart from that seller's policy
    - Read and update seller policies on behalf of their owners
    """

    def __init__(self, shipping_repository: ShippingRepository, config: ShippingConfig):
        self.shipping_repo = shipping_repository
        self.config = config
        self._pricers: Dict[PolicyKind, Callable[[SellerGroup, SellerShippingPolicy, ShippingMethod], Decimal]] = {
            PolicyKind.FREE: lambda group, policy, method: ZERO,
            PolicyKind.FLAT_FEE: lambda group, policy, method: policy.standard_shipping_fee,
            PolicyKind.CALCULATED: self._calculated_cost,
            PolicyKind.DEFAULT: lambda group, policy, method: self.config.default_fee,
        }

    def list_methods(self) -> List[ShippingMethod]:
        return self.shipping_repo.list_active_methods()

    def calculate(
        self,
        items: List[CartItem],
        shipping_method_id: int,
        destination_zip: Optional[str] = None,
    ) -> ShippingQuoteResponse:
        """
        Estimate shipping for a cart

        Business Rules:
        - Items are grouped by seller, groups in first-seen order
        - Each group is priced by exactly one policy rule
        - Sellers without a profile get the default policy
        - destination_zip is echoed back, not used for pricing
        """
        if not items:
            raise ValidationError("No items provided", ["items: must contain at least one item"])

        missing = [
            f"items[{index}].seller_id: Seller ID is required for each item"
            for index, item in enumerate(items)
            if not item.seller_id
        ]
        if missing:
            raise ValidationError("Seller ID is required for each item", missing)

        method = self.shipping_repo.get_active_method(shipping_method_id)
        if method is None:
            raise NotFoundError("Shipping method", shipping_method_id)

        groups = group_by_seller(items)
        policies = self.shipping_repo.get_policies(group.seller_id for group in groups)

        breakdown = []
        total = ZERO
        for group in groups:
            policy = policies.get(group.seller_id) or SellerShippingPolicy.defaults(group.seller_id)
            kind = classify_policy(policy)
            cost = quantize_money(self._pricers[kind](group, policy, method))
            total += cost
            breakdown.append(SellerShippingCost(
                seller_id=group.seller_id,
                item_count=group.item_count,
                free_shipping=policy.offers_free_shipping,
                shipping_cost=cost,
            ))
            logger.debug(f"Seller {group.seller_id}: {kind.value} shipping {cost}")

        logger.info(
            f"Shipping quote via {method.provider}/{method.name}: {total} "
            f"for {len(items)} items from {len(groups)} sellers"
        )

        return ShippingQuoteResponse(
            shipping_method_id=method.id,
            provider=method.provider,
            service=method.name,
            cost=total,
            estimated_delivery_days=self.estimated_delivery_days(method),
            to_zipcode=destination_zip,
            breakdown=breakdown,
        )

    def estimated_delivery_days(self, method: ShippingMethod) -> Optional[int]:
        days = self.config.delivery_days
        return days.get(method.provider, days.get(method.provider_kind.value))

    def rate_tier_for(self, method: ShippingMethod) -> Optional[RateTier]:
        rates = self.config.rate_table
        return rates.get(method.provider) or rates.get(method.provider_kind.value)

    def _calculated_cost(
        self, group: SellerGroup, policy: SellerShippingPolicy, method: ShippingMethod
    ) -> Decimal:
        """
        Weight-banded price for a calculated-shipping seller.

        A provider with no configured rate table is charged the default fee
        rather than shipping for free.
        """
        tier = self.rate_tier_for(method)
        if tier is None:
            logger.warning(
                f"No rate table for provider {method.provider!r}; "
                f"charging default fee to seller {group.seller_id}"
            )
            return self.config.default_fee

        weight = group.total_weight(self.config.default_item_weight_oz)
        return weight_based_rate(tier, weight)

    def get_policy(self, seller_id: int) -> SellerShippingPolicy:
        policy = self.shipping_repo.get_policy(seller_id)
        if policy is None:
            raise NotFoundError("Seller", seller_id)
        return policy

    def update_policy(self, seller_id: int, policy: SellerShippingPolicy, caller: Caller) -> SellerShippingPolicy:
        """
        Replace a seller's shipping settings

        Business Rules:
        - Only the seller themselves or an admin may change them
        - The fee cannot be negative
        """
        if not caller.can_act_for(seller_id):
            logger.warning(f"User {caller.user_id} tried to edit shipping policy of seller {seller_id}")
            raise ForbiddenError("You can only update your own shipping policy")

        if policy.standard_shipping_fee < 0:
            raise ValidationError(
                "Invalid shipping policy",
                ["standard_shipping_fee: Must be greater than or equal to 0."],
            )

        policy.seller_id = seller_id
        policy.standard_shipping_fee = quantize_money(policy.standard_shipping_fee)
        updated = self.shipping_repo.update_policy(policy)
        if updated is None:
            raise NotFoundError("Seller profile", seller_id)

        logger.info(f"Updated shipping policy of seller {seller_id} ({classify_policy(updated).value})")
        return updated
