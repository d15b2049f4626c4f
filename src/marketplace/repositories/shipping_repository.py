from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from marketplace.db import translate_db_error
from marketplace.models.shipping import SellerShippingPolicy, ShippingMethod
from marketplace.repositories.base import BaseRepository
from marketplace.tables import SellerProfile, ShippingMethod as ShippingMethodRow

logger = logging.getLogger(__name__)

shipping_methods = ShippingMethodRow.__table__
seller_profiles = SellerProfile.__table__

_POLICY_COLUMNS = (
    seller_profiles.c.user_id,
    seller_profiles.c.offers_free_shipping,
    seller_profiles.c.standard_shipping_fee,
    seller_profiles.c.uses_calculated_shipping,
    seller_profiles.c.shipping_policy,
)


class ShippingRepository(BaseRepository[ShippingMethod]):
    """Shipping methods catalog and seller shipping policies"""

    def get_by_id(self, method_id: int) -> Optional[ShippingMethod]:
        row = self.execute_single_query(
            select(shipping_methods).where(shipping_methods.c.id == method_id)
        )
        return self._build_method(row) if row else None

    def get_active_method(self, method_id: int) -> Optional[ShippingMethod]:
        """Method by id, or None when it does not exist or is retired"""
        method = self.get_by_id(method_id)
        if method is None or not method.is_active:
            return None
        return method

    def list_active_methods(self) -> List[ShippingMethod]:
        rows = self.execute_query(
            select(shipping_methods)
            .where(shipping_methods.c.is_active.is_(True))
            .order_by(shipping_methods.c.provider, shipping_methods.c.display_name)
        )
        return [self._build_method(r) for r in rows]

    def get_policies(self, seller_ids: Iterable[Any]) -> Dict[Any, SellerShippingPolicy]:
        """
        Bulk-load policies keyed by seller id

        Sellers without a profile row are simply missing from the result.
        """
        ids = list(seller_ids)
        if not ids:
            return {}
        rows = self.execute_query(
            select(*_POLICY_COLUMNS).where(seller_profiles.c.user_id.in_(ids))
        )
        return {r["user_id"]: self._build_policy(r) for r in rows}

    def get_policy(self, seller_id: int) -> Optional[SellerShippingPolicy]:
        row = self.execute_single_query(
            select(*_POLICY_COLUMNS).where(seller_profiles.c.user_id == seller_id)
        )
        return self._build_policy(row) if row else None

    def update_policy(self, policy: SellerShippingPolicy) -> Optional[SellerShippingPolicy]:
        """
        Overwrite the shipping columns of an existing profile

        Returns:
            The stored policy, or None when the seller has no profile row
        """
        try:
            with self.db.transaction() as conn:
                result = conn.execute(
                    update(seller_profiles)
                    .where(seller_profiles.c.user_id == policy.seller_id)
                    .values(
                        offers_free_shipping=policy.offers_free_shipping,
                        standard_shipping_fee=policy.standard_shipping_fee,
                        uses_calculated_shipping=policy.uses_calculated_shipping,
                        shipping_policy=policy.policy_text,
                    )
                )
                if result.rowcount == 0:
                    return None
        except SQLAlchemyError as e:
            logger.error(f"Updating shipping policy of seller {policy.seller_id} failed: {e}")
            raise translate_db_error(e, "UPDATE seller_profiles") from e

        return self.get_policy(policy.seller_id)

    @staticmethod
    def _build_method(row: Dict[str, Any]) -> ShippingMethod:
        return ShippingMethod(
            id=row["id"],
            name=row["name"],
            display_name=row["display_name"],
            provider=row["provider"],
            service_code=row["service_code"],
            description=row["description"],
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _build_policy(row: Dict[str, Any]) -> SellerShippingPolicy:
        return SellerShippingPolicy(
            seller_id=row["user_id"],
            offers_free_shipping=bool(row["offers_free_shipping"]),
            standard_shipping_fee=Decimal(row["standard_shipping_fee"] or 0),
            uses_calculated_shipping=bool(row["uses_calculated_shipping"]),
            policy_text=row["shipping_policy"] or "",
        )
