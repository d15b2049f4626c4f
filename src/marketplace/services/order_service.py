from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from marketplace.core.cache import Cache
from marketplace.core.config import OrderConfig
from marketplace.core.exceptions import (
    BaseAPIException, CacheError, ForbiddenError, NotFoundError, TransactionError, ValidationError
)
from marketplace.db import Database, translate_db_error
from marketplace.models.order import OrderCreationResult, OrderRequest, OrderStatus
from marketplace.models.user import Caller
from marketplace.repositories.order_repository import OrderRepository
from marketplace.schemas.common_schemas import PaginationResponse
from marketplace.utils.money import Apportionment, apportion, compute_batch_tax, quantize_money
from marketplace.utils.timeouts import Deadline

logger = logging.getLogger(__name__)


def order_cache_key(order_id: int) -> str:
    return f"order:{order_id}"


class OrderService:
    """
    Order placement and order reads

    Responsibilities:
    - Validate checkout payloads before any write
    - Apportion the batch tax over the cart lines
    - Persist one order + one order item per line, all or nothing
    - Serve order reads through a read-through cache
    """

    def __init__(
        self,
        database: Database,
        order_repository: OrderRepository,
        cache: Cache,
        config: OrderConfig,
        cache_ttl_seconds: Optional[int] = None,
    ):
        self.db = database
        self.order_repo = order_repository
        self.cache = cache
        self.config = config
        self.cache_ttl_seconds = cache_ttl_seconds

    def validate_request(self, request: OrderRequest) -> None:
        """
        Check a checkout payload, reporting every problem at once

        Raises:
            ValidationError: listing all violated rules
        """
        errors: List[str] = []

        if request.buyer_id is None:
            errors.append("buyerId: Buyer ID is required")

        if not isinstance(request.items, list):
            errors.append("items: Items must be an array")
        elif not request.items:
            errors.append("items: Items must contain at least one item")
        else:
            for index, line in enumerate(request.items):
                prefix = f"items[{index}]"
                if line.listing_id is None:
                    errors.append(f"{prefix}.id: Item ID is required")
                if line.price is None:
                    errors.append(f"{prefix}.price: Price is required")
                elif line.price < 0:
                    errors.append(f"{prefix}.price: Price cannot be negative")
                if line.quantity is None:
                    errors.append(f"{prefix}.quantity: Quantity is required")
                elif not isinstance(line.quantity, int) or line.quantity < 1:
                    errors.append(f"{prefix}.quantity: Quantity must be a positive integer")

        if request.tax_rate is not None and not (0 <= request.tax_rate < 1):
            errors.append("taxRate: Tax rate must be between 0 and 1")

        if request.tax is not None and request.tax < 0:
            errors.append("tax: Tax cannot be negative")

        if errors:
            raise ValidationError("Invalid order request", errors)

    def create_orders(self, request: OrderRequest, deadline: Optional[Deadline] = None) -> OrderCreationResult:
        """
        Place a checkout batch

        Business Rules:
        - Validation happens before the transaction opens
        - One orders row and one order_items row per cart line
        - Every row starts pending; is_paid reflects whether a payment id was given
        - Any failure rolls back every row of the batch
        """
        self.validate_request(request)

        amounts = apportion(
            [(line.price, line.quantity) for line in request.items],
            request.tax_rate,
            request.tax,
        )
        self._check_supplied_totals(request, amounts)

        logger.info(
            f"Creating {len(request.items)} orders for buyer {request.buyer_id} "
            f"(subtotal {amounts.subtotal}, tax {amounts.tax})"
        )

        created_at = datetime.now(timezone.utc)
        order_rows = [
            {
                "buyer_id": request.buyer_id,
                "listing_id": line.listing_id,
                "price_at_purchase": share.total,
                "subtotal": share.subtotal,
                "tax_amount": share.tax,
                "tax_rate": request.tax_rate,
                "payment_id": request.payment_id,
                "status": OrderStatus.PENDING.value,
                "shipping_info": request.shipping_info,
                "is_paid": request.is_paid,
                "created_at": created_at,
            }
            for line, share in zip(request.items, amounts.lines)
        ]

        try:
            with self.db.transaction(deadline) as conn:
                order_ids = self.order_repo.insert_orders(conn, order_rows)
                if len(order_ids) != len(order_rows):
                    raise TransactionError(
                        f"Inserted {len(order_ids)} orders for {len(order_rows)} lines", "INSERT orders"
                    )

                if deadline is not None:
                    deadline.check("insert order items")

                self.order_repo.insert_order_items(conn, [
                    {
                        "order_id": order_id,
                        "listing_id": line.listing_id,
                        "quantity": line.quantity,
                        "price": quantize_money(line.price),
                    }
                    for order_id, line in zip(order_ids, request.items)
                ])

                if deadline is not None:
                    deadline.check("commit orders")
        except SQLAlchemyError as e:
            logger.error(f"Order batch for buyer {request.buyer_id} rolled back: {e}")
            raise translate_db_error(e, "create orders", deadline=deadline) from e
        except BaseAPIException as e:
            logger.error(f"Order batch for buyer {request.buyer_id} rolled back: {e.internal_message}")
            raise

        logger.info(f"Created orders {order_ids} for buyer {request.buyer_id}")
        return OrderCreationResult(order_ids=order_ids)

    def _check_supplied_totals(self, request: OrderRequest, amounts: Apportionment) -> None:
        """
        Compare the client's subtotal/tax with what the lines add up to

        Mismatches are logged; with strict_totals they reject the order.
        total is not compared since clients may fold shipping into it.
        """
        mismatches = []
        if request.subtotal is not None and quantize_money(request.subtotal) != amounts.subtotal:
            mismatches.append(
                f"subtotal: Supplied {quantize_money(request.subtotal)} but items add up to {amounts.subtotal}"
            )
        if request.tax is not None:
            supplied_tax = quantize_money(request.tax)
            if request.tax_rate:
                expected_tax = compute_batch_tax(amounts.subtotal, request.tax_rate)
                if supplied_tax != expected_tax:
                    mismatches.append(f"tax: Supplied {supplied_tax} but rate gives {expected_tax}")
            elif supplied_tax != amounts.tax:
                # No rate means nothing is apportioned
                mismatches.append(f"tax: Supplied {supplied_tax} but no tax rate was given, so {amounts.tax} applies")

        if not mismatches:
            return

        if self.config.strict_totals:
            raise ValidationError("Order totals do not match the items", mismatches)
        logger.warning(f"Client totals disagree for buyer {request.buyer_id}: {'; '.join(mismatches)}")

    def get_order(self, order_id: int, caller: Optional[Caller] = None) -> Dict[str, Any]:
        """
        Shaped order with its items, served from cache when possible

        A cache hit is returned as stored, without refreshing its expiry.
        Orders are immutable here, so entries are never invalidated.
        """
        key = order_cache_key(order_id)
        data = self._cache_get(key)

        if data is None:
            order = self.order_repo.get_by_id(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            data = order.to_dict()
            self._cache_set(key, data)
        else:
            logger.debug(f"Cache hit for {key}")

        if caller is not None and not caller.can_act_for(data["user_id"]):
            raise ForbiddenError("You can only view your own orders")

        return data

    def list_orders(self, buyer_id: int, page: int, limit: int) -> Dict[str, Any]:
        """A buyer's order history, newest first, one page at a time"""
        orders, total = self.order_repo.list_for_buyer(buyer_id, page, limit)
        return {
            "orders": [order.to_dict() for order in orders],
            "pagination": PaginationResponse.build(page, limit, total).to_dict(),
        }

    def _cache_get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self.cache.get(key)
        except CacheError as e:
            logger.warning(f"Cache read failed, falling back to database: {e}")
            return None

    def _cache_set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            self.cache.set(key, value, self.cache_ttl_seconds)
        except CacheError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
