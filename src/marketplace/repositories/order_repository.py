from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import insert, select
from sqlalchemy.engine import Connection

from marketplace.models.order import Order, OrderItem, OrderStatus
from marketplace.repositories.base import BaseRepository
from marketplace.tables import Listing, Order as OrderRow, OrderItem as OrderItemRow
from marketplace.utils.query import QuerySpec

logger = logging.getLogger(__name__)

orders = OrderRow.__table__
order_items = OrderItemRow.__table__
listings = Listing.__table__


class OrderRepository(BaseRepository[Order]):
    """Data access for orders and their line items"""

    def get_by_id(self, order_id: int) -> Optional[Order]:
        """
        Load one order with its listing and line items

        An order written before line items existed has no order_items rows;
        it is returned with a single item synthesized from the order itself.
        """
        row = self.execute_single_query(
            select(
                orders,
                listings.c.title,
                listings.c.image_url,
            )
            .select_from(orders.outerjoin(listings, orders.c.listing_id == listings.c.id))
            .where(orders.c.id == order_id)
        )
        if row is None:
            return None

        item_rows = self.execute_query(
            select(
                order_items.c.id,
                order_items.c.listing_id,
                order_items.c.quantity,
                order_items.c.price,
                listings.c.title,
                listings.c.image_url,
            )
            .select_from(order_items.outerjoin(listings, order_items.c.listing_id == listings.c.id))
            .where(order_items.c.order_id == order_id)
            .order_by(order_items.c.id)
        )

        order = self._build_order(row)
        if item_rows:
            order.items = [
                OrderItem(
                    id=r["id"],
                    listing_id=r["listing_id"],
                    quantity=r["quantity"],
                    price=Decimal(r["price"]),
                    title=r["title"],
                    image_url=r["image_url"],
                )
                for r in item_rows
            ]
        else:
            order.items = [
                OrderItem(
                    id=None,
                    listing_id=order.listing_id,
                    quantity=1,
                    price=order.price_at_purchase,
                    title=order.title,
                    image_url=order.image_url,
                )
            ]
        return order

    def list_for_buyer(self, buyer_id: int, page: int, limit: int) -> Tuple[List[Order], int]:
        """
        One page of a buyer's orders, newest first

        Returns:
            (orders on the page, total number of the buyer's orders)
        """
        spec = (
            QuerySpec(
                select(
                    orders,
                    listings.c.title,
                    listings.c.image_url,
                    order_items.c.id.label("item_id"),
                    order_items.c.quantity.label("item_quantity"),
                    order_items.c.price.label("item_price"),
                )
                .select_from(
                    orders
                    .outerjoin(listings, orders.c.listing_id == listings.c.id)
                    .outerjoin(order_items, order_items.c.order_id == orders.c.id)
                )
            )
            .where(orders.c.buyer_id == buyer_id)
            .order(orders.c.created_at.desc(), orders.c.id.desc())
            .paginate(page, limit)
        )

        total = self.count_for_buyer(buyer_id)
        rows = self.execute_query(spec.build())

        result = []
        for r in rows:
            order = self._build_order(r)
            order.items = [
                OrderItem(
                    id=r["item_id"],
                    listing_id=order.listing_id,
                    quantity=r["item_quantity"] or 1,
                    price=Decimal(r["item_price"]) if r["item_price"] is not None else order.price_at_purchase,
                    title=order.title,
                    image_url=order.image_url,
                )
            ]
            result.append(order)
        return result, total

    def insert_orders(self, conn: Connection, rows: List[Dict[str, Any]]) -> List[int]:
        """Batch insert orders rows; ids come back in the order of rows"""
        statement = insert(orders).returning(orders.c.id, sort_by_parameter_order=True)
        return self.execute_batch_returning(statement, rows, conn)

    def insert_order_items(self, conn: Connection, rows: List[Dict[str, Any]]) -> int:
        """Batch insert order_items rows"""
        return self.execute_batch_command(insert(order_items), rows, conn)

    def count_for_buyer(self, buyer_id: int) -> int:
        return int(self.execute_scalar(
            QuerySpec(select(orders.c.id)).where(orders.c.buyer_id == buyer_id).count()
        ) or 0)

    @staticmethod
    def _build_order(row: Dict[str, Any]) -> Order:
        return Order(
            id=row["id"],
            buyer_id=row["buyer_id"],
            listing_id=row["listing_id"],
            price_at_purchase=Decimal(row["price_at_purchase"]),
            subtotal=Decimal(row["subtotal"]),
            tax_amount=Decimal(row["tax_amount"]),
            tax_rate=Decimal(row["tax_rate"]),
            status=OrderStatus(row["status"]),
            is_paid=bool(row["is_paid"]),
            created_at=row["created_at"],
            payment_id=row["payment_id"],
            shipping_info=row["shipping_info"],
            title=row.get("title"),
            image_url=row.get("image_url"),
        )
