from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, Integer, JSON, Numeric, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from marketplace.db import Base


class Order(Base):
    """
    One purchased cart line.

    A checkout writes one orders row per cart line (not one header with N
    lines); the row carries that line's share of the batch tax.
    price_at_purchase is always subtotal + tax_amount for the row.

    status is constrained with a CHECK constraint rather than an ENUM type so
    adding a status is a plain ALTER TABLE.

    shipping_info holds the address and chosen method as submitted at
    checkout; it is a snapshot, not a reference.
    """

    __tablename__ = "orders"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    buyer_id = Column(BigInteger, nullable=False, index=True)
    listing_id = Column(BigInteger, ForeignKey("listings.id"), nullable=False)
    price_at_purchase = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)
    payment_id = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")
    shipping_info = Column(JSON, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','paid','shipped','delivered','cancelled','refunded')",
            name="ck_order_status",
        ),
        CheckConstraint("subtotal >= 0", name="ck_order_subtotal"),
        CheckConstraint("tax_amount >= 0", name="ck_order_tax"),
    )

    # cascade='all, delete-orphan' -> deleting an order removes its line items
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} status={self.status!r} "
            f"price_at_purchase={self.price_at_purchase}>"
        )


class OrderItem(Base):
    """
    The line item written alongside each orders row.

    price is the unit price snapshotted at purchase so later listing price
    changes do not alter historical orders. Items are never updated after
    creation; cancellations and refunds go through Order.status.
    """

    __tablename__ = "order_items"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    order_id = Column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    listing_id = Column(BigInteger, ForeignKey("listings.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_item_price"),
        CheckConstraint("quantity > 0", name="ck_item_quantity"),
    )

    order = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return (
            f"<OrderItem id={self.id} listing_id={self.listing_id} "
            f"qty={self.quantity}>"
        )
