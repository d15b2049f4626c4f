from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, Numeric, Text

from marketplace.db import Base


class Listing(Base):
    """
    Read-model of a seller's listing.

    Listings are owned by the catalog side of the marketplace; this service
    only joins against them for titles and images when shaping orders.
    """

    __tablename__ = "listings"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    seller_id = Column(BigInteger, nullable=False, index=True)
    title = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    weight_oz = Column(Numeric(8, 2), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Listing id={self.id} title={self.title!r}>"
