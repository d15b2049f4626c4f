from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, Integer, Numeric, Text

from marketplace.db import Base


class ShippingMethod(Base):
    """
    Carrier service offered at checkout (catalog data, maintained by admins).

    provider is free text so new carriers need no migration; rate tables are
    keyed by the same provider string.
    """

    __tablename__ = "shipping_methods"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    display_name = Column(Text, nullable=False)
    provider = Column(Text, nullable=False)
    service_code = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<ShippingMethod id={self.id} provider={self.provider!r} name={self.name!r}>"


class SellerProfile(Base):
    """
    Storefront settings of a seller, one row per seller user.

    Only the shipping-policy columns are used here. A seller without a row
    is quoted with the default policy.
    """

    __tablename__ = "seller_profiles"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, unique=True)
    store_name = Column(Text, nullable=True)
    offers_free_shipping = Column(Boolean, nullable=False, default=False)
    standard_shipping_fee = Column(Numeric(10, 2), nullable=False, default=0)
    uses_calculated_shipping = Column(Boolean, nullable=False, default=False)
    shipping_policy = Column(Text, nullable=False, default="")

    __table_args__ = (
        CheckConstraint("standard_shipping_fee >= 0", name="ck_seller_shipping_fee"),
    )

    def __repr__(self) -> str:
        return f"<SellerProfile user_id={self.user_id} store={self.store_name!r}>"
