"""
Seed script -- populates the database with reference and development data.

Run with:
    python -m marketplace.seed          # shipping methods only
    python -m marketplace.seed --demo   # plus demo sellers, listings and an order

Shipping methods are idempotent (matched on name). Demo sellers are
matched on user_id; demo listings and the sample order are added on every
run, so use a fresh database for a clean demo state.
"""

import sys
from decimal import Decimal

from sqlalchemy import insert, select

from marketplace.core.dependencies import get_config
from marketplace.db import Database
from marketplace.tables import Listing, Order, OrderItem, SellerProfile, ShippingMethod

SHIPPING_METHODS = [
    {"name": "usps_priority", "display_name": "USPS Priority Mail", "provider": "USPS",
     "service_code": "PRIORITY", "description": "1-3 business days"},
    {"name": "usps_ground", "display_name": "USPS Ground Advantage", "provider": "USPS",
     "service_code": "GROUND_ADVANTAGE", "description": "2-5 business days"},
    {"name": "ups_ground", "display_name": "UPS Ground", "provider": "UPS",
     "service_code": "03", "description": "1-5 business days"},
    {"name": "ups_2day", "display_name": "UPS 2nd Day Air", "provider": "UPS",
     "service_code": "02", "description": "2 business days"},
    {"name": "fedex_overnight", "display_name": "FedEx Standard Overnight", "provider": "FedEx",
     "service_code": "STANDARD_OVERNIGHT", "description": "Next business day"},
]

DEMO_SELLERS = [
    {"user_id": 101, "store_name": "Free Ship Books", "offers_free_shipping": True,
     "standard_shipping_fee": Decimal("0"), "uses_calculated_shipping": False,
     "shipping_policy": "Free shipping on every order."},
    {"user_id": 102, "store_name": "Flat Rate Crafts", "offers_free_shipping": False,
     "standard_shipping_fee": Decimal("5.50"), "uses_calculated_shipping": False,
     "shipping_policy": "Flat $5.50 per order."},
    {"user_id": 103, "store_name": "Heavy Gear Co", "offers_free_shipping": False,
     "standard_shipping_fee": Decimal("0"), "uses_calculated_shipping": True,
     "shipping_policy": "Shipping calculated by weight."},
]

DEMO_LISTINGS = [
    {"seller_id": 101, "title": "Flask Web Development", "price": Decimal("39.99"),
     "weight_oz": Decimal("20"), "image_url": "https://img.example.com/flask-book.jpg"},
    {"seller_id": 102, "title": "Hand-thrown Mug", "price": Decimal("24.00"),
     "weight_oz": Decimal("14"), "image_url": "https://img.example.com/mug.jpg"},
    {"seller_id": 103, "title": "Cast Iron Skillet", "price": Decimal("45.00"),
     "weight_oz": Decimal("80"), "image_url": "https://img.example.com/skillet.jpg"},
]


def seed_shipping_methods(conn) -> int:
    shipping_methods = ShippingMethod.__table__
    existing = set(conn.execute(select(shipping_methods.c.name)).scalars())
    missing = [m for m in SHIPPING_METHODS if m["name"] not in existing]
    if missing:
        conn.execute(insert(shipping_methods), missing)
    return len(missing)


def seed_demo(conn) -> None:
    seller_profiles = SellerProfile.__table__
    listings = Listing.__table__

    # ------------------------------------------------------------------ #
    # Sellers                                                              #
    # ------------------------------------------------------------------ #
    existing = set(conn.execute(select(seller_profiles.c.user_id)).scalars())
    sellers = [s for s in DEMO_SELLERS if s["user_id"] not in existing]
    if sellers:
        conn.execute(insert(seller_profiles), sellers)
    print(f"  [+] Sellers seeded ({len(sellers)} new)")

    # ------------------------------------------------------------------ #
    # Listings                                                             #
    # ------------------------------------------------------------------ #
    listing_ids = conn.execute(
        insert(listings).returning(listings.c.id, sort_by_parameter_order=True),
        DEMO_LISTINGS,
    ).scalars().all()
    print(f"  [+] Listings seeded: {listing_ids}")

    # ------------------------------------------------------------------ #
    # Sample order for buyer 1                                             #
    # ------------------------------------------------------------------ #
    book = DEMO_LISTINGS[0]
    order_id = conn.execute(
        insert(Order.__table__).returning(Order.__table__.c.id),
        {
            "buyer_id": 1,
            "listing_id": listing_ids[0],
            "price_at_purchase": book["price"],
            "subtotal": book["price"],
            "tax_amount": Decimal("0"),
            "tax_rate": Decimal("0"),
            "status": "paid",
            "payment_id": "pi_demo_0001",
            "is_paid": True,
        },
    ).scalar_one()
    conn.execute(
        insert(OrderItem.__table__),
        {"order_id": order_id, "listing_id": listing_ids[0], "quantity": 1, "price": book["price"]},
    )
    print(f"  [+] Order {order_id} for buyer 1: ${book['price']}")


def seed(database: Database, demo: bool = False) -> None:
    database.create_all()
    with database.engine.begin() as conn:
        added = seed_shipping_methods(conn)
        print(f"  [+] Shipping methods seeded ({added} new)")
        if demo:
            seed_demo(conn)

    print("\nSeed completed successfully.")


if __name__ == "__main__":
    print("Seeding database...")
    seed(Database(get_config().database), demo="--demo" in sys.argv[1:])
