from decimal import Decimal

import pytest
from sqlalchemy import insert
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from marketplace.core.config import OrderConfig
from marketplace.core.exceptions import (
    DependencyError, ForbiddenError, NotFoundError, RequestTimeoutError, TransactionError, ValidationError
)
from marketplace.models.order import OrderLine, OrderRequest
from marketplace.models.user import Caller
from marketplace.services.order_service import OrderService
from marketplace.tables import Order
from marketplace.utils.timeouts import Deadline


def make_request(lines, buyer_id=1, **kwargs):
    return OrderRequest(
        buyer_id=buyer_id,
        items=[OrderLine(listing_id=lid, price=Decimal(price), quantity=qty) for lid, price, qty in lines],
        **kwargs,
    )


class TestCreateOrders:
    def test_single_line_with_tax(self, order_service, add_listing, row_counts):
        listing_id = add_listing(title="Mug", image_url="https://img/mug.jpg")

        result = order_service.create_orders(
            make_request([(listing_id, "10.00", 2)], tax_rate=Decimal("0.0725"))
        )

        assert len(result.order_ids) == 1
        assert result.order_id == result.order_ids[0]
        assert row_counts() == (1, 1)

        order = order_service.get_order(result.order_id)
        assert order["subtotal"] == 20.0
        assert order["tax_amount"] == 1.45
        assert order["total_amount"] == 21.45
        assert order["status"] == "pending"
        assert order["is_paid"] is False
        assert order["title"] == "Mug"
        assert order["items"] == [{
            "id": order["items"][0]["id"],
            "listing_id": listing_id,
            "quantity": 2,
            "price": 10.0,
            "title": "Mug",
            "image_url": "https://img/mug.jpg",
        }]

    def test_one_order_per_line_in_input_order(self, order_service, add_listing, row_counts):
        a = add_listing(title="A")
        b = add_listing(title="B")
        c = add_listing(title="C")

        result = order_service.create_orders(make_request(
            [(a, "1.00", 1), (b, "2.00", 1), (c, "1.00", 1)],
            tax_rate=Decimal("0.05"),
            tax=Decimal("0.10"),
            payment_id="pi_123",
            shipping_info={"zip": "94103", "method": "usps_priority"},
        ))

        assert row_counts() == (3, 3)
        orders = [order_service.get_order(oid) for oid in result.order_ids]
        assert [o["listing_id"] for o in orders] == [a, b, c]
        assert [o["items"][0]["listing_id"] for o in orders] == [a, b, c]
        assert [o["tax_amount"] for o in orders] == [0.03, 0.05, 0.02]
        assert all(o["is_paid"] is True and o["payment_id"] == "pi_123" for o in orders)
        assert orders[0]["shipping_info"] == {"zip": "94103", "method": "usps_priority"}

    def test_small_tax_over_equal_lines(self, order_service, add_listing, row_counts):
        listing_id = add_listing()

        result = order_service.create_orders(
            make_request([(listing_id, "1.00", 1)] * 4, tax_rate=Decimal("0.005"))
        )

        assert row_counts() == (4, 4)
        orders = [order_service.get_order(oid) for oid in result.order_ids]
        assert [o["tax_amount"] for o in orders] == [0.01, 0.01, 0.0, 0.0]
        assert [o["total_amount"] for o in orders] == [1.01, 1.01, 1.0, 1.0]

    def test_item_insert_failure_rolls_back_orders(self, order_service, order_repository, add_listing,
                                                   row_counts, monkeypatch):
        listing_id = add_listing()

        def fail(conn, rows):
            raise SQLAlchemyError("order_items insert failed")

        monkeypatch.setattr(order_repository, "insert_order_items", fail)

        with pytest.raises(TransactionError) as exc:
            order_service.create_orders(make_request([(listing_id, "5.00", 1), (listing_id, "6.00", 2)]))

        assert exc.value.status_code == 500
        assert "order_items insert failed" not in exc.value.message
        assert row_counts() == (0, 0)

    def test_lost_connection_is_a_retryable_dependency_error(self, order_service, order_repository,
                                                             add_listing, row_counts, monkeypatch):
        listing_id = add_listing()

        def drop(conn, rows):
            raise OperationalError("INSERT INTO order_items", {}, Exception("server closed the connection"))

        monkeypatch.setattr(order_repository, "insert_order_items", drop)

        with pytest.raises(DependencyError) as exc:
            order_service.create_orders(make_request([(listing_id, "5.00", 1)]))

        assert exc.value.details["retryable"] is True
        assert row_counts() == (0, 0)

    def test_timeout_mid_transaction_rolls_back(self, order_service, order_repository, add_listing,
                                                row_counts, clock, monkeypatch):
        listing_id = add_listing()
        deadline = Deadline(30, clock=clock)
        original = order_repository.insert_orders

        def slow_insert(conn, rows):
            ids = original(conn, rows)
            clock.advance(31)
            return ids

        monkeypatch.setattr(order_repository, "insert_orders", slow_insert)

        with pytest.raises(RequestTimeoutError):
            order_service.create_orders(make_request([(listing_id, "5.00", 1)]), deadline)

        assert row_counts() == (0, 0)

    def test_cancelled_statement_is_a_timeout(self, order_service, order_repository, add_listing,
                                              row_counts, clock, monkeypatch):
        listing_id = add_listing()
        cancelled = Exception("canceling statement due to statement timeout")
        cancelled.pgcode = "57014"

        def cancel(conn, rows):
            raise OperationalError("INSERT INTO order_items", {}, cancelled)

        monkeypatch.setattr(order_repository, "insert_order_items", cancel)

        with pytest.raises(RequestTimeoutError) as exc:
            order_service.create_orders(make_request([(listing_id, "5.00", 1)]), Deadline(30, clock=clock))

        assert exc.value.status_code == 504
        assert exc.value.details["timeout_seconds"] == 30
        assert row_counts() == (0, 0)

    def test_expired_deadline_opens_no_transaction(self, order_service, add_listing, row_counts, clock):
        listing_id = add_listing()
        deadline = Deadline(1, clock=clock)
        clock.advance(2)

        with pytest.raises(RequestTimeoutError):
            order_service.create_orders(make_request([(listing_id, "5.00", 1)]), deadline)
        assert row_counts() == (0, 0)


class TestOrderValidation:
    def test_every_violation_is_reported(self, order_service, row_counts):
        request = OrderRequest(
            buyer_id=None,
            items=[
                OrderLine(listing_id=None, price=Decimal("-1"), quantity=0),
                OrderLine(listing_id=3, price=None, quantity=None),
            ],
            tax_rate=Decimal("1.5"),
            tax=Decimal("-1"),
        )

        with pytest.raises(ValidationError) as exc:
            order_service.create_orders(request)

        assert exc.value.errors == [
            "buyerId: Buyer ID is required",
            "items[0].id: Item ID is required",
            "items[0].price: Price cannot be negative",
            "items[0].quantity: Quantity must be a positive integer",
            "items[1].price: Price is required",
            "items[1].quantity: Quantity is required",
            "taxRate: Tax rate must be between 0 and 1",
            "tax: Tax cannot be negative",
        ]
        assert row_counts() == (0, 0)

    def test_empty_items(self, order_service):
        with pytest.raises(ValidationError) as exc:
            order_service.create_orders(make_request([]))
        assert exc.value.errors == ["items: Items must contain at least one item"]

    def test_mismatched_totals_are_only_logged_by_default(self, order_service, add_listing, caplog):
        listing_id = add_listing()

        result = order_service.create_orders(
            make_request([(listing_id, "10.00", 1)], subtotal=Decimal("12.00"))
        )

        assert len(result.order_ids) == 1
        assert "Client totals disagree" in caplog.text

    def test_strict_totals_reject_mismatch(self, database, order_repository, cache, add_listing, row_counts):
        service = OrderService(database, order_repository, cache, OrderConfig(strict_totals=True))
        listing_id = add_listing()

        with pytest.raises(ValidationError) as exc:
            service.create_orders(make_request(
                [(listing_id, "10.00", 2)],
                tax_rate=Decimal("0.0725"),
                subtotal=Decimal("20.00"),
                tax=Decimal("2.00"),
            ))

        assert exc.value.errors == ["tax: Supplied 2.00 but rate gives 1.45"]
        assert row_counts() == (0, 0)

    def test_strict_totals_accept_matching_figures(self, database, order_repository, cache, add_listing):
        service = OrderService(database, order_repository, cache, OrderConfig(strict_totals=True))
        listing_id = add_listing()

        result = service.create_orders(make_request(
            [(listing_id, "10.00", 2)],
            tax_rate=Decimal("0.0725"),
            subtotal=Decimal("20"),
            tax=Decimal("1.45"),
            total=Decimal("26.45"),  # includes shipping; never compared
        ))
        assert len(result.order_ids) == 1

    def test_strict_totals_reject_tax_without_rate(self, database, order_repository, cache, add_listing,
                                                   row_counts):
        service = OrderService(database, order_repository, cache, OrderConfig(strict_totals=True))
        listing_id = add_listing()

        with pytest.raises(ValidationError) as exc:
            service.create_orders(make_request(
                [(listing_id, "10.00", 2)],
                subtotal=Decimal("20.00"),
                tax=Decimal("1.45"),
            ))

        assert exc.value.errors == ["tax: Supplied 1.45 but no tax rate was given, so 0.00 applies"]
        assert row_counts() == (0, 0)

    def test_tax_without_rate_is_logged_by_default(self, order_service, add_listing, caplog):
        listing_id = add_listing()

        result = order_service.create_orders(
            make_request([(listing_id, "10.00", 2)], tax=Decimal("1.45"))
        )

        assert "no tax rate was given" in caplog.text
        assert order_service.get_order(result.order_id)["tax_amount"] == 0.0


class TestOrderReads:
    def test_unknown_order(self, order_service):
        with pytest.raises(NotFoundError):
            order_service.get_order(12345)

    def test_buyer_cannot_read_someone_elses_order(self, order_service, add_listing):
        listing_id = add_listing()
        order_id = order_service.create_orders(make_request([(listing_id, "3.00", 1)], buyer_id=1)).order_id

        assert order_service.get_order(order_id, Caller(user_id=1))["id"] == order_id
        assert order_service.get_order(order_id, Caller(user_id=9, role="admin"))["id"] == order_id
        with pytest.raises(ForbiddenError):
            order_service.get_order(order_id, Caller(user_id=2))

    def test_order_without_item_rows_gets_synthesized_item(self, order_service, database, add_listing):
        listing_id = add_listing(title="Legacy")
        with database.engine.begin() as conn:
            order_id = conn.execute(
                insert(Order.__table__).returning(Order.__table__.c.id),
                {
                    "buyer_id": 1,
                    "listing_id": listing_id,
                    "price_at_purchase": Decimal("8.56"),
                    "subtotal": Decimal("8.00"),
                    "tax_amount": Decimal("0.56"),
                    "tax_rate": Decimal("0.07"),
                    "status": "delivered",
                    "is_paid": True,
                },
            ).scalar_one()

        order = order_service.get_order(order_id)

        assert order["items"] == [{
            "id": None,
            "listing_id": listing_id,
            "quantity": 1,
            "price": 8.56,
            "title": "Legacy",
            "image_url": None,
        }]

    def test_list_orders_paginates_newest_first(self, order_service, add_listing):
        listing_id = add_listing()
        created = []
        for price in ("1.00", "2.00", "3.00"):
            created += order_service.create_orders(make_request([(listing_id, price, 1)], buyer_id=1)).order_ids
        order_service.create_orders(make_request([(listing_id, "4.00", 1)], buyer_id=2))

        first = order_service.list_orders(1, page=1, limit=2)
        second = order_service.list_orders(1, page=2, limit=2)

        assert [o["id"] for o in first["orders"]] == [created[2], created[1]]
        assert [o["id"] for o in second["orders"]] == [created[0]]
        assert first["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalItems": 3,
            "itemsPerPage": 2,
        }

    def test_list_orders_for_buyer_without_orders(self, order_service):
        result = order_service.list_orders(77, page=1, limit=10)

        assert result["orders"] == []
        assert result["pagination"]["totalPages"] == 0
