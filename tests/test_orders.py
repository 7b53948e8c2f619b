"""Tests for order parsing, totals and persistence."""

from datetime import datetime, timedelta

import pytest

from errors import InvalidIdError, InvalidOrderError, NotFoundError
from orders import format_currency, order_total, parse_price, parse_quantity, price_lines


class TestParsePrice:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (500, 500.0),
            (12.5, 12.5),
            ("1,000.00", 1000.0),
            ("₹ 1,200.50", 1200.5),
            ("Rs 99", 99.0),
            ("-15", -15.0),
            ("", 0.0),
            ("free", 0.0),
            (None, 0.0),
            ("-", 0.0),
        ],
    )
    def test_values(self, value, expected):
        assert parse_price(value) == expected


class TestParseQuantity:
    @pytest.mark.parametrize(
        "value, expected",
        [(2, 2), ("3", 3), ("4 pcs", 4), (2.9, 2), ("abc", 1), (None, 1), (0, 1), ("-2", 1), (True, 1)],
    )
    def test_values(self, value, expected):
        assert parse_quantity(value) == expected


class TestPriceLines:
    def test_example_order(self):
        lines = price_lines([{"name": "Band", "price": "1,000.00", "quantity": 2}, {"price": 500, "quantity": "1"}])
        assert [line["total"] for line in lines] == ["₹ 2000.00", "₹ 500.00"]
        assert lines[0]["name"] == "Band"
        assert lines[0]["price"] == 1000.0
        assert lines[1]["quantity"] == 1
        assert order_total(lines) == 2500.0

    def test_defaults(self):
        (line,) = price_lines([{"name": "Gift"}])
        assert line["price"] == 0.0
        assert line["quantity"] == 1
        assert line["total"] == "₹ 0.00"

    def test_total_rounds_to_paise(self):
        lines = price_lines([{"price": "₹ 0.10", "quantity": 3}, {"price": "0.20"}])
        assert order_total(lines) == 0.5

    @pytest.mark.parametrize("order_data", [None, [], "items", {"price": 1}, 5])
    def test_rejects_bad_shapes(self, order_data):
        with pytest.raises(InvalidOrderError, match="Order data is required and must be an array"):
            price_lines(order_data)

    def test_rejects_non_object_items(self):
        with pytest.raises(InvalidOrderError):
            price_lines([{"price": 1}, "oops"])

    def test_format_currency(self):
        assert format_currency(1234.5) == "₹ 1234.50"


class TestOrderService:
    def test_create_persists_pending_order(self, order_service, db):
        order = order_service.create(
            [{"price": "₹ 1,200.50", "quantity": 2}],
            {"items": 1},
            {"email": "asha@example.com"},
            None,
        )
        assert order["status"] == "Pending"
        assert order["totalAmount"] == 2401.0
        assert order["customerDetails"] == {"email": "asha@example.com"}
        assert order["paymentDetails"] == {}
        assert isinstance(order["createdAt"], datetime)
        assert db["order"].count_documents({}) == 1

    def test_invalid_order_not_persisted(self, order_service, db):
        with pytest.raises(InvalidOrderError):
            order_service.create([], None, None, None)
        assert db["order"].count_documents({}) == 0

    def test_get(self, order_service):
        created = order_service.create([{"price": 10}])
        assert order_service.get(created["_id"])["totalAmount"] == 10.0

    def test_get_malformed_and_missing(self, order_service):
        with pytest.raises(InvalidIdError):
            order_service.get("recent")
        with pytest.raises(NotFoundError):
            order_service.get("0123456789abcdef01234567")

    def test_listing_newest_first(self, order_service, db):
        base = datetime(2024, 3, 1)
        db["order"].insert_many(
            [{"totalAmount": i, "createdAt": base + timedelta(days=i)} for i in range(12)]
        )
        assert [o["totalAmount"] for o in order_service.list()][:3] == [11, 10, 9]
        recent = order_service.list_recent()
        assert len(recent) == 10
        assert recent[0]["totalAmount"] == 11
        assert [o["totalAmount"] for o in order_service.list_recent(2)] == [11, 10]
