"""
Order intake

Orders arrive as loosely typed line items (prices may be strings such as
"₹ 1,200.50"). Each line gets a numeric price, an integer quantity and a
display total; the order total is stored as a number rounded to paise.
"""

import logging
import re
from typing import Any, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, get_documents, is_object_id, serialize_doc
from errors import InvalidIdError, InvalidOrderError, NotFoundError
from schemas import Order

logger = logging.getLogger(__name__)

COLLECTION = "order"
CURRENCY_SYMBOL = "₹"
NEWEST_FIRST = [("createdAt", DESCENDING)]

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_FLOAT = re.compile(r"^-?(\d+\.?\d*|\.\d+)")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_price(value: Any) -> float:
    """Numeric prefix of the value once currency symbols and separators are gone."""
    cleaned = _NON_NUMERIC.sub("", str(value if value is not None else 0))
    match = _LEADING_FLOAT.match(cleaned)
    return float(match.group(0)) if match else 0.0


def parse_quantity(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        try:
            quantity = int(value)
        except (ValueError, OverflowError):
            return 1
    else:
        match = _LEADING_INT.match(str(value if value is not None else ""))
        quantity = int(match.group(1)) if match else 1
    return quantity if quantity >= 1 else 1


def format_currency(amount: float) -> str:
    return f"{CURRENCY_SYMBOL} {amount:.2f}"


def price_lines(order_data: Any) -> List[dict]:
    if not order_data or not isinstance(order_data, list):
        raise InvalidOrderError("Order data is required and must be an array")
    lines = []
    for item in order_data:
        if not isinstance(item, dict):
            raise InvalidOrderError("Each order item must be an object")
        price = parse_price(item.get("price", 0))
        quantity = parse_quantity(item.get("quantity", 1))
        lines.append({
            **item,
            "price": price,
            "quantity": quantity,
            "total": format_currency(price * quantity),
        })
    return lines


def order_total(lines: List[dict]) -> float:
    return round(sum(line["price"] * line["quantity"] for line in lines), 2)


class OrderService:
    def __init__(self, db: Database):
        self.db = db

    def create(
        self,
        order_data: Any,
        order_summary: Optional[dict] = None,
        customer_details: Optional[dict] = None,
        payment_details: Optional[dict] = None,
    ) -> dict:
        lines = price_lines(order_data)
        order = Order(
            orderData=lines,
            orderSummary=order_summary or {},
            customerDetails=customer_details or {},
            paymentDetails=payment_details or {},
            totalAmount=order_total(lines),
            status="Pending",
        )
        order_id = create_document(self.db, COLLECTION, order)
        logger.info("Order %s saved: %d items, total %.2f", order_id, len(lines), order.totalAmount)
        return self.get(order_id)

    def get(self, order_id: str) -> dict:
        if not is_object_id(order_id):
            raise InvalidIdError(order_id, kind="order")
        doc = self.db[COLLECTION].find_one({"_id": ObjectId(order_id)})
        if not doc:
            raise NotFoundError("order", order_id)
        return serialize_doc(doc)

    def list(self) -> List[dict]:
        return [serialize_doc(d) for d in get_documents(self.db, COLLECTION, sort=NEWEST_FIRST)]

    def list_recent(self, limit: int = 10) -> List[dict]:
        docs = get_documents(self.db, COLLECTION, limit=limit, sort=NEWEST_FIRST)
        return [serialize_doc(d) for d in docs]

    def all_documents(self) -> List[dict]:
        return get_documents(self.db, COLLECTION)
