"""
Sales dashboard

Recomputed from the full order set on every call. Fine at storefront
volumes, but it reads every order document.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from pymongo.database import Database

from orders import OrderService


def month_bounds(now: datetime, months_back: int = 0) -> Tuple[datetime, datetime]:
    """[first day, first day of next month) for the month ``months_back`` before ``now``."""
    index = now.year * 12 + (now.month - 1) - months_back
    year, month = divmod(index, 12)
    start = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    next_year, next_month = divmod(index + 1, 12)
    end = datetime(next_year, next_month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _as_utc(value: Any) -> Optional[datetime]:
    if isinstance(value, dict):
        # extended JSON exports store dates as {"$date": ...}
        value = value.get("$date")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _amount(order: dict) -> float:
    try:
        return float(order.get("totalAmount") or 0)
    except (TypeError, ValueError):
        return 0.0


def _emails(orders: Iterable[dict]) -> set:
    emails = set()
    for order in orders:
        details = order.get("customerDetails") or {}
        email = details.get("email") if isinstance(details, dict) else None
        if email:
            emails.add(email)
    return emails


def growth(current: float, previous: float) -> float:
    """Percent change, 0 when there is no previous baseline."""
    if previous <= 0:
        return 0
    return round((current - previous) / previous * 100, 1)


def summarize(orders: List[dict], now: Optional[datetime] = None) -> dict:
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    this_start, this_end = month_bounds(now)
    prev_start, prev_end = month_bounds(now, months_back=1)

    monthly, previous = [], []
    for order in orders:
        created = _as_utc(order.get("createdAt"))
        if created is None:
            continue
        if this_start <= created < this_end:
            monthly.append(order)
        elif prev_start <= created < prev_end:
            previous.append(order)

    monthly_sales = sum(_amount(o) for o in monthly)
    previous_sales = sum(_amount(o) for o in previous)
    customers = _emails(orders)
    previous_customers = _emails(previous)

    return {
        "totalSales": sum(_amount(o) for o in orders),
        "monthlySales": monthly_sales,
        "totalOrders": len(orders),
        "totalCustomers": len(customers),
        "revenueGrowth": growth(monthly_sales, previous_sales),
        "ordersGrowth": growth(len(monthly), len(previous)),
        # all-time distinct customers against last month's distinct customers
        "customersGrowth": growth(len(customers), len(previous_customers)),
    }


class DashboardService:
    def __init__(self, db: Database):
        self.orders = OrderService(db)

    def summary(self, now: Optional[datetime] = None) -> dict:
        return summarize(self.orders.all_documents(), now=now)
