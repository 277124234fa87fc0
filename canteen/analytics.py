from __future__ import annotations

import csv
from datetime import date, timedelta
from io import StringIO

from .models import Order
from .orders import SERVED, with_tax
from .utils import fmt_dt

PERIODS = {
    "7d": ("Last 7 days", 7),
    "30d": ("Last 30 days", 30),
    "90d": ("Last 3 months", 90),
    "1y": ("Last year", 365),
}


def summarize(orders: list[Order], today: date, period: str = "7d") -> dict:
    """Revenue and popularity figures over served orders in ``period``.

    Revenue includes tax. The customer count covers every order, served or not.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")
    since = today - timedelta(days=PERIODS[period][1] - 1)
    completed = [o for o in orders if o.status == SERVED and since <= o.service_date <= today]

    total_revenue = round(sum(with_tax(o.total_amount) for o in completed), 2)
    total_orders = len(completed)
    average_order_value = round(total_revenue / total_orders, 2) if total_orders else 0.0
    total_customers = len({o.user_id for o in orders})

    item_sales: dict[int, dict] = {}
    category_perf: dict[str, dict] = {}
    for order in completed:
        for line in order.items:
            sales = item_sales.setdefault(line["id"], {"name": line["name"], "quantity": 0, "revenue": 0.0})
            sales["quantity"] += line["quantity"]
            sales["revenue"] += line["price"] * line["quantity"]

            perf = category_perf.setdefault(line["category"], {"revenue": 0.0, "orders": 0})
            perf["revenue"] += line["price"] * line["quantity"]
            perf["orders"] += line["quantity"]

    popular_items = sorted(item_sales.values(), key=lambda s: s["quantity"], reverse=True)[:5]
    top_categories = sorted(
        ({"category": c, **data} for c, data in category_perf.items()),
        key=lambda c: c["revenue"],
        reverse=True,
    )

    daily = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        day_orders = [o for o in completed if o.service_date == day]
        daily.append({
            "date": day.strftime("%b %d"),
            "orders": len(day_orders),
            "revenue": round(sum(with_tax(o.total_amount) for o in day_orders), 2),
        })

    return {
        "period": period,
        "summary": {
            "total_revenue": total_revenue,
            "total_orders": total_orders,
            "average_order_value": average_order_value,
            "total_customers": total_customers,
        },
        "popular_items": popular_items,
        "category_performance": top_categories,
        "daily_trends": daily,
    }


def orders_csv(orders: list[Order]) -> str:
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(["order_id", "token", "user_id", "status", "service_date", "scheduled_time",
                "items", "subtotal", "total_with_tax", "created_at", "special_instructions"])
    for o in orders:
        w.writerow([
            o.id,
            o.token,
            o.user_id,
            o.status,
            o.service_date.isoformat(),
            o.scheduled_time,
            "; ".join(f"{line['quantity']}x {line['name']}" for line in o.items),
            f"{o.total_amount:.2f}",
            f"{with_tax(o.total_amount):.2f}",
            fmt_dt(o.created_at),
            o.special_instructions or "",
        ])
    return buf.getvalue()
