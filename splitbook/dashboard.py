from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .balances import compute_settlements, expenses_from_rows, to_decimal

logger = logging.getLogger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

DateLike = Union[date, datetime, str]


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()


def relative_date(created: DateLike, today: date) -> str:
    days = abs((today - as_date(created)).days)
    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    return f"{days} days ago"


def format_currency(amount: Decimal) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def monthly_totals(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    totals = {name: Decimal("0") for name in MONTH_NAMES}
    for row in rows:
        try:
            month = MONTH_NAMES[as_date(row["created_at"]).month - 1]
            totals[month] += to_decimal(row["amount"])
        except (KeyError, ValueError, TypeError):
            logger.warning("Leaving expense %s out of monthly totals", row.get("id"))
    return [{"name": name, "amount": float(totals[name])} for name in MONTH_NAMES]


def recent_expenses(rows: Sequence[Mapping[str, Any]], today: date, limit: int) -> List[Dict[str, Any]]:
    recent = []
    for row in rows[:limit]:
        recent.append(
            {
                "title": row.get("title"),
                "amount": float(to_decimal(row["amount"])),
                "group_name": row.get("group_name"),
                "date": relative_date(row["created_at"], today),
            }
        )
    return recent


def build_dashboard(
    rows: Sequence[Mapping[str, Any]],
    group_count: int,
    viewer_name: str,
    today: Optional[date] = None,
    recent_limit: int = 3,
    display_name: Optional[str] = None,
) -> Dict[str, Any]:
    today = today or date.today()
    summary = compute_settlements(expenses_from_rows(rows), viewer_name)

    return {
        "display_name": display_name,
        "group_count": group_count,
        "balances": summary.to_dict(),
        "formatted": {
            "net_balance": format_currency(summary.net_balance),
            "you_owe": format_currency(summary.total_viewer_owes),
            "you_are_owed": format_currency(summary.total_owed_to_viewer),
        },
        "recent": recent_expenses(rows, today, recent_limit),
        "monthly": monthly_totals(rows),
    }
