from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .balances import to_decimal
from .dashboard import as_date

EXPENSE_CATEGORIES = [
    "Food",
    "Travel",
    "Utilities",
    "Rent",
    "Entertainment",
    "Shopping",
    "Healthcare",
    "Education",
    "Transportation",
    "Other",
]


def normalize_category(value: Any) -> str:
    category = str(value or "").strip()
    for known in EXPENSE_CATEGORIES:
        if known.lower() == category.lower():
            return known
    raise ValueError("invalid_category")


def summarize(rows: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    total = Decimal("0")
    by_category: Dict[str, Decimal] = {}
    by_month: Dict[Tuple[int, int], Decimal] = {}

    for row in rows:
        amount = to_decimal(row["amount"])
        total += amount
        by_category[row["category"]] = by_category.get(row["category"], Decimal("0")) + amount

        created = as_date(row["created_at"])
        key = (created.year, created.month)
        by_month[key] = by_month.get(key, Decimal("0")) + amount

    months: List[Dict[str, Any]] = []
    for year, month in sorted(by_month, reverse=True):
        label = as_date(f"{year:04d}-{month:02d}-01").strftime("%B %Y")
        months.append({"month": label, "total": float(by_month[(year, month)])})

    return {
        "total": float(total),
        "categories": [{"category": name, "total": float(value)} for name, value in by_category.items()],
        "months": months,
    }
