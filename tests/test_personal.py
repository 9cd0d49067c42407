from datetime import datetime
from decimal import Decimal

import pytest

from splitbook.personal import normalize_category, summarize


def test_summarize_groups_by_category_and_month():
    rows = [
        {"amount": Decimal("12.50"), "category": "Food", "created_at": datetime(2024, 5, 3)},
        {"amount": Decimal("900"), "category": "Rent", "created_at": datetime(2024, 5, 1)},
        {"amount": Decimal("7.50"), "category": "Food", "created_at": datetime(2024, 4, 20)},
        {"amount": Decimal("40"), "category": "Travel", "created_at": "2023-12-24T09:00:00"},
    ]

    summary = summarize(rows)

    assert summary["total"] == 960.0
    assert summary["categories"] == [
        {"category": "Food", "total": 20.0},
        {"category": "Rent", "total": 900.0},
        {"category": "Travel", "total": 40.0},
    ]
    assert summary["months"] == [
        {"month": "May 2024", "total": 912.5},
        {"month": "April 2024", "total": 7.5},
        {"month": "December 2023", "total": 40.0},
    ]


def test_summarize_empty():
    assert summarize([]) == {"total": 0.0, "categories": [], "months": []}


def test_normalize_category():
    assert normalize_category(" healthcare ") == "Healthcare"
    with pytest.raises(ValueError, match="invalid_category"):
        normalize_category("Gambling")
