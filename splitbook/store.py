from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .db import Database, db as default_db

EXPENSE_COLUMNS = """
    e.id, e.group_id, e.title, e.amount, e.paid_by, e.split_type, e.split_details,
    e.settled, e.created_by, e.created_at, g.name AS group_name, g.members AS group_members
"""


def _load_json(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def _dump_splits(split_details: Optional[Sequence[Dict[str, Any]]]) -> Optional[str]:
    if split_details is None:
        return None
    return json.dumps([{"member": s["member"], "amount": str(s["amount"])} for s in split_details])


def _expense_row(row: Dict[str, Any]) -> Dict[str, Any]:
    row["split_details"] = _load_json(row.get("split_details"))
    row["group_members"] = _load_json(row.get("group_members")) or []
    row["settled"] = bool(row.get("settled"))
    return row


class Store:
    def __init__(self, database: Optional[Database] = None) -> None:
        self.db = database or default_db

    # profiles

    def create_profile(self, email: str, password_hash: str, display_name: str) -> int:
        return self.db.execute(
            "INSERT INTO profiles (email, password, display_name) VALUES (%s, %s, %s)",
            (email, password_hash, display_name),
        )

    def find_profile_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one(
            "SELECT id, email, password, display_name FROM profiles WHERE email=%s",
            (email,),
        )

    def get_profile(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one(
            "SELECT id, email, display_name, date_of_birth, country FROM profiles WHERE id=%s",
            (user_id,),
        )

    def update_profile(
        self, user_id: int, display_name: str, date_of_birth: Optional[date], country: Optional[str]
    ) -> None:
        self.db.execute(
            "UPDATE profiles SET display_name=%s, date_of_birth=%s, country=%s WHERE id=%s",
            (display_name, date_of_birth, country, user_id),
        )

    # groups

    def list_groups(self, user_id: int) -> List[Dict[str, Any]]:
        rows = self.db.fetch_all(
            """
            SELECT id, name, members, created_by, created_at
            FROM `groups`
            WHERE created_by=%s
            ORDER BY created_at DESC, id DESC
            """,
            (user_id,),
        )
        for row in rows:
            row["members"] = _load_json(row["members"]) or []
        return rows

    def count_groups(self, user_id: int) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) AS total FROM `groups` WHERE created_by=%s", (user_id,))
        return int(row["total"]) if row else 0

    def get_group(self, group_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.fetch_one(
            "SELECT id, name, members, created_by, created_at FROM `groups` WHERE id=%s AND created_by=%s",
            (group_id, user_id),
        )
        if row:
            row["members"] = _load_json(row["members"]) or []
        return row

    def create_group(self, name: str, members: List[str], user_id: int) -> int:
        return self.db.execute(
            "INSERT INTO `groups` (name, members, created_by) VALUES (%s, %s, %s)",
            (name, json.dumps(members), user_id),
        )

    def delete_group(self, group_id: int, user_id: int) -> bool:
        _, deleted = self.db.run_batch(
            [
                ("DELETE FROM expenses WHERE group_id=%s AND created_by=%s", (group_id, user_id)),
                ("DELETE FROM `groups` WHERE id=%s AND created_by=%s", (group_id, user_id)),
            ]
        )
        return deleted > 0

    # expenses

    def list_expenses(self, user_id: int) -> List[Dict[str, Any]]:
        rows = self.db.fetch_all(
            f"""
            SELECT {EXPENSE_COLUMNS}
            FROM expenses e
            JOIN `groups` g ON e.group_id = g.id
            WHERE e.created_by=%s
            ORDER BY e.created_at DESC, e.id DESC
            """,
            (user_id,),
        )
        return [_expense_row(row) for row in rows]

    def get_expense(self, expense_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.fetch_one(
            f"""
            SELECT {EXPENSE_COLUMNS}
            FROM expenses e
            JOIN `groups` g ON e.group_id = g.id
            WHERE e.id=%s AND e.created_by=%s
            """,
            (expense_id, user_id),
        )
        return _expense_row(row) if row else None

    def create_expense(
        self,
        group_id: int,
        title: str,
        amount: Decimal,
        paid_by: str,
        split_type: str,
        split_details: Optional[List[Dict[str, Any]]],
        user_id: int,
    ) -> int:
        return self.db.execute(
            """
            INSERT INTO expenses (group_id, title, amount, paid_by, split_type, split_details, created_by)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (group_id, title, str(amount), paid_by, split_type, _dump_splits(split_details), user_id),
        )

    def update_expense(
        self,
        expense_id: int,
        user_id: int,
        title: str,
        amount: Decimal,
        paid_by: str,
        split_type: str,
        split_details: Optional[List[Dict[str, Any]]],
    ) -> None:
        self.db.execute(
            """
            UPDATE expenses
            SET title=%s, amount=%s, paid_by=%s, split_type=%s, split_details=%s
            WHERE id=%s AND created_by=%s
            """,
            (title, str(amount), paid_by, split_type, _dump_splits(split_details), expense_id, user_id),
        )

    def set_settled(self, expense_id: int, user_id: int, settled: bool) -> None:
        self.db.execute(
            "UPDATE expenses SET settled=%s WHERE id=%s AND created_by=%s",
            (settled, expense_id, user_id),
        )

    def delete_expense(self, expense_id: int, user_id: int) -> bool:
        deleted = self.db.execute_rowcount(
            "DELETE FROM expenses WHERE id=%s AND created_by=%s",
            (expense_id, user_id),
        )
        return deleted > 0

    # personal expenses

    def list_personal_expenses(self, user_id: int) -> List[Dict[str, Any]]:
        return self.db.fetch_all(
            """
            SELECT id, title, amount, category, created_at
            FROM personal_expenses
            WHERE user_id=%s
            ORDER BY created_at DESC, id DESC
            """,
            (user_id,),
        )

    def create_personal_expense(self, user_id: int, title: str, amount: Decimal, category: str) -> int:
        return self.db.execute(
            "INSERT INTO personal_expenses (user_id, title, amount, category) VALUES (%s, %s, %s, %s)",
            (user_id, title, str(amount), category),
        )
