import copy
from datetime import datetime
from decimal import Decimal

import pytest

from splitbook.app import create_app


class MemoryStore:
    """In-memory stand-in for splitbook.store.Store."""

    def __init__(self):
        self.profiles = {}
        self.groups = {}
        self.expenses = {}
        self.personal = {}
        self._next_id = 1

    def _id(self):
        value = self._next_id
        self._next_id += 1
        return value

    def create_profile(self, email, password_hash, display_name):
        user_id = self._id()
        self.profiles[user_id] = {
            "id": user_id,
            "email": email,
            "password": password_hash,
            "display_name": display_name,
            "date_of_birth": None,
            "country": None,
        }
        return user_id

    def find_profile_by_email(self, email):
        for profile in self.profiles.values():
            if profile["email"] == email:
                return dict(profile)
        return None

    def get_profile(self, user_id):
        profile = self.profiles.get(user_id)
        if not profile:
            return None
        return {key: value for key, value in profile.items() if key != "password"}

    def update_profile(self, user_id, display_name, date_of_birth, country):
        self.profiles[user_id].update(display_name=display_name, date_of_birth=date_of_birth, country=country)

    def list_groups(self, user_id):
        groups = [copy.deepcopy(g) for g in self.groups.values() if g["created_by"] == user_id]
        return sorted(groups, key=lambda g: (g["created_at"], g["id"]), reverse=True)

    def count_groups(self, user_id):
        return len([g for g in self.groups.values() if g["created_by"] == user_id])

    def get_group(self, group_id, user_id):
        group = self.groups.get(group_id)
        if not group or group["created_by"] != user_id:
            return None
        return copy.deepcopy(group)

    def create_group(self, name, members, user_id):
        group_id = self._id()
        self.groups[group_id] = {
            "id": group_id,
            "name": name,
            "members": list(members),
            "created_by": user_id,
            "created_at": datetime(2024, 5, 1, 12, 0),
        }
        return group_id

    def delete_group(self, group_id, user_id):
        if not self.get_group(group_id, user_id):
            return False
        for expense_id in [e["id"] for e in self.expenses.values() if e["group_id"] == group_id]:
            del self.expenses[expense_id]
        del self.groups[group_id]
        return True

    def _joined(self, expense):
        row = copy.deepcopy(expense)
        group = self.groups[expense["group_id"]]
        row["group_name"] = group["name"]
        row["group_members"] = list(group["members"])
        return row

    def list_expenses(self, user_id):
        rows = [self._joined(e) for e in self.expenses.values() if e["created_by"] == user_id]
        return sorted(rows, key=lambda e: (e["created_at"], e["id"]), reverse=True)

    def get_expense(self, expense_id, user_id):
        expense = self.expenses.get(expense_id)
        if not expense or expense["created_by"] != user_id:
            return None
        return self._joined(expense)

    def create_expense(self, group_id, title, amount, paid_by, split_type, split_details, user_id):
        expense_id = self._id()
        self.expenses[expense_id] = {
            "id": expense_id,
            "group_id": group_id,
            "title": title,
            "amount": Decimal(amount),
            "paid_by": paid_by,
            "split_type": split_type,
            "split_details": copy.deepcopy(split_details),
            "settled": False,
            "created_by": user_id,
            "created_at": datetime(2024, 5, 2, 9, 30),
        }
        return expense_id

    def update_expense(self, expense_id, user_id, title, amount, paid_by, split_type, split_details):
        self.expenses[expense_id].update(
            title=title,
            amount=Decimal(amount),
            paid_by=paid_by,
            split_type=split_type,
            split_details=copy.deepcopy(split_details),
        )

    def set_settled(self, expense_id, user_id, settled):
        self.expenses[expense_id]["settled"] = settled

    def delete_expense(self, expense_id, user_id):
        if not self.get_expense(expense_id, user_id):
            return False
        del self.expenses[expense_id]
        return True

    def list_personal_expenses(self, user_id):
        rows = [dict(r) for r in self.personal.values() if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: (r["created_at"], r["id"]), reverse=True)

    def create_personal_expense(self, user_id, title, amount, category):
        expense_id = self._id()
        self.personal[expense_id] = {
            "id": expense_id,
            "user_id": user_id,
            "title": title,
            "amount": Decimal(amount),
            "category": category,
            "created_at": datetime(2024, 5, 3, 18, 0),
        }
        return expense_id


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def app(store):
    app = create_app(store=store, settings={"TESTING": True, "SECRET_KEY": "test"})
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def alice(client):
    response = client.post(
        "/api/register",
        json={"display_name": "Alice", "email": "alice@example.com", "password": "s3cret"},
    )
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def trip_group(client, alice):
    response = client.post("/api/groups", json={"name": "Trip", "members": ["Alice", "Bob", "Carol"]})
    assert response.status_code == 201
    return response.get_json()
