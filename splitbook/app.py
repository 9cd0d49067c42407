from __future__ import annotations

import logging
from datetime import date, datetime
from functools import wraps
from typing import Any, Dict, List, Optional

import mysql.connector
from flask import Flask, current_app, jsonify, request, session
from flask_cors import CORS
from werkzeug.security import check_password_hash, generate_password_hash

from .balances import SplitType, to_decimal
from .config import config, configure_logging
from .dashboard import build_dashboard
from .personal import EXPENSE_CATEGORIES, normalize_category, summarize
from .splits import (
    SplitValidationError,
    build_split_details,
    normalize_split_mode,
    normalize_split_type,
    parse_amount,
    split_values_from_payload,
)
from .store import Store

logger = logging.getLogger(__name__)


def create_app(store: Optional[Store] = None, settings: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["SESSION_COOKIE_NAME"] = config.SESSION_COOKIE_NAME
    app.config["SESSION_COOKIE_HTTPONLY"] = config.SESSION_COOKIE_HTTPONLY
    app.config["SESSION_COOKIE_SAMESITE"] = config.SESSION_COOKIE_SAMESITE
    app.config["RECENT_EXPENSES_LIMIT"] = config.RECENT_EXPENSES_LIMIT
    if settings:
        app.config.update(settings)

    app.extensions["splitbook.store"] = store or Store()

    CORS(
        app,
        supports_credentials=True,
        resources={r"/api/*": {"origins": config.CORS_ORIGINS}},
    )

    register_error_handlers(app)
    register_routes(app)
    return app


def get_store() -> Store:
    return current_app.extensions["splitbook.store"]


def require_login(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"error": "authentication_required"}), 401
        return func(*args, **kwargs)

    return wrapper


def viewer_name() -> str:
    return session.get("display_name") or str(session["user_id"])


class PayloadError(ValueError):
    def __init__(self, code: str = "invalid_payload") -> None:
        super().__init__(code)
        self.code = code


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(force=True, silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise PayloadError()
    return payload


def _text(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PayloadError)
    def payload_error(exc: PayloadError):
        return jsonify({"error": exc.code}), 400

    @app.errorhandler(mysql.connector.Error)
    def data_store_error(exc: mysql.connector.Error):
        logger.exception("Data store request failed: %s", exc)
        return jsonify({"error": "data_unavailable"}), 503

    @app.errorhandler(SplitValidationError)
    def split_error(exc: SplitValidationError):
        body: Dict[str, Any] = {"error": exc.code}
        if exc.details:
            body["details"] = exc.details
        return jsonify(body), 400


def register_routes(app: Flask) -> None:
    # auth

    @app.post("/api/register")
    def register():
        payload = _json_body()
        name = _text(payload, "display_name") or _text(payload, "name")
        email = _text(payload, "email").lower()
        password = str(payload.get("password") or "")

        if not name or not email or not password:
            return jsonify({"error": "missing_fields"}), 400

        store = get_store()
        if store.find_profile_by_email(email):
            return jsonify({"error": "email_in_use"}), 409

        user_id = store.create_profile(email, generate_password_hash(password), name)
        session["user_id"] = user_id
        session["display_name"] = name
        logger.info("Registered user %s", user_id)

        return jsonify({"id": user_id, "display_name": name, "email": email}), 201

    @app.post("/api/login")
    def login():
        payload = _json_body()
        email = _text(payload, "email").lower()
        password = str(payload.get("password") or "")

        if not email or not password:
            return jsonify({"error": "missing_fields"}), 400

        user = get_store().find_profile_by_email(email)
        if not user or not check_password_hash(user["password"], password):
            return jsonify({"error": "invalid_credentials"}), 401

        session["user_id"] = user["id"]
        session["display_name"] = user["display_name"]

        return jsonify({"id": user["id"], "display_name": user["display_name"], "email": email})

    @app.post("/api/logout")
    @require_login
    def logout():
        session.clear()
        return jsonify({"status": "ok"})

    @app.get("/api/session")
    def get_session():
        if "user_id" in session:
            return jsonify(
                {
                    "authenticated": True,
                    "user": {"id": session["user_id"], "display_name": session.get("display_name")},
                }
            )
        return jsonify({"authenticated": False})

    # profile

    @app.get("/api/profile")
    @require_login
    def get_profile():
        profile = get_store().get_profile(session["user_id"])
        if not profile:
            return jsonify({"error": "profile_not_found"}), 404
        return jsonify(_serialize_profile(profile))

    @app.put("/api/profile")
    @require_login
    def update_profile():
        payload = _json_body()
        display_name = _text(payload, "display_name")
        country = _text(payload, "country") or None
        raw_dob = _text(payload, "date_of_birth")

        if not display_name:
            return jsonify({"error": "missing_fields"}), 400

        date_of_birth = None
        if raw_dob:
            try:
                date_of_birth = date.fromisoformat(raw_dob)
            except ValueError:
                return jsonify({"error": "invalid_date_of_birth"}), 400

        store = get_store()
        store.update_profile(session["user_id"], display_name, date_of_birth, country)
        session["display_name"] = display_name
        return jsonify(_serialize_profile(store.get_profile(session["user_id"]) or {}))

    # groups

    @app.get("/api/groups")
    @require_login
    def list_groups():
        groups = get_store().list_groups(session["user_id"])
        return jsonify([_serialize_group(group) for group in groups])

    @app.post("/api/groups")
    @require_login
    def create_group():
        payload = _json_body()
        name = _text(payload, "name")
        members_payload = payload.get("members") or []

        if not name:
            return jsonify({"error": "missing_group_name"}), 400
        if not isinstance(members_payload, list):
            return jsonify({"error": "invalid_members"}), 400

        members: List[str] = []
        for member in members_payload:
            member_name = str(member).strip()
            if member_name and member_name not in members:
                members.append(member_name)
        if not members:
            return jsonify({"error": "missing_members"}), 400

        group_id = get_store().create_group(name, members, session["user_id"])
        return jsonify({"id": group_id, "name": name, "members": members}), 201

    @app.delete("/api/groups/<int:group_id>")
    @require_login
    def delete_group(group_id: int):
        if not get_store().delete_group(group_id, session["user_id"]):
            return jsonify({"error": "group_not_found"}), 404
        return jsonify({"status": "deleted"})

    # expenses

    @app.get("/api/expenses")
    @require_login
    def list_expenses():
        expenses = get_store().list_expenses(session["user_id"])
        return jsonify([_serialize_expense(expense) for expense in expenses])

    @app.post("/api/expenses")
    @require_login
    def create_expense():
        payload = _json_body()
        title = _text(payload, "title")
        group_id = payload.get("group_id")
        paid_by = _text(payload, "paid_by") or viewer_name()

        if not title or group_id is None or payload.get("amount") is None:
            return jsonify({"error": "missing_fields"}), 400

        store = get_store()
        try:
            group = store.get_group(int(group_id), session["user_id"])
        except (TypeError, ValueError, OverflowError):
            group = None
        if not group:
            return jsonify({"error": "group_not_found"}), 404

        amount = parse_amount(payload.get("amount"))
        split_type, split_details = _resolve_split(payload, amount, group["members"])
        if paid_by not in group["members"]:
            return jsonify({"error": "payer_not_in_group"}), 400

        expense_id = store.create_expense(
            group["id"], title, amount, paid_by, split_type.value, split_details, session["user_id"]
        )
        logger.info("Created %s expense %s in group %s", split_type.value, expense_id, group["id"])
        return jsonify({"id": expense_id}), 201

    @app.put("/api/expenses/<int:expense_id>")
    @require_login
    def update_expense(expense_id: int):
        store = get_store()
        expense = store.get_expense(expense_id, session["user_id"])
        if not expense:
            return jsonify({"error": "expense_not_found"}), 404

        payload = dict(_json_body())
        title = _text(payload, "title") or expense["title"]
        paid_by = _text(payload, "paid_by") or expense["paid_by"]
        amount = parse_amount(payload.get("amount", expense["amount"]))
        payload.setdefault("split_type", expense["split_type"])
        if "splits" not in payload and expense.get("split_details"):
            payload["splits"] = [
                {"member": split["member"], "value": split["amount"]} for split in expense["split_details"]
            ]
            payload["split_mode"] = "amount"
        split_type, split_details = _resolve_split(payload, amount, expense["group_members"])

        if paid_by not in expense["group_members"]:
            return jsonify({"error": "payer_not_in_group"}), 400

        store.update_expense(
            expense_id, session["user_id"], title, amount, paid_by, split_type.value, split_details
        )
        return jsonify(_serialize_expense(store.get_expense(expense_id, session["user_id"]) or expense))

    @app.post("/api/expenses/<int:expense_id>/settle")
    @require_login
    def toggle_settled(expense_id: int):
        store = get_store()
        expense = store.get_expense(expense_id, session["user_id"])
        if not expense:
            return jsonify({"error": "expense_not_found"}), 404

        settled = not expense["settled"]
        store.set_settled(expense_id, session["user_id"], settled)
        return jsonify({"id": expense_id, "settled": settled})

    @app.delete("/api/expenses/<int:expense_id>")
    @require_login
    def delete_expense(expense_id: int):
        if not get_store().delete_expense(expense_id, session["user_id"]):
            return jsonify({"error": "expense_not_found"}), 404
        return jsonify({"status": "deleted"})

    # dashboard

    @app.get("/api/dashboard")
    @require_login
    def dashboard():
        store = get_store()
        user_id = session["user_id"]
        result = build_dashboard(
            store.list_expenses(user_id),
            store.count_groups(user_id),
            viewer_name(),
            recent_limit=current_app.config["RECENT_EXPENSES_LIMIT"],
            display_name=session.get("display_name"),
        )
        return jsonify(result)

    # personal expenses

    @app.get("/api/personal-expenses")
    @require_login
    def list_personal_expenses():
        rows = get_store().list_personal_expenses(session["user_id"])
        return jsonify(
            {
                "expenses": [_serialize_personal(row) for row in rows],
                "summary": summarize(rows),
                "categories": EXPENSE_CATEGORIES,
            }
        )

    @app.post("/api/personal-expenses")
    @require_login
    def create_personal_expense():
        payload = _json_body()
        title = _text(payload, "title")
        if not title or payload.get("amount") is None:
            return jsonify({"error": "missing_fields"}), 400

        amount = parse_amount(payload.get("amount"))
        try:
            category = normalize_category(payload.get("category"))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        expense_id = get_store().create_personal_expense(session["user_id"], title, amount, category)
        return jsonify({"id": expense_id}), 201


def _resolve_split(payload: Dict[str, Any], amount, members: List[str]):
    split_type = normalize_split_type(payload.get("split_type"))
    if split_type is SplitType.EQUAL:
        return split_type, None

    values = split_values_from_payload(payload.get("splits"), members)
    mode = normalize_split_mode(payload.get("split_mode"))
    details = build_split_details(amount, values, mode)
    return split_type, [{"member": split.member, "amount": split.amount} for split in details]


def _iso(value: Any) -> Optional[str]:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _serialize_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": profile.get("id"),
        "email": profile.get("email"),
        "display_name": profile.get("display_name") or "",
        "date_of_birth": _iso(profile.get("date_of_birth")) or "",
        "country": profile.get("country") or "",
    }


def _serialize_group(group: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": group["id"],
        "name": group["name"],
        "members": group["members"],
        "created_at": _iso(group.get("created_at")),
    }


def _serialize_expense(expense: Dict[str, Any]) -> Dict[str, Any]:
    split_details = expense.get("split_details")
    if split_details is not None:
        split_details = [
            {"member": split["member"], "amount": float(to_decimal(split["amount"]))} for split in split_details
        ]
    return {
        "id": expense["id"],
        "group_id": expense["group_id"],
        "group": {"name": expense.get("group_name"), "members": expense.get("group_members") or []},
        "title": expense["title"],
        "amount": float(to_decimal(expense["amount"])),
        "paid_by": expense["paid_by"],
        "split_type": expense["split_type"],
        "split_details": split_details,
        "settled": bool(expense.get("settled")),
        "created_at": _iso(expense.get("created_at")),
    }


def _serialize_personal(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "amount": float(to_decimal(row["amount"])),
        "category": row["category"],
        "created_at": _iso(row.get("created_at")),
    }


def main() -> None:
    configure_logging()
    create_app().run(debug=True)


if __name__ == "__main__":
    main()
