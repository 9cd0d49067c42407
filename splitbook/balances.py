"""Viewer-centric balance aggregation over group expenses.

Only the relationship between the viewer and each expense's payer is
tracked: member-to-member shares between third parties are not modelled.
Equal shares are plain ``Decimal`` division with no remainder reconciliation.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


class SplitType(str, enum.Enum):
    EQUAL = "equal"
    CUSTOM = "custom"


class Direction(str, enum.Enum):
    OWED = "owed"
    OWING = "owing"


@dataclass(frozen=True)
class MemberSplit:
    member: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"member": self.member, "amount": float(self.amount)}


@dataclass(frozen=True)
class Expense:
    amount: Decimal
    paid_by: str
    split_type: SplitType
    split_details: Tuple[MemberSplit, ...] = ()
    group_members: Tuple[str, ...] = ()
    settled: bool = False


@dataclass(frozen=True)
class SettlementEntry:
    name: str
    amount: Decimal
    direction: Direction

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "amount": float(self.amount), "type": self.direction.value}


@dataclass(frozen=True)
class BalanceSummary:
    total_owed_to_viewer: Decimal = ZERO
    total_viewer_owes: Decimal = ZERO
    settlements: List[SettlementEntry] = field(default_factory=list)

    @property
    def net_balance(self) -> Decimal:
        return self.total_owed_to_viewer - self.total_viewer_owes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "you_are_owed": float(self.total_owed_to_viewer),
            "you_owe": float(self.total_viewer_owes),
            "net_balance": float(self.net_balance),
            "settlements": [entry.to_dict() for entry in self.settlements],
        }


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Cannot convert value to Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError("Cannot convert value to Decimal") from None
    else:
        raise ValueError("Cannot convert value to Decimal")
    if not result.is_finite():
        raise ValueError("Cannot convert value to Decimal")
    try:
        return result.quantize(CENT)
    except InvalidOperation:
        # more digits than the decimal context can hold
        raise ValueError("Cannot convert value to Decimal") from None


def build_balance_map(expenses: Iterable[Expense], viewer_name: str) -> Dict[str, Decimal]:
    viewer = viewer_name.strip()
    balances: Dict[str, Decimal] = {}

    for expense in expenses:
        if expense.settled:
            continue

        payer = expense.paid_by.strip()
        is_payer = payer == viewer

        if expense.split_type is SplitType.EQUAL:
            if not expense.group_members:
                logger.debug("Skipping equal split paid by %s: group has no members", payer)
                continue

            share = expense.amount / len(expense.group_members)
            for member in expense.group_members:
                name = member.strip()
                if name == viewer:
                    continue
                if is_payer:
                    balances[name] = balances.get(name, ZERO) + share
                elif name == payer:
                    balances[name] = balances.get(name, ZERO) - share
        else:
            if not expense.split_details:
                logger.debug("Skipping custom split paid by %s: no split details", payer)
                continue

            if is_payer:
                for split in expense.split_details:
                    name = split.member.strip()
                    if name != viewer:
                        balances[name] = balances.get(name, ZERO) + split.amount
            else:
                for split in expense.split_details:
                    if split.member.strip() == viewer:
                        balances[payer] = balances.get(payer, ZERO) - split.amount

    return balances


def compute_settlements(expenses: Iterable[Expense], viewer_name: str) -> BalanceSummary:
    balances = build_balance_map(expenses, viewer_name)

    total_owed = ZERO
    total_owes = ZERO
    settlements: List[SettlementEntry] = []

    for name, amount in balances.items():
        if amount == 0:
            continue
        if amount > 0:
            total_owed += amount
            settlements.append(SettlementEntry(name, amount, Direction.OWED))
        else:
            total_owes += -amount
            settlements.append(SettlementEntry(name, -amount, Direction.OWING))

    # sorted() is stable, so equal amounts keep encounter order
    settlements = sorted(settlements, key=lambda entry: entry.amount, reverse=True)
    return BalanceSummary(total_owed, total_owes, settlements)


def _decode_list(value: Any) -> Optional[List[Any]]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else None
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ValueError("expected a list")
    return list(value)


def _parse_split_details(value: Any) -> Tuple[MemberSplit, ...]:
    items = _decode_list(value) or []
    splits: List[MemberSplit] = []
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError("split entry must be an object")
        member = item.get("member")
        if not isinstance(member, str) or not member.strip():
            raise ValueError("split entry is missing a member")
        splits.append(MemberSplit(member.strip(), to_decimal(item.get("amount"))))
    return tuple(splits)


def _parse_members(value: Any) -> Tuple[str, ...]:
    items = _decode_list(value) or []
    return tuple(str(member).strip() for member in items if str(member).strip())


def expense_from_row(row: Mapping[str, Any]) -> Optional[Expense]:
    try:
        split_type = SplitType(str(row.get("split_type") or "").strip().lower())
        amount = to_decimal(row.get("amount"))
        if amount <= 0:
            raise ValueError("amount must be positive")
        paid_by = row.get("paid_by")
        if not isinstance(paid_by, str) or not paid_by.strip():
            raise ValueError("missing payer")

        members_value = row.get("group_members")
        if members_value is None:
            group = row.get("group")
            members_value = group.get("members") if isinstance(group, Mapping) else row.get("members")

        split_details: Tuple[MemberSplit, ...] = ()
        if split_type is SplitType.CUSTOM:
            split_details = _parse_split_details(row.get("split_details"))

        return Expense(
            amount=amount,
            paid_by=paid_by.strip(),
            split_type=split_type,
            split_details=split_details,
            group_members=_parse_members(members_value),
            settled=bool(row.get("settled")),
        )
    except (ValueError, TypeError) as exc:
        # json.JSONDecodeError is a ValueError
        logger.warning("Dropping malformed expense row %s: %s", row.get("id"), exc)
        return None


def expenses_from_rows(rows: Sequence[Mapping[str, Any]]) -> List[Expense]:
    expenses: List[Expense] = []
    for row in rows:
        expense = expense_from_row(row)
        if expense is not None:
            expenses.append(expense)
    return expenses
