from __future__ import annotations

import enum
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .balances import CENT, MemberSplit, SplitType, to_decimal

TOLERANCE = Decimal("0.01")
HUNDRED = Decimal("100")


class SplitMode(str, enum.Enum):
    AMOUNT = "amount"
    PERCENTAGE = "percentage"


class SplitValidationError(ValueError):
    def __init__(self, code: str, details: Optional[Dict[str, str]] = None) -> None:
        super().__init__(code)
        self.code = code
        self.details = details or {}


def parse_amount(value: Any) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError:
        raise SplitValidationError("invalid_amount") from None
    if amount <= 0:
        raise SplitValidationError("invalid_amount")
    return amount


def normalize_split_type(value: Any) -> SplitType:
    try:
        return SplitType(str(value or SplitType.EQUAL.value).strip().lower())
    except ValueError:
        raise SplitValidationError("invalid_split_type") from None


def normalize_split_mode(value: Any) -> SplitMode:
    try:
        return SplitMode(str(value or SplitMode.AMOUNT.value).strip().lower())
    except ValueError:
        raise SplitValidationError("invalid_split_mode") from None


def _amounts_close(a: Decimal, b: Decimal, tolerance: Decimal = TOLERANCE) -> bool:
    return abs(a - b) <= tolerance


def build_split_details(
    total: Decimal,
    values: Sequence[Tuple[str, Any]],
    mode: SplitMode = SplitMode.AMOUNT,
) -> List[MemberSplit]:
    """Turn per-member form values into split details.

    ``values`` pairs each member with the raw amount or percentage entered
    for them. Row problems are collected under the member's name so the
    caller can show them next to the matching input.
    """
    details: List[MemberSplit] = []
    errors: Dict[str, str] = {}
    running_total = Decimal("0")

    for member, raw in values:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            errors[member] = "invalid_input"
            continue
        try:
            value = to_decimal(raw)
        except ValueError:
            errors[member] = "invalid_input"
            continue
        if value < 0:
            errors[member] = "invalid_input"
            continue

        if mode is SplitMode.AMOUNT:
            details.append(MemberSplit(member, value))
        else:
            if value > HUNDRED:
                errors[member] = "over_100"
            else:
                amount = (total * value / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
                details.append(MemberSplit(member, amount))
        running_total += value

    if mode is SplitMode.AMOUNT:
        if not _amounts_close(running_total, total):
            errors["total"] = "split_total_mismatch"
    elif not _amounts_close(running_total, HUNDRED):
        errors["total"] = "percentage_total_mismatch"

    if errors:
        raise SplitValidationError("invalid_split", errors)
    return details


def split_values_from_payload(payload: Any, members: Sequence[str]) -> List[Tuple[str, Any]]:
    """Accept either ``[{"member", "value"|"amount"}]`` or ``{member: value}``."""
    if isinstance(payload, dict):
        pairs = [(str(member).strip(), value) for member, value in payload.items()]
    elif isinstance(payload, list):
        pairs = []
        for item in payload:
            if not isinstance(item, dict) or "member" not in item:
                raise SplitValidationError("invalid_split_payload")
            pairs.append((str(item["member"]).strip(), item.get("value", item.get("amount"))))
    else:
        raise SplitValidationError("invalid_split_payload")

    member_set = {member.strip() for member in members}
    seen = set()
    for member, _ in pairs:
        if member not in member_set:
            raise SplitValidationError("invalid_split_members")
        if member in seen:
            raise SplitValidationError("duplicate_split_entry")
        seen.add(member)

    # every group member needs a value, even if it is zero
    for member in members:
        if member.strip() not in seen:
            pairs.append((member.strip(), None))
    return pairs
