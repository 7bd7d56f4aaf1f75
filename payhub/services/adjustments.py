"""Allowance and deduction items stored on a worker's payroll info."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple, Union

from .statutory import round_money, to_decimal, ZERO


@dataclass(frozen=True)
class FixedAmount:
    name: str
    amount: Decimal

    kind = "fixed"

    def apply(self, base: Decimal) -> Decimal:
        return round_money(self.amount)


@dataclass(frozen=True)
class Percentage:
    name: str
    percent: Decimal

    kind = "percentage"

    def apply(self, base: Decimal) -> Decimal:
        return round_money(to_decimal(base) * self.percent / Decimal("100"))


Adjustment = Union[FixedAmount, Percentage]


def adjustment_from_dict(item: Dict) -> Adjustment:
    """Build an adjustment from ``{name, amount, type}``; unknown types count as fixed."""
    name = item.get("name") or "Unnamed"
    amount = to_decimal(item.get("amount"))
    if (item.get("type") or "fixed").lower() == "percentage":
        return Percentage(name=name, percent=amount)
    return FixedAmount(name=name, amount=amount)


def apply_adjustments(items: Iterable[Dict], base: Decimal) -> Tuple[List[Dict], Decimal]:
    """
    Apply every item against ``base``.

    Returns the applied rows (JSON-friendly, amounts as strings) and their total.
    """
    applied = []
    total = ZERO
    for item in items or []:
        adjustment = adjustment_from_dict(item)
        value = adjustment.apply(base)
        applied.append({
            "name": adjustment.name,
            "type": adjustment.kind,
            "amount": str(item.get("amount")),
            "applied_amount": str(value),
        })
        total += value
    return applied, round_money(total)
