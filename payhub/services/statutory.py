"""
Malaysian statutory contributions (EPF, SOCSO, EIS) and gross pay.

Pure functions over MYR amounts. Every computed quantity is rounded half-up
to 2 decimal places on its own, never on a running total.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

EPF_EMPLOYEE_RATE = Decimal("0.11")
EPF_EMPLOYER_RATE_LOW = Decimal("0.13")  # wage <= 5000
EPF_EMPLOYER_RATE_HIGH = Decimal("0.12")
EPF_EMPLOYER_THRESHOLD = Decimal("5000")

SOCSO_WAGE_CEILING = Decimal("4000")
SOCSO_EMPLOYEE_RATE = Decimal("0.005")
SOCSO_EMPLOYER_RATE = Decimal("0.0175")
SOCSO_EMPLOYEE_CAP = Decimal("19.75")
SOCSO_EMPLOYER_CAP = Decimal("69.05")

EIS_RATE = Decimal("0.002")
EIS_CAP = Decimal("7.90")

# Flat conversion used for statutory purposes: 8 hours x 26 days
HOURS_PER_DAY = Decimal("8")
DAYS_PER_MONTH = Decimal("26")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Contribution:
    employee: Decimal = ZERO
    employer: Decimal = ZERO
    total: Decimal = ZERO

    def as_dict(self) -> Dict[str, Decimal]:
        return {
            "employee_contribution": self.employee,
            "employer_contribution": self.employer,
            "total_contribution": self.total,
        }


@dataclass(frozen=True)
class StatutoryDeductions:
    epf: Contribution
    socso: Contribution
    eis: Contribution
    total_employee: Decimal
    total_employer: Decimal
    total_deductions: Decimal


def calculate_epf(monthly_wage) -> Contribution:
    wage = to_decimal(monthly_wage)
    if wage <= 0:
        return Contribution()
    employer_rate = EPF_EMPLOYER_RATE_LOW if wage <= EPF_EMPLOYER_THRESHOLD else EPF_EMPLOYER_RATE_HIGH
    employee = round_money(wage * EPF_EMPLOYEE_RATE)
    employer = round_money(wage * employer_rate)
    return Contribution(employee, employer, round_money(employee + employer))


def calculate_socso(monthly_wage) -> Contribution:
    """SOCSO stops applying once the wage exceeds the ceiling (no capped-wage contribution)."""
    wage = to_decimal(monthly_wage)
    if wage <= 0 or wage > SOCSO_WAGE_CEILING:
        return Contribution()
    employee = min(round_money(wage * SOCSO_EMPLOYEE_RATE), SOCSO_EMPLOYEE_CAP)
    employer = min(round_money(wage * SOCSO_EMPLOYER_RATE), SOCSO_EMPLOYER_CAP)
    return Contribution(employee, employer, round_money(employee + employer))


def calculate_eis(monthly_wage) -> Contribution:
    wage = to_decimal(monthly_wage)
    if wage <= 0:
        return Contribution()
    share = min(round_money(wage * EIS_RATE), EIS_CAP)
    return Contribution(share, share, round_money(share + share))


def calculate_statutory_deductions(
    monthly_wage,
    epf_enabled: bool = True,
    socso_enabled: bool = True,
    eis_enabled: bool = True,
) -> StatutoryDeductions:
    epf = calculate_epf(monthly_wage) if epf_enabled else Contribution()
    socso = calculate_socso(monthly_wage) if socso_enabled else Contribution()
    eis = calculate_eis(monthly_wage) if eis_enabled else Contribution()

    total_employee = round_money(epf.employee + socso.employee + eis.employee)
    total_employer = round_money(epf.employer + socso.employer + eis.employer)
    return StatutoryDeductions(
        epf=epf,
        socso=socso,
        eis=eis,
        total_employee=total_employee,
        total_employer=total_employer,
        total_deductions=round_money(total_employee + total_employer),
    )


def hourly_to_monthly(hourly_rate) -> Decimal:
    """Monthly equivalent of an hourly rate for statutory purposes (8 h x 26 days)."""
    return round_money(to_decimal(hourly_rate) * HOURS_PER_DAY * DAYS_PER_MONTH)


@dataclass(frozen=True)
class GrossPay:
    normal_pay: Decimal
    ot1_5_pay: Decimal
    ot2_0_pay: Decimal
    gross_pay: Decimal


def calculate_gross_pay(
    hours: Dict[str, object],
    hourly_rate,
    ot_rates: Optional[Dict[str, object]] = None,
) -> GrossPay:
    """
    Gross pay from hours split into normal / OT1.5 / OT2.0 buckets.

    ``hours`` takes keys ``normal``, ``ot1_5`` and ``ot2_0``; ``ot_rates`` takes
    multipliers under ``ot1_5`` and ``ot2_0`` (defaults 1.5 and 2.0).
    """
    ot_rates = ot_rates or {}
    rate = to_decimal(hourly_rate)
    ot1_5_multiplier = to_decimal(ot_rates.get("ot1_5") or "1.5")
    ot2_0_multiplier = to_decimal(ot_rates.get("ot2_0") or "2.0")

    normal_pay = round_money(to_decimal(hours.get("normal")) * rate)
    ot1_5_pay = round_money(to_decimal(hours.get("ot1_5")) * rate * ot1_5_multiplier)
    ot2_0_pay = round_money(to_decimal(hours.get("ot2_0")) * rate * ot2_0_multiplier)
    return GrossPay(
        normal_pay=normal_pay,
        ot1_5_pay=ot1_5_pay,
        ot2_0_pay=ot2_0_pay,
        gross_pay=round_money(normal_pay + ot1_5_pay + ot2_0_pay),
    )
