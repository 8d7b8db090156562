from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from microfin.schemas.loan import RepaymentFrequency


TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# periods per year, (installments, months) ratio applied to the tenure
_FREQUENCY_TERMS: dict[RepaymentFrequency, tuple[int, tuple[int, int]]] = {
    RepaymentFrequency.WEEKLY: (52, (4, 1)),
    RepaymentFrequency.BIWEEKLY: (26, (2, 1)),
    RepaymentFrequency.MONTHLY: (12, (1, 1)),
    RepaymentFrequency.QUARTERLY: (4, (1, 3)),
}


@dataclass(frozen=True)
class ScheduledInstallment:
    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    remaining_balance: Decimal

    @property
    def outstanding_principal(self) -> Decimal:
        return self.principal_amount

    @property
    def outstanding_interest(self) -> Decimal:
        return self.interest_amount

    @property
    def outstanding_total(self) -> Decimal:
        return self.total_amount


@dataclass(frozen=True)
class AmortizationSchedule:
    principal: Decimal
    periodic_rate: Decimal
    periodic_payment: Decimal
    installments: list[ScheduledInstallment] = field(default_factory=list)

    @property
    def total_principal(self) -> Decimal:
        return sum((item.principal_amount for item in self.installments), ZERO)

    @property
    def total_interest(self) -> Decimal:
        return sum((item.interest_amount for item in self.installments), ZERO)

    @property
    def total_payable(self) -> Decimal:
        return sum((item.total_amount for item in self.installments), ZERO)


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _round(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def installment_count(tenure_months: int, frequency: RepaymentFrequency | str) -> int:
    frequency = RepaymentFrequency(frequency)
    if tenure_months < 1:
        raise ValueError("tenure must be at least one month")
    if frequency == RepaymentFrequency.QUARTERLY and tenure_months % 3 != 0:
        raise ValueError("quarterly repayment requires a tenure divisible by 3")
    _, (installments, months) = _FREQUENCY_TERMS[frequency]
    return tenure_months * installments // months


def periodic_rate(annual_rate_percent, frequency: RepaymentFrequency | str) -> Decimal:
    periods_per_year, _ = _FREQUENCY_TERMS[RepaymentFrequency(frequency)]
    return _as_decimal(annual_rate_percent) / Decimal("100") / Decimal(periods_per_year)


def periodic_payment(principal: Decimal, rate: Decimal, count: int) -> Decimal:
    """Level annuity payment, rounded to cents.

    Zero-rate loans split principal evenly, truncated to the cent so the
    leftover always falls on the last installment.
    """
    if count <= 0:
        raise ValueError("installment count must be positive")
    if rate == 0:
        return (principal / Decimal(count)).quantize(TWOPLACES, rounding=ROUND_DOWN)
    factor = (Decimal("1") + rate) ** count
    return _round(principal * rate * factor / (factor - Decimal("1")))


def due_date_for(start_date: date, number: int, frequency: RepaymentFrequency | str) -> date:
    frequency = RepaymentFrequency(frequency)
    if frequency == RepaymentFrequency.WEEKLY:
        return start_date + timedelta(days=7 * number)
    if frequency == RepaymentFrequency.BIWEEKLY:
        return start_date + timedelta(days=14 * number)
    if frequency == RepaymentFrequency.QUARTERLY:
        return _add_months(start_date, 3 * number)
    return _add_months(start_date, number)


def build_schedule(
    principal,
    annual_rate_percent,
    tenure_months: int,
    frequency: RepaymentFrequency | str,
    start_date: date,
) -> AmortizationSchedule:
    """Build a reducing-balance annuity schedule.

    Each period charges interest on the opening balance, rounded to cents, and
    retires the rest of the level payment as principal, never more than the
    balance still owed. The last installment pays off the remaining balance
    plus its own interest, so it absorbs the rounding drift of the earlier
    rounded payments. When that drift retires the balance early, the
    schedule ends at the installment that reaches zero.
    """
    principal = _round(_as_decimal(principal))
    if principal <= 0:
        raise ValueError("principal must be positive")
    count = installment_count(tenure_months, frequency)
    rate = periodic_rate(annual_rate_percent, frequency)
    if rate < 0:
        raise ValueError("interest rate cannot be negative")
    payment = periodic_payment(principal, rate, count)

    balance = principal
    installments: list[ScheduledInstallment] = []
    for number in range(1, count + 1):
        interest = _round(balance * rate)
        if number == count:
            principal_part = balance
        else:
            principal_part = min(payment - interest, balance)
        total = principal_part + interest
        balance = balance - principal_part
        installments.append(
            ScheduledInstallment(
                installment_number=number,
                due_date=due_date_for(start_date, number, frequency),
                principal_amount=principal_part,
                interest_amount=interest,
                total_amount=total,
                remaining_balance=balance,
            )
        )
        if balance == ZERO:
            break

    return AmortizationSchedule(
        principal=principal,
        periodic_rate=rate,
        periodic_payment=payment,
        installments=installments,
    )
