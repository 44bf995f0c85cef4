"""
Amortization Module

Payment schedule generation for Bolívar Digital financings.

Two methods are supported:

* French (``compute_french_schedule``): a constant payment per period. The
  interest share shrinks and the principal share grows over the term.
* Linear (``compute_linear_schedule``): a constant principal slice per period.
  The payment declines as the outstanding balance, and so the interest, falls.

Both functions are pure. They never raise for numeric input: a non-positive
principal or term (or a rate of -100% or below, for which no annuity exists)
produces an empty schedule with zero totals. All arithmetic is Decimal and
every monetary field is rounded half-up to the cent.
"""

from decimal import Decimal, Overflow, ROUND_HALF_UP, localcontext
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

Number = Union[int, float, str, Decimal]

CENT = Decimal('0.01')
ZERO = Decimal('0')
ONE = Decimal('1')


class AmortizationMethod(Enum):
    """Supported amortization methods"""
    FRENCH = "french"    # Fixed payment per period
    LINEAR = "linear"    # Fixed principal per period, declining payment


@dataclass(frozen=True)
class ScheduleRow:
    """Single period of a payment schedule"""
    period: int
    payment: Decimal
    interest: Decimal
    principal: Decimal
    remaining: Decimal


@dataclass(frozen=True)
class ScheduleResult:
    """Complete schedule with aggregate totals"""
    schedule: Tuple[ScheduleRow, ...]
    total_interest: Decimal
    total_paid: Decimal
    monthly_payment: Optional[Decimal] = None  # French method only

    @property
    def periods(self) -> int:
        return len(self.schedule)

    def to_dict(self) -> dict:
        result = {
            'schedule': [
                {
                    'period': row.period,
                    'payment': str(row.payment),
                    'interest': str(row.interest),
                    'principal': str(row.principal),
                    'remaining': str(row.remaining),
                }
                for row in self.schedule
            ],
            'total_interest': str(self.total_interest),
            'total_paid': str(self.total_paid),
        }
        if self.monthly_payment is not None:
            result['monthly_payment'] = str(self.monthly_payment)
        return result


def round_money(value: Decimal) -> Decimal:
    """Round to the cent, halves away from zero"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Number) -> Decimal:
    """Convert user input to Decimal without binary float artefacts"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def monthly_rate_from_annual(annual_rate: Number, periods_per_year: int = 12) -> Decimal:
    """Nominal annual rate to periodic rate (e.g. 0.24 -> 0.02 per month)"""
    return to_decimal(annual_rate) / Decimal(periods_per_year)


def _is_degenerate(principal: Decimal, rate: Decimal, months: int) -> bool:
    if not (principal.is_finite() and rate.is_finite()):
        return True
    return principal <= ZERO or months <= 0 or rate <= -ONE


def _empty_result(with_payment: bool) -> ScheduleResult:
    return ScheduleResult(
        schedule=(),
        total_interest=round_money(ZERO),
        total_paid=round_money(ZERO),
        monthly_payment=round_money(ZERO) if with_payment else None
    )


def _annuity(principal: Decimal, rate: Decimal, months: int) -> Optional[Decimal]:
    """Constant payment P * i / (1 - (1 + i)^-n); None when it cannot be represented"""
    if rate == ZERO:
        return principal / Decimal(months)
    with localcontext() as ctx:
        ctx.traps[Overflow] = False
        denominator = ONE - (ONE + rate) ** -months
    if not denominator.is_finite():
        return None
    if denominator == ZERO:
        # Rate below the context precision behaves as zero
        return principal / Decimal(months)
    return principal * rate / denominator


def compute_french_schedule(principal: Number, rate_monthly: Number, months: int) -> ScheduleResult:
    """
    Fixed-payment (annuity) schedule

    Args:
        principal: Amount financed
        rate_monthly: Periodic interest rate (0.02 = 2% per period)
        months: Number of periods

    Returns:
        ScheduleResult including the rounded constant ``monthly_payment``
    """
    principal = to_decimal(principal)
    rate = to_decimal(rate_monthly)
    months = int(months)
    if _is_degenerate(principal, rate, months):
        return _empty_result(with_payment=True)

    annuity = _annuity(principal, rate, months)
    if annuity is None:
        return _empty_result(with_payment=True)

    rows = []
    remaining = principal
    total_interest = ZERO
    for period in range(1, months + 1):
        interest = remaining * rate if rate != ZERO else ZERO
        principal_part = annuity - interest
        remaining = max(ZERO, remaining - principal_part)
        rows.append(ScheduleRow(
            period=period,
            payment=round_money(annuity),
            interest=round_money(interest),
            principal=round_money(principal_part),
            remaining=round_money(remaining)
        ))
        total_interest += interest

    return ScheduleResult(
        schedule=tuple(rows),
        total_interest=round_money(total_interest),
        total_paid=round_money(sum((row.payment for row in rows), ZERO)),
        monthly_payment=round_money(annuity)
    )


def compute_linear_schedule(principal: Number, rate_monthly: Number, months: int) -> ScheduleResult:
    """
    Constant-principal schedule with declining payments

    Args:
        principal: Amount financed
        rate_monthly: Periodic interest rate
        months: Number of periods

    Returns:
        ScheduleResult (``monthly_payment`` is None since the payment varies)
    """
    principal = to_decimal(principal)
    rate = to_decimal(rate_monthly)
    months = int(months)
    if _is_degenerate(principal, rate, months):
        return _empty_result(with_payment=False)

    slice_ = principal / Decimal(months)
    rows = []
    remaining = principal
    total_interest = ZERO
    for period in range(1, months + 1):
        interest = remaining * rate
        payment = slice_ + interest
        remaining = max(ZERO, remaining - slice_)
        rows.append(ScheduleRow(
            period=period,
            payment=round_money(payment),
            interest=round_money(interest),
            principal=round_money(slice_),
            remaining=round_money(remaining)
        ))
        total_interest += interest

    return ScheduleResult(
        schedule=tuple(rows),
        total_interest=round_money(total_interest),
        total_paid=round_money(sum((row.payment for row in rows), ZERO))
    )


def compute_schedule(method: Union[AmortizationMethod, str], principal: Number,
                     rate_monthly: Number, months: int) -> ScheduleResult:
    """Dispatch to the engine for ``method``"""
    method = AmortizationMethod(method) if isinstance(method, str) else method
    if method == AmortizationMethod.FRENCH:
        return compute_french_schedule(principal, rate_monthly, months)
    return compute_linear_schedule(principal, rate_monthly, months)
