"""
Paymaster HR - Payroll Calculation Primitives

Pure functions used by the payroll services:
- money rounding (2 decimal places, round-half-up)
- pay periods and frequency conversion
- strategy maps from calculation method / bonus type to an amount function
- deduction and allowance scope matching
- payroll totals aggregation

Nothing here touches the database.
"""

import calendar
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from app.models.payroll_enums import (
    AllowanceFrequency,
    CalculationMethod,
    PayrollFrequency,
    ScopeType,
)
from app.models.allowance import AllowanceType
from app.models.bonus import BonusType
from app.services.tax_calculators.paye_service import (
    TaxBracket,
    compute_progressive_tax,
    validate_tax_brackets,
)
from app.utils.error_handling import CalculationError, InvalidPayPeriodException


MONEY = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Round to kobo (2 dp, half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ===========================================
# PAY PERIODS & FREQUENCY
# ===========================================

PERIODS_PER_YEAR: Dict[PayrollFrequency, int] = {
    PayrollFrequency.WEEKLY: 52,
    PayrollFrequency.BIWEEKLY: 26,
    PayrollFrequency.MONTHLY: 12,
    PayrollFrequency.QUARTERLY: 4,
    PayrollFrequency.ANNUAL: 1,
}

# Monthly amount -> amount for one pay period of the given frequency
MONTHLY_TO_FREQUENCY: Dict[PayrollFrequency, Callable[[Decimal], Decimal]] = {
    PayrollFrequency.WEEKLY: lambda monthly: monthly / Decimal("4.33"),
    PayrollFrequency.BIWEEKLY: lambda monthly: monthly / Decimal("2.17"),
    PayrollFrequency.MONTHLY: lambda monthly: monthly,
    PayrollFrequency.QUARTERLY: lambda monthly: monthly * 3,
    PayrollFrequency.ANNUAL: lambda monthly: monthly * 12,
}

# Allowance amount at its own frequency -> monthly equivalent
ALLOWANCE_TO_MONTHLY: Dict[AllowanceFrequency, Callable[[Decimal], Decimal]] = {
    AllowanceFrequency.MONTHLY: lambda amount: amount,
    AllowanceFrequency.QUARTERLY: lambda amount: amount / 3,
    AllowanceFrequency.ANNUAL: lambda amount: amount / 12,
    AllowanceFrequency.ONE_TIME: lambda amount: amount,
}


@dataclass(frozen=True)
class PayPeriod:
    """Pay period for a (month, year, frequency) payroll."""
    month: int
    year: int
    frequency: PayrollFrequency
    start: date
    end: date

    @property
    def periods_per_year(self) -> int:
        return PERIODS_PER_YEAR[self.frequency]

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, start: date, end: Optional[date]) -> bool:
        """True when [start, end] (end=None is open) intersects the period."""
        return start <= self.end and (end is None or end >= self.start)


def pay_period(month: int, year: int, frequency: Union[PayrollFrequency, str]) -> PayPeriod:
    """
    Resolve the date range of a pay period.

    weekly/biweekly/monthly payrolls cover the calendar month, quarterly the
    calendar quarter containing the month, annual the calendar year.
    """
    try:
        frequency = PayrollFrequency(frequency)
    except ValueError:
        raise InvalidPayPeriodException(
            f"Unsupported payroll frequency: {frequency}",
            details={"frequency": str(frequency)},
        )
    if not 1 <= int(month) <= 12:
        raise InvalidPayPeriodException(
            "Month must be between 1 and 12", details={"month": month},
        )
    if not 1900 <= int(year) <= 9999:
        raise InvalidPayPeriodException("Invalid year", details={"year": year})

    if frequency == PayrollFrequency.QUARTERLY:
        first_month = 3 * ((month - 1) // 3) + 1
        last_month = first_month + 2
    elif frequency == PayrollFrequency.ANNUAL:
        first_month, last_month = 1, 12
    else:
        first_month = last_month = month

    start = date(year, first_month, 1)
    end = date(year, last_month, calendar.monthrange(year, last_month)[1])
    return PayPeriod(month=month, year=year, frequency=frequency, start=start, end=end)


def monthly_to_frequency(monthly_amount: Decimal, frequency: PayrollFrequency) -> Decimal:
    """Convert a monthly amount to one pay period of `frequency` (unrounded)."""
    return MONTHLY_TO_FREQUENCY[PayrollFrequency(frequency)](to_decimal(monthly_amount))


def prorate_allowance(
    amount: Decimal,
    allowance_frequency: AllowanceFrequency,
    payroll_frequency: PayrollFrequency,
) -> Decimal:
    """
    Amount of an allowance payable in one pay period, rounded.

    One-time allowances are paid in full once; the rest go through their
    monthly equivalent.

    Example: a quarterly 30,000 on a monthly payroll -> 10,000.00
    """
    allowance_frequency = AllowanceFrequency(allowance_frequency)
    amount = to_decimal(amount)
    if allowance_frequency == AllowanceFrequency.ONE_TIME:
        return round_money(amount)
    monthly = ALLOWANCE_TO_MONTHLY[allowance_frequency](amount)
    return round_money(monthly_to_frequency(monthly, payroll_frequency))


# ===========================================
# STRATEGY MAPS
# ===========================================

def performance_amount(
    base_amount: Optional[Decimal],
    performance_score: Optional[Decimal],
    target_score: Optional[Decimal],
) -> Decimal:
    """base x (score / target) when the target is met, else 0."""
    base = to_decimal(base_amount)
    score = to_decimal(performance_score)
    target = to_decimal(target_score)
    if target <= 0 or score < target:
        return Decimal("0")
    return base * (score / target)


# Grade component: (value, monthly basic) -> monthly amount
COMPONENT_STRATEGIES: Dict[CalculationMethod, Callable[[Decimal, Decimal], Decimal]] = {
    CalculationMethod.FIXED: lambda value, basic: value,
    CalculationMethod.PERCENTAGE: lambda value, basic: basic * value / 100,
}


def component_amount(method: CalculationMethod, value: Decimal, basic_salary: Decimal) -> Decimal:
    """Monthly amount of a grade component, rounded."""
    try:
        strategy = COMPONENT_STRATEGIES[CalculationMethod(method)]
    except KeyError:
        raise CalculationError(
            f"Unsupported salary component method: {method}",
            details={"calculation_method": str(method)},
        )
    return round_money(strategy(to_decimal(value), to_decimal(basic_salary)))


@dataclass
class AllowanceInputs:
    """Values an allowance strategy may read."""
    value: Decimal
    basic_salary: Decimal
    base_amount: Optional[Decimal] = None
    performance_score: Optional[Decimal] = None
    target_score: Optional[Decimal] = None


PerformanceCalculator = Callable[[AllowanceInputs], Decimal]


def default_performance_calculator(inputs: AllowanceInputs) -> Decimal:
    base = inputs.base_amount if inputs.base_amount is not None else inputs.value
    return performance_amount(base, inputs.performance_score, inputs.target_score)


def allowance_strategies(
    performance_calculator: PerformanceCalculator = default_performance_calculator,
) -> Dict[AllowanceType, Callable[[AllowanceInputs], Decimal]]:
    """Allowance type -> amount function (before frequency proration)."""
    return {
        AllowanceType.FIXED: lambda inputs: inputs.value,
        AllowanceType.PERCENTAGE: lambda inputs: inputs.basic_salary * inputs.value / 100,
        AllowanceType.PERFORMANCE_BASED: performance_calculator,
    }


@dataclass
class BonusInputs:
    """Values a bonus strategy may read."""
    amount: Decimal
    basic_salary: Decimal
    base_amount: Optional[Decimal] = None
    performance_score: Optional[Decimal] = None
    target_score: Optional[Decimal] = None


def _stored_amount(inputs: BonusInputs) -> Decimal:
    return inputs.amount


BONUS_STRATEGIES: Dict[BonusType, Callable[[BonusInputs], Decimal]] = {
    BonusType.PERFORMANCE: lambda inputs: performance_amount(
        inputs.base_amount if inputs.base_amount is not None else inputs.amount,
        inputs.performance_score,
        inputs.target_score,
    ),
    BonusType.THIRTEENTH_MONTH: lambda inputs: inputs.basic_salary,
}


def bonus_amount(bonus_type: BonusType, inputs: BonusInputs) -> Decimal:
    """Bonus amount, rounded; types without a strategy pay the stored amount."""
    strategy = BONUS_STRATEGIES.get(BonusType(bonus_type), _stored_amount)
    return round_money(strategy(inputs))


# Deduction: (value, gross, brackets) -> amount
DEDUCTION_STRATEGIES: Dict[
    CalculationMethod, Callable[[Decimal, Decimal, Sequence[TaxBracket]], Decimal]
] = {
    CalculationMethod.FIXED: lambda value, gross, brackets: value,
    CalculationMethod.PERCENTAGE: lambda value, gross, brackets: gross * value / 100,
    CalculationMethod.PROGRESSIVE: lambda value, gross, brackets: compute_progressive_tax(gross, brackets),
}


def deduction_amount(
    method: CalculationMethod,
    value: Decimal,
    gross_salary: Decimal,
    tax_brackets: Optional[Sequence[Any]] = None,
) -> Decimal:
    """Voluntary deduction amount for one pay period, rounded."""
    method = CalculationMethod(method)
    brackets: List[TaxBracket] = []
    if method == CalculationMethod.PROGRESSIVE:
        brackets = validate_tax_brackets(tax_brackets or [])
    return round_money(
        DEDUCTION_STRATEGIES[method](to_decimal(value), to_decimal(gross_salary), brackets)
    )


# ===========================================
# SCOPE
# ===========================================

@dataclass(frozen=True)
class CompanyScope:
    pass


@dataclass(frozen=True)
class DepartmentScope:
    department_id: uuid.UUID


@dataclass(frozen=True)
class GradeScope:
    level: str


@dataclass(frozen=True)
class IndividualScope:
    employee_id: uuid.UUID


Scope = Union[CompanyScope, DepartmentScope, GradeScope, IndividualScope]


@dataclass(frozen=True)
class ScopeFilter:
    """The employee a definition is being matched against."""
    employee_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    grade_level: Optional[str] = None


def scope_of(definition: Any) -> Scope:
    """
    Build the scope variant of an allowance or deduction definition.

    Raises CalculationError when the reference the scope needs is missing.
    """
    scope = ScopeType(definition.scope)
    if scope == ScopeType.COMPANY_WIDE:
        return CompanyScope()
    if scope == ScopeType.DEPARTMENT and definition.department_id is not None:
        return DepartmentScope(definition.department_id)
    if scope == ScopeType.GRADE and definition.grade_level:
        return GradeScope(definition.grade_level)
    if scope == ScopeType.INDIVIDUAL and definition.employee_id is not None:
        return IndividualScope(definition.employee_id)
    raise CalculationError(
        f"{type(definition).__name__} '{getattr(definition, 'name', '')}' has scope "
        f"{scope.value} without its reference",
        details={"definition_id": str(getattr(definition, "id", ""))},
    )


def matches_scope(scope: Scope, target: ScopeFilter) -> bool:
    if isinstance(scope, CompanyScope):
        return True
    if isinstance(scope, DepartmentScope):
        return target.department_id is not None and scope.department_id == target.department_id
    if isinstance(scope, GradeScope):
        return target.grade_level is not None and scope.level == target.grade_level
    if isinstance(scope, IndividualScope):
        return scope.employee_id == target.employee_id
    raise TypeError(f"Unknown scope: {scope!r}")


# ===========================================
# TOTALS
# ===========================================

@dataclass
class LineItem:
    """One computed earning or deduction (amount already rounded)."""
    name: str
    amount: Decimal
    source_id: Optional[uuid.UUID] = None
    category: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


def sum_amounts(items: Sequence[LineItem]) -> Decimal:
    return sum((item.amount for item in items), ZERO)


@dataclass
class PayrollTotals:
    """
    Payroll figures for one employee and period.

    Every field is a rounded amount and every total is the plain sum of the
    rounded parts, so sub-totals always reconcile.
    """
    basic_salary: Decimal = ZERO
    grade_allowances: Decimal = ZERO
    personal_allowances: Decimal = ZERO
    bonuses: Decimal = ZERO
    paye: Decimal = ZERO
    pension: Decimal = ZERO
    nhf: Decimal = ZERO
    voluntary: Decimal = ZERO

    @property
    def total_allowances(self) -> Decimal:
        return self.grade_allowances + self.personal_allowances

    @property
    def gross_earnings(self) -> Decimal:
        return self.basic_salary + self.total_allowances + self.bonuses

    @property
    def total_statutory(self) -> Decimal:
        return self.paye + self.pension + self.nhf

    @property
    def total_deductions(self) -> Decimal:
        return self.total_statutory + self.voluntary

    @property
    def net_pay(self) -> Decimal:
        return self.gross_earnings - self.total_deductions

    def check(self) -> None:
        """Raise CalculationError if any figure is unrounded or negative."""
        for name in (
            "basic_salary", "grade_allowances", "personal_allowances", "bonuses",
            "paye", "pension", "nhf", "voluntary",
        ):
            amount = getattr(self, name)
            if amount < 0:
                raise CalculationError(f"{name} cannot be negative", details={name: str(amount)})
            if round_money(amount) != amount:
                raise CalculationError(f"{name} is not rounded to 2 dp", details={name: str(amount)})

    def as_dict(self) -> Dict[str, Decimal]:
        return {
            "basic_salary": self.basic_salary,
            "grade_allowances": self.grade_allowances,
            "personal_allowances": self.personal_allowances,
            "total_allowances": self.total_allowances,
            "bonuses": self.bonuses,
            "gross_earnings": self.gross_earnings,
            "paye": self.paye,
            "pension": self.pension,
            "nhf": self.nhf,
            "total_statutory": self.total_statutory,
            "voluntary": self.voluntary,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
        }
