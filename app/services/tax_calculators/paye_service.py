"""
Paymaster HR - PAYE Calculator Service

Progressive (bracket) tax used for PAYE and for progressive voluntary
deductions.

Default PAYE brackets (annual income):
- ₦0 - ₦300,000: 7%
- ₦300,000 - ₦600,000: 11%
- ₦600,000 - ₦1,100,000: 15%
- ₦1,100,000 - ₦1,600,000: 19%
- ₦1,600,000 - ₦3,200,000: 21%
- Above ₦3,200,000: 24%

Each bracket taxes at most (max - min) of the remaining income, so brackets
are expected to be contiguous.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from app.utils.error_handling import InvalidTaxBracketsError


@dataclass(frozen=True)
class TaxBracket:
    """Tax bracket definition; max=None marks the unbounded top bracket."""
    min: Decimal
    max: Optional[Decimal]
    rate: Decimal

    @property
    def width(self) -> Optional[Decimal]:
        if self.max is None:
            return None
        return self.max - self.min

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": float(self.min),
            "max": float(self.max) if self.max is not None else None,
            "rate": float(self.rate),
        }


# Default PAYE brackets
DEFAULT_PAYE_BRACKETS: List[TaxBracket] = [
    TaxBracket(Decimal("0"), Decimal("300000"), Decimal("7")),
    TaxBracket(Decimal("300000"), Decimal("600000"), Decimal("11")),
    TaxBracket(Decimal("600000"), Decimal("1100000"), Decimal("15")),
    TaxBracket(Decimal("1100000"), Decimal("1600000"), Decimal("19")),
    TaxBracket(Decimal("1600000"), Decimal("3200000"), Decimal("21")),
    TaxBracket(Decimal("3200000"), None, Decimal("24")),
]

BracketInput = Union[TaxBracket, Mapping[str, Any]]


def _to_decimal(value: Any, field: str, index: int) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidTaxBracketsError(
            f"Bracket {index}: '{field}' must be a number (got {value!r})", index,
        )


def parse_tax_bracket(raw: BracketInput, index: int = 0) -> TaxBracket:
    """Build a TaxBracket from a dict ({min, max, rate}) or pass one through."""
    if isinstance(raw, TaxBracket):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidTaxBracketsError(f"Bracket {index} must be an object", index)

    for field in ("min", "rate"):
        if raw.get(field) is None:
            raise InvalidTaxBracketsError(f"Bracket {index}: '{field}' is required", index)

    upper = raw.get("max")
    return TaxBracket(
        min=_to_decimal(raw["min"], "min", index),
        max=_to_decimal(upper, "max", index) if upper is not None else None,
        rate=_to_decimal(raw["rate"], "rate", index),
    )


def validate_tax_brackets(brackets: Iterable[BracketInput]) -> List[TaxBracket]:
    """
    Parse and validate a bracket list.

    Rules:
    - at least one bracket
    - min >= 0, rate in [0, 100], max > min when set
    - the first bracket starts at 0
    - contiguous and ascending (min == previous max)
    - only the last bracket may have max = None

    Raises:
        InvalidTaxBracketsError
    """
    parsed = [parse_tax_bracket(raw, i) for i, raw in enumerate(brackets)]
    if not parsed:
        raise InvalidTaxBracketsError("At least one tax bracket is required")

    previous: Optional[TaxBracket] = None
    for i, bracket in enumerate(parsed):
        if bracket.min < 0:
            raise InvalidTaxBracketsError(f"Bracket {i}: min cannot be negative", i)
        if not (Decimal("0") <= bracket.rate <= Decimal("100")):
            raise InvalidTaxBracketsError(f"Bracket {i}: rate must be between 0 and 100", i)
        if bracket.max is not None and bracket.max <= bracket.min:
            raise InvalidTaxBracketsError(f"Bracket {i}: max must be greater than min", i)
        if bracket.max is None and i != len(parsed) - 1:
            raise InvalidTaxBracketsError(
                f"Bracket {i}: only the last bracket may be unbounded", i,
            )
        if previous is not None:
            if bracket.min < previous.min:
                raise InvalidTaxBracketsError(
                    f"Bracket {i}: brackets must be ordered by ascending min", i,
                )
            if bracket.min < previous.max:
                raise InvalidTaxBracketsError(
                    f"Bracket {i}: overlaps the previous bracket", i,
                )
            if bracket.min > previous.max:
                raise InvalidTaxBracketsError(
                    f"Bracket {i}: leaves a gap after the previous bracket", i,
                )
        elif bracket.min != 0:
            raise InvalidTaxBracketsError("Bracket 0: the first bracket must start at 0", i)
        previous = bracket

    return parsed


def compute_progressive_tax(income: Decimal, brackets: Sequence[TaxBracket]) -> Decimal:
    """
    Progressive tax on income, unrounded.

    Brackets are assumed validated (see validate_tax_brackets). Zero or
    negative income yields zero.
    """
    income = Decimal(str(income))
    if income <= 0:
        return Decimal("0")

    tax = Decimal("0")
    remaining = income
    for bracket in brackets:
        if remaining <= 0:
            break
        width = bracket.width
        taxable = remaining if width is None else min(remaining, width)
        tax += taxable * bracket.rate / 100
        remaining -= taxable

    return tax


class PAYECalculator:
    """
    PAYE calculator over a validated bracket set.

    Period PAYE annualizes the period gross (gross x periods per year),
    applies the brackets and divides the annual tax back.
    """

    def __init__(self, brackets: Optional[Sequence[TaxBracket]] = None):
        self.brackets = list(brackets) if brackets else list(DEFAULT_PAYE_BRACKETS)

    @classmethod
    def from_config(cls, raw: Optional[Iterable[BracketInput]]) -> "PAYECalculator":
        """Build from stored JSON brackets, validating them."""
        if not raw:
            return cls()
        return cls(validate_tax_brackets(raw))

    def annual_tax(self, annual_income: Decimal) -> Decimal:
        return compute_progressive_tax(annual_income, self.brackets)

    def period_tax(self, period_gross: Decimal, periods_per_year: int = 12) -> Decimal:
        """PAYE for one pay period, rounded to kobo."""
        annual_income = Decimal(str(period_gross)) * periods_per_year
        return (self.annual_tax(annual_income) / periods_per_year).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    def band_breakdown(self, annual_income: Decimal) -> List[Dict[str, Any]]:
        """Tax per bracket, for payslip and preview display."""
        breakdown = []
        remaining = Decimal(str(annual_income))
        for bracket in self.brackets:
            if remaining <= 0:
                break
            width = bracket.width
            taxable = remaining if width is None else min(remaining, width)
            breakdown.append({
                "range": f"₦{bracket.min:,.0f} - {'∞' if bracket.max is None else f'₦{bracket.max:,.0f}'}",
                "rate": f"{bracket.rate}%",
                "taxable_amount": float(taxable),
                "tax_amount": float(taxable * bracket.rate / 100),
            })
            remaining -= taxable
        return breakdown
