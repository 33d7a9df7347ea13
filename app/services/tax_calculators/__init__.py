"""
Paymaster HR - Tax Calculators Package

Modules:
- paye_service: progressive bracket tax (PAYE and progressive deductions)
"""

from app.services.tax_calculators.paye_service import (
    DEFAULT_PAYE_BRACKETS,
    PAYECalculator,
    TaxBracket,
    compute_progressive_tax,
    parse_tax_bracket,
    validate_tax_brackets,
)


__all__ = [
    "DEFAULT_PAYE_BRACKETS",
    "PAYECalculator",
    "TaxBracket",
    "compute_progressive_tax",
    "parse_tax_bracket",
    "validate_tax_brackets",
]
