"""
Paymaster HR - Services Package

Business logic services.
"""

from app.services.employee_service import EmployeeService
from app.services.salary_structure_service import SalaryStructureService, SalaryBreakdown
from app.services.allowance_service import AllowanceService, AllowanceResolution
from app.services.bonus_service import BonusService, BonusResolution
from app.services.deduction_service import DeductionService, DeductionResolution
from app.services.payroll_service import PayrollService
from app.services.payroll_batch_service import (
    PayrollBatchRunner,
    PayrollBatchSummary,
    PayrollSummaryService,
    run_scheduled_payroll,
)

# Tax Calculators
from app.services.tax_calculators.paye_service import PAYECalculator, TaxBracket

__all__ = [
    "EmployeeService",
    "SalaryStructureService",
    "SalaryBreakdown",
    "AllowanceService",
    "AllowanceResolution",
    "BonusService",
    "BonusResolution",
    "DeductionService",
    "DeductionResolution",
    "PayrollService",
    "PayrollBatchRunner",
    "PayrollBatchSummary",
    "PayrollSummaryService",
    "run_scheduled_payroll",
    "PAYECalculator",
    "TaxBracket",
]
