"""
Seed Script: Payroll Reference Data
===================================
Populates a fresh database with enough data to run payroll.

This script creates:
- Statutory deductions (PAYE, Pension, NHF)
- Departments and salary grades with allowance components
- Employees across departments and grade levels
- A company-wide meal allowance and a staff cooperative deduction
  assigned to the Finance department

Pass --run to process payroll for the current month afterwards.
"""

import argparse
import asyncio
from datetime import date
from decimal import Decimal

# Add project root to path
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import PayrollRunConfig, settings
from app.database import async_session_factory, init_db
from app.models.allowance import AllowanceType
from app.models.deduction import DeductionCategory
from app.models.payroll_enums import AllowanceFrequency, CalculationMethod, ScopeType
from app.services.allowance_service import AllowanceService
from app.services.deduction_service import DeductionService
from app.services.employee_service import EmployeeService
from app.services.payroll_batch_service import PayrollBatchRunner
from app.services.salary_structure_service import SalaryStructureService


# =============================================================================
# CONSTANTS
# =============================================================================

DEPARTMENTS = [
    ("Finance", "FIN"),
    ("Operations", "OPS"),
    ("Human Resources", "HR"),
]

# level, name, monthly basic, housing %, transport (fixed)
GRADES = [
    ("GL-06", "Officer I", Decimal("180000"), Decimal("20"), Decimal("15000")),
    ("GL-08", "Officer II", Decimal("250000"), Decimal("20"), Decimal("20000")),
    ("GL-10", "Senior Officer", Decimal("400000"), Decimal("25"), Decimal("30000")),
    ("GL-12", "Manager", Decimal("650000"), Decimal("25"), Decimal("50000")),
]

EMPLOYEES = [
    ("EMP-001", "Ada", "Okafor", "FIN", "GL-12"),
    ("EMP-002", "Tunde", "Balogun", "FIN", "GL-08"),
    ("EMP-003", "Ngozi", "Eze", "OPS", "GL-10"),
    ("EMP-004", "Ibrahim", "Musa", "OPS", "GL-06"),
    ("EMP-005", "Funmi", "Adeyemi", "HR", "GL-08"),
    ("EMP-006", "Chidi", "Nwosu", "HR", "GL-06"),
]


async def seed_payroll_data(run_payroll: bool = False) -> None:
    print("=" * 70)
    print("  PAYMASTER HR - SEEDING PAYROLL DATA")
    print("=" * 70)

    await init_db()

    async with async_session_factory() as session:
        try:
            statutory = await DeductionService(
                session, pension_rate=settings.pension_rate, nhf_rate=settings.nhf_rate,
            ).seed_statutory_deductions()
            print(f"  ✓ Statutory deductions: {', '.join(d.name for d in statutory)}")

            employees = EmployeeService(session)
            departments = {}
            for name, code in DEPARTMENTS:
                departments[code] = await employees.create_department(name, code)
            print(f"  ✓ Departments: {len(departments)}")

            structures = SalaryStructureService(session)
            for level, name, basic, housing, transport in GRADES:
                await structures.create_salary_grade(
                    {"level": level, "name": name, "basic_salary": basic},
                    components=[
                        {
                            "name": "Housing",
                            "calculation_method": CalculationMethod.PERCENTAGE,
                            "value": housing,
                        },
                        {
                            "name": "Transport",
                            "calculation_method": CalculationMethod.FIXED,
                            "value": transport,
                        },
                    ],
                )
            print(f"  ✓ Salary grades: {len(GRADES)}")

            finance_staff = []
            for code, first_name, last_name, department_code, level in EMPLOYEES:
                created = await employees.create_employee({
                    "employee_code": code,
                    "first_name": first_name,
                    "last_name": last_name,
                    "email": f"{first_name.lower()}.{last_name.lower()}@example.com",
                    "department_id": departments[department_code].id,
                    "grade_level": level,
                    "onboarding_completed": True,
                })
                if department_code == "FIN":
                    finance_staff.append(created.id)
            print(f"  ✓ Employees: {len(EMPLOYEES)}")

            await AllowanceService(session).create_allowance({
                "name": "Meal Subsidy",
                "allowance_type": AllowanceType.FIXED,
                "value": Decimal("10000"),
                "frequency": AllowanceFrequency.MONTHLY,
                "scope": ScopeType.COMPANY_WIDE,
                "effective_date": date(date.today().year, 1, 1),
            })
            cooperative = await DeductionService(session).create_voluntary_deduction({
                "name": "Staff Cooperative",
                "category": DeductionCategory.COOPERATIVE,
                "calculation_method": CalculationMethod.FIXED,
                "value": Decimal("5000"),
                "scope": ScopeType.DEPARTMENT,
                "department_id": departments["FIN"].id,
            })
            await DeductionService(session).assign_deduction(cooperative.id, finance_staff)
            print("  ✓ Allowance and voluntary deduction definitions")

        except Exception as e:
            await session.rollback()
            print(f"\n[FAIL] Error seeding payroll data: {e}")
            raise

        employee_ids = await EmployeeService(session).list_active_employee_ids()

    if run_payroll:
        today = date.today()
        runner = PayrollBatchRunner(async_session_factory, PayrollRunConfig.from_settings(settings))
        summary = await runner.run(employee_ids, today.month, today.year)
        print(f"\n  Batch {summary.batch_id}:")
        print(f"     • Processed: {summary.processed}")
        print(f"     • Skipped: {summary.skipped}")
        print(f"     • Failed: {summary.failed}")
        print(f"     • Total net pay: {summary.total_net_pay}")

    print("\n" + "=" * 70)
    print("  [OK] PAYROLL DATA SEEDING COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed payroll reference data")
    parser.add_argument("--run", action="store_true", help="Run payroll for the current month")
    args = parser.parse_args()
    asyncio.run(seed_payroll_data(run_payroll=args.run))
