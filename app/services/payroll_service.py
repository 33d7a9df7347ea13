"""
Paymaster HR - Payroll Service

Per-employee payroll calculation and the payroll record workflow.

calculate_payroll() runs one employee/period through
VALIDATING -> COMPUTING -> CONSUMING -> PERSISTING -> DONE.
The whole run is one database transaction: on any failure it is rolled
back, so no record is written and no allowance or bonus stays claimed.

Status workflow:
    PENDING -> PROCESSING | APPROVED | REJECTED
    PROCESSING -> APPROVED | REJECTED | FAILED
    APPROVED -> PAID | FAILED
    FAILED -> PENDING
    REJECTED, PAID: terminal
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import PayrollRunConfig
from app.models.employee import Employee, EmploymentStatus
from app.models.payroll import (
    PayItemCategory,
    PayItemType,
    PayrollItem,
    PayrollRecord,
)
from app.models.payroll_enums import PayrollFrequency, PayrollStatus
from app.models.salary import SalaryGrade
from app.services.allowance_service import AllowanceResolution, AllowanceService
from app.services.bonus_service import BonusResolution, BonusService
from app.services.deduction_service import DeductionResolution, DeductionService
from app.services.employee_service import EmployeeService
from app.services.payroll_calculations import (
    LineItem,
    PayPeriod,
    PayrollTotals,
    PerformanceCalculator,
    ScopeFilter,
    default_performance_calculator,
    pay_period,
)
from app.services.salary_structure_service import SalaryStructureService
from app.utils.error_handling import (
    AllowanceAlreadyClaimedError,
    AppException,
    CalculationError,
    DuplicatePayrollError,
    EmployeeInactiveError,
    InvalidStatusTransitionError,
    MissingDepartmentError,
    NotFoundException,
    OnboardingIncompleteError,
)

logger = logging.getLogger(__name__)

UNIQUE_PERIOD_CONSTRAINT = "uq_payroll_records_employee_period"

STATUS_TRANSITIONS: Dict[PayrollStatus, set] = {
    PayrollStatus.PENDING: {PayrollStatus.PROCESSING, PayrollStatus.APPROVED, PayrollStatus.REJECTED},
    PayrollStatus.PROCESSING: {PayrollStatus.APPROVED, PayrollStatus.REJECTED, PayrollStatus.FAILED},
    PayrollStatus.APPROVED: {PayrollStatus.PAID, PayrollStatus.FAILED},
    PayrollStatus.FAILED: {PayrollStatus.PENDING},
    PayrollStatus.REJECTED: set(),
    PayrollStatus.PAID: set(),
}

STATUS_ACTIONS = {
    PayrollStatus.PENDING: "resubmitted",
    PayrollStatus.PROCESSING: "processing",
    PayrollStatus.APPROVED: "approved",
    PayrollStatus.REJECTED: "rejected",
    PayrollStatus.PAID: "paid",
    PayrollStatus.FAILED: "failed",
}


class OrchestrationState(str, Enum):
    VALIDATING = "validating"
    COMPUTING = "computing"
    CONSUMING = "consuming"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PayrollComputation:
    """Everything computed for one employee/period before persistence."""
    employee: Employee
    grade: SalaryGrade
    period: PayPeriod
    department_id: uuid.UUID
    allowances: AllowanceResolution
    bonuses: BonusResolution
    deductions: DeductionResolution
    totals: PayrollTotals = field(default_factory=PayrollTotals)


def _is_period_conflict(error: IntegrityError) -> bool:
    message = str(error.orig if error.orig is not None else error)
    return (
        UNIQUE_PERIOD_CONSTRAINT in message
        or "payroll_records.employee_id, payroll_records.month, payroll_records.year" in message
    )


def _history_entry(
    status: PayrollStatus,
    action: str,
    user_id: Optional[uuid.UUID],
    remarks: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "status": status.value,
        "action": action,
        "user_id": str(user_id) if user_id else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "remarks": remarks,
    }


class PayrollService:
    """
    Payroll calculation for single employees and payroll record management.
    """

    def __init__(
        self,
        db: AsyncSession,
        config: Optional[PayrollRunConfig] = None,
        performance_calculator: PerformanceCalculator = default_performance_calculator,
    ):
        self.db = db
        self.config = config or PayrollRunConfig()
        self.employees = EmployeeService(db)
        self.salary_structures = SalaryStructureService(db)
        self.allowances = AllowanceService(db, performance_calculator)
        self.bonuses = BonusService(db)
        self.deductions = DeductionService(
            db,
            pension_rate=self.config.pension_rate,
            nhf_rate=self.config.nhf_rate,
        )

    # ===========================================
    # CALCULATION
    # ===========================================

    async def calculate_payroll(
        self,
        employee_id: uuid.UUID,
        month: int,
        year: int,
        frequency: Union[PayrollFrequency, str] = PayrollFrequency.MONTHLY,
        salary_grade_id: Optional[uuid.UUID] = None,
        department_id: Optional[uuid.UUID] = None,
        created_by_id: Optional[uuid.UUID] = None,
        batch_id: Optional[str] = None,
        bypass_onboarding: bool = False,
    ) -> PayrollRecord:
        """
        Calculate and persist the payroll of one employee for one period.

        Without salary_grade_id the active grade for the employee's grade
        level is used.

        Raises:
            EmployeeNotFoundError, EmployeeInactiveError, MissingDepartmentError,
            OnboardingIncompleteError, DuplicatePayrollError,
            SalaryGradeNotFoundError, InvalidBasicSalaryError, CalculationError,
            AllowanceAlreadyClaimedError
        """
        state = OrchestrationState.VALIDATING
        try:
            period = pay_period(month, year, frequency)
            employee = await self._validate_employee(employee_id, bypass_onboarding)
            if employee.department_id is None:
                raise MissingDepartmentError(employee_id)
            department_id = department_id or employee.department_id
            await self._ensure_no_existing_payroll(employee.id, month, year)

            state = self._transition(employee_id, state, OrchestrationState.COMPUTING)
            computation = await self.compute_payroll(
                employee, period, department_id, salary_grade_id,
            )

            state = self._transition(employee_id, state, OrchestrationState.CONSUMING)
            payroll_id = uuid.uuid4()
            await self._consume(computation, payroll_id)

            state = self._transition(employee_id, state, OrchestrationState.PERSISTING)
            record = self._build_record(payroll_id, computation, created_by_id, batch_id)
            self.db.add(record)
            await self.db.flush()
            await self.db.commit()

            self._transition(employee_id, state, OrchestrationState.DONE)
        except IntegrityError as e:
            await self.db.rollback()
            if _is_period_conflict(e):
                raise DuplicatePayrollError(employee_id, month, year).with_context(
                    stage=state.value,
                ) from e
            raise
        except AppException as e:
            await self.db.rollback()
            logger.debug(f"Payroll for employee {employee_id} failed while {state.value}: {e.code.value}")
            raise e.with_context(
                employee_id=employee_id, month=month, year=year, stage=state.value,
            )
        except Exception:
            await self.db.rollback()
            logger.debug(f"Payroll for employee {employee_id} failed while {state.value}")
            raise

        logger.info(
            f"Payroll {record.id} created for employee {employee_id} "
            f"{month}/{year}: gross={record.gross_earnings}, net={record.net_pay}"
        )
        return await self.get_payroll(record.id)

    def _transition(
        self,
        employee_id: uuid.UUID,
        current: OrchestrationState,
        new: OrchestrationState,
    ) -> OrchestrationState:
        logger.debug(f"Payroll employee={employee_id}: {current.value} -> {new.value}")
        return new

    async def _validate_employee(self, employee_id: uuid.UUID, bypass_onboarding: bool) -> Employee:
        employee = await self.employees.get_employee(employee_id)
        if not employee.is_active or employee.employment_status != EmploymentStatus.ACTIVE:
            raise EmployeeInactiveError(employee_id, employee.employment_status.value)
        if (
            self.config.require_onboarding
            and not bypass_onboarding
            and not employee.onboarding_completed
        ):
            raise OnboardingIncompleteError(employee_id)
        return employee

    async def _ensure_no_existing_payroll(self, employee_id: uuid.UUID, month: int, year: int) -> None:
        existing = await self.find_payroll(employee_id, month, year)
        if existing is not None:
            raise DuplicatePayrollError(employee_id, month, year)

    async def compute_payroll(
        self,
        employee: Employee,
        period: PayPeriod,
        department_id: uuid.UUID,
        salary_grade_id: Optional[uuid.UUID] = None,
    ) -> PayrollComputation:
        """Resolve grade, allowances, bonuses and deductions; read-only."""
        if salary_grade_id:
            grade = await self.salary_structures.get_salary_grade(salary_grade_id)
        else:
            grade = await self.salary_structures.get_active_grade_by_level(employee.grade_level)

        allowances = await self.allowances.resolve_allowances(employee.id, grade, period)
        bonuses = await self.bonuses.resolve_bonuses(employee.id, period, grade.basic_salary)

        gross = allowances.basic_salary + allowances.total + bonuses.total
        deductions = await self.deductions.resolve_deductions(
            basic_salary=allowances.basic_salary,
            gross_salary=gross,
            period=period,
            target=ScopeFilter(
                employee_id=employee.id,
                department_id=department_id,
                grade_level=grade.level,
            ),
        )

        totals = PayrollTotals(
            basic_salary=allowances.basic_salary,
            grade_allowances=allowances.grade_total,
            personal_allowances=allowances.additional_total,
            bonuses=bonuses.total,
            paye=deductions.paye,
            pension=deductions.pension,
            nhf=deductions.nhf,
            voluntary=deductions.voluntary_total,
        )
        totals.check()
        if totals.gross_earnings != gross:
            raise CalculationError(
                "Gross earnings do not reconcile with their components",
                details={"gross": str(gross), "components": str(totals.gross_earnings)},
            )
        if totals.net_pay < 0:
            raise CalculationError(
                "Deductions exceed gross earnings",
                details={
                    "gross_earnings": str(totals.gross_earnings),
                    "total_deductions": str(totals.total_deductions),
                },
            )

        return PayrollComputation(
            employee=employee,
            grade=grade,
            period=period,
            department_id=department_id,
            allowances=allowances,
            bonuses=bonuses,
            deductions=deductions,
            totals=totals,
        )

    async def _consume(self, computation: PayrollComputation, payroll_id: uuid.UUID) -> None:
        """Claim every personal allowance and bonus used; any lost claim aborts the run."""
        period = computation.period
        for item in computation.allowances.additional_allowances:
            claimed = await self.allowances.claim_personal_allowance(
                item.source_id, payroll_id, period.month, period.year,
            )
            if not claimed:
                raise AllowanceAlreadyClaimedError("PersonalAllowance", item.source_id)

        for item in computation.bonuses.items:
            claimed = await self.bonuses.claim_personal_bonus(
                item.source_id, payroll_id, period.month, period.year,
            )
            if not claimed:
                raise AllowanceAlreadyClaimedError("PersonalBonus", item.source_id)

    def _build_record(
        self,
        payroll_id: uuid.UUID,
        computation: PayrollComputation,
        created_by_id: Optional[uuid.UUID],
        batch_id: Optional[str],
    ) -> PayrollRecord:
        totals = computation.totals
        period = computation.period
        processed_by_id = self.config.processed_by_id or created_by_id

        record = PayrollRecord(
            id=payroll_id,
            employee_id=computation.employee.id,
            department_id=computation.department_id,
            salary_grade_id=computation.grade.id,
            batch_id=batch_id,
            month=period.month,
            year=period.year,
            frequency=period.frequency,
            period_start=period.start,
            period_end=period.end,
            basic_salary=totals.basic_salary,
            grade_allowances=totals.grade_allowances,
            personal_allowances=totals.personal_allowances,
            total_allowances=totals.total_allowances,
            total_bonuses=totals.bonuses,
            gross_earnings=totals.gross_earnings,
            paye_tax=totals.paye,
            pension=totals.pension,
            nhf=totals.nhf,
            total_statutory=totals.total_statutory,
            total_voluntary=totals.voluntary,
            total_deductions=totals.total_deductions,
            net_pay=totals.net_pay,
            status=PayrollStatus.PENDING,
            approval_history=[
                _history_entry(PayrollStatus.PENDING, "created", processed_by_id),
            ],
            processed_by_id=processed_by_id,
            processed_at=datetime.now(timezone.utc),
            created_by_id=created_by_id,
        )
        record.items = self._build_items(computation)
        return record

    def _build_items(self, computation: PayrollComputation) -> List[PayrollItem]:
        lines = [
            (PayItemType.EARNING, PayItemCategory.BASIC,
             LineItem("Basic Salary", computation.totals.basic_salary, computation.grade.id)),
        ]
        lines += [
            (PayItemType.EARNING, PayItemCategory.GRADE_ALLOWANCE, item)
            for item in computation.allowances.grade_allowances
        ]
        lines += [
            (PayItemType.EARNING, PayItemCategory.PERSONAL_ALLOWANCE, item)
            for item in computation.allowances.additional_allowances
        ]
        lines += [
            (PayItemType.EARNING, PayItemCategory.BONUS, item)
            for item in computation.bonuses.items
        ]
        lines += [
            (PayItemType.DEDUCTION, PayItemCategory(item.category), item)
            for item in computation.deductions.statutory
        ]
        lines += [
            (PayItemType.DEDUCTION, PayItemCategory.VOLUNTARY_DEDUCTION, item)
            for item in computation.deductions.voluntary
        ]

        return [
            PayrollItem(
                item_type=item_type,
                category=category,
                name=line.name,
                source_id=line.source_id,
                amount=line.amount,
                sort_order=index,
            )
            for index, (item_type, category, line) in enumerate(lines)
        ]

    # ===========================================
    # RECORDS
    # ===========================================

    async def get_payroll(self, payroll_id: uuid.UUID) -> PayrollRecord:
        result = await self.db.execute(
            select(PayrollRecord)
            .where(PayrollRecord.id == payroll_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundException("PayrollRecord", payroll_id)
        return record

    async def find_payroll(
        self,
        employee_id: uuid.UUID,
        month: int,
        year: int,
    ) -> Optional[PayrollRecord]:
        result = await self.db.execute(
            select(PayrollRecord).where(
                and_(
                    PayrollRecord.employee_id == employee_id,
                    PayrollRecord.month == month,
                    PayrollRecord.year == year,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_employee_payroll_history(
        self,
        employee_id: uuid.UUID,
        limit: Optional[int] = None,
    ) -> List[PayrollRecord]:
        """Employee payroll records, newest period first."""
        query = (
            select(PayrollRecord)
            .where(PayrollRecord.employee_id == employee_id)
            .order_by(PayrollRecord.year.desc(), PayrollRecord.month.desc())
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_payrolls(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        status: Optional[PayrollStatus] = None,
        department_id: Optional[uuid.UUID] = None,
    ) -> List[PayrollRecord]:
        query = select(PayrollRecord)
        if month:
            query = query.where(PayrollRecord.month == month)
        if year:
            query = query.where(PayrollRecord.year == year)
        if status:
            query = query.where(PayrollRecord.status == status)
        if department_id:
            query = query.where(PayrollRecord.department_id == department_id)
        result = await self.db.execute(
            query.order_by(PayrollRecord.year.desc(), PayrollRecord.month.desc())
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        payroll_id: uuid.UUID,
        status: Union[PayrollStatus, str],
        user_id: Optional[uuid.UUID] = None,
        remarks: Optional[str] = None,
    ) -> PayrollRecord:
        """Move a payroll record through the approval workflow."""
        status = PayrollStatus(status)
        record = await self.get_payroll(payroll_id)

        if status not in STATUS_TRANSITIONS[record.status]:
            raise InvalidStatusTransitionError(record.status.value, status.value)

        now = datetime.now(timezone.utc)
        if status == PayrollStatus.APPROVED:
            record.approved_by_id = user_id
            record.approved_at = now
        elif status == PayrollStatus.PAID:
            record.paid_at = now

        previous = record.status
        record.status = status
        record.remarks = remarks or record.remarks
        record.updated_by_id = user_id
        # New list so the JSON column is flagged dirty
        record.approval_history = list(record.approval_history or []) + [
            _history_entry(status, STATUS_ACTIONS[status], user_id, remarks),
        ]

        await self.db.commit()
        logger.info(f"Payroll {payroll_id}: {previous.value} -> {status.value}")
        return await self.get_payroll(payroll_id)
