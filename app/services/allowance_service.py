"""
Paymaster HR - Allowance Service

Allowance definitions, personal allowance requests/approvals, and the
allowance side of payroll:

- resolve_allowances() is read-only: grade components plus eligible
  personal allowances for a pay period.
- claim_personal_allowance() is the conditional write that consumes a
  personal allowance for exactly one payroll.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.allowance import Allowance, AllowanceType, PersonalAllowance
from app.models.employee import Department, Employee
from app.models.payroll_enums import AllowanceFrequency, ApprovalStatus, ScopeType
from app.models.salary import SalaryGrade
from app.services.payroll_calculations import (
    AllowanceInputs,
    LineItem,
    PayPeriod,
    PerformanceCalculator,
    ScopeFilter,
    allowance_strategies,
    default_performance_calculator,
    matches_scope,
    prorate_allowance,
    round_money,
    scope_of,
    sum_amounts,
    to_decimal,
)
from app.services.salary_structure_service import calculate_total_salary
from app.utils.error_handling import (
    BusinessRuleException,
    CalculationError,
    ConflictException,
    EmployeeNotFoundError,
    ErrorCode,
    NotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


@dataclass
class AllowanceResolution:
    """Allowances payable to one employee for one pay period."""
    basic_salary: Decimal
    grade_allowances: List[LineItem] = field(default_factory=list)
    additional_allowances: List[LineItem] = field(default_factory=list)

    @property
    def grade_total(self) -> Decimal:
        return sum_amounts(self.grade_allowances)

    @property
    def additional_total(self) -> Decimal:
        return sum_amounts(self.additional_allowances)

    @property
    def total(self) -> Decimal:
        return self.grade_total + self.additional_total


class AllowanceService:
    """
    Allowance definitions and personal allowances.

    performance_calculator computes performance-based allowances; the
    default pays base x (score / target) once the target is met.
    """

    def __init__(
        self,
        db: AsyncSession,
        performance_calculator: PerformanceCalculator = default_performance_calculator,
    ):
        self.db = db
        self.strategies = allowance_strategies(performance_calculator)

    # ===========================================
    # DEFINITIONS
    # ===========================================

    async def create_allowance(
        self,
        data: Dict[str, Any],
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Allowance:
        """Create an allowance definition after validating its scope and dates."""
        if not data.get("name"):
            raise ValidationException("Allowance name is required", field="name")

        try:
            allowance_type = AllowanceType(data.get("allowance_type"))
            frequency = AllowanceFrequency(data.get("frequency", AllowanceFrequency.MONTHLY))
            scope = ScopeType(data.get("scope", ScopeType.INDIVIDUAL))
        except ValueError as e:
            raise ValidationException(str(e))

        value = to_decimal(data.get("value"))
        if value < 0:
            raise ValidationException("Value cannot be negative", field="value")
        if allowance_type == AllowanceType.PERCENTAGE and value > 100:
            raise ValidationException("Percentage cannot exceed 100", field="value")
        if allowance_type == AllowanceType.PERFORMANCE_BASED and not (
            data.get("base_amount") or value
        ):
            raise ValidationException(
                "Performance-based allowances need a base amount", field="base_amount",
            )

        effective_date: Optional[date] = data.get("effective_date")
        expiry_date: Optional[date] = data.get("expiry_date")
        if effective_date is None:
            raise ValidationException("Effective date is required", field="effective_date")
        if expiry_date is not None and expiry_date <= effective_date:
            raise ValidationException(
                "Expiry date must be after effective date",
                field="expiry_date",
                code=ErrorCode.INVALID_DATE_RANGE,
            )

        await self._validate_scope_reference(scope, data)

        allowance = Allowance(
            name=data["name"],
            description=data.get("description"),
            allowance_type=allowance_type,
            value=value,
            base_amount=data.get("base_amount"),
            frequency=frequency,
            scope=scope,
            department_id=data.get("department_id"),
            employee_id=data.get("employee_id"),
            grade_level=data.get("grade_level"),
            effective_date=effective_date,
            expiry_date=expiry_date,
            is_taxable=data.get("is_taxable", True),
            is_active=data.get("is_active", True),
            created_by_id=created_by_id,
        )
        self.db.add(allowance)
        await self.db.commit()
        await self.db.refresh(allowance)

        logger.info(f"Created allowance '{allowance.name}' ({scope.value})")
        return allowance

    async def _validate_scope_reference(self, scope: ScopeType, data: Dict[str, Any]) -> None:
        if scope == ScopeType.DEPARTMENT:
            if not data.get("department_id"):
                raise ValidationException(
                    "Department is required for department-scoped allowances",
                    field="department_id",
                )
            if await self.db.get(Department, data["department_id"]) is None:
                raise NotFoundException("Department", data["department_id"])
        elif scope == ScopeType.INDIVIDUAL:
            if not data.get("employee_id"):
                raise ValidationException(
                    "Employee is required for individual allowances", field="employee_id",
                )
            if await self.db.get(Employee, data["employee_id"]) is None:
                raise EmployeeNotFoundError(data["employee_id"])
        elif scope == ScopeType.GRADE:
            if not data.get("grade_level"):
                raise ValidationException(
                    "Grade level is required for grade-scoped allowances", field="grade_level",
                )

    async def get_allowance(self, allowance_id: uuid.UUID) -> Allowance:
        allowance = await self.db.get(Allowance, allowance_id)
        if allowance is None:
            raise NotFoundException("Allowance", allowance_id)
        return allowance

    async def list_allowances(
        self,
        department_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
        grade_level: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Allowance]:
        query = select(Allowance)
        if department_id:
            query = query.where(Allowance.department_id == department_id)
        if employee_id:
            query = query.where(Allowance.employee_id == employee_id)
        if grade_level:
            query = query.where(Allowance.grade_level == grade_level)
        if active_only:
            query = query.where(Allowance.is_active == True)
        result = await self.db.execute(query.order_by(Allowance.name))
        return list(result.scalars().all())

    # ===========================================
    # PERSONAL ALLOWANCES
    # ===========================================

    async def request_personal_allowance(
        self,
        employee_id: uuid.UUID,
        allowance_id: uuid.UUID,
        effective_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        performance_score: Optional[Decimal] = None,
        target_score: Optional[Decimal] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> PersonalAllowance:
        """Assign (or request) an allowance for an employee; starts pending."""
        employee = await self.db.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)

        allowance = await self.get_allowance(allowance_id)
        if not allowance.is_active:
            raise BusinessRuleException(f"Allowance '{allowance.name}' is not active")

        target = ScopeFilter(
            employee_id=employee.id,
            department_id=employee.department_id,
            grade_level=employee.grade_level,
        )
        if not matches_scope(scope_of(allowance), target):
            raise BusinessRuleException(
                f"Allowance '{allowance.name}' does not apply to employee {employee.employee_code}",
            )

        open_request = await self.db.execute(
            select(PersonalAllowance).where(
                and_(
                    PersonalAllowance.employee_id == employee_id,
                    PersonalAllowance.allowance_id == allowance_id,
                    PersonalAllowance.approval_status != ApprovalStatus.REJECTED,
                    PersonalAllowance.used_in_payroll_id.is_(None),
                )
            )
        )
        if open_request.scalars().first() is not None:
            raise ConflictException(
                f"Employee already has an open '{allowance.name}' allowance",
                code=ErrorCode.DUPLICATE_ENTRY,
            )

        effective_date = effective_date or allowance.effective_date
        expiry_date = expiry_date or allowance.expiry_date
        if expiry_date is not None and expiry_date <= effective_date:
            raise ValidationException(
                "Expiry date must be after effective date",
                field="expiry_date",
                code=ErrorCode.INVALID_DATE_RANGE,
            )

        personal = PersonalAllowance(
            employee_id=employee_id,
            allowance_id=allowance_id,
            approval_status=ApprovalStatus.PENDING,
            effective_date=effective_date,
            expiry_date=expiry_date,
            performance_score=performance_score,
            target_score=target_score,
            created_by_id=created_by_id,
        )
        self.db.add(personal)
        await self.db.commit()
        return await self.get_personal_allowance(personal.id)

    async def get_personal_allowance(self, personal_allowance_id: uuid.UUID) -> PersonalAllowance:
        result = await self.db.execute(
            select(PersonalAllowance)
            .where(PersonalAllowance.id == personal_allowance_id)
            .execution_options(populate_existing=True)
        )
        personal = result.scalar_one_or_none()
        if personal is None:
            raise NotFoundException("PersonalAllowance", personal_allowance_id)
        return personal

    async def approve_personal_allowance(
        self,
        personal_allowance_id: uuid.UUID,
        approved_by_id: Optional[uuid.UUID] = None,
    ) -> PersonalAllowance:
        personal = await self._get_pending(personal_allowance_id)
        personal.approval_status = ApprovalStatus.APPROVED
        personal.approved_by_id = approved_by_id
        personal.approved_at = datetime.now(timezone.utc)
        personal.updated_by_id = approved_by_id
        await self.db.commit()
        return personal

    async def reject_personal_allowance(
        self,
        personal_allowance_id: uuid.UUID,
        reason: Optional[str] = None,
        rejected_by_id: Optional[uuid.UUID] = None,
    ) -> PersonalAllowance:
        personal = await self._get_pending(personal_allowance_id)
        personal.approval_status = ApprovalStatus.REJECTED
        personal.rejection_reason = reason
        personal.updated_by_id = rejected_by_id
        await self.db.commit()
        return personal

    async def _get_pending(self, personal_allowance_id: uuid.UUID) -> PersonalAllowance:
        personal = await self.get_personal_allowance(personal_allowance_id)
        if personal.approval_status != ApprovalStatus.PENDING:
            raise BusinessRuleException(
                f"Allowance request is already {personal.approval_status.value}",
                code=ErrorCode.CANNOT_MODIFY,
            )
        return personal

    async def list_employee_allowances(
        self,
        employee_id: uuid.UUID,
        status: Optional[ApprovalStatus] = None,
    ) -> List[PersonalAllowance]:
        query = select(PersonalAllowance).where(PersonalAllowance.employee_id == employee_id)
        if status:
            query = query.where(PersonalAllowance.approval_status == status)
        result = await self.db.execute(query.order_by(PersonalAllowance.effective_date.desc()))
        return list(result.scalars().all())

    # ===========================================
    # PAYROLL RESOLUTION (READ-ONLY)
    # ===========================================

    async def get_eligible_personal_allowances(
        self,
        employee_id: uuid.UUID,
        period: PayPeriod,
    ) -> List[PersonalAllowance]:
        """Approved, unconsumed personal allowances whose dates overlap the period."""
        result = await self.db.execute(
            select(PersonalAllowance)
            .join(Allowance, PersonalAllowance.allowance_id == Allowance.id)
            .where(
                and_(
                    PersonalAllowance.employee_id == employee_id,
                    PersonalAllowance.approval_status == ApprovalStatus.APPROVED,
                    PersonalAllowance.used_in_payroll_id.is_(None),
                    PersonalAllowance.effective_date <= period.end,
                    or_(
                        PersonalAllowance.expiry_date.is_(None),
                        PersonalAllowance.expiry_date >= period.start,
                    ),
                    Allowance.is_active == True,
                    Allowance.effective_date <= period.end,
                    or_(
                        Allowance.expiry_date.is_(None),
                        Allowance.expiry_date >= period.start,
                    ),
                )
            )
            .order_by(PersonalAllowance.effective_date, PersonalAllowance.id)
        )
        return list(result.scalars().all())

    def personal_allowance_amount(
        self,
        personal: PersonalAllowance,
        monthly_basic: Decimal,
        period: PayPeriod,
    ) -> Decimal:
        """Amount of a personal allowance for the period, prorated and rounded."""
        allowance = personal.allowance
        strategy = self.strategies.get(AllowanceType(allowance.allowance_type))
        if strategy is None:
            raise CalculationError(
                f"Unsupported allowance type: {allowance.allowance_type}",
                details={"allowance_id": str(allowance.id)},
            )
        amount = strategy(AllowanceInputs(
            value=to_decimal(allowance.value),
            basic_salary=monthly_basic,
            base_amount=allowance.base_amount,
            performance_score=personal.performance_score,
            target_score=personal.target_score,
        ))
        return prorate_allowance(round_money(amount), allowance.frequency, period.frequency)

    async def resolve_allowances(
        self,
        employee_id: uuid.UUID,
        grade: SalaryGrade,
        period: PayPeriod,
    ) -> AllowanceResolution:
        """Grade and personal allowances for an employee and pay period."""
        breakdown = calculate_total_salary(grade, period.frequency)
        resolution = AllowanceResolution(
            basic_salary=breakdown.basic_salary,
            grade_allowances=breakdown.components,
        )

        monthly_basic = to_decimal(grade.basic_salary)
        for personal in await self.get_eligible_personal_allowances(employee_id, period):
            amount = self.personal_allowance_amount(personal, monthly_basic, period)
            resolution.additional_allowances.append(LineItem(
                name=personal.allowance.name,
                amount=amount,
                source_id=personal.id,
                category="personal_allowance",
                details={
                    "allowance_id": str(personal.allowance_id),
                    "allowance_type": AllowanceType(personal.allowance.allowance_type).value,
                    "frequency": AllowanceFrequency(personal.allowance.frequency).value,
                },
            ))

        logger.debug(
            f"Resolved allowances for employee {employee_id}: "
            f"grade={resolution.grade_total}, personal={resolution.additional_total}"
        )
        return resolution

    # ===========================================
    # CONSUMPTION
    # ===========================================

    async def claim_personal_allowance(
        self,
        personal_allowance_id: uuid.UUID,
        payroll_id: uuid.UUID,
        month: int,
        year: int,
    ) -> bool:
        """
        Mark a personal allowance as used by a payroll.

        Returns False if it was already claimed. Runs in the caller's
        transaction; nothing is committed here.
        """
        result = await self.db.execute(
            update(PersonalAllowance)
            .where(
                and_(
                    PersonalAllowance.id == personal_allowance_id,
                    PersonalAllowance.used_in_payroll_id.is_(None),
                )
            )
            .values(
                used_in_payroll_id=payroll_id,
                used_in_payroll_month=month,
                used_in_payroll_year=year,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
