"""
Paymaster HR - Deduction Service

Statutory and voluntary deduction administration and the deduction side
of payroll.

Statutory deductions (system constants):
- PAYE: progressive tax on annualized gross; only its brackets are editable
- Pension: 8% of basic salary (employee contribution)
- NHF: 2.5% of basic salary

Voluntary deductions are fixed, percentage-of-gross or progressive, and
scoped to the company, a department, a grade level or an employee. They are
taken only from employees assigned to them (assign_deduction).
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, delete, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.deduction import (
    Deduction,
    DeductionCategory,
    DeductionType,
    EmployeeDeduction,
    NHF_NAME,
    PAYE_NAME,
    PENSION_NAME,
)
from app.models.employee import Department, Employee
from app.models.payroll import PayItemCategory, PayrollItem, PayrollRecord
from app.models.payroll_enums import CalculationMethod, PayrollStatus, ScopeType
from app.services.payroll_calculations import (
    LineItem,
    PayPeriod,
    ScopeFilter,
    deduction_amount,
    matches_scope,
    round_money,
    scope_of,
    sum_amounts,
    to_decimal,
)
from app.services.tax_calculators.paye_service import (
    DEFAULT_PAYE_BRACKETS,
    PAYECalculator,
    validate_tax_brackets,
)
from app.utils.error_handling import (
    BusinessRuleException,
    DeductionInUseError,
    EmployeeNotFoundError,
    ErrorCode,
    NotFoundException,
    StatutoryDeductionProtectedError,
    ValidationException,
)

logger = logging.getLogger(__name__)

# Statutory rates (% of basic salary)
PENSION_EMPLOYEE_RATE = Decimal("8")
NHF_RATE = Decimal("2.5")

IN_PROGRESS_STATUSES = (PayrollStatus.PENDING, PayrollStatus.PROCESSING)


def _assignment_entry(
    action: str,
    user_id: Optional[uuid.UUID],
    at: datetime,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "action": action,
        "user_id": str(user_id) if user_id else None,
        "timestamp": at.isoformat(),
        "reason": reason,
    }


@dataclass
class DeductionResolution:
    """Deductions for one employee and pay period."""
    paye: Decimal = Decimal("0.00")
    pension: Decimal = Decimal("0.00")
    nhf: Decimal = Decimal("0.00")
    statutory: List[LineItem] = field(default_factory=list)
    voluntary: List[LineItem] = field(default_factory=list)

    @property
    def statutory_total(self) -> Decimal:
        return sum_amounts(self.statutory)

    @property
    def voluntary_total(self) -> Decimal:
        return sum_amounts(self.voluntary)

    @property
    def total(self) -> Decimal:
        return self.statutory_total + self.voluntary_total


class DeductionService:
    """Deduction definitions and resolution."""

    def __init__(
        self,
        db: AsyncSession,
        pension_rate: Decimal = PENSION_EMPLOYEE_RATE,
        nhf_rate: Decimal = NHF_RATE,
    ):
        self.db = db
        self.pension_rate = pension_rate
        self.nhf_rate = nhf_rate

    # ===========================================
    # STATUTORY SEED
    # ===========================================

    async def seed_statutory_deductions(
        self,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> List[Deduction]:
        """Create PAYE, Pension and NHF if missing. Safe to run repeatedly."""
        definitions = [
            {
                "name": PAYE_NAME,
                "description": "Pay As You Earn income tax",
                "category": DeductionCategory.TAX,
                "calculation_method": CalculationMethod.PROGRESSIVE,
                "value": Decimal("0"),
                "tax_brackets": [b.to_dict() for b in DEFAULT_PAYE_BRACKETS],
            },
            {
                "name": PENSION_NAME,
                "description": "Employee pension contribution",
                "category": DeductionCategory.PENSION,
                "calculation_method": CalculationMethod.PERCENTAGE,
                "value": self.pension_rate,
            },
            {
                "name": NHF_NAME,
                "description": "National Housing Fund",
                "category": DeductionCategory.HOUSING,
                "calculation_method": CalculationMethod.PERCENTAGE,
                "value": self.nhf_rate,
            },
        ]

        seeded = []
        for definition in definitions:
            result = await self.db.execute(
                select(Deduction).where(
                    and_(
                        Deduction.name == definition["name"],
                        Deduction.deduction_type == DeductionType.STATUTORY,
                    )
                )
            )
            deduction = result.scalar_one_or_none()
            if deduction is None:
                deduction = Deduction(
                    deduction_type=DeductionType.STATUTORY,
                    scope=ScopeType.COMPANY_WIDE,
                    is_mandatory=True,
                    is_active=True,
                    created_by_id=created_by_id,
                    **definition,
                )
                self.db.add(deduction)
                logger.info(f"Seeded statutory deduction '{definition['name']}'")
            seeded.append(deduction)

        await self.db.commit()
        return seeded

    # ===========================================
    # CRUD
    # ===========================================

    async def get_deduction(self, deduction_id: uuid.UUID) -> Deduction:
        deduction = await self.db.get(Deduction, deduction_id)
        if deduction is None:
            raise NotFoundException("Deduction", deduction_id)
        return deduction

    async def list_deductions(
        self,
        deduction_type: Optional[DeductionType] = None,
        department_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
        active_only: bool = False,
    ) -> List[Deduction]:
        query = select(Deduction)
        if deduction_type:
            query = query.where(Deduction.deduction_type == deduction_type)
        if department_id:
            query = query.where(Deduction.department_id == department_id)
        if employee_id:
            query = query.where(Deduction.employee_id == employee_id)
        if active_only:
            query = query.where(Deduction.is_active == True)
        result = await self.db.execute(query.order_by(Deduction.deduction_type, Deduction.name))
        return list(result.scalars().all())

    def _validate_amount_fields(
        self,
        method: CalculationMethod,
        value: Decimal,
        tax_brackets: Optional[Sequence[Any]],
    ) -> Optional[List[Dict[str, Any]]]:
        """Validate value/brackets for a method; returns normalized brackets."""
        if value < 0:
            raise ValidationException("Deduction value cannot be negative", field="value")
        if method == CalculationMethod.PERCENTAGE and value > 100:
            raise ValidationException("Percentage cannot exceed 100", field="value")
        if method == CalculationMethod.PROGRESSIVE:
            return [b.to_dict() for b in validate_tax_brackets(tax_brackets or [])]
        return None

    async def _validate_scope_reference(self, scope: ScopeType, data: Dict[str, Any]) -> None:
        if scope == ScopeType.DEPARTMENT:
            if not data.get("department_id"):
                raise ValidationException(
                    "Department is required for department deductions", field="department_id",
                )
            if await self.db.get(Department, data["department_id"]) is None:
                raise NotFoundException("Department", data["department_id"])
        elif scope == ScopeType.INDIVIDUAL:
            if not data.get("employee_id"):
                raise ValidationException(
                    "Employee is required for individual deductions", field="employee_id",
                )
            if await self.db.get(Employee, data["employee_id"]) is None:
                raise EmployeeNotFoundError(data["employee_id"])
        elif scope == ScopeType.GRADE and not data.get("grade_level"):
            raise ValidationException(
                "Grade level is required for grade deductions", field="grade_level",
            )

    async def create_voluntary_deduction(
        self,
        data: Dict[str, Any],
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Deduction:
        if not data.get("name"):
            raise ValidationException("Deduction name is required", field="name")
        try:
            method = CalculationMethod(data.get("calculation_method", CalculationMethod.FIXED))
            scope = ScopeType(data.get("scope", ScopeType.COMPANY_WIDE))
            category = DeductionCategory(data.get("category", DeductionCategory.GENERAL))
        except ValueError as e:
            raise ValidationException(str(e))

        value = to_decimal(data.get("value"))
        brackets = self._validate_amount_fields(method, value, data.get("tax_brackets"))
        await self._validate_scope_reference(scope, data)

        deduction = Deduction(
            name=data["name"],
            description=data.get("description"),
            deduction_type=DeductionType.VOLUNTARY,
            category=category,
            calculation_method=method,
            value=value,
            tax_brackets=brackets,
            scope=scope,
            department_id=data.get("department_id") if scope == ScopeType.DEPARTMENT else None,
            employee_id=data.get("employee_id") if scope == ScopeType.INDIVIDUAL else None,
            grade_level=data.get("grade_level") if scope == ScopeType.GRADE else None,
            is_mandatory=False,
            is_active=data.get("is_active", True),
            created_by_id=created_by_id,
        )
        self.db.add(deduction)
        await self.db.commit()
        await self.db.refresh(deduction)

        logger.info(f"Created voluntary deduction '{deduction.name}' ({method.value}, {scope.value})")
        return deduction

    async def update_deduction(
        self,
        deduction_id: uuid.UUID,
        data: Dict[str, Any],
        updated_by_id: Optional[uuid.UUID] = None,
    ) -> Deduction:
        """
        Update a deduction.

        The type never changes. Statutory deductions only accept a new
        description; PAYE brackets go through update_tax_brackets().
        """
        deduction = await self.get_deduction(deduction_id)
        data = {k: v for k, v in data.items() if v is not None}

        if "deduction_type" in data and DeductionType(data["deduction_type"]) != deduction.deduction_type:
            raise BusinessRuleException(
                "Cannot change deduction type", code=ErrorCode.CANNOT_MODIFY,
            )

        if deduction.is_statutory:
            if deduction.is_paye and "value" in data:
                raise StatutoryDeductionProtectedError(
                    deduction.name,
                    "Cannot modify PAYE value directly. Update tax brackets instead.",
                )
            protected = set(data) - {"description", "deduction_type"}
            if protected:
                raise StatutoryDeductionProtectedError(
                    deduction.name,
                    f"Cannot modify {', '.join(sorted(protected))} of statutory deduction "
                    f"'{deduction.name}'",
                )
            if "description" in data:
                deduction.description = data["description"]
            deduction.updated_by_id = updated_by_id
            await self.db.commit()
            await self.db.refresh(deduction)
            return deduction

        method = CalculationMethod(data.get("calculation_method", deduction.calculation_method))
        value = to_decimal(data.get("value", deduction.value))
        brackets = self._validate_amount_fields(
            method, value, data.get("tax_brackets", deduction.tax_brackets),
        )

        scope = ScopeType(data.get("scope", deduction.scope))
        scope_data = {
            "department_id": data.get("department_id", deduction.department_id),
            "employee_id": data.get("employee_id", deduction.employee_id),
            "grade_level": data.get("grade_level", deduction.grade_level),
        }
        await self._validate_scope_reference(scope, scope_data)

        for key in ("name", "description", "is_active"):
            if key in data:
                setattr(deduction, key, data[key])
        if "category" in data:
            deduction.category = DeductionCategory(data["category"])
        deduction.calculation_method = method
        deduction.value = value
        deduction.tax_brackets = brackets
        deduction.scope = scope
        deduction.department_id = scope_data["department_id"] if scope == ScopeType.DEPARTMENT else None
        deduction.employee_id = scope_data["employee_id"] if scope == ScopeType.INDIVIDUAL else None
        deduction.grade_level = scope_data["grade_level"] if scope == ScopeType.GRADE else None
        deduction.updated_by_id = updated_by_id

        await self.db.commit()
        await self.db.refresh(deduction)
        return deduction

    async def update_tax_brackets(
        self,
        deduction_id: uuid.UUID,
        tax_brackets: Sequence[Any],
        updated_by_id: Optional[uuid.UUID] = None,
    ) -> Deduction:
        """Replace the brackets of PAYE or of a progressive voluntary deduction."""
        deduction = await self.get_deduction(deduction_id)
        if deduction.calculation_method != CalculationMethod.PROGRESSIVE:
            raise BusinessRuleException(
                f"Deduction '{deduction.name}' does not use tax brackets",
                code=ErrorCode.CANNOT_MODIFY,
            )

        deduction.tax_brackets = [b.to_dict() for b in validate_tax_brackets(tax_brackets)]
        deduction.updated_by_id = updated_by_id
        await self.db.commit()
        await self.db.refresh(deduction)

        logger.info(f"Updated tax brackets for '{deduction.name}' ({len(deduction.tax_brackets)} brackets)")
        return deduction

    async def toggle_deduction_status(
        self,
        deduction_id: uuid.UUID,
        updated_by_id: Optional[uuid.UUID] = None,
    ) -> Deduction:
        deduction = await self.get_deduction(deduction_id)
        if deduction.is_statutory:
            raise StatutoryDeductionProtectedError(
                deduction.name, "Statutory deductions cannot be deactivated",
            )
        deduction.is_active = not deduction.is_active
        deduction.updated_by_id = updated_by_id
        await self.db.commit()
        await self.db.refresh(deduction)
        return deduction

    async def count_in_progress_references(self, deduction_id: uuid.UUID) -> int:
        """Pending/processing payroll records that include the deduction."""
        result = await self.db.execute(
            select(func.count(func.distinct(PayrollRecord.id)))
            .select_from(PayrollItem)
            .join(PayrollRecord, PayrollItem.payroll_id == PayrollRecord.id)
            .where(
                and_(
                    PayrollItem.source_id == deduction_id,
                    PayrollItem.category == PayItemCategory.VOLUNTARY_DEDUCTION,
                    PayrollRecord.status.in_(IN_PROGRESS_STATUSES),
                )
            )
        )
        return result.scalar() or 0

    async def delete_deduction(self, deduction_id: uuid.UUID) -> None:
        deduction = await self.get_deduction(deduction_id)
        if deduction.is_statutory:
            raise StatutoryDeductionProtectedError(
                deduction.name, "Statutory deductions cannot be deleted",
            )

        in_use = await self.count_in_progress_references(deduction.id)
        if in_use:
            raise DeductionInUseError(deduction.id, in_use)

        await self.db.execute(
            delete(EmployeeDeduction).where(EmployeeDeduction.deduction_id == deduction.id)
        )
        await self.db.delete(deduction)
        await self.db.commit()
        logger.info(f"Deleted voluntary deduction '{deduction.name}'")

    # ===========================================
    # EMPLOYEE ASSIGNMENT
    # ===========================================

    async def _get_assignable(self, deduction_id: uuid.UUID) -> Deduction:
        deduction = await self.get_deduction(deduction_id)
        if deduction.is_statutory:
            raise BusinessRuleException(
                f"'{deduction.name}' is statutory; only voluntary deductions are assigned",
                code=ErrorCode.CANNOT_MODIFY,
            )
        return deduction

    async def _get_assignments(
        self,
        deduction_id: uuid.UUID,
        employee_ids: Sequence[uuid.UUID],
    ) -> Dict[uuid.UUID, EmployeeDeduction]:
        result = await self.db.execute(
            select(EmployeeDeduction).where(
                and_(
                    EmployeeDeduction.deduction_id == deduction_id,
                    EmployeeDeduction.employee_id.in_(employee_ids),
                )
            )
        )
        return {row.employee_id: row for row in result.scalars().all()}

    async def assign_deduction(
        self,
        deduction_id: uuid.UUID,
        employee_ids: Sequence[uuid.UUID],
        assigned_by_id: Optional[uuid.UUID] = None,
    ) -> List[EmployeeDeduction]:
        """
        Assign a voluntary deduction to one or more employees.

        Every employee must exist and fall within the deduction's scope;
        nothing is written otherwise. Employees already assigned are left
        as they are and previously removed assignments are reactivated.

        Returns the active assignments for the given employees.
        """
        deduction = await self._get_assignable(deduction_id)
        if not deduction.is_active:
            raise BusinessRuleException(f"Cannot assign inactive deduction '{deduction.name}'")
        employee_ids = list(dict.fromkeys(employee_ids))
        if not employee_ids:
            raise ValidationException("At least one employee is required", field="employee_ids")

        scope = scope_of(deduction)
        for employee_id in employee_ids:
            employee = await self.db.get(Employee, employee_id)
            if employee is None:
                raise EmployeeNotFoundError(employee_id)
            target = ScopeFilter(
                employee_id=employee.id,
                department_id=employee.department_id,
                grade_level=employee.grade_level,
            )
            if not matches_scope(scope, target):
                raise BusinessRuleException(
                    f"Employee {employee.full_name} is outside the scope of '{deduction.name}'",
                    details={"employee_id": str(employee_id), "scope": ScopeType(deduction.scope).value},
                )

        now = datetime.now(timezone.utc)
        existing = await self._get_assignments(deduction.id, employee_ids)
        added = 0
        for employee_id in employee_ids:
            assignment = existing.get(employee_id)
            if assignment is not None and assignment.is_active:
                continue
            entry = _assignment_entry("assigned", assigned_by_id, now)
            if assignment is None:
                assignment = EmployeeDeduction(
                    employee_id=employee_id,
                    deduction_id=deduction.id,
                    is_active=True,
                    assigned_at=now,
                    history=[entry],
                    created_by_id=assigned_by_id,
                )
                self.db.add(assignment)
                existing[employee_id] = assignment
            else:
                assignment.is_active = True
                assignment.assigned_at = now
                assignment.removed_at = None
                assignment.removal_reason = None
                assignment.updated_by_id = assigned_by_id
                # New list so the JSON column is flagged dirty
                assignment.history = list(assignment.history or []) + [entry]
            added += 1

        await self.db.commit()
        logger.info(
            f"Assigned '{deduction.name}' to {added} employee(s); "
            f"{len(employee_ids) - added} already assigned"
        )
        return [existing[employee_id] for employee_id in employee_ids]

    async def remove_deduction(
        self,
        deduction_id: uuid.UUID,
        employee_ids: Sequence[uuid.UUID],
        removed_by_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> int:
        """Stop a voluntary deduction for the given employees; returns how many were removed."""
        deduction = await self._get_assignable(deduction_id)
        employee_ids = list(dict.fromkeys(employee_ids))
        if not employee_ids:
            raise ValidationException("At least one employee is required", field="employee_ids")

        now = datetime.now(timezone.utc)
        removed = 0
        for assignment in (await self._get_assignments(deduction.id, employee_ids)).values():
            if not assignment.is_active:
                continue
            assignment.is_active = False
            assignment.removed_at = now
            assignment.removal_reason = reason
            assignment.updated_by_id = removed_by_id
            assignment.history = list(assignment.history or []) + [
                _assignment_entry("removed", removed_by_id, now, reason),
            ]
            removed += 1

        await self.db.commit()
        logger.info(f"Removed '{deduction.name}' from {removed} employee(s)")
        return removed

    async def list_employee_deductions(
        self,
        employee_id: uuid.UUID,
        include_removed: bool = False,
    ) -> List[EmployeeDeduction]:
        if await self.db.get(Employee, employee_id) is None:
            raise EmployeeNotFoundError(employee_id)
        query = select(EmployeeDeduction).where(EmployeeDeduction.employee_id == employee_id)
        if not include_removed:
            query = query.where(EmployeeDeduction.is_active == True)
        result = await self.db.execute(
            query.order_by(EmployeeDeduction.assigned_at).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ===========================================
    # PAYROLL RESOLUTION (READ-ONLY)
    # ===========================================

    async def get_paye_calculator(self) -> PAYECalculator:
        """PAYE calculator over the configured brackets (defaults if not seeded)."""
        result = await self.db.execute(
            select(Deduction).where(
                and_(
                    Deduction.deduction_type == DeductionType.STATUTORY,
                    Deduction.category == DeductionCategory.TAX,
                )
            )
        )
        paye = result.scalars().first()
        return PAYECalculator.from_config(paye.tax_brackets if paye else None)

    async def get_applicable_voluntary_deductions(self, target: ScopeFilter) -> List[Deduction]:
        """Active voluntary deductions the employee is assigned to and in scope for."""
        result = await self.db.execute(
            select(Deduction)
            .join(EmployeeDeduction, EmployeeDeduction.deduction_id == Deduction.id)
            .where(
                and_(
                    EmployeeDeduction.employee_id == target.employee_id,
                    EmployeeDeduction.is_active == True,
                    Deduction.deduction_type == DeductionType.VOLUNTARY,
                    Deduction.is_active == True,
                )
            )
            .order_by(Deduction.name, Deduction.id)
        )
        return [d for d in result.scalars().all() if matches_scope(scope_of(d), target)]

    async def resolve_deductions(
        self,
        basic_salary: Decimal,
        gross_salary: Decimal,
        period: PayPeriod,
        target: ScopeFilter,
    ) -> DeductionResolution:
        """
        Statutory and voluntary deductions for one pay period.

        basic_salary and gross_salary are the rounded amounts for the period.
        """
        paye_calculator = await self.get_paye_calculator()
        resolution = DeductionResolution(
            paye=paye_calculator.period_tax(gross_salary, period.periods_per_year),
            pension=round_money(to_decimal(basic_salary) * self.pension_rate / 100),
            nhf=round_money(to_decimal(basic_salary) * self.nhf_rate / 100),
        )
        resolution.statutory = [
            LineItem(PAYE_NAME, resolution.paye, category=PayItemCategory.PAYE.value),
            LineItem(PENSION_NAME, resolution.pension, category=PayItemCategory.PENSION.value),
            LineItem(NHF_NAME, resolution.nhf, category=PayItemCategory.NHF.value),
        ]

        for deduction in await self.get_applicable_voluntary_deductions(target):
            resolution.voluntary.append(LineItem(
                name=deduction.name,
                amount=deduction_amount(
                    deduction.calculation_method,
                    deduction.value,
                    gross_salary,
                    deduction.tax_brackets,
                ),
                source_id=deduction.id,
                category=PayItemCategory.VOLUNTARY_DEDUCTION.value,
                details={
                    "calculation_method": CalculationMethod(deduction.calculation_method).value,
                    "scope": ScopeType(deduction.scope).value,
                },
            ))

        return resolution
