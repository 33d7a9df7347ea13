"""
Paymaster HR - Salary Structure Service

Salary grade administration and the grade salary breakdown (basic salary
plus grade-level allowance components) used by payroll and previews.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payroll_enums import CalculationMethod, PayrollFrequency
from app.models.salary import ComponentType, SalaryComponent, SalaryGrade
from app.services.payroll_calculations import (
    LineItem,
    component_amount,
    monthly_to_frequency,
    round_money,
    sum_amounts,
    to_decimal,
)
from app.utils.error_handling import (
    DuplicateEntryException,
    InvalidBasicSalaryError,
    NotFoundException,
    SalaryGradeNotFoundError,
    ValidationException,
)

logger = logging.getLogger(__name__)

COMPONENT_METHODS = (CalculationMethod.FIXED, CalculationMethod.PERCENTAGE)


@dataclass
class SalaryBreakdown:
    """Grade salary for one pay period."""
    basic_salary: Decimal
    components: List[LineItem] = field(default_factory=list)

    @property
    def total_allowances(self) -> Decimal:
        return sum_amounts(self.components)

    @property
    def gross_salary(self) -> Decimal:
        return self.basic_salary + self.total_allowances


def calculate_total_salary(
    grade: SalaryGrade,
    frequency: PayrollFrequency = PayrollFrequency.MONTHLY,
) -> SalaryBreakdown:
    """
    Basic salary and active allowance components of a grade.

    Percentage components apply to the monthly basic salary; each monthly
    amount is rounded, then converted to the pay frequency and rounded again.
    """
    monthly_basic = to_decimal(grade.basic_salary)
    if monthly_basic <= 0:
        raise InvalidBasicSalaryError(grade.basic_salary, grade.level)

    frequency = PayrollFrequency(frequency)
    components = []
    for component in grade.components:
        if not component.is_active or component.component_type != ComponentType.ALLOWANCE:
            continue
        monthly = component_amount(component.calculation_method, component.value, monthly_basic)
        components.append(LineItem(
            name=component.name,
            amount=round_money(monthly_to_frequency(monthly, frequency)),
            source_id=component.id,
            category="grade_allowance",
            details={
                "calculation_method": CalculationMethod(component.calculation_method).value,
                "value": str(component.value),
            },
        ))

    return SalaryBreakdown(
        basic_salary=round_money(monthly_to_frequency(monthly_basic, frequency)),
        components=components,
    )


def _validate_component(data: Dict[str, Any]) -> None:
    method = data.get("calculation_method", CalculationMethod.FIXED)
    try:
        method = CalculationMethod(method)
    except ValueError:
        raise ValidationException(f"Invalid calculation method: {method}", field="calculation_method")
    if method not in COMPONENT_METHODS:
        raise ValidationException(
            "Salary components must be fixed or percentage", field="calculation_method",
        )

    if "value" in data:
        value = to_decimal(data["value"])
        if value < 0:
            raise ValidationException("Component value cannot be negative", field="value")
        if method == CalculationMethod.PERCENTAGE and value > 100:
            raise ValidationException("Percentage cannot exceed 100", field="value")

    if not data.get("name"):
        raise ValidationException("Component name is required", field="name")


class SalaryStructureService:
    """Salary grade administration and lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # GRADES
    # ===========================================

    async def create_salary_grade(
        self,
        data: Dict[str, Any],
        components: Optional[List[Dict[str, Any]]] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> SalaryGrade:
        """Create a grade with its components. level must be unique and basic > 0."""
        level = (data.get("level") or "").strip()
        if not level:
            raise ValidationException("Grade level is required", field="level")

        basic = to_decimal(data.get("basic_salary"))
        if basic <= 0:
            raise InvalidBasicSalaryError(data.get("basic_salary"), level)

        existing = await self.db.execute(select(SalaryGrade).where(SalaryGrade.level == level))
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("SalaryGrade", "level", level)

        for component in components or []:
            _validate_component(component)

        grade = SalaryGrade(
            level=level,
            name=data.get("name"),
            description=data.get("description"),
            basic_salary=round_money(basic),
            department_id=data.get("department_id"),
            is_active=data.get("is_active", True),
            created_by_id=created_by_id,
        )
        grade.components = [
            SalaryComponent(
                name=component["name"],
                calculation_method=CalculationMethod(
                    component.get("calculation_method", CalculationMethod.FIXED)
                ),
                value=to_decimal(component["value"]),
                is_active=component.get("is_active", True),
            )
            for component in components or []
        ]
        self.db.add(grade)
        await self.db.commit()

        logger.info(f"Created salary grade {level} (basic {grade.basic_salary})")
        return await self.get_salary_grade(grade.id)

    async def get_salary_grade(self, grade_id: uuid.UUID) -> SalaryGrade:
        """Get a grade with components, or raise SalaryGradeNotFoundError."""
        result = await self.db.execute(
            select(SalaryGrade)
            .where(SalaryGrade.id == grade_id)
            .execution_options(populate_existing=True)
        )
        grade = result.scalar_one_or_none()
        if grade is None:
            raise SalaryGradeNotFoundError(grade_id)
        return grade

    async def get_active_grade_by_level(self, level: Optional[str]) -> SalaryGrade:
        """Active grade for an employee's grade level."""
        if not level:
            raise SalaryGradeNotFoundError(level="")
        result = await self.db.execute(
            select(SalaryGrade).where(
                SalaryGrade.level == level,
                SalaryGrade.is_active == True,
            )
        )
        grade = result.scalar_one_or_none()
        if grade is None:
            raise SalaryGradeNotFoundError(level=level)
        return grade

    async def list_salary_grades(
        self,
        department_id: Optional[uuid.UUID] = None,
        active_only: bool = False,
    ) -> List[SalaryGrade]:
        query = select(SalaryGrade)
        if department_id:
            query = query.where(SalaryGrade.department_id == department_id)
        if active_only:
            query = query.where(SalaryGrade.is_active == True)
        result = await self.db.execute(query.order_by(SalaryGrade.level))
        return list(result.scalars().all())

    async def update_salary_grade(
        self,
        grade_id: uuid.UUID,
        data: Dict[str, Any],
        updated_by_id: Optional[uuid.UUID] = None,
    ) -> SalaryGrade:
        grade = await self.get_salary_grade(grade_id)

        if "basic_salary" in data and data["basic_salary"] is not None:
            basic = to_decimal(data["basic_salary"])
            if basic <= 0:
                raise InvalidBasicSalaryError(data["basic_salary"], grade.level)
            grade.basic_salary = round_money(basic)

        new_level = data.get("level")
        if new_level and new_level != grade.level:
            existing = await self.db.execute(
                select(SalaryGrade).where(SalaryGrade.level == new_level)
            )
            if existing.scalar_one_or_none():
                raise DuplicateEntryException("SalaryGrade", "level", new_level)
            grade.level = new_level

        for key in ("name", "description", "department_id", "is_active"):
            if key in data and data[key] is not None:
                setattr(grade, key, data[key])

        grade.updated_by_id = updated_by_id
        await self.db.commit()
        return await self.get_salary_grade(grade.id)

    # ===========================================
    # COMPONENTS
    # ===========================================

    async def add_component(self, grade_id: uuid.UUID, data: Dict[str, Any]) -> SalaryComponent:
        grade = await self.get_salary_grade(grade_id)
        if "value" not in data:
            raise ValidationException("Component value is required", field="value")
        _validate_component(data)

        component = SalaryComponent(
            salary_grade_id=grade.id,
            name=data["name"],
            calculation_method=CalculationMethod(
                data.get("calculation_method", CalculationMethod.FIXED)
            ),
            value=to_decimal(data["value"]),
            is_active=data.get("is_active", True),
        )
        self.db.add(component)
        await self.db.commit()
        await self.db.refresh(component)
        return component

    async def update_component(
        self,
        component_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> SalaryComponent:
        component = await self.db.get(SalaryComponent, component_id)
        if component is None:
            raise NotFoundException("SalaryComponent", component_id)

        merged = {
            "name": data.get("name") or component.name,
            "calculation_method": data.get("calculation_method") or component.calculation_method,
            "value": data["value"] if data.get("value") is not None else component.value,
        }
        _validate_component(merged)

        component.name = merged["name"]
        component.calculation_method = CalculationMethod(merged["calculation_method"])
        component.value = to_decimal(merged["value"])
        if data.get("is_active") is not None:
            component.is_active = data["is_active"]

        await self.db.commit()
        await self.db.refresh(component)
        return component

    # ===========================================
    # CALCULATION
    # ===========================================

    async def calculate_total_salary(
        self,
        grade_id: uuid.UUID,
        frequency: PayrollFrequency = PayrollFrequency.MONTHLY,
    ) -> SalaryBreakdown:
        grade = await self.get_salary_grade(grade_id)
        return calculate_total_salary(grade, frequency)
