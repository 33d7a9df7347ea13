"""
Paymaster HR - Salary Structure Models

Salary grades and their grade-level allowance components. All amounts on a
grade are monthly; the payroll engine converts them to the run frequency.
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, ForeignKey, Numeric, String, Text, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin
from app.models.payroll_enums import CalculationMethod


class ComponentType(str, Enum):
    """Salary component type."""
    ALLOWANCE = "allowance"


class SalaryGrade(BaseModel, AuditMixin):
    """
    A salary grade (pay level).

    level is the business key employees reference through grade_level.
    """

    __tablename__ = "salary_grades"
    __table_args__ = (
        CheckConstraint("basic_salary > 0", name="basic_salary_positive"),
    )

    level: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True,
    )
    name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        comment="Monthly basic salary",
    )

    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    components: Mapped[List["SalaryComponent"]] = relationship(
        "SalaryComponent",
        back_populates="salary_grade",
        cascade="all, delete-orphan",
        order_by="SalaryComponent.name",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<SalaryGrade(level={self.level}, basic={self.basic_salary})>"


class SalaryComponent(BaseModel):
    """Grade-level allowance (e.g. Housing 20% of basic)."""

    __tablename__ = "salary_components"

    salary_grade_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salary_grades.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    component_type: Mapped[ComponentType] = mapped_column(
        SQLEnum(ComponentType),
        default=ComponentType.ALLOWANCE,
        nullable=False,
    )
    calculation_method: Mapped[CalculationMethod] = mapped_column(
        SQLEnum(CalculationMethod),
        default=CalculationMethod.FIXED,
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        comment="Fixed monthly amount, or percentage of basic salary",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    salary_grade: Mapped["SalaryGrade"] = relationship(
        "SalaryGrade",
        back_populates="components",
    )
