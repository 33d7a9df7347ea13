"""
Paymaster HR - Employee & Department Models

Only the fields the payroll engine reads are modelled here; user
management and onboarding workflows live outside this service.
"""

import uuid
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin


class EmploymentStatus(str, Enum):
    """Employment status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    ON_LEAVE = "on_leave"


class Department(BaseModel, AuditMixin):
    """Organisational department (deduction and allowance scope)."""

    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(150), nullable=False)
    code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="department",
    )


class Employee(BaseModel, AuditMixin):
    """
    Employee as seen by payroll.

    grade_level links the employee to a SalaryGrade.level; the automated
    run uses it to find the active grade.
    """

    __tablename__ = "employees"

    employee_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Internal employee ID/staff number",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    grade_level: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    employment_status: Mapped[EmploymentStatus] = mapped_column(
        SQLEnum(EmploymentStatus),
        default=EmploymentStatus.ACTIVE,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )

    department: Mapped[Optional["Department"]] = relationship(
        "Department",
        back_populates="employees",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
