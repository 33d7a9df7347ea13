"""
Paymaster HR - Payroll Models

Database models for payroll records, their line items and batch summaries.
One PayrollRecord exists per (employee, month, year); once created it only
moves through the approval workflow.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Integer, JSON, Numeric,
    String, Text, UniqueConstraint, Uuid, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin
from app.models.payroll_enums import PayrollFrequency, PayrollStatus


class PayItemType(str, Enum):
    """Type of payroll line item."""
    EARNING = "earning"
    DEDUCTION = "deduction"


class PayItemCategory(str, Enum):
    """Category of payroll line item."""
    BASIC = "basic"
    GRADE_ALLOWANCE = "grade_allowance"
    PERSONAL_ALLOWANCE = "personal_allowance"
    BONUS = "bonus"
    PAYE = "paye"
    PENSION = "pension"
    NHF = "nhf"
    VOLUNTARY_DEDUCTION = "voluntary_deduction"


# ===========================================
# PAYROLL RECORD
# ===========================================

class PayrollRecord(BaseModel, AuditMixin):
    """
    Payroll for one employee and one pay period.

    All money columns hold values already rounded to 2 decimal places; the
    totals are sums of the rounded components.
    """

    __tablename__ = "payroll_records"
    __table_args__ = (
        UniqueConstraint(
            "employee_id", "month", "year",
            name="uq_payroll_records_employee_period",
        ),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    salary_grade_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("salary_grades.id", ondelete="SET NULL"),
        nullable=True,
    )
    batch_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # Period
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[PayrollFrequency] = mapped_column(
        SQLEnum(PayrollFrequency),
        default=PayrollFrequency.MONTHLY,
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Earnings
    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    grade_allowances: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    personal_allowances: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    total_allowances: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    total_bonuses: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    gross_earnings: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )

    # Deductions
    paye_tax: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    pension: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    nhf: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    total_statutory: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    total_voluntary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )

    net_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )

    # Workflow
    status: Mapped[PayrollStatus] = mapped_column(
        SQLEnum(PayrollStatus),
        default=PayrollStatus.PENDING,
        nullable=False,
        index=True,
    )
    approval_history: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
        comment="[{status, action, user_id, timestamp, remarks}]",
    )
    processed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[List["PayrollItem"]] = relationship(
        "PayrollItem",
        back_populates="payroll",
        cascade="all, delete-orphan",
        order_by="PayrollItem.sort_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<PayrollRecord(employee={self.employee_id}, "
            f"period={self.month}/{self.year}, status={self.status})>"
        )


class PayrollItem(BaseModel):
    """Individual earning or deduction line on a payroll record."""

    __tablename__ = "payroll_items"

    payroll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payroll_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_type: Mapped[PayItemType] = mapped_column(SQLEnum(PayItemType), nullable=False)
    category: Mapped[PayItemCategory] = mapped_column(
        SQLEnum(PayItemCategory), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        index=True,
        comment="Component, personal allowance/bonus or deduction the line came from",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    payroll: Mapped["PayrollRecord"] = relationship(
        "PayrollRecord",
        back_populates="items",
    )


# ===========================================
# BATCH SUMMARY
# ===========================================

class PayrollSummary(BaseModel):
    """Outcome of one batch payroll run."""

    __tablename__ = "payroll_summaries"

    batch_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    processed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[PayrollFrequency] = mapped_column(
        SQLEnum(PayrollFrequency), nullable=False,
    )

    total_attempted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    total_net_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0"), nullable=False,
    )
    total_gross_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0"), nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0"), nullable=False,
    )

    processing_time: Mapped[float] = mapped_column(
        Float, default=0.0, nullable=False, comment="Seconds",
    )
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    department_breakdown: Mapped[Dict[str, Any]] = mapped_column(
        JSON, default=dict, nullable=False,
    )
    employee_details: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False,
    )
    errors: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    warnings: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
