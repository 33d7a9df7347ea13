"""
Paymaster HR - Bonus Models
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin
from app.models.payroll_enums import ApprovalStatus


class BonusType(str, Enum):
    """Bonus types."""
    PERFORMANCE = "performance"
    THIRTEENTH_MONTH = "thirteenth_month"
    SPECIAL = "special"
    ACHIEVEMENT = "achievement"
    RETENTION = "retention"
    PROJECT = "project"
    FIXED = "fixed"
    GRADE = "grade"


class Bonus(BaseModel, AuditMixin):
    """Bonus definition."""

    __tablename__ = "bonuses"

    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bonus_type: Mapped[BonusType] = mapped_column(
        SQLEnum(BonusType),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )

    # Performance parameters
    base_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    target_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=7, scale=2), nullable=True,
    )

    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    personal_bonuses: Mapped[List["PersonalBonus"]] = relationship(
        "PersonalBonus",
        back_populates="bonus",
    )


class PersonalBonus(BaseModel, AuditMixin):
    """A bonus granted to one employee, payable on payment_date."""

    __tablename__ = "personal_bonuses"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bonus_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bonuses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    approval_status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=True,
        comment="Overrides the definition amount when set",
    )
    performance_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=7, scale=2), nullable=True,
    )

    used_in_payroll_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_in_payroll_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_in_payroll_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True,
    )

    bonus: Mapped["Bonus"] = relationship(
        "Bonus",
        back_populates="personal_bonuses",
        lazy="selectin",
    )

    @property
    def is_consumed(self) -> bool:
        return self.used_in_payroll_id is not None
