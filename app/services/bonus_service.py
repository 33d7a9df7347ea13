"""
Paymaster HR - Bonus Service

Bonus definitions, personal bonus grants and their approval, and the
bonus side of payroll (read-only resolution plus the consuming claim).
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.bonus import Bonus, BonusType, PersonalBonus
from app.models.employee import Employee
from app.models.payroll_enums import ApprovalStatus
from app.services.payroll_calculations import (
    BonusInputs,
    LineItem,
    PayPeriod,
    bonus_amount,
    sum_amounts,
    to_decimal,
)
from app.utils.error_handling import (
    BusinessRuleException,
    EmployeeNotFoundError,
    ErrorCode,
    NotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


@dataclass
class BonusResolution:
    items: List[LineItem] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum_amounts(self.items)


class BonusService:
    """Bonus definitions and personal bonuses."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # DEFINITIONS
    # ===========================================

    async def create_bonus(
        self,
        data: Dict[str, Any],
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Bonus:
        if not data.get("name"):
            raise ValidationException("Bonus name is required", field="name")
        try:
            bonus_type = BonusType(data.get("bonus_type"))
        except ValueError:
            raise ValidationException(
                f"Invalid bonus type: {data.get('bonus_type')}", field="bonus_type",
            )

        amount = to_decimal(data.get("amount"))
        if amount < 0:
            raise ValidationException("Amount cannot be negative", field="amount")

        if bonus_type == BonusType.PERFORMANCE:
            target = to_decimal(data.get("target_score"))
            if target <= 0:
                raise ValidationException(
                    "Performance bonuses need a positive target score", field="target_score",
                )
            if not (data.get("base_amount") or amount):
                raise ValidationException(
                    "Performance bonuses need a base amount", field="base_amount",
                )

        bonus = Bonus(
            name=data["name"],
            description=data.get("description"),
            bonus_type=bonus_type,
            amount=amount,
            base_amount=data.get("base_amount"),
            target_score=data.get("target_score"),
            department_id=data.get("department_id"),
            is_taxable=data.get("is_taxable", True),
            created_by_id=created_by_id,
        )
        self.db.add(bonus)
        await self.db.commit()
        await self.db.refresh(bonus)
        return bonus

    async def get_bonus(self, bonus_id: uuid.UUID) -> Bonus:
        bonus = await self.db.get(Bonus, bonus_id)
        if bonus is None:
            raise NotFoundException("Bonus", bonus_id)
        return bonus

    async def deactivate_bonus(self, bonus_id: uuid.UUID) -> Bonus:
        """Stop paying a bonus; approved but unpaid grants are no longer eligible."""
        bonus = await self.get_bonus(bonus_id)
        bonus.is_active = False
        await self.db.commit()
        await self.db.refresh(bonus)
        logger.info(f"Deactivated bonus {bonus.name} ({bonus.id})")
        return bonus

    # ===========================================
    # PERSONAL BONUSES
    # ===========================================

    async def grant_personal_bonus(
        self,
        employee_id: uuid.UUID,
        bonus_id: uuid.UUID,
        payment_date: date,
        amount: Optional[Decimal] = None,
        performance_score: Optional[Decimal] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> PersonalBonus:
        """Grant a bonus to an employee; it must be approved before it is paid."""
        if await self.db.get(Employee, employee_id) is None:
            raise EmployeeNotFoundError(employee_id)
        bonus = await self.get_bonus(bonus_id)
        if not bonus.is_active:
            raise BusinessRuleException(f"Bonus '{bonus.name}' is not active")
        if amount is not None and to_decimal(amount) < 0:
            raise ValidationException("Amount cannot be negative", field="amount")

        personal = PersonalBonus(
            employee_id=employee_id,
            bonus_id=bonus_id,
            payment_date=payment_date,
            amount=amount,
            performance_score=performance_score,
            approval_status=ApprovalStatus.PENDING,
            created_by_id=created_by_id,
        )
        self.db.add(personal)
        await self.db.commit()
        return await self.get_personal_bonus(personal.id)

    async def get_personal_bonus(self, personal_bonus_id: uuid.UUID) -> PersonalBonus:
        result = await self.db.execute(
            select(PersonalBonus)
            .where(PersonalBonus.id == personal_bonus_id)
            .execution_options(populate_existing=True)
        )
        personal = result.scalar_one_or_none()
        if personal is None:
            raise NotFoundException("PersonalBonus", personal_bonus_id)
        return personal

    async def approve_personal_bonus(
        self,
        personal_bonus_id: uuid.UUID,
        approved_by_id: Optional[uuid.UUID] = None,
    ) -> PersonalBonus:
        personal = await self._get_pending(personal_bonus_id)
        personal.approval_status = ApprovalStatus.APPROVED
        personal.approved_by_id = approved_by_id
        personal.approved_at = datetime.now(timezone.utc)
        personal.updated_by_id = approved_by_id
        await self.db.commit()
        return personal

    async def reject_personal_bonus(
        self,
        personal_bonus_id: uuid.UUID,
        reason: Optional[str] = None,
        rejected_by_id: Optional[uuid.UUID] = None,
    ) -> PersonalBonus:
        personal = await self._get_pending(personal_bonus_id)
        personal.approval_status = ApprovalStatus.REJECTED
        personal.rejection_reason = reason
        personal.updated_by_id = rejected_by_id
        await self.db.commit()
        return personal

    async def delete_personal_bonus(self, personal_bonus_id: uuid.UUID) -> None:
        """Delete a pending or rejected bonus grant."""
        personal = await self.get_personal_bonus(personal_bonus_id)
        if personal.approval_status == ApprovalStatus.APPROVED:
            raise BusinessRuleException(
                "Approved bonuses cannot be deleted", code=ErrorCode.CANNOT_DELETE,
            )
        await self.db.delete(personal)
        await self.db.commit()

    async def _get_pending(self, personal_bonus_id: uuid.UUID) -> PersonalBonus:
        personal = await self.get_personal_bonus(personal_bonus_id)
        if personal.approval_status != ApprovalStatus.PENDING:
            raise BusinessRuleException(
                f"Bonus is already {personal.approval_status.value}",
                code=ErrorCode.CANNOT_MODIFY,
            )
        return personal

    async def list_employee_bonuses(
        self,
        employee_id: uuid.UUID,
        status: Optional[ApprovalStatus] = None,
    ) -> List[PersonalBonus]:
        query = select(PersonalBonus).where(PersonalBonus.employee_id == employee_id)
        if status:
            query = query.where(PersonalBonus.approval_status == status)
        result = await self.db.execute(query.order_by(PersonalBonus.payment_date.desc()))
        return list(result.scalars().all())

    # ===========================================
    # PAYROLL RESOLUTION (READ-ONLY)
    # ===========================================

    async def get_eligible_personal_bonuses(
        self,
        employee_id: uuid.UUID,
        period: PayPeriod,
    ) -> List[PersonalBonus]:
        """Approved, unconsumed bonuses payable within the period."""
        result = await self.db.execute(
            select(PersonalBonus)
            .join(Bonus, PersonalBonus.bonus_id == Bonus.id)
            .where(
                and_(
                    PersonalBonus.employee_id == employee_id,
                    Bonus.is_active == True,
                    PersonalBonus.approval_status == ApprovalStatus.APPROVED,
                    PersonalBonus.used_in_payroll_id.is_(None),
                    PersonalBonus.payment_date >= period.start,
                    PersonalBonus.payment_date <= period.end,
                )
            )
            .order_by(PersonalBonus.payment_date, PersonalBonus.id)
        )
        return list(result.scalars().all())

    def personal_bonus_amount(self, personal: PersonalBonus, monthly_basic: Decimal) -> Decimal:
        bonus = personal.bonus
        stored = personal.amount if personal.amount is not None else bonus.amount
        return bonus_amount(bonus.bonus_type, BonusInputs(
            amount=to_decimal(stored),
            basic_salary=to_decimal(monthly_basic),
            base_amount=bonus.base_amount,
            performance_score=personal.performance_score,
            target_score=bonus.target_score,
        ))

    async def resolve_bonuses(
        self,
        employee_id: uuid.UUID,
        period: PayPeriod,
        monthly_basic: Decimal,
    ) -> BonusResolution:
        resolution = BonusResolution()
        for personal in await self.get_eligible_personal_bonuses(employee_id, period):
            resolution.items.append(LineItem(
                name=personal.bonus.name,
                amount=self.personal_bonus_amount(personal, monthly_basic),
                source_id=personal.id,
                category="bonus",
                details={
                    "bonus_id": str(personal.bonus_id),
                    "bonus_type": BonusType(personal.bonus.bonus_type).value,
                    "payment_date": personal.payment_date.isoformat(),
                },
            ))
        return resolution

    # ===========================================
    # CONSUMPTION
    # ===========================================

    async def claim_personal_bonus(
        self,
        personal_bonus_id: uuid.UUID,
        payroll_id: uuid.UUID,
        month: int,
        year: int,
    ) -> bool:
        """Conditional write; False if the bonus was already claimed. Not committed here."""
        result = await self.db.execute(
            update(PersonalBonus)
            .where(
                and_(
                    PersonalBonus.id == personal_bonus_id,
                    PersonalBonus.used_in_payroll_id.is_(None),
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
