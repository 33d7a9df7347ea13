"""
Paymaster HR - Allowance Service Tests

Allowance definitions, the personal allowance approval workflow and
allowance resolution for a pay period.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.models.allowance import AllowanceType
from app.models.payroll_enums import AllowanceFrequency, ApprovalStatus, ScopeType
from app.services.allowance_service import AllowanceService
from app.services.payroll_calculations import pay_period
from app.utils.error_handling import (
    BusinessRuleException,
    ConflictException,
    ErrorCode,
    ValidationException,
)


JUNE_2025 = pay_period(6, 2025, "monthly")


async def _approved_allowance(service, employee, **overrides):
    data = {
        "name": "Responsibility",
        "allowance_type": AllowanceType.FIXED,
        "value": Decimal("10000"),
        "frequency": AllowanceFrequency.MONTHLY,
        "scope": ScopeType.COMPANY_WIDE,
        "effective_date": date(2025, 1, 1),
    }
    data.update(overrides)
    allowance = await service.create_allowance(data)
    personal = await service.request_personal_allowance(employee.id, allowance.id)
    return await service.approve_personal_allowance(personal.id)


class TestAllowanceDefinitions:
    """Test allowance definition validation."""

    @pytest.mark.asyncio
    async def test_create_company_wide_allowance(self, db_session):
        allowance = await AllowanceService(db_session).create_allowance({
            "name": "Transport",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("12000"),
            "scope": ScopeType.COMPANY_WIDE,
            "effective_date": date(2025, 1, 1),
        })

        assert allowance.scope == ScopeType.COMPANY_WIDE
        assert allowance.frequency == AllowanceFrequency.MONTHLY

    @pytest.mark.asyncio
    async def test_effective_date_required(self, db_session):
        with pytest.raises(ValidationException):
            await AllowanceService(db_session).create_allowance({
                "name": "Transport",
                "allowance_type": AllowanceType.FIXED,
                "value": Decimal("12000"),
                "scope": ScopeType.COMPANY_WIDE,
            })

    @pytest.mark.asyncio
    async def test_expiry_must_follow_effective_date(self, db_session):
        with pytest.raises(ValidationException) as exc_info:
            await AllowanceService(db_session).create_allowance({
                "name": "Transport",
                "allowance_type": AllowanceType.FIXED,
                "value": Decimal("12000"),
                "scope": ScopeType.COMPANY_WIDE,
                "effective_date": date(2025, 6, 1),
                "expiry_date": date(2025, 5, 1),
            })

        assert exc_info.value.code == ErrorCode.INVALID_DATE_RANGE

    @pytest.mark.asyncio
    async def test_department_scope_needs_department(self, db_session):
        with pytest.raises(ValidationException):
            await AllowanceService(db_session).create_allowance({
                "name": "Field",
                "allowance_type": AllowanceType.FIXED,
                "value": Decimal("5000"),
                "scope": ScopeType.DEPARTMENT,
                "effective_date": date(2025, 1, 1),
            })

    @pytest.mark.asyncio
    async def test_percentage_over_100_rejected(self, db_session):
        with pytest.raises(ValidationException):
            await AllowanceService(db_session).create_allowance({
                "name": "Hardship",
                "allowance_type": AllowanceType.PERCENTAGE,
                "value": Decimal("150"),
                "scope": ScopeType.COMPANY_WIDE,
                "effective_date": date(2025, 1, 1),
            })


class TestPersonalAllowanceWorkflow:
    """Test request, approval and rejection of personal allowances."""

    @pytest.mark.asyncio
    async def test_request_starts_pending(self, db_session, employee):
        service = AllowanceService(db_session)
        allowance = await service.create_allowance({
            "name": "Responsibility",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("10000"),
            "scope": ScopeType.INDIVIDUAL,
            "employee_id": employee.id,
            "effective_date": date(2025, 1, 1),
        })

        personal = await service.request_personal_allowance(employee.id, allowance.id)

        assert personal.approval_status == ApprovalStatus.PENDING
        assert personal.effective_date == date(2025, 1, 1)
        assert personal.used_in_payroll_id is None

    @pytest.mark.asyncio
    async def test_approve_then_reject_is_refused(self, db_session, employee):
        service = AllowanceService(db_session)
        personal = await _approved_allowance(service, employee)

        assert personal.approval_status == ApprovalStatus.APPROVED
        assert personal.approved_at is not None

        with pytest.raises(BusinessRuleException) as exc_info:
            await service.reject_personal_allowance(personal.id, reason="late")

        assert exc_info.value.code == ErrorCode.CANNOT_MODIFY

    @pytest.mark.asyncio
    async def test_reject_pending_request(self, db_session, employee):
        service = AllowanceService(db_session)
        allowance = await service.create_allowance({
            "name": "Overtime",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("8000"),
            "scope": ScopeType.COMPANY_WIDE,
            "effective_date": date(2025, 1, 1),
        })
        personal = await service.request_personal_allowance(employee.id, allowance.id)

        rejected = await service.reject_personal_allowance(personal.id, reason="Not eligible")

        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert rejected.rejection_reason == "Not eligible"

    @pytest.mark.asyncio
    async def test_duplicate_open_request_rejected(self, db_session, employee):
        service = AllowanceService(db_session)
        allowance = await service.create_allowance({
            "name": "Overtime",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("8000"),
            "scope": ScopeType.COMPANY_WIDE,
            "effective_date": date(2025, 1, 1),
        })
        await service.request_personal_allowance(employee.id, allowance.id)

        with pytest.raises(ConflictException):
            await service.request_personal_allowance(employee.id, allowance.id)

    @pytest.mark.asyncio
    async def test_list_employee_allowances(self, db_session, employee):
        service = AllowanceService(db_session)
        approved = await _approved_allowance(service, employee)
        overtime = await service.create_allowance({
            "name": "Overtime",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("8000"),
            "scope": ScopeType.COMPANY_WIDE,
            "effective_date": date(2025, 1, 1),
        })
        await service.request_personal_allowance(employee.id, overtime.id)

        everything = await service.list_employee_allowances(employee.id)
        approved_only = await service.list_employee_allowances(employee.id, status=ApprovalStatus.APPROVED)

        assert len(everything) == 2
        assert [p.id for p in approved_only] == [approved.id]

    @pytest.mark.asyncio
    async def test_out_of_scope_request_rejected(self, db_session, employee):
        service = AllowanceService(db_session)
        allowance = await service.create_allowance({
            "name": "Executive",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("50000"),
            "scope": ScopeType.GRADE,
            "grade_level": "GL-15",
            "effective_date": date(2025, 1, 1),
        })

        with pytest.raises(BusinessRuleException):
            await service.request_personal_allowance(employee.id, allowance.id)


class TestAllowanceResolution:
    """Test grade and personal allowances for a pay period."""

    @pytest.mark.asyncio
    async def test_grade_allowances_only(self, db_session, employee, salary_grade):
        resolution = await AllowanceService(db_session).resolve_allowances(
            employee.id, salary_grade, JUNE_2025,
        )

        assert resolution.basic_salary == Decimal("250000.00")
        assert resolution.grade_total == Decimal("50000.00")
        assert resolution.additional_allowances == []

    @pytest.mark.asyncio
    async def test_pending_allowance_not_paid(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        allowance = await service.create_allowance({
            "name": "Overtime",
            "allowance_type": AllowanceType.FIXED,
            "value": Decimal("8000"),
            "scope": ScopeType.COMPANY_WIDE,
            "effective_date": date(2025, 1, 1),
        })
        await service.request_personal_allowance(employee.id, allowance.id)

        resolution = await service.resolve_allowances(employee.id, salary_grade, JUNE_2025)

        assert resolution.additional_total == Decimal("0")

    @pytest.mark.asyncio
    async def test_quarterly_fixed_allowance_prorated(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        await _approved_allowance(
            service, employee, value=Decimal("30000"), frequency=AllowanceFrequency.QUARTERLY,
        )

        resolution = await service.resolve_allowances(employee.id, salary_grade, JUNE_2025)

        assert [item.amount for item in resolution.additional_allowances] == [Decimal("10000.00")]

    @pytest.mark.asyncio
    async def test_percentage_allowance_on_monthly_basic(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        await _approved_allowance(
            service, employee, allowance_type=AllowanceType.PERCENTAGE, value=Decimal("10"),
        )

        resolution = await service.resolve_allowances(employee.id, salary_grade, JUNE_2025)

        assert resolution.additional_total == Decimal("25000.00")

    @pytest.mark.asyncio
    async def test_performance_allowance(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        allowance = await service.create_allowance({
            "name": "Sales Target",
            "allowance_type": AllowanceType.PERFORMANCE_BASED,
            "value": Decimal("0"),
            "base_amount": Decimal("100000"),
            "scope": ScopeType.COMPANY_WIDE,
            "effective_date": date(2025, 1, 1),
        })
        personal = await service.request_personal_allowance(
            employee.id,
            allowance.id,
            performance_score=Decimal("90"),
            target_score=Decimal("80"),
        )
        await service.approve_personal_allowance(personal.id)

        resolution = await service.resolve_allowances(employee.id, salary_grade, JUNE_2025)

        assert resolution.additional_total == Decimal("112500.00")

    @pytest.mark.asyncio
    async def test_expired_allowance_not_paid(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        await _approved_allowance(service, employee, expiry_date=date(2025, 5, 31))

        resolution = await service.resolve_allowances(employee.id, salary_grade, JUNE_2025)

        assert resolution.additional_allowances == []

    @pytest.mark.asyncio
    async def test_future_allowance_not_paid(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        await _approved_allowance(service, employee, effective_date=date(2025, 7, 1))

        resolution = await service.resolve_allowances(employee.id, salary_grade, JUNE_2025)

        assert resolution.additional_allowances == []


class TestAllowanceClaim:
    """Test the conditional consumption write."""

    @pytest.mark.asyncio
    async def test_claim_succeeds_once(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        personal = await _approved_allowance(service, employee)
        payroll_id = uuid.uuid4()

        assert await service.claim_personal_allowance(personal.id, payroll_id, 6, 2025) is True
        assert await service.claim_personal_allowance(personal.id, uuid.uuid4(), 6, 2025) is False
        await db_session.commit()

        claimed = await service.get_personal_allowance(personal.id)
        assert claimed.used_in_payroll_id == payroll_id
        assert (claimed.used_in_payroll_month, claimed.used_in_payroll_year) == (6, 2025)

    @pytest.mark.asyncio
    async def test_claimed_allowance_no_longer_eligible(self, db_session, employee, salary_grade):
        service = AllowanceService(db_session)
        personal = await _approved_allowance(service, employee)
        await service.claim_personal_allowance(personal.id, uuid.uuid4(), 6, 2025)
        await db_session.commit()

        eligible = await service.get_eligible_personal_allowances(
            employee.id, pay_period(7, 2025, "monthly"),
        )

        assert eligible == []
