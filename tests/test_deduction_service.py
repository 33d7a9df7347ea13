"""
Paymaster HR - Deduction Service Tests

Statutory seeding and protection, voluntary deduction administration and
assignment, and deduction resolution for a pay period.
"""

import uuid
from decimal import Decimal

import pytest

from app.models.deduction import DeductionCategory, DeductionType, NHF_NAME, PAYE_NAME, PENSION_NAME
from app.models.payroll_enums import CalculationMethod, ScopeType
from app.services.deduction_service import DeductionService
from app.services.payroll_calculations import ScopeFilter, pay_period
from app.utils.error_handling import (
    BusinessRuleException,
    EmployeeNotFoundError,
    ErrorCode,
    InvalidTaxBracketsError,
    StatutoryDeductionProtectedError,
    ValidationException,
)


JUNE_2025 = pay_period(6, 2025, "monthly")


def _by_name(deductions):
    return {d.name: d for d in deductions}


class TestStatutorySeed:
    """Test statutory deduction seeding."""

    @pytest.mark.asyncio
    async def test_seed_creates_paye_pension_nhf(self, db_session, statutory_deductions):
        seeded = _by_name(statutory_deductions)

        assert set(seeded) == {PAYE_NAME, PENSION_NAME, NHF_NAME}
        assert seeded[PAYE_NAME].calculation_method == CalculationMethod.PROGRESSIVE
        assert len(seeded[PAYE_NAME].tax_brackets) == 6
        assert seeded[PENSION_NAME].value == Decimal("8")
        assert seeded[NHF_NAME].category == DeductionCategory.HOUSING
        assert all(d.is_mandatory for d in statutory_deductions)

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, db_session, statutory_deductions):
        service = DeductionService(db_session)

        await service.seed_statutory_deductions()
        statutory = await service.list_deductions(deduction_type=DeductionType.STATUTORY)

        assert len(statutory) == 3


class TestStatutoryProtection:
    """Statutory deductions are system constants."""

    @pytest.mark.asyncio
    async def test_paye_value_cannot_be_edited(self, db_session, statutory_deductions):
        paye = _by_name(statutory_deductions)[PAYE_NAME]

        with pytest.raises(StatutoryDeductionProtectedError) as exc_info:
            await DeductionService(db_session).update_deduction(paye.id, {"value": Decimal("5")})

        assert exc_info.value.message == "Cannot modify PAYE value directly. Update tax brackets instead."

    @pytest.mark.asyncio
    async def test_pension_rate_cannot_be_edited(self, db_session, statutory_deductions):
        pension = _by_name(statutory_deductions)[PENSION_NAME]

        with pytest.raises(StatutoryDeductionProtectedError):
            await DeductionService(db_session).update_deduction(pension.id, {"value": Decimal("10")})

    @pytest.mark.asyncio
    async def test_statutory_description_can_be_edited(self, db_session, statutory_deductions):
        nhf = _by_name(statutory_deductions)[NHF_NAME]

        updated = await DeductionService(db_session).update_deduction(
            nhf.id, {"description": "National Housing Fund contribution"},
        )

        assert updated.description == "National Housing Fund contribution"
        assert updated.value == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_type_cannot_change(self, db_session, statutory_deductions):
        pension = _by_name(statutory_deductions)[PENSION_NAME]

        with pytest.raises(BusinessRuleException) as exc_info:
            await DeductionService(db_session).update_deduction(
                pension.id, {"deduction_type": DeductionType.VOLUNTARY},
            )

        assert exc_info.value.message == "Cannot change deduction type"

    @pytest.mark.asyncio
    async def test_statutory_cannot_be_toggled_or_deleted(self, db_session, statutory_deductions):
        service = DeductionService(db_session)
        nhf = _by_name(statutory_deductions)[NHF_NAME]

        with pytest.raises(StatutoryDeductionProtectedError):
            await service.toggle_deduction_status(nhf.id)
        with pytest.raises(StatutoryDeductionProtectedError):
            await service.delete_deduction(nhf.id)

    @pytest.mark.asyncio
    async def test_paye_brackets_can_be_replaced(self, db_session, statutory_deductions):
        service = DeductionService(db_session)
        paye = _by_name(statutory_deductions)[PAYE_NAME]

        await service.update_tax_brackets(paye.id, [{"min": 0, "max": None, "rate": 10}])
        calculator = await service.get_paye_calculator()

        assert calculator.period_tax(Decimal("300000"), 12) == Decimal("30000.00")

    @pytest.mark.asyncio
    async def test_invalid_paye_brackets_rejected(self, db_session, statutory_deductions):
        paye = _by_name(statutory_deductions)[PAYE_NAME]

        with pytest.raises(InvalidTaxBracketsError):
            await DeductionService(db_session).update_tax_brackets(paye.id, [
                {"min": 0, "max": 500000, "rate": 7},
                {"min": 400000, "max": None, "rate": 11},
            ])

    @pytest.mark.asyncio
    async def test_brackets_only_for_progressive(self, db_session, statutory_deductions):
        pension = _by_name(statutory_deductions)[PENSION_NAME]

        with pytest.raises(BusinessRuleException):
            await DeductionService(db_session).update_tax_brackets(
                pension.id, [{"min": 0, "max": None, "rate": 10}],
            )


class TestVoluntaryDeductions:
    """Test voluntary deduction administration."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, db_session):
        deduction = await DeductionService(db_session).create_voluntary_deduction({
            "name": "Staff Cooperative",
            "value": Decimal("5000"),
            "category": DeductionCategory.COOPERATIVE,
        })

        assert deduction.deduction_type == DeductionType.VOLUNTARY
        assert deduction.scope == ScopeType.COMPANY_WIDE
        assert deduction.calculation_method == CalculationMethod.FIXED

    @pytest.mark.asyncio
    async def test_percentage_over_100_rejected(self, db_session):
        with pytest.raises(ValidationException):
            await DeductionService(db_session).create_voluntary_deduction({
                "name": "Loan",
                "calculation_method": CalculationMethod.PERCENTAGE,
                "value": Decimal("101"),
            })

    @pytest.mark.asyncio
    async def test_progressive_needs_valid_brackets(self, db_session):
        with pytest.raises(InvalidTaxBracketsError):
            await DeductionService(db_session).create_voluntary_deduction({
                "name": "Union Levy",
                "calculation_method": CalculationMethod.PROGRESSIVE,
                "tax_brackets": [],
            })

    @pytest.mark.asyncio
    async def test_toggle_voluntary(self, db_session):
        service = DeductionService(db_session)
        deduction = await service.create_voluntary_deduction({"name": "Gym", "value": Decimal("3000")})

        toggled = await service.toggle_deduction_status(deduction.id)

        assert toggled.is_active is False

    @pytest.mark.asyncio
    async def test_delete_unused_voluntary(self, db_session):
        service = DeductionService(db_session)
        deduction = await service.create_voluntary_deduction({"name": "Gym", "value": Decimal("3000")})

        await service.delete_deduction(deduction.id)

        assert await service.list_deductions(deduction_type=DeductionType.VOLUNTARY) == []

    @pytest.mark.asyncio
    async def test_update_voluntary_method(self, db_session):
        service = DeductionService(db_session)
        deduction = await service.create_voluntary_deduction({"name": "Loan", "value": Decimal("3000")})

        updated = await service.update_deduction(deduction.id, {
            "calculation_method": CalculationMethod.PERCENTAGE,
            "value": Decimal("2"),
        })

        assert updated.calculation_method == CalculationMethod.PERCENTAGE
        assert updated.value == Decimal("2")


class TestDeductionResolution:
    """Test deductions for one employee and pay period."""

    @pytest.mark.asyncio
    async def test_statutory_on_worked_example(self, db_session, employee):
        resolution = await DeductionService(db_session).resolve_deductions(
            basic_salary=Decimal("250000.00"),
            gross_salary=Decimal("300000.00"),
            period=JUNE_2025,
            target=ScopeFilter(employee.id, employee.department_id, employee.grade_level),
        )

        assert resolution.paye == Decimal("54666.67")
        assert resolution.pension == Decimal("20000.00")
        assert resolution.nhf == Decimal("6250.00")
        assert resolution.total == Decimal("80916.67")

    @pytest.mark.asyncio
    async def test_custom_statutory_rates(self, db_session, employee):
        service = DeductionService(db_session, pension_rate=Decimal("10"), nhf_rate=Decimal("0"))

        resolution = await service.resolve_deductions(
            Decimal("250000.00"), Decimal("300000.00"), JUNE_2025,
            ScopeFilter(employee.id, employee.department_id, employee.grade_level),
        )

        assert resolution.pension == Decimal("25000.00")
        assert resolution.nhf == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_voluntary_requires_assignment_and_scope(self, db_session, employee, department, make_employee):
        service = DeductionService(db_session)
        welfare = await service.create_voluntary_deduction({
            "name": "Finance Welfare",
            "value": Decimal("1500"),
            "scope": ScopeType.DEPARTMENT,
            "department_id": department.id,
        })
        levy = await service.create_voluntary_deduction({
            "name": "Union Levy",
            "calculation_method": CalculationMethod.PERCENTAGE,
            "value": Decimal("1"),
        })
        await service.create_voluntary_deduction({"name": "Gym", "value": Decimal("3000")})
        await service.assign_deduction(welfare.id, [employee.id])
        await service.assign_deduction(levy.id, [employee.id])
        await service.toggle_deduction_status(levy.id)

        resolution = await service.resolve_deductions(
            Decimal("250000.00"), Decimal("300000.00"), JUNE_2025,
            ScopeFilter(employee.id, employee.department_id, employee.grade_level),
        )

        assert [(item.name, item.amount) for item in resolution.voluntary] == [
            ("Finance Welfare", Decimal("1500.00")),
        ]
        assert resolution.total == Decimal("82416.67")

        # Paid under another department, the department deduction no longer matches
        resolution = await service.resolve_deductions(
            Decimal("250000.00"), Decimal("300000.00"), JUNE_2025,
            ScopeFilter(employee.id, None, employee.grade_level),
        )
        assert resolution.voluntary == []

        other = await make_employee()
        resolution = await service.resolve_deductions(
            Decimal("250000.00"), Decimal("300000.00"), JUNE_2025,
            ScopeFilter(other.id, other.department_id, other.grade_level),
        )
        assert resolution.voluntary == []


class TestDeductionAssignment:
    """Test assigning voluntary deductions to employees."""

    @pytest.mark.asyncio
    async def test_assign_to_many_employees(self, db_session, employee, make_employee):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})
        other = await make_employee()

        assignments = await service.assign_deduction(cooperative.id, [employee.id, other.id, employee.id])

        assert [a.employee_id for a in assignments] == [employee.id, other.id]
        assert all(a.is_active for a in assignments)
        listed = await service.list_employee_deductions(other.id)
        assert [a.deduction_id for a in listed] == [cooperative.id]
        assert listed[0].history[0]["action"] == "assigned"

    @pytest.mark.asyncio
    async def test_assigning_twice_keeps_one_assignment(self, db_session, employee):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})

        first = await service.assign_deduction(cooperative.id, [employee.id])
        second = await service.assign_deduction(cooperative.id, [employee.id])

        assert first[0].id == second[0].id
        assert len(second[0].history) == 1
        assert len(await service.list_employee_deductions(employee.id)) == 1

    @pytest.mark.asyncio
    async def test_remove_then_reassign(self, db_session, employee):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})
        await service.assign_deduction(cooperative.id, [employee.id])

        removed = await service.remove_deduction(cooperative.id, [employee.id], reason="Left cooperative")

        assert removed == 1
        assert await service.list_employee_deductions(employee.id) == []
        history = await service.list_employee_deductions(employee.id, include_removed=True)
        assert history[0].removal_reason == "Left cooperative"

        reassigned = await service.assign_deduction(cooperative.id, [employee.id])

        assert reassigned[0].is_active is True
        assert reassigned[0].removal_reason is None
        assert [h["action"] for h in reassigned[0].history] == ["assigned", "removed", "assigned"]

    @pytest.mark.asyncio
    async def test_remove_unassigned_is_noop(self, db_session, employee):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})

        assert await service.remove_deduction(cooperative.id, [employee.id]) == 0

    @pytest.mark.asyncio
    async def test_statutory_cannot_be_assigned(self, db_session, employee, statutory_deductions):
        pension = _by_name(statutory_deductions)[PENSION_NAME]

        with pytest.raises(BusinessRuleException) as exc_info:
            await DeductionService(db_session).assign_deduction(pension.id, [employee.id])

        assert exc_info.value.code == ErrorCode.CANNOT_MODIFY

    @pytest.mark.asyncio
    async def test_inactive_cannot_be_assigned(self, db_session, employee):
        service = DeductionService(db_session)
        gym = await service.create_voluntary_deduction({
            "name": "Gym", "value": Decimal("3000"), "is_active": False,
        })

        with pytest.raises(BusinessRuleException):
            await service.assign_deduction(gym.id, [employee.id])

    @pytest.mark.asyncio
    async def test_out_of_scope_employee_rejects_whole_request(
        self, db_session, employee, department, make_employee,
    ):
        service = DeductionService(db_session)
        welfare = await service.create_voluntary_deduction({
            "name": "Finance Welfare",
            "value": Decimal("1500"),
            "scope": ScopeType.DEPARTMENT,
            "department_id": department.id,
        })
        employee_id = employee.id
        outsider_id = (await make_employee(department_id=None)).id

        with pytest.raises(BusinessRuleException) as exc_info:
            await service.assign_deduction(welfare.id, [employee_id, outsider_id])

        assert exc_info.value.details["employee_id"] == str(outsider_id)
        assert await service.list_employee_deductions(employee_id) == []

    @pytest.mark.asyncio
    async def test_unknown_employee(self, db_session):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})

        with pytest.raises(EmployeeNotFoundError):
            await service.assign_deduction(cooperative.id, [uuid.uuid4()])

    @pytest.mark.asyncio
    async def test_empty_employee_list_rejected(self, db_session):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})

        with pytest.raises(ValidationException):
            await service.assign_deduction(cooperative.id, [])

    @pytest.mark.asyncio
    async def test_deleting_deduction_drops_assignments(self, db_session, employee):
        service = DeductionService(db_session)
        cooperative = await service.create_voluntary_deduction({"name": "Cooperative", "value": Decimal("5000")})
        await service.assign_deduction(cooperative.id, [employee.id])

        await service.delete_deduction(cooperative.id)

        assert await service.list_employee_deductions(employee.id, include_removed=True) == []
