"""
Paymaster HR - API Integration Tests

Integration tests for REST API endpoints.
"""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient

from app.dependencies import get_run_config
from app.models.deduction import PAYE_NAME
from app.services.deduction_service import DeductionService
from main import app


API = "/api/v1"


@pytest.fixture
def sequential_runs(run_config):
    """Batch endpoint runs one employee at a time against SQLite."""
    app.dependency_overrides[get_run_config] = lambda: run_config
    yield run_config
    app.dependency_overrides.pop(get_run_config, None)


async def _calculate(client: AsyncClient, employee_id, month=6, year=2025, **extra):
    return await client.post(
        f"{API}/payroll/calculate",
        json={"employee_id": str(employee_id), "month": month, "year": year, **extra},
    )


class TestHealthEndpoint:
    """Test health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_api_info(self, client: AsyncClient):
        response = await client.get("/api")

        assert response.status_code == 200
        assert response.json()["name"] == "Paymaster HR"


class TestCalculateAPI:
    """Test single-employee payroll calculation."""

    @pytest.mark.asyncio
    async def test_calculate_worked_example(self, client: AsyncClient, employee):
        response = await _calculate(client, employee.id)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["frequency"] == "monthly"
        assert data["period_start"] == "2025-06-01"
        assert data["period_end"] == "2025-06-30"
        assert data["basic_salary"] == "250000.00"
        assert data["earnings"]["grade_allowances"] == "50000.00"
        assert data["deductions"]["paye"] == "54666.67"
        assert data["deductions"]["pension"] == "20000.00"
        assert data["deductions"]["nhf"] == "6250.00"
        assert data["totals"] == {
            "gross_earnings": "300000.00",
            "total_deductions": "80916.67",
            "net_pay": "219083.33",
        }
        assert data["approval_history"][0]["action"] == "created"

    @pytest.mark.asyncio
    async def test_calculate_quarterly(self, client: AsyncClient, employee):
        response = await _calculate(client, employee.id, month=4, frequency="quarterly")

        assert response.status_code == 201
        data = response.json()
        assert data["period_end"] == "2025-06-30"
        assert data["deductions"]["paye"] == "164000.00"
        assert data["totals"]["net_pay"] == "657250.00"

    @pytest.mark.asyncio
    async def test_duplicate_returns_conflict(self, client: AsyncClient, employee):
        await _calculate(client, employee.id)

        response = await _calculate(client, employee.id)

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "DUPLICATE_PAYROLL"
        assert detail["details"]["stage"] == "validating"

    @pytest.mark.asyncio
    async def test_missing_department(self, client: AsyncClient, make_employee, salary_grade):
        employee = await make_employee(department_id=None)

        response = await _calculate(client, employee.id)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "MISSING_DEPARTMENT"

    @pytest.mark.asyncio
    async def test_unknown_employee(self, client: AsyncClient):
        response = await _calculate(client, uuid.uuid4())

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "EMPLOYEE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_month_rejected(self, client: AsyncClient, employee):
        response = await _calculate(client, employee.id, month=13)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


class TestPayrollRecordsAPI:
    """Test record retrieval, history and the approval workflow."""

    @pytest.mark.asyncio
    async def test_get_payroll(self, client: AsyncClient, employee):
        created = (await _calculate(client, employee.id)).json()

        response = await client.get(f"{API}/payroll/{created['id']}")

        assert response.status_code == 200
        assert response.json()["totals"]["net_pay"] == "219083.33"

    @pytest.mark.asyncio
    async def test_get_missing_payroll(self, client: AsyncClient):
        response = await client.get(f"{API}/payroll/{uuid.uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_history_newest_first(self, client: AsyncClient, employee):
        for month in (5, 6, 7):
            await _calculate(client, employee.id, month=month)

        response = await client.get(f"{API}/payroll/employee/{employee.id}/history", params={"limit": 2})

        assert response.status_code == 200
        assert [r["month"] for r in response.json()] == [7, 6]

    @pytest.mark.asyncio
    async def test_approve_then_pay(self, client: AsyncClient, employee):
        created = (await _calculate(client, employee.id)).json()
        approver = uuid.uuid4()

        approved = await client.patch(
            f"{API}/payroll/{created['id']}/status",
            json={"status": "APPROVED", "user_id": str(approver), "remarks": "June run"},
        )
        paid = await client.patch(f"{API}/payroll/{created['id']}/status", json={"status": "PAID"})

        assert approved.status_code == 200
        assert approved.json()["approved_by_id"] == str(approver)
        assert paid.status_code == 200
        data = paid.json()
        assert data["status"] == "PAID"
        assert data["paid_at"] is not None
        assert [h["action"] for h in data["approval_history"]] == ["created", "approved", "paid"]

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client: AsyncClient, employee):
        created = (await _calculate(client, employee.id)).json()

        response = await client.patch(f"{API}/payroll/{created['id']}/status", json={"status": "PAID"})

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_STATUS_TRANSITION"
        assert detail["details"] == {"current_status": "PENDING", "requested_status": "PAID"}

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, client: AsyncClient, employee):
        created = (await _calculate(client, employee.id)).json()

        response = await client.patch(f"{API}/payroll/{created['id']}/status", json={"status": "DONE"})

        assert response.status_code == 422


class TestBatchAPI:
    """Test batch runs and stored summaries."""

    @pytest.mark.asyncio
    async def test_batch_for_listed_employees(
        self, client: AsyncClient, sequential_runs, employee, make_employee,
    ):
        second = await make_employee()
        orphan = await make_employee(department_id=None)

        response = await client.post(f"{API}/payroll/batch", json={
            "employee_ids": [str(employee.id), str(second.id), str(orphan.id)],
            "month": 6,
            "year": 2025,
        })

        assert response.status_code == 200
        data = response.json()
        assert (data["processed"], data["skipped"], data["failed"]) == (2, 1, 0)
        assert data["total_net_pay"] == "438166.66"
        assert data["warnings"][0]["employee_id"] == str(orphan.id)
        assert data["department_breakdown"]["unassigned"]["skipped"] == 1

    @pytest.mark.asyncio
    async def test_batch_for_department(
        self, client: AsyncClient, sequential_runs, employee, make_employee, department,
    ):
        await make_employee(department_id=None)

        response = await client.post(f"{API}/payroll/batch", json={
            "department_id": str(department.id),
            "month": 6,
            "year": 2025,
        })

        assert response.status_code == 200
        assert response.json()["total_attempted"] == 1

    @pytest.mark.asyncio
    async def test_empty_cohort_rejected(self, client: AsyncClient):
        response = await client.post(f"{API}/payroll/batch", json={
            "employee_ids": [],
            "month": 6,
            "year": 2025,
        })

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_summaries(self, client: AsyncClient, sequential_runs, employee):
        batch = (await client.post(f"{API}/payroll/batch", json={
            "employee_ids": [str(employee.id)],
            "month": 6,
            "year": 2025,
        })).json()

        listed = await client.get(f"{API}/payroll/summaries", params={"month": 6, "year": 2025})
        single = await client.get(f"{API}/payroll/summaries/{batch['batch_id']}")
        missing = await client.get(f"{API}/payroll/summaries/PAY-000000-NOPE")

        assert [s["batch_id"] for s in listed.json()] == [batch["batch_id"]]
        assert single.status_code == 200
        assert single.json()["processed"] == 1
        assert single.json()["employee_details"][0]["net_pay"] == "219083.33"
        assert missing.status_code == 404


class TestSalaryStructureAPI:
    """Test salary grade reads and the breakdown preview."""

    @pytest.mark.asyncio
    async def test_get_grade_with_components(self, client: AsyncClient, salary_grade):
        response = await client.get(f"{API}/salary-grades/{salary_grade.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["level"] == "GL-08"
        assert data["basic_salary"] == "250000.00"
        assert data["is_active"] is True
        assert [c["name"] for c in data["components"]] == ["Housing"]
        assert data["components"][0]["calculation_method"] == "percentage"

    @pytest.mark.asyncio
    async def test_get_missing_grade(self, client: AsyncClient):
        response = await client.get(f"{API}/salary-grades/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "SALARY_GRADE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_monthly_breakdown(self, client: AsyncClient, salary_grade):
        response = await client.get(f"{API}/salary-grades/{salary_grade.id}/breakdown")

        assert response.status_code == 200
        data = response.json()
        assert data["basic_salary"] == "250000.00"
        assert data["gross_salary"] == "300000.00"
        assert data["components"][0]["name"] == "Housing"
        assert data["components"][0]["amount"] == "50000.00"

    @pytest.mark.asyncio
    async def test_weekly_breakdown(self, client: AsyncClient, salary_grade):
        response = await client.get(
            f"{API}/salary-grades/{salary_grade.id}/breakdown", params={"frequency": "weekly"},
        )

        data = response.json()
        assert data["basic_salary"] == "57736.72"
        assert data["total_allowances"] == "11547.34"
        assert data["gross_salary"] == "69284.06"

    @pytest.mark.asyncio
    async def test_missing_grade(self, client: AsyncClient):
        response = await client.get(f"{API}/salary-grades/{uuid.uuid4()}/breakdown")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "SALARY_GRADE_NOT_FOUND"


class TestDeductionAPI:
    """Test statutory seeding and bracket updates."""

    @pytest.mark.asyncio
    async def test_seed_statutory(self, client: AsyncClient):
        first = await client.post(f"{API}/deductions/statutory/seed")
        second = await client.post(f"{API}/deductions/statutory/seed")

        assert first.status_code == 200
        assert first.json()["message"] == "Statutory deductions ready: PAYE Tax, Pension, NHF"
        assert second.json() == first.json()

    @pytest.mark.asyncio
    async def test_replace_paye_brackets(self, client: AsyncClient, statutory_deductions):
        paye = next(d for d in statutory_deductions if d.name == PAYE_NAME)

        response = await client.put(f"{API}/deductions/{paye.id}/tax-brackets", json={
            "tax_brackets": [
                {"min": 0, "max": 500000, "rate": 5},
                {"min": 500000, "max": None, "rate": 20},
            ],
        })

        assert response.status_code == 200
        assert len(response.json()["tax_brackets"]) == 2

    @pytest.mark.asyncio
    async def test_overlapping_brackets_rejected(self, client: AsyncClient, statutory_deductions):
        paye = next(d for d in statutory_deductions if d.name == PAYE_NAME)

        response = await client.put(f"{API}/deductions/{paye.id}/tax-brackets", json={
            "tax_brackets": [
                {"min": 0, "max": 500000, "rate": 5},
                {"min": 400000, "max": None, "rate": 20},
            ],
        })

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_TAX_BRACKETS"

    @pytest.mark.asyncio
    async def test_gapped_brackets_rejected(self, client: AsyncClient, statutory_deductions):
        paye = next(d for d in statutory_deductions if d.name == PAYE_NAME)

        response = await client.put(f"{API}/deductions/{paye.id}/tax-brackets", json={
            "tax_brackets": [
                {"min": 0, "max": 100000, "rate": 0},
                {"min": 150000, "max": None, "rate": 10},
            ],
        })

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_TAX_BRACKETS"


class TestDeductionAssignmentAPI:
    """Test assigning voluntary deductions to employees."""

    @pytest.mark.asyncio
    async def test_assign_list_and_remove(self, client: AsyncClient, db_session, employee):
        cooperative = await DeductionService(db_session).create_voluntary_deduction({
            "name": "Staff Cooperative",
            "value": Decimal("5000"),
        })

        assigned = await client.post(
            f"{API}/deductions/{cooperative.id}/assignments",
            json={"employee_ids": [str(employee.id)]},
        )

        assert assigned.status_code == 200
        assert assigned.json()[0]["deduction_id"] == str(cooperative.id)
        assert assigned.json()[0]["is_active"] is True

        listed = await client.get(f"{API}/employees/{employee.id}/deductions")
        assert [a["deduction_id"] for a in listed.json()] == [str(cooperative.id)]

        removed = await client.post(
            f"{API}/deductions/{cooperative.id}/assignments/remove",
            json={"employee_ids": [str(employee.id)], "reason": "Opted out"},
        )
        assert removed.status_code == 200
        assert removed.json()["message"] == "Deduction removed from 1 employee(s)"

        listed = await client.get(f"{API}/employees/{employee.id}/deductions")
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_assigned_deduction_reaches_payslip(self, client: AsyncClient, db_session, employee):
        cooperative = await DeductionService(db_session).create_voluntary_deduction({
            "name": "Staff Cooperative",
            "value": Decimal("5000"),
        })
        await client.post(
            f"{API}/deductions/{cooperative.id}/assignments",
            json={"employee_ids": [str(employee.id)]},
        )

        response = await _calculate(client, employee.id)

        assert response.status_code == 201
        assert response.json()["totals"]["net_pay"] == "214083.33"

    @pytest.mark.asyncio
    async def test_statutory_assignment_rejected(self, client: AsyncClient, statutory_deductions, employee):
        paye = next(d for d in statutory_deductions if d.name == PAYE_NAME)

        response = await client.post(
            f"{API}/deductions/{paye.id}/assignments",
            json={"employee_ids": [str(employee.id)]},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "CANNOT_MODIFY"

    @pytest.mark.asyncio
    async def test_unknown_employee_list(self, client: AsyncClient):
        response = await client.get(f"{API}/employees/{uuid.uuid4()}/deductions")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_empty_employee_list_rejected(self, client: AsyncClient, db_session):
        cooperative = await DeductionService(db_session).create_voluntary_deduction({
            "name": "Staff Cooperative",
            "value": Decimal("5000"),
        })

        response = await client.post(
            f"{API}/deductions/{cooperative.id}/assignments", json={"employee_ids": []},
        )

        assert response.status_code == 422
