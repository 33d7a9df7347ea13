"""
Paymaster HR - Payroll Router

API endpoints for payroll calculation, batch runs and the approval workflow.
Errors raised by the services are rendered by the handlers in
app.utils.error_handling.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import PayrollRunConfig
from app.database import get_async_session
from app.dependencies import get_batch_runner, get_payroll_service, get_run_config
from app.services.deduction_service import DeductionService
from app.services.employee_service import EmployeeService
from app.services.payroll_batch_service import PayrollBatchRunner, PayrollSummaryService
from app.services.payroll_service import PayrollService
from app.services.salary_structure_service import SalaryStructureService
from app.schemas.payroll import (
    # Payroll schemas
    PayrollCalculateRequest,
    PayrollBatchRequest,
    PayrollStatusUpdate,
    PayrollRecordResponse,
    PayrollRecordSummary,
    # Batch schemas
    PayrollBatchSummaryResponse,
    # Structure schemas
    SalaryBreakdownResponse,
    SalaryGradeResponse,
    # Deduction schemas
    TaxBracketsUpdate,
    DeductionResponse,
    DeductionAssignmentRequest,
    EmployeeDeductionResponse,
    # Other
    MessageResponse,
    PayrollFrequencyEnum,
)


router = APIRouter()


# ===========================================
# PAYROLL CALCULATION
# ===========================================

@router.post(
    "/payroll/calculate",
    response_model=PayrollRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Calculate payroll for one employee",
    description="Computes earnings, deductions and net pay for one pay period and stores the record.",
)
async def calculate_payroll(
    data: PayrollCalculateRequest,
    service: PayrollService = Depends(get_payroll_service),
):
    """Calculate and persist one payroll record."""
    record = await service.calculate_payroll(
        employee_id=data.employee_id,
        month=data.month,
        year=data.year,
        frequency=data.frequency,
        salary_grade_id=data.salary_grade_id,
        department_id=data.department_id,
        bypass_onboarding=data.bypass_onboarding,
    )
    return PayrollRecordResponse.from_record(record)


@router.post(
    "/payroll/batch",
    response_model=PayrollBatchSummaryResponse,
    summary="Run payroll for many employees",
    description="Runs payroll for the given employees, or for all active employees when none are given.",
)
async def run_batch_payroll(
    data: PayrollBatchRequest,
    db: AsyncSession = Depends(get_async_session),
    runner: PayrollBatchRunner = Depends(get_batch_runner),
):
    """Batch payroll run; per-employee failures are reported in the summary."""
    employee_ids = data.employee_ids
    if employee_ids is None:
        employee_ids = await EmployeeService(db).list_active_employee_ids(data.department_id)

    summary = await runner.run(
        employee_ids,
        month=data.month,
        year=data.year,
        frequency=data.frequency,
    )
    return PayrollBatchSummaryResponse.from_batch(summary)


# ===========================================
# BATCH SUMMARIES
# ===========================================

@router.get(
    "/payroll/summaries",
    response_model=List[PayrollBatchSummaryResponse],
    summary="List batch summaries",
)
async def list_batch_summaries(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session),
):
    summaries = await PayrollSummaryService(db).list_summaries(month=month, year=year)
    return [PayrollBatchSummaryResponse.model_validate(s) for s in summaries]


@router.get(
    "/payroll/summaries/{batch_id}",
    response_model=PayrollBatchSummaryResponse,
    summary="Get a batch summary",
)
async def get_batch_summary(
    batch_id: str = Path(..., description="Batch identifier"),
    db: AsyncSession = Depends(get_async_session),
):
    summary = await PayrollSummaryService(db).get_summary(batch_id)
    return PayrollBatchSummaryResponse.model_validate(summary)


# ===========================================
# PAYROLL RECORDS
# ===========================================

@router.get(
    "/payroll/employee/{employee_id}/history",
    response_model=List[PayrollRecordSummary],
    summary="Employee payroll history",
    description="Payroll records of one employee, newest period first.",
)
async def get_employee_payroll_history(
    employee_id: uuid.UUID = Path(..., description="Employee ID"),
    limit: Optional[int] = Query(None, ge=1, le=120),
    service: PayrollService = Depends(get_payroll_service),
):
    records = await service.get_employee_payroll_history(employee_id, limit=limit)
    return [PayrollRecordSummary.model_validate(r) for r in records]


@router.get(
    "/payroll/{payroll_id}",
    response_model=PayrollRecordResponse,
    summary="Get a payroll record",
)
async def get_payroll(
    payroll_id: uuid.UUID = Path(..., description="Payroll record ID"),
    service: PayrollService = Depends(get_payroll_service),
):
    record = await service.get_payroll(payroll_id)
    return PayrollRecordResponse.from_record(record)


@router.patch(
    "/payroll/{payroll_id}/status",
    response_model=PayrollRecordResponse,
    summary="Update payroll status",
    description="Moves a payroll record through the approval workflow.",
)
async def update_payroll_status(
    data: PayrollStatusUpdate,
    payroll_id: uuid.UUID = Path(..., description="Payroll record ID"),
    service: PayrollService = Depends(get_payroll_service),
):
    record = await service.update_status(
        payroll_id,
        data.status,
        user_id=data.user_id,
        remarks=data.remarks,
    )
    return PayrollRecordResponse.from_record(record)


# ===========================================
# SALARY STRUCTURE
# ===========================================

@router.get(
    "/salary-grades/{grade_id}",
    response_model=SalaryGradeResponse,
    summary="Get a salary grade",
)
async def get_salary_grade(
    grade_id: uuid.UUID = Path(..., description="Salary grade ID"),
    db: AsyncSession = Depends(get_async_session),
):
    grade = await SalaryStructureService(db).get_salary_grade(grade_id)
    return SalaryGradeResponse.model_validate(grade)


@router.get(
    "/salary-grades/{grade_id}/breakdown",
    response_model=SalaryBreakdownResponse,
    summary="Preview a grade's salary",
)
async def get_salary_breakdown(
    grade_id: uuid.UUID = Path(..., description="Salary grade ID"),
    frequency: PayrollFrequencyEnum = Query("monthly"),
    db: AsyncSession = Depends(get_async_session),
):
    breakdown = await SalaryStructureService(db).calculate_total_salary(grade_id, frequency)
    return SalaryBreakdownResponse(
        basic_salary=breakdown.basic_salary,
        total_allowances=breakdown.total_allowances,
        gross_salary=breakdown.gross_salary,
        components=[
            {
                "name": item.name,
                "amount": str(item.amount),
                "component_id": str(item.source_id) if item.source_id else None,
                **item.details,
            }
            for item in breakdown.components
        ],
    )


# ===========================================
# DEDUCTIONS
# ===========================================

@router.post(
    "/deductions/statutory/seed",
    response_model=MessageResponse,
    summary="Seed statutory deductions",
    description="Creates PAYE, Pension and NHF when missing. Safe to call repeatedly.",
)
async def seed_statutory_deductions(
    db: AsyncSession = Depends(get_async_session),
    config: PayrollRunConfig = Depends(get_run_config),
):
    service = DeductionService(db, pension_rate=config.pension_rate, nhf_rate=config.nhf_rate)
    seeded = await service.seed_statutory_deductions()
    return MessageResponse(
        message=f"Statutory deductions ready: {', '.join(d.name for d in seeded)}",
    )


@router.put(
    "/deductions/{deduction_id}/tax-brackets",
    response_model=DeductionResponse,
    summary="Replace tax brackets",
)
async def update_tax_brackets(
    data: TaxBracketsUpdate,
    deduction_id: uuid.UUID = Path(..., description="Deduction ID"),
    db: AsyncSession = Depends(get_async_session),
):
    deduction = await DeductionService(db).update_tax_brackets(
        deduction_id,
        [bracket.model_dump() for bracket in data.tax_brackets],
    )
    return DeductionResponse.model_validate(deduction)


@router.post(
    "/deductions/{deduction_id}/assignments",
    response_model=List[EmployeeDeductionResponse],
    summary="Assign a voluntary deduction",
    description="Assigns the deduction to each employee; already assigned employees are unchanged.",
)
async def assign_deduction(
    data: DeductionAssignmentRequest,
    deduction_id: uuid.UUID = Path(..., description="Deduction ID"),
    db: AsyncSession = Depends(get_async_session),
):
    assignments = await DeductionService(db).assign_deduction(deduction_id, data.employee_ids)
    return [EmployeeDeductionResponse.model_validate(a) for a in assignments]


@router.post(
    "/deductions/{deduction_id}/assignments/remove",
    response_model=MessageResponse,
    summary="Remove a voluntary deduction from employees",
)
async def remove_deduction(
    data: DeductionAssignmentRequest,
    deduction_id: uuid.UUID = Path(..., description="Deduction ID"),
    db: AsyncSession = Depends(get_async_session),
):
    removed = await DeductionService(db).remove_deduction(
        deduction_id, data.employee_ids, reason=data.reason,
    )
    return MessageResponse(message=f"Deduction removed from {removed} employee(s)")


@router.get(
    "/employees/{employee_id}/deductions",
    response_model=List[EmployeeDeductionResponse],
    summary="List an employee's voluntary deductions",
)
async def list_employee_deductions(
    employee_id: uuid.UUID = Path(..., description="Employee ID"),
    include_removed: bool = Query(False),
    db: AsyncSession = Depends(get_async_session),
):
    assignments = await DeductionService(db).list_employee_deductions(employee_id, include_removed)
    return [EmployeeDeductionResponse.model_validate(a) for a in assignments]
