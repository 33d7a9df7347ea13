"""
Paymaster HR - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.payroll import (
    # Requests
    PayrollCalculateRequest,
    PayrollBatchRequest,
    PayrollStatusUpdate,
    TaxBracketsUpdate,
    DeductionAssignmentRequest,
    # Responses
    PayrollRecordResponse,
    PayrollRecordSummary,
    PayrollBatchSummaryResponse,
    SalaryGradeResponse,
    SalaryBreakdownResponse,
    DeductionResponse,
    EmployeeDeductionResponse,
    MessageResponse,
)

__all__ = [
    "PayrollCalculateRequest",
    "PayrollBatchRequest",
    "PayrollStatusUpdate",
    "TaxBracketsUpdate",
    "DeductionAssignmentRequest",
    "PayrollRecordResponse",
    "PayrollRecordSummary",
    "PayrollBatchSummaryResponse",
    "SalaryGradeResponse",
    "SalaryBreakdownResponse",
    "DeductionResponse",
    "EmployeeDeductionResponse",
    "MessageResponse",
]
