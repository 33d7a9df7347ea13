"""
Paymaster HR - Payroll Schemas

Pydantic schemas for payroll requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.deduction import DeductionCategory, DeductionType
from app.models.payroll import PayItemCategory, PayItemType
from app.models.payroll_enums import CalculationMethod, PayrollFrequency, PayrollStatus, ScopeType


# ===========================================
# ENUMS AS LITERALS
# ===========================================

PayrollFrequencyEnum = Literal["weekly", "biweekly", "monthly", "quarterly", "annual"]

PayrollStatusEnum = Literal["PENDING", "PROCESSING", "APPROVED", "PAID", "REJECTED", "FAILED"]


# ===========================================
# PAYROLL REQUESTS
# ===========================================

class PayrollCalculateRequest(BaseModel):
    """Calculate payroll for one employee."""
    employee_id: UUID
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)
    frequency: PayrollFrequencyEnum = "monthly"
    salary_grade_id: Optional[UUID] = None
    department_id: Optional[UUID] = None
    bypass_onboarding: bool = False


class PayrollBatchRequest(BaseModel):
    """Run payroll for a cohort; defaults to all active employees."""
    employee_ids: Optional[List[UUID]] = None
    department_id: Optional[UUID] = None
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)
    frequency: PayrollFrequencyEnum = "monthly"

    @model_validator(mode='after')
    def validate_cohort(self):
        if self.employee_ids is not None and not self.employee_ids:
            raise ValueError("employee_ids cannot be an empty list")
        return self


class PayrollStatusUpdate(BaseModel):
    """Approval workflow transition."""
    status: PayrollStatusEnum
    remarks: Optional[str] = Field(None, max_length=1000)
    user_id: Optional[UUID] = None


# ===========================================
# PAYROLL RESPONSES
# ===========================================

class PayrollItemResponse(BaseModel):
    """Payroll line item."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_type: PayItemType
    category: PayItemCategory
    name: str
    source_id: Optional[UUID] = None
    amount: Decimal


class EarningsBlock(BaseModel):
    allowances: Decimal
    grade_allowances: Decimal
    personal_allowances: Decimal
    bonuses: Decimal
    total_earnings: Decimal


class DeductionsBlock(BaseModel):
    paye: Decimal
    pension: Decimal
    nhf: Decimal
    statutory: Decimal
    voluntary: Decimal
    total_deductions: Decimal


class TotalsBlock(BaseModel):
    gross_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal


class PayrollRecordResponse(BaseModel):
    """Payroll record with earnings/deductions/totals groups."""
    id: UUID
    employee_id: UUID
    department_id: Optional[UUID] = None
    salary_grade_id: Optional[UUID] = None
    batch_id: Optional[str] = None
    month: int
    year: int
    frequency: str
    period_start: date
    period_end: date
    basic_salary: Decimal
    earnings: EarningsBlock
    deductions: DeductionsBlock
    totals: TotalsBlock
    status: str
    approval_history: List[Dict[str, Any]] = []
    items: List[PayrollItemResponse] = []
    processed_by_id: Optional[UUID] = None
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "PayrollRecordResponse":
        return cls(
            id=record.id,
            employee_id=record.employee_id,
            department_id=record.department_id,
            salary_grade_id=record.salary_grade_id,
            batch_id=record.batch_id,
            month=record.month,
            year=record.year,
            frequency=record.frequency.value,
            period_start=record.period_start,
            period_end=record.period_end,
            basic_salary=record.basic_salary,
            earnings=EarningsBlock(
                allowances=record.total_allowances,
                grade_allowances=record.grade_allowances,
                personal_allowances=record.personal_allowances,
                bonuses=record.total_bonuses,
                total_earnings=record.gross_earnings,
            ),
            deductions=DeductionsBlock(
                paye=record.paye_tax,
                pension=record.pension,
                nhf=record.nhf,
                statutory=record.total_statutory,
                voluntary=record.total_voluntary,
                total_deductions=record.total_deductions,
            ),
            totals=TotalsBlock(
                gross_earnings=record.gross_earnings,
                total_deductions=record.total_deductions,
                net_pay=record.net_pay,
            ),
            status=record.status.value,
            approval_history=record.approval_history or [],
            items=[PayrollItemResponse.model_validate(item) for item in record.items],
            processed_by_id=record.processed_by_id,
            approved_by_id=record.approved_by_id,
            approved_at=record.approved_at,
            paid_at=record.paid_at,
            created_at=record.created_at,
        )


class PayrollRecordSummary(BaseModel):
    """Payroll record for history lists."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    month: int
    year: int
    frequency: PayrollFrequency
    gross_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    status: PayrollStatus


# ===========================================
# BATCH SUMMARY
# ===========================================

class EmployeeOutcomeResponse(BaseModel):
    employee_id: UUID
    employee_name: Optional[str] = None
    status: str
    department_id: Optional[UUID] = None
    department_name: Optional[str] = None
    payroll_id: Optional[UUID] = None
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    reason: Optional[str] = None
    error_code: Optional[str] = None


class PayrollBatchSummaryResponse(BaseModel):
    """Batch outcome (stored PayrollSummary or a fresh run)."""
    model_config = ConfigDict(from_attributes=True)

    batch_id: str
    month: int
    year: int
    frequency: PayrollFrequency
    total_attempted: int
    processed: int
    skipped: int
    failed: int
    total_net_pay: Decimal
    total_gross_pay: Decimal
    total_deductions: Decimal
    processing_time: float
    cancelled: bool = False
    department_breakdown: Dict[str, Any] = {}
    employee_details: List[EmployeeOutcomeResponse] = []
    errors: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []

    @classmethod
    def from_batch(cls, summary) -> "PayrollBatchSummaryResponse":
        """Build from an in-memory PayrollBatchSummary."""
        return cls(
            batch_id=summary.batch_id,
            month=summary.month,
            year=summary.year,
            frequency=summary.frequency,
            total_attempted=summary.total_attempted,
            processed=summary.processed,
            skipped=summary.skipped,
            failed=summary.failed,
            total_net_pay=summary.total_net_pay,
            total_gross_pay=summary.total_gross_pay,
            total_deductions=summary.total_deductions,
            processing_time=summary.processing_time,
            cancelled=summary.cancelled,
            department_breakdown=summary.department_breakdown(),
            employee_details=[o.to_dict() for o in summary.employee_details],
            errors=summary.errors,
            warnings=summary.warnings,
        )


# ===========================================
# SALARY STRUCTURE
# ===========================================

class SalaryComponentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    calculation_method: CalculationMethod
    value: Decimal
    is_active: bool


class SalaryGradeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    level: str
    name: Optional[str] = None
    basic_salary: Decimal
    department_id: Optional[UUID] = None
    is_active: bool
    components: List[SalaryComponentResponse] = []


class SalaryBreakdownResponse(BaseModel):
    """Grade salary preview."""
    basic_salary: Decimal
    total_allowances: Decimal
    gross_salary: Decimal
    components: List[Dict[str, Any]]


# ===========================================
# DEDUCTIONS
# ===========================================

class TaxBracketSchema(BaseModel):
    min: Decimal = Field(..., ge=0)
    max: Optional[Decimal] = None
    rate: Decimal = Field(..., ge=0, le=100)


class TaxBracketsUpdate(BaseModel):
    tax_brackets: List[TaxBracketSchema] = Field(..., min_length=1)


class DeductionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    deduction_type: DeductionType
    category: DeductionCategory
    calculation_method: CalculationMethod
    value: Decimal
    tax_brackets: Optional[List[Dict[str, Any]]] = None
    scope: ScopeType
    department_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    grade_level: Optional[str] = None
    is_mandatory: bool
    is_active: bool


class DeductionAssignmentRequest(BaseModel):
    """Employees to add to or remove from a voluntary deduction."""
    employee_ids: List[UUID] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500, description="Recorded on removal")


class EmployeeDeductionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    deduction_id: UUID
    is_active: bool
    assigned_at: datetime
    removed_at: Optional[datetime] = None
    removal_reason: Optional[str] = None


# ===========================================
# COMMON RESPONSES
# ===========================================

class MessageResponse(BaseModel):
    """Generic message response."""
    message: str
    success: bool = True
