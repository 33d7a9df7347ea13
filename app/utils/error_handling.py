"""
Error Handling Module for Paymaster HR

This module provides centralized error handling with:
- Custom exception hierarchy for the payroll engine
- Error categories used by the batch runner to classify outcomes
- Standardized error responses
- Database error handling
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("paymaster.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_PAY_PERIOD = "INVALID_PAY_PERIOD"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    SALARY_GRADE_NOT_FOUND = "SALARY_GRADE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    DUPLICATE_PAYROLL = "DUPLICATE_PAYROLL"

    # Preconditions (422)
    MISSING_DEPARTMENT = "MISSING_DEPARTMENT"
    EMPLOYEE_INACTIVE = "EMPLOYEE_INACTIVE"
    ONBOARDING_INCOMPLETE = "ONBOARDING_INCOMPLETE"

    # Business Logic Errors (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    CANNOT_MODIFY = "CANNOT_MODIFY"
    CANNOT_DELETE = "CANNOT_DELETE"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    ALREADY_CLAIMED = "ALREADY_CLAIMED"

    # Invariant violations (422)
    INVALID_BASIC_SALARY = "INVALID_BASIC_SALARY"
    INVALID_TAX_BRACKETS = "INVALID_TAX_BRACKETS"
    CALCULATION_ERROR = "CALCULATION_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class ErrorCategory(str, Enum):
    """
    Broad error class.

    The batch runner reports PRECONDITION errors as skipped employees and
    everything else as failed.
    """
    VALIDATION = "validation"
    PRECONDITION = "precondition"
    NOT_FOUND = "not_found"
    INVARIANT = "invariant"
    UNEXPECTED = "unexpected"


class AppException(Exception):
    """Base exception for all application exceptions"""

    category: ErrorCategory = ErrorCategory.UNEXPECTED

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def with_context(self, **context: Any) -> "AppException":
        """Attach context (employee id, period, ...) without replacing the error."""
        for key, value in context.items():
            if value is not None:
                self.details.setdefault(key, str(value) if isinstance(value, UUID) else value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidPayPeriodException(ValidationException):
    """Month/year/frequency combination is not a valid pay period"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_PAY_PERIOD,
            details=details,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    category = ErrorCategory.NOT_FOUND

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class EmployeeNotFoundError(NotFoundException):
    """Employee not found"""

    def __init__(self, employee_id: Union[str, UUID]):
        super().__init__(
            resource_type="Employee",
            resource_id=employee_id,
            code=ErrorCode.EMPLOYEE_NOT_FOUND,
        )


class SalaryGradeNotFoundError(NotFoundException):
    """Salary grade not found (by id or by grade level)"""

    def __init__(
        self,
        grade_id: Optional[Union[str, UUID]] = None,
        level: Optional[str] = None,
    ):
        message = None
        if grade_id is None and level is not None:
            message = f"No active salary grade found for level '{level}'"
        super().__init__(
            resource_type="SalaryGrade",
            resource_id=grade_id,
            message=message,
            code=ErrorCode.SALARY_GRADE_NOT_FOUND,
        )
        if level is not None:
            self.details["level"] = level


class ConflictException(AppException):
    """Resource conflict exception"""

    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
        category: Optional[ErrorCategory] = None,
    ):
        if category is not None:
            self.category = category
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class DuplicateEntryException(ConflictException):
    """Duplicate entry (unique business key)"""

    def __init__(self, resource_type: str, field: str, value: Any):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"resource_type": resource_type, "field": field, "value": str(value)},
        )


class DuplicatePayrollError(ConflictException):
    """A payroll record already exists for the employee and period"""

    category = ErrorCategory.PRECONDITION

    def __init__(self, employee_id: Union[str, UUID], month: int, year: int):
        super().__init__(
            message=f"Payroll already exists for employee {employee_id} for {month}/{year}",
            code=ErrorCode.DUPLICATE_PAYROLL,
            details={"employee_id": str(employee_id), "month": month, "year": year},
        )


class AllowanceAlreadyClaimedError(ConflictException):
    """A personal allowance or bonus was consumed by another payroll"""

    category = ErrorCategory.PRECONDITION

    def __init__(self, kind: str, item_id: Union[str, UUID]):
        super().__init__(
            message=f"{kind} {item_id} has already been applied to a payroll",
            code=ErrorCode.ALREADY_CLAIMED,
            details={"kind": kind, "item_id": str(item_id)},
        )


# ============================================================================
# Precondition Exceptions
# ============================================================================

class PreconditionException(AppException):
    """Expected, benign reason an employee cannot be paid this period"""

    category = ErrorCategory.PRECONDITION

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class MissingDepartmentError(PreconditionException):
    """Employee has no department assigned"""

    def __init__(self, employee_id: Union[str, UUID]):
        super().__init__(
            code=ErrorCode.MISSING_DEPARTMENT,
            message=f"Employee {employee_id} has no department assigned",
            details={"employee_id": str(employee_id)},
        )


class EmployeeInactiveError(PreconditionException):
    """Employee is not active"""

    def __init__(self, employee_id: Union[str, UUID], employment_status: Optional[str] = None):
        super().__init__(
            code=ErrorCode.EMPLOYEE_INACTIVE,
            message=f"Employee {employee_id} is not active",
            details={"employee_id": str(employee_id), "employment_status": employment_status},
        )


class OnboardingIncompleteError(PreconditionException):
    """Employee has not completed onboarding"""

    def __init__(self, employee_id: Union[str, UUID]):
        super().__init__(
            code=ErrorCode.ONBOARDING_INCOMPLETE,
            message=f"Employee {employee_id} has not completed onboarding",
            details={"employee_id": str(employee_id)},
        )


# ============================================================================
# Business Rule Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation"""

    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class StatutoryDeductionProtectedError(BusinessRuleException):
    """Statutory deductions cannot be edited, deactivated or deleted this way"""

    def __init__(self, name: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Statutory deduction '{name}' cannot be modified",
            code=ErrorCode.CANNOT_MODIFY,
            details={"deduction": name},
        )


class DeductionInUseError(BusinessRuleException):
    """Voluntary deduction referenced by payroll still in progress"""

    def __init__(self, deduction_id: Union[str, UUID], payroll_count: int):
        super().__init__(
            message=(
                f"Deduction {deduction_id} is referenced by {payroll_count} "
                "pending or processing payroll record(s)"
            ),
            code=ErrorCode.CANNOT_DELETE,
            details={"deduction_id": str(deduction_id), "payroll_count": payroll_count},
        )


class InvalidStatusTransitionError(BusinessRuleException):
    """Payroll status change not allowed by the approval workflow"""

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot change payroll status from {current} to {requested}",
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            details={"current_status": current, "requested_status": requested},
        )


# ============================================================================
# Invariant Exceptions
# ============================================================================

class InvariantException(AppException):
    """Data that must never reach persistence"""

    category = ErrorCategory.INVARIANT

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            original_error=original_error,
        )


class InvalidBasicSalaryError(InvariantException):
    """Basic salary must be positive"""

    def __init__(self, basic_salary: Any, level: Optional[str] = None):
        super().__init__(
            code=ErrorCode.INVALID_BASIC_SALARY,
            message=f"Basic salary must be greater than zero (got {basic_salary})",
            details={"basic_salary": str(basic_salary), "level": level},
        )


class InvalidTaxBracketsError(InvariantException):
    """Tax brackets are unordered, overlapping or otherwise malformed"""

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(
            code=ErrorCode.INVALID_TAX_BRACKETS,
            message=message,
            details={"bracket_index": index} if index is not None else None,
        )


class CalculationError(InvariantException):
    """Payroll figures failed a consistency check"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=ErrorCode.CALCULATION_ERROR,
            message=message,
            details=details,
            original_error=original_error,
        )


def error_category(exc: BaseException) -> ErrorCategory:
    """Category of any exception; non-application errors are unexpected."""
    if isinstance(exc, AppException):
        return exc.category
    return ErrorCategory.UNEXPECTED


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
