"""
Admissions Errors

Every failure carries a machine-readable error_code, a human message and
the HTTP status the routers translate it to.
"""

from uuid import UUID


class AdmissionError(Exception):
    """Base exception for admissions errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


# ============================================
# Validation (no state mutated)
# ============================================


class ValidationError(AdmissionError):
    """A required field is missing or a reference is unusable."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR", status_code: int = 400):
        super().__init__(message=message, error_code=error_code, status_code=status_code)


class MissingFileError(ValidationError):
    def __init__(self):
        super().__init__("No file was supplied for upload.", error_code="MISSING_FILE")


class MissingIdentityError(ValidationError):
    def __init__(self, person_id: UUID | None = None):
        message = (
            f"Person {person_id} has no applicant number yet."
            if person_id
            else "Applicant has no applicant number yet."
        )
        super().__init__(message, error_code="MISSING_IDENTITY")


class NoActivePeriodError(ValidationError):
    def __init__(self):
        super().__init__(
            "No academic period is marked active. Activate a year and semester first.",
            error_code="NO_ACTIVE_PERIOD",
            status_code=409,
        )


class UnsupportedFileError(ValidationError):
    def __init__(self, extension: str, allowed: set[str]):
        super().__init__(
            f"File type '{extension or 'none'}' is not accepted. "
            f"Allowed types: {', '.join(sorted(allowed))}",
            error_code="UNSUPPORTED_FILE_TYPE",
            status_code=415,
        )


class FileTooLargeError(ValidationError):
    def __init__(self, max_bytes: int):
        super().__init__(
            f"File exceeds the maximum upload size of {max_bytes // (1024 * 1024)} MB.",
            error_code="FILE_TOO_LARGE",
            status_code=413,
        )


# ============================================
# Not found
# ============================================


class NotFoundError(AdmissionError):
    def __init__(self, message: str, error_code: str = "NOT_FOUND"):
        super().__init__(message=message, error_code=error_code, status_code=404)


class PersonNotFoundError(NotFoundError):
    def __init__(self, person_id: UUID):
        super().__init__(f"Person {person_id} not found", error_code="PERSON_NOT_FOUND")


class ApplicantNotFoundError(NotFoundError):
    def __init__(self, applicant_number: str):
        super().__init__(
            f"Applicant {applicant_number} not found", error_code="APPLICANT_NOT_FOUND"
        )


class RequirementNotFoundError(NotFoundError):
    def __init__(self, requirement_id: int):
        super().__init__(
            f"Requirement {requirement_id} not found", error_code="REQUIREMENT_NOT_FOUND"
        )


class SlotNotFoundError(NotFoundError):
    def __init__(self, slot_id: int):
        super().__init__(f"Document slot {slot_id} not found", error_code="SLOT_NOT_FOUND")


class PeriodNotFoundError(NotFoundError):
    def __init__(self, period_id: int):
        super().__init__(f"Academic period {period_id} not found", error_code="PERIOD_NOT_FOUND")


# ============================================
# Conflicts
# ============================================


class ConflictError(AdmissionError):
    def __init__(self, message: str, error_code: str = "CONFLICT"):
        super().__init__(message=message, error_code=error_code, status_code=409)


class DuplicateApplicantNumberError(ConflictError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Could not allocate a unique applicant number after {attempts} attempts. "
            "Please retry the registration.",
            error_code="DUPLICATE_APPLICANT_NUMBER",
        )


class InvalidSlotTransitionError(ConflictError):
    def __init__(self, current_status, new_status, valid_transitions):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Invalid document status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}",
            error_code="INVALID_SLOT_TRANSITION",
        )


class DuplicateRequirementError(ConflictError):
    def __init__(self, short_label: str):
        super().__init__(
            f"A requirement with short label '{short_label}' already exists.",
            error_code="DUPLICATE_REQUIREMENT",
        )


class DuplicatePeriodError(ConflictError):
    def __init__(self, year: int, semester_code: str):
        super().__init__(
            f"Academic period {year}/{semester_code} already exists.",
            error_code="DUPLICATE_PERIOD",
        )


# ============================================
# Persistence
# ============================================


class PersistenceFailureError(AdmissionError):
    """
    A database write failed and the change was rolled back.

    Stored documents are left as the database last recorded them.
    """

    def __init__(self, message: str = "The change could not be saved. Please try again."):
        super().__init__(message=message, error_code="PERSISTENCE_FAILURE", status_code=500)
