"""
Admissions Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Re-use enums from models
from app.modules.admissions.models import AuditEventType, Campus, SlotStatus

SHORT_LABEL_PATTERN = r"^[A-Za-z0-9]+$"


# ============================================
# Registration
# ============================================


class ApplicantRegistration(BaseModel):
    """Request body for POST /admissions/applicants."""

    first_name: str = Field(..., min_length=1, max_length=100)
    middle_name: str | None = Field(None, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr | None = None
    mobile: str | None = Field(None, max_length=20)
    campus: Campus


class RequirementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    short_label: str
    category: str
    is_verifiable: bool


class DocumentSlotResponse(BaseModel):
    """One applicant's state for one requirement."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    requirement: RequirementResponse
    status: SlotStatus
    file_path: str | None = None
    original_name: str | None = None
    remarks: str | None = None
    document_status: str | None = None
    registrar_status: bool
    submitted_documents: bool
    missing_documents: list[str] = Field(default_factory=list)
    last_updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ApplicantRegistrationResponse(BaseModel):
    """Response for POST /admissions/applicants."""

    person_id: UUID
    applicant_number: str
    campus: Campus
    slots: list[DocumentSlotResponse]
    message: str


class ApplicantDocumentsResponse(BaseModel):
    """Slots of one applicant, in insertion order."""

    person_id: UUID
    applicant_number: str
    campus: Campus
    registrar_status: bool = Field(
        ..., description="True once the registrar has confirmed every slot"
    )
    slots: list[DocumentSlotResponse]


class RequirementListResponse(BaseModel):
    requirements: list[RequirementResponse]


# ============================================
# Registrar / evaluator
# ============================================


class SlotStatusUpdateRequest(BaseModel):
    """Evaluator review of one slot."""

    status: SlotStatus = Field(..., description="under_review, verified or rejected")
    remarks: str | None = Field(None, max_length=2000)
    document_status: str | None = Field(None, max_length=50)


class SlotRemarksUpdateRequest(BaseModel):
    remarks: str | None = Field(None, max_length=2000)
    document_status: str | None = Field(None, max_length=50)


class MissingDocumentsRequest(BaseModel):
    labels: list[str] = Field(
        default_factory=list,
        description="Short labels of the requirements still missing",
        json_schema_extra={"example": ["Form138", "GoodMoral"]},
    )


class BulkSlotsResponse(BaseModel):
    """Result of a bulk registrar transition."""

    applicant_number: str
    slots: list[DocumentSlotResponse]
    message: str


class ApplicantDeletedResponse(BaseModel):
    applicant_number: str
    files_removed: int
    message: str


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: AuditEventType
    message: str
    applicant_number: str | None = None
    actor_name: str
    actor_email: str | None = None
    created_at: datetime


class AuditEventListResponse(BaseModel):
    applicant_number: str
    events: list[AuditEventResponse]


# ============================================
# Requirement definitions
# ============================================


class RequirementCreate(BaseModel):
    """
    Request body for POST /admin/admissions/requirements.

    When short_label is omitted it is derived once from the description.
    """

    description: str = Field(..., min_length=1, max_length=255)
    short_label: str | None = Field(
        None, min_length=1, max_length=50, pattern=SHORT_LABEL_PATTERN
    )
    category: str = Field("regular", min_length=1, max_length=50)
    is_verifiable: bool = True


class RequirementUpdate(BaseModel):
    """The short label is part of stored filenames and cannot be changed."""

    description: str | None = Field(None, min_length=1, max_length=255)
    category: str | None = Field(None, min_length=1, max_length=50)
    is_verifiable: bool | None = None


# ============================================
# Academic periods
# ============================================


class AcademicPeriodCreate(BaseModel):
    year: int = Field(..., ge=2000, le=9999)
    semester_code: str = Field(..., min_length=1, max_length=4, pattern=r"^[0-9A-Za-z]+$")
    semester_description: str | None = Field(None, max_length=100)
    activate: bool = False


class AcademicPeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    year: int
    semester_code: str
    semester_description: str | None = None
    is_active: bool


# ============================================
# Consistency sweep
# ============================================


class DanglingSlot(BaseModel):
    slot_id: int
    applicant_number: str | None = None
    file_path: str


class ConsistencyReport(BaseModel):
    """Slots whose file is missing, and stored files no slot references."""

    dangling_slots: list[DanglingSlot]
    orphan_files: list[str]
    checked_slots: int
    checked_files: int


class ConsistencyRepairResponse(BaseModel):
    repaired_slots: list[DanglingSlot]
    orphan_files: list[str]
