"""
Admissions Admin Router

Registrar endpoints for reviewing documents, signing off applicants and
maintaining requirement definitions and academic periods.
All endpoints require a registrar or admin token.

Endpoints:
- PATCH /admin/admissions/documents/{slot_id}/status - Evaluator review
- PATCH /admin/admissions/documents/{slot_id}/remarks - Set remarks only
- POST /admin/admissions/applicants/{number}/submit - Confirm every slot
- POST /admin/admissions/applicants/{number}/unsubmit - Revert confirmation
- PUT /admin/admissions/applicants/{number}/missing-documents - Set missing labels
- DELETE /admin/admissions/applicants/{number} - Delete applicant and files
- GET /admin/admissions/applicants/{number}/events - Audit trail
- POST /admin/admissions/requirements - Create requirement definition
- PATCH /admin/admissions/requirements/{id} - Update requirement definition
- GET /admin/admissions/periods - List academic periods
- POST /admin/admissions/periods - Create academic period
- POST /admin/admissions/periods/{id}/activate - Activate academic period
- GET /admin/admissions/consistency - Scan slots against stored files
- POST /admin/admissions/consistency/repair - Repair dangling slots
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Actor, get_current_registrar
from app.core.database import get_db
from app.core.rate_limit import enforce_rate_limit
from app.core.storage import BlobStore, get_blob_store
from app.modules.admissions import jobs, lifecycle, service
from app.modules.admissions.errors import AdmissionError
from app.modules.admissions.router import handle_admission_error, internal_error
from app.modules.admissions.schemas import (
    AcademicPeriodCreate,
    AcademicPeriodResponse,
    ApplicantDeletedResponse,
    AuditEventListResponse,
    AuditEventResponse,
    BulkSlotsResponse,
    ConsistencyRepairResponse,
    ConsistencyReport,
    DocumentSlotResponse,
    MissingDocumentsRequest,
    RequirementCreate,
    RequirementResponse,
    RequirementUpdate,
    SlotRemarksUpdateRequest,
    SlotStatusUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_REVIEW = (60, 60)  # 60 reviews per minute
RATE_LIMIT_BULK = (10, 60)  # 10 submit/unsubmit per minute
RATE_LIMIT_DELETE = (10, 60)  # 10 applicant deletions per minute


async def _check_registrar_rate_limit(
    registrar: Actor,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    await enforce_rate_limit(f"registrar:{action}:{registrar.id}", limit, window_seconds)


def _bulk_response(applicant_number: str, slots, message: str) -> BulkSlotsResponse:
    return BulkSlotsResponse(
        applicant_number=applicant_number,
        slots=[DocumentSlotResponse.model_validate(slot) for slot in slots],
        message=message,
    )


# ============================================
# Document review
# ============================================


@router.patch(
    "/documents/{slot_id}/status",
    response_model=DocumentSlotResponse,
    summary="Review Document",
    description="""
Record an evaluator's review of one document slot.

Allowed target statuses: `under_review`, `verified`, `rejected`.
""",
)
async def update_slot_status(
    slot_id: int,
    data: SlotStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> DocumentSlotResponse:
    await _check_registrar_rate_limit(registrar, "review", *RATE_LIMIT_REVIEW)

    try:
        slot = await lifecycle.update_slot_status(
            db,
            slot_id,
            data.status,
            registrar,
            remarks=data.remarks,
            document_status=data.document_status,
        )
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"reviewing slot {slot_id}") from e

    return DocumentSlotResponse.model_validate(slot)


@router.patch(
    "/documents/{slot_id}/remarks",
    response_model=DocumentSlotResponse,
    summary="Update Document Remarks",
)
async def update_slot_remarks(
    slot_id: int,
    data: SlotRemarksUpdateRequest,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> DocumentSlotResponse:
    """Free-text remarks; the slot status is not changed."""
    try:
        slot = await lifecycle.update_slot_remarks(
            db, slot_id, data.remarks, registrar, document_status=data.document_status
        )
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"updating remarks on slot {slot_id}") from e

    return DocumentSlotResponse.model_validate(slot)


# ============================================
# Registrar sign-off
# ============================================


@router.post(
    "/applicants/{applicant_number}/submit",
    response_model=BulkSlotsResponse,
    summary="Confirm All Documents",
    description="""
Registrar sign-off for every document slot of one applicant.

All slots move to `registrar_confirmed` with `registrar_status`,
`submitted_documents` set and `missing_documents` cleared, in one update.
""",
)
async def submit_all(
    applicant_number: str,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> BulkSlotsResponse:
    await _check_registrar_rate_limit(registrar, "submit", *RATE_LIMIT_BULK)

    try:
        slots = await lifecycle.submit_all(db, applicant_number, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"submitting documents for {applicant_number}") from e

    return _bulk_response(applicant_number, slots, "All documents confirmed by the registrar.")


@router.post(
    "/applicants/{applicant_number}/unsubmit",
    response_model=BulkSlotsResponse,
    summary="Revert Document Confirmation",
)
async def unsubmit_all(
    applicant_number: str,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> BulkSlotsResponse:
    """Revert registrar sign-off on every slot. Safe to repeat."""
    await _check_registrar_rate_limit(registrar, "unsubmit", *RATE_LIMIT_BULK)

    try:
        slots = await lifecycle.unsubmit_all(db, applicant_number, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"unsubmitting documents for {applicant_number}") from e

    return _bulk_response(applicant_number, slots, "Registrar confirmation reverted.")


@router.put(
    "/applicants/{applicant_number}/missing-documents",
    response_model=BulkSlotsResponse,
    summary="Set Missing Documents",
)
async def set_missing_documents(
    applicant_number: str,
    data: MissingDocumentsRequest,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> BulkSlotsResponse:
    try:
        slots = await lifecycle.set_missing_documents(
            db, applicant_number, data.labels, registrar
        )
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"setting missing documents for {applicant_number}") from e

    return _bulk_response(applicant_number, slots, "Missing documents updated.")


@router.delete(
    "/applicants/{applicant_number}",
    response_model=ApplicantDeletedResponse,
    summary="Delete Applicant",
    description="""
Delete an applicant together with their document slots and stored files.
The audit trail for the applicant number is kept.
""",
)
async def delete_applicant(
    applicant_number: str,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    registrar: Actor = Depends(get_current_registrar),
) -> ApplicantDeletedResponse:
    await _check_registrar_rate_limit(registrar, "delete", *RATE_LIMIT_DELETE)

    try:
        removed = await service.delete_applicant(db, store, applicant_number, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"deleting applicant {applicant_number}") from e

    return ApplicantDeletedResponse(
        applicant_number=applicant_number,
        files_removed=removed,
        message=f"Applicant {applicant_number} deleted.",
    )


@router.get(
    "/applicants/{applicant_number}/events",
    response_model=AuditEventListResponse,
    summary="Applicant Audit Trail",
)
async def list_audit_events(
    applicant_number: str,
    limit: int = Query(100, ge=1, le=500, description="Maximum events to return"),
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> AuditEventListResponse:
    events = await service.list_audit_events(db, applicant_number, limit=limit)
    return AuditEventListResponse(
        applicant_number=applicant_number,
        events=[AuditEventResponse.model_validate(event) for event in events],
    )


# ============================================
# Requirement definitions
# ============================================


@router.post(
    "/requirements",
    response_model=RequirementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Requirement",
)
async def create_requirement(
    data: RequirementCreate,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> RequirementResponse:
    try:
        requirement = await service.create_requirement(db, data, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, "creating requirement") from e

    return RequirementResponse.model_validate(requirement)


@router.patch(
    "/requirements/{requirement_id}",
    response_model=RequirementResponse,
    summary="Update Requirement",
)
async def update_requirement(
    requirement_id: int,
    data: RequirementUpdate,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> RequirementResponse:
    try:
        requirement = await service.update_requirement(db, requirement_id, data, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"updating requirement {requirement_id}") from e

    return RequirementResponse.model_validate(requirement)


# ============================================
# Academic periods
# ============================================


@router.get(
    "/periods",
    response_model=list[AcademicPeriodResponse],
    summary="List Academic Periods",
)
async def list_periods(
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> list[AcademicPeriodResponse]:
    periods = await service.list_periods(db)
    return [AcademicPeriodResponse.model_validate(period) for period in periods]


@router.post(
    "/periods",
    response_model=AcademicPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Academic Period",
)
async def create_period(
    data: AcademicPeriodCreate,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> AcademicPeriodResponse:
    try:
        period = await service.create_period(db, data, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, "creating academic period") from e

    return AcademicPeriodResponse.model_validate(period)


@router.post(
    "/periods/{period_id}/activate",
    response_model=AcademicPeriodResponse,
    summary="Activate Academic Period",
)
async def activate_period(
    period_id: int,
    db: AsyncSession = Depends(get_db),
    registrar: Actor = Depends(get_current_registrar),
) -> AcademicPeriodResponse:
    """New applicant numbers are minted against the active period."""
    try:
        period = await service.activate_period(db, period_id, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"activating period {period_id}") from e

    return AcademicPeriodResponse.model_validate(period)


# ============================================
# Consistency
# ============================================


@router.get(
    "/consistency",
    response_model=ConsistencyReport,
    summary="Scan Stored Files",
    description="Report slots whose file is missing and stored files no slot references.",
)
async def scan_consistency(
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    registrar: Actor = Depends(get_current_registrar),
) -> ConsistencyReport:
    try:
        return await jobs.scan_consistency(db, store)
    except Exception as e:
        raise internal_error(e, "scanning document consistency") from e


@router.post(
    "/consistency/repair",
    response_model=ConsistencyRepairResponse,
    summary="Repair Dangling Slots",
    description="Clear file references whose file is missing. Orphan files are only reported.",
)
async def repair_consistency(
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    registrar: Actor = Depends(get_current_registrar),
) -> ConsistencyRepairResponse:
    try:
        return await jobs.repair_dangling_slots(db, store, registrar)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, "repairing dangling slots") from e
