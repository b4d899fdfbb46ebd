"""
Admissions Router

Applicant-facing endpoints: registration, document listing, upload and
deletion.

Endpoints:
- POST /admissions/applicants - Register and receive an applicant number
- GET /admissions/applicants/{person_id}/documents - List document slots
- POST /admissions/applicants/{person_id}/documents/{requirement_id} - Upload a document
- DELETE /admissions/documents/{slot_id} - Delete an uploaded document
- GET /admissions/requirements - List requirement definitions

A Bearer token is optional and only used to attribute the action; without
one the action is recorded against the system actor.
"""

import logging
from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Actor, get_current_actor
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import enforce_rate_limit
from app.core.storage import BlobStore, get_blob_store
from app.modules.admissions import lifecycle, service
from app.modules.admissions.errors import AdmissionError
from app.modules.admissions.schemas import (
    ApplicantDocumentsResponse,
    ApplicantRegistration,
    ApplicantRegistrationResponse,
    DocumentSlotResponse,
    RequirementListResponse,
    RequirementResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_REGISTER = (10, 60)  # 10 registrations per minute per caller
RATE_LIMIT_UPLOAD = (30, 60)  # 30 uploads per minute per person


def handle_admission_error(e: AdmissionError) -> NoReturn:
    """Convert admissions errors to HTTPExceptions."""
    if e.status_code >= 500:
        logger.error(f"{e.error_code}: {e.message}")
    else:
        logger.warning(f"{e.error_code}: {e.message}")
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def internal_error(e: Exception, context: str) -> HTTPException:
    logger.exception(f"Error {context}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


@router.post(
    "/applicants",
    response_model=ApplicantRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Applicant",
    description="""
Register an applicant and assign an applicant number.

The number has the form `{year}{semesterCode}{sequence}` with a five-digit
sequence, e.g. `2025100007` for the 7th applicant of 2025, semester 1.
Empty document slots are created for every requirement of the chosen campus.
""",
    responses={
        409: {"description": "No active academic period, or number allocation kept colliding"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def register_applicant(
    data: ApplicantRegistration,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ApplicantRegistrationResponse:
    await enforce_rate_limit(f"register:{actor.id or 'anonymous'}", *RATE_LIMIT_REGISTER)

    try:
        registration = await service.register_applicant(db, data, actor)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, "registering applicant") from e

    return ApplicantRegistrationResponse(
        person_id=registration.person.id,
        applicant_number=registration.applicant.applicant_number,
        campus=registration.applicant.campus,
        slots=[DocumentSlotResponse.model_validate(slot) for slot in registration.slots],
        message=f"Registration received. Your applicant number is "
        f"{registration.applicant.applicant_number}.",
    )


@router.get(
    "/applicants/{person_id}/documents",
    response_model=ApplicantDocumentsResponse,
    summary="List Applicant Documents",
)
async def list_applicant_documents(
    person_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApplicantDocumentsResponse:
    """Document slots of an applicant in the order they were created."""
    try:
        documents = await service.get_applicant_documents(db, person_id)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"listing documents for person {person_id}") from e

    slots = [DocumentSlotResponse.model_validate(slot) for slot in documents.slots]
    return ApplicantDocumentsResponse(
        person_id=person_id,
        applicant_number=documents.applicant.applicant_number,
        campus=documents.applicant.campus,
        registrar_status=bool(slots) and all(slot.registrar_status for slot in slots),
        slots=slots,
    )


@router.post(
    "/applicants/{person_id}/documents/{requirement_id}",
    response_model=DocumentSlotResponse,
    summary="Upload Requirement Document",
    description="""
Upload (or replace) the document for one requirement.

The file is stored as `{applicantNumber}_{shortLabel}_{year}{ext}` and any
previous file for the slot is removed. Uploads into a slot the registrar
has confirmed are refused until the registrar unsubmits.
""",
    responses={
        400: {"description": "Missing file or applicant has no applicant number"},
        404: {"description": "Person or requirement not found"},
        409: {"description": "Slot is registrar-confirmed"},
        413: {"description": "File too large"},
        415: {"description": "File type not accepted"},
        500: {"description": "File stored but the record could not be saved"},
    },
)
async def upload_document(
    person_id: UUID,
    requirement_id: int,
    file: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(get_current_actor),
) -> DocumentSlotResponse:
    await enforce_rate_limit(f"upload:{person_id}", *RATE_LIMIT_UPLOAD)

    data = b""
    original_name = ""
    if file is not None:
        # One byte over the limit is enough to reject the upload
        data = await file.read(settings.max_upload_size_bytes + 1)
        original_name = file.filename or ""

    try:
        slot = await lifecycle.upload_document(
            db,
            store,
            person_id=person_id,
            requirement_id=requirement_id,
            data=data,
            original_name=original_name,
            actor=actor,
        )
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"uploading requirement {requirement_id} for {person_id}") from e

    return DocumentSlotResponse.model_validate(slot)


@router.delete(
    "/documents/{slot_id}",
    response_model=DocumentSlotResponse,
    summary="Delete Uploaded Document",
)
async def delete_document(
    slot_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(get_current_actor),
) -> DocumentSlotResponse:
    """Remove a slot's stored file and return the slot to empty."""
    try:
        slot = await lifecycle.delete_document(db, store, slot_id, actor)
    except AdmissionError as e:
        handle_admission_error(e)
    except Exception as e:
        raise internal_error(e, f"deleting document on slot {slot_id}") from e

    return DocumentSlotResponse.model_validate(slot)


@router.get(
    "/requirements",
    response_model=RequirementListResponse,
    summary="List Requirement Definitions",
)
async def list_requirements(
    db: AsyncSession = Depends(get_db),
) -> RequirementListResponse:
    requirements = await service.list_requirements(db)
    return RequirementListResponse(
        requirements=[RequirementResponse.model_validate(r) for r in requirements]
    )
