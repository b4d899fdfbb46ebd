"""
Upload Lifecycle Manager

Owns the state machine every document slot passes through:

    empty -> uploaded -> under_review -> {verified | rejected} -> registrar_confirmed

Per-slot transitions (upload, review, delete) lock the slot row before
touching it. Registrar submit/unsubmit and the missing-documents list lock
the applicant row, then apply to every slot of the applicant as a single
UPDATE inside one transaction, so a reader never sees a mix of old and new
values.

Every transition stages an audit event in the same transaction; the event
is broadcast after commit.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Actor
from app.core.config import settings
from app.core.email import send_documents_confirmed
from app.core.storage import BlobStore
from app.modules.admissions import registry, repository
from app.modules.admissions.errors import (
    ApplicantNotFoundError,
    FileTooLargeError,
    InvalidSlotTransitionError,
    MissingFileError,
    MissingIdentityError,
    PersistenceFailureError,
    PersonNotFoundError,
    SlotNotFoundError,
    UnsupportedFileError,
    ValidationError,
)
from app.modules.admissions.helpers import file_extension
from app.modules.admissions.models import Applicant, AuditEventType, DocumentSlot, SlotStatus
from app.modules.admissions.notifications import emitter
from app.modules.admissions.numbering import get_active_period_or_raise

logger = logging.getLogger(__name__)


# Valid per-slot transitions. Bulk registrar transitions go through
# submit_all / unsubmit_all and are checked as a whole, not per slot.
VALID_SLOT_TRANSITIONS: dict[SlotStatus, set[SlotStatus]] = {
    SlotStatus.EMPTY: {
        SlotStatus.UPLOADED,
        SlotStatus.REGISTRAR_CONFIRMED,
    },
    SlotStatus.UPLOADED: {
        SlotStatus.UPLOADED,  # Re-upload replaces the file
        SlotStatus.UNDER_REVIEW,
        SlotStatus.VERIFIED,
        SlotStatus.REJECTED,
        SlotStatus.EMPTY,
        SlotStatus.REGISTRAR_CONFIRMED,
    },
    SlotStatus.UNDER_REVIEW: {
        SlotStatus.UPLOADED,
        SlotStatus.VERIFIED,
        SlotStatus.REJECTED,
        SlotStatus.EMPTY,
        SlotStatus.REGISTRAR_CONFIRMED,
    },
    SlotStatus.VERIFIED: {
        SlotStatus.UPLOADED,
        SlotStatus.UNDER_REVIEW,
        SlotStatus.REJECTED,
        SlotStatus.EMPTY,
        SlotStatus.REGISTRAR_CONFIRMED,
    },
    SlotStatus.REJECTED: {
        SlotStatus.UPLOADED,
        SlotStatus.UNDER_REVIEW,
        SlotStatus.VERIFIED,
        SlotStatus.EMPTY,
        SlotStatus.REGISTRAR_CONFIRMED,
    },
    # Uploads are refused until the registrar unsubmits; deletion is always allowed
    SlotStatus.REGISTRAR_CONFIRMED: {
        SlotStatus.EMPTY,
    },
}

REVIEW_STATUSES = frozenset(
    {SlotStatus.UNDER_REVIEW, SlotStatus.VERIFIED, SlotStatus.REJECTED}
)


def validate_transition(current: SlotStatus, new: SlotStatus) -> None:
    """
    Raises:
        InvalidSlotTransitionError: If current -> new is not allowed
    """
    valid = VALID_SLOT_TRANSITIONS.get(current, set())
    if new not in valid:
        raise InvalidSlotTransitionError(current, new, valid)


async def commit_or_raise(db: AsyncSession, context: str) -> None:
    """Commit, translating a database failure into PersistenceFailureError."""
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Commit failed while {context}: {e}")
        raise PersistenceFailureError() from e


async def get_applicant_or_raise(db: AsyncSession, applicant_number: str) -> Applicant:
    applicant = await repository.get_applicant_by_number(db, applicant_number)
    if applicant is None:
        raise ApplicantNotFoundError(applicant_number)
    return applicant


async def get_applicant_for_person(db: AsyncSession, person_id: UUID) -> Applicant:
    """
    Raises:
        PersonNotFoundError: If the person does not exist
        MissingIdentityError: If the person has no applicant number yet
    """
    person = await repository.get_person_by_id(db, person_id)
    if person is None:
        raise PersonNotFoundError(person_id)

    applicant = await repository.get_applicant_by_person_id(db, person_id)
    if applicant is None:
        raise MissingIdentityError(person_id)
    return applicant


async def _locked_slot(db: AsyncSession, slot_id: int) -> DocumentSlot:
    slot = await repository.get_slot_by_id(db, slot_id, for_update=True)
    if slot is None:
        raise SlotNotFoundError(slot_id)
    return slot


async def _applicant_number_for(db: AsyncSession, slot: DocumentSlot) -> str | None:
    applicant = await repository.get_applicant_by_id(db, slot.applicant_id)
    return applicant.applicant_number if applicant else None


def _validate_upload(data: bytes, original_name: str) -> None:
    if not data:
        raise MissingFileError()

    allowed = settings.allowed_extensions_set
    extension = file_extension(original_name or "")
    if extension not in allowed:
        raise UnsupportedFileError(extension, allowed)

    if len(data) > settings.max_upload_size_bytes:
        raise FileTooLargeError(settings.max_upload_size_bytes)


# ============================================
# Per-slot transitions
# ============================================


async def upload_document(
    db: AsyncSession,
    store: BlobStore,
    *,
    person_id: UUID,
    requirement_id: int,
    data: bytes,
    original_name: str,
    actor: Actor,
) -> DocumentSlot:
    """
    Upload (or re-upload) the document for one requirement.

    The slot is created on first upload and stays locked until commit. The
    new file replaces the stored one only after the commit succeeds; the
    stored filename is {applicantNumber}_{shortLabel}_{year}{ext}.

    Raises:
        MissingFileError: No bytes supplied
        UnsupportedFileError / FileTooLargeError: File rejected before any write
        PersonNotFoundError / MissingIdentityError: Person unknown or not registered
        RequirementNotFoundError: Unknown requirement
        InvalidSlotTransitionError: Slot is registrar-confirmed
        PersistenceFailureError: The record could not be saved; the stored file is unchanged
    """
    _validate_upload(data, original_name)

    applicant = await get_applicant_for_person(db, person_id)
    period = await get_active_period_or_raise(db)
    slot = await registry.get_or_create_slot(db, applicant, requirement_id)
    validate_transition(slot.status, SlotStatus.UPLOADED)

    replacement = None
    try:
        replacement = await registry.replace_file(
            db,
            store,
            slot,
            data,
            original_name,
            applicant_number=applicant.applicant_number,
            year=period.year,
        )
        slot.status = SlotStatus.UPLOADED
        slot.last_updated_by = actor.display
        event = emitter.stage(
            db,
            AuditEventType.UPLOAD,
            f"Uploaded {slot.requirement.description} as {replacement.stored_name}",
            applicant.applicant_number,
            actor,
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        if replacement is not None:
            await registry.abandon_replacement(store, replacement)
        logger.error(
            f"Saving upload for applicant {applicant.applicant_number} "
            f"requirement {requirement_id} failed; the stored document is unchanged: {e}"
        )
        raise PersistenceFailureError() from e

    await registry.finish_replacement(store, replacement)
    logger.info(
        f"Applicant {applicant.applicant_number} uploaded requirement {requirement_id} "
        f"(slot {slot.id}) by {actor.name}"
    )
    emitter.publish(event)
    return slot


async def update_slot_status(
    db: AsyncSession,
    slot_id: int,
    new_status: SlotStatus,
    actor: Actor,
    remarks: str | None = None,
    document_status: str | None = None,
) -> DocumentSlot:
    """
    Record an evaluator's review of one slot.

    Raises:
        ValidationError: If new_status is not a review status
        SlotNotFoundError: If the slot does not exist
        InvalidSlotTransitionError: If the slot cannot move to new_status
    """
    if new_status not in REVIEW_STATUSES:
        raise ValidationError(
            f"Status '{new_status.value}' cannot be set by review. "
            f"Allowed: {sorted(s.value for s in REVIEW_STATUSES)}",
            error_code="INVALID_REVIEW_STATUS",
        )

    slot = await _locked_slot(db, slot_id)
    previous = slot.status
    validate_transition(previous, new_status)

    slot.status = new_status
    if remarks is not None:
        slot.remarks = remarks
    if document_status is not None:
        slot.document_status = document_status
    slot.last_updated_by = actor.display

    applicant_number = await _applicant_number_for(db, slot)
    event = emitter.stage(
        db,
        AuditEventType.STATUS_CHANGE,
        f"{slot.requirement.description}: {previous.value} -> {new_status.value}",
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"reviewing slot {slot_id}")

    logger.info(f"Slot {slot_id} moved {previous.value} -> {new_status.value} by {actor.name}")
    emitter.publish(event)
    return slot


async def update_slot_remarks(
    db: AsyncSession,
    slot_id: int,
    remarks: str | None,
    actor: Actor,
    document_status: str | None = None,
) -> DocumentSlot:
    """Set free-text remarks on a slot without changing its status."""
    slot = await _locked_slot(db, slot_id)

    slot.remarks = remarks
    if document_status is not None:
        slot.document_status = document_status
    slot.last_updated_by = actor.display

    applicant_number = await _applicant_number_for(db, slot)
    event = emitter.stage(
        db,
        AuditEventType.STATUS_CHANGE,
        f"Remarks updated on {slot.requirement.description}",
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"updating remarks on slot {slot_id}")

    emitter.publish(event)
    return slot


async def delete_document(
    db: AsyncSession,
    store: BlobStore,
    slot_id: int,
    actor: Actor,
) -> DocumentSlot:
    """
    Delete a slot's document and return the slot to empty.

    Deleting from an already empty slot is a no-op transition. The stored
    file is removed only after the commit succeeds. The applicant-wide
    registrar fields are left as they are.
    """
    slot = await _locked_slot(db, slot_id)
    if slot.status != SlotStatus.EMPTY:
        validate_transition(slot.status, SlotStatus.EMPTY)

    previous = await registry.clear_file(db, slot)
    slot.status = SlotStatus.EMPTY
    slot.last_updated_by = actor.display

    applicant_number = await _applicant_number_for(db, slot)
    event = emitter.stage(
        db,
        AuditEventType.DELETE,
        f"Deleted {slot.requirement.description}"
        + (f" ({previous})" if previous else ""),
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"deleting document on slot {slot_id}")
    if previous:
        await registry.discard_file(store, previous)

    logger.info(f"Slot {slot_id} cleared by {actor.name}")
    emitter.publish(event)
    return slot


# ============================================
# Bulk registrar transitions
# ============================================


async def submit_all(db: AsyncSession, applicant_number: str, actor: Actor) -> list[DocumentSlot]:
    """
    Registrar sign-off across every slot of one applicant.

    Sets registrar_confirmed, registrar_status, submitted_documents and an
    empty missing_documents list on all slots in one statement. Free-text
    remarks are kept.
    """
    applicant = await get_applicant_or_raise(db, applicant_number)
    await repository.lock_applicant(db, applicant.id)

    count = await repository.bulk_confirm_slots(db, applicant.id, actor.display)
    event = emitter.stage(
        db,
        AuditEventType.SUBMIT,
        f"Registrar confirmed {count} document slot(s)",
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"submitting documents for {applicant_number}")

    logger.info(f"Registrar {actor.name} confirmed {count} slot(s) for {applicant_number}")
    emitter.publish(event)

    person = await repository.get_person_by_id(db, applicant.person_id)
    if person is not None and person.email:
        try:
            email_sent = await send_documents_confirmed(
                to_email=person.email,
                applicant_name=person.full_name,
                applicant_number=applicant_number,
            )
            if not email_sent:
                logger.error(f"Failed to send documents-confirmed email for {applicant_number}")
        except Exception as e:
            logger.error(f"Exception sending documents-confirmed email for {applicant_number}: {e}")

    return await repository.list_slots(db, applicant.id)


async def unsubmit_all(
    db: AsyncSession, applicant_number: str, actor: Actor
) -> list[DocumentSlot]:
    """
    Revert registrar sign-off across every slot of one applicant.

    Confirmed slots return to uploaded (or empty when they hold no file).
    Calling it again leaves the same state.
    """
    applicant = await get_applicant_or_raise(db, applicant_number)
    await repository.lock_applicant(db, applicant.id)

    count = await repository.bulk_unconfirm_slots(db, applicant.id, actor.display)
    event = emitter.stage(
        db,
        AuditEventType.UNSUBMIT,
        f"Registrar reverted confirmation on {count} document slot(s)",
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"unsubmitting documents for {applicant_number}")

    logger.info(f"Registrar {actor.name} unsubmitted {count} slot(s) for {applicant_number}")
    emitter.publish(event)
    return await repository.list_slots(db, applicant.id)


async def set_missing_documents(
    db: AsyncSession,
    applicant_number: str,
    labels: list[str],
    actor: Actor,
) -> list[DocumentSlot]:
    """
    Record which requirements the registrar still considers missing.

    The same list is written to every slot of the applicant.

    Raises:
        ValidationError: If a label is not a known requirement short label
    """
    applicant = await get_applicant_or_raise(db, applicant_number)
    await repository.lock_applicant(db, applicant.id)

    unique_labels = list(dict.fromkeys(labels))
    known = await repository.get_short_labels(db, unique_labels)
    unknown = [label for label in unique_labels if label not in known]
    if unknown:
        raise ValidationError(
            f"Unknown requirement label(s): {', '.join(unknown)}",
            error_code="UNKNOWN_REQUIREMENT_LABEL",
        )

    await repository.bulk_set_missing_documents(db, applicant.id, unique_labels, actor.display)
    event = emitter.stage(
        db,
        AuditEventType.STATUS_CHANGE,
        "Missing documents: " + (", ".join(unique_labels) if unique_labels else "none"),
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"setting missing documents for {applicant_number}")

    emitter.publish(event)
    return await repository.list_slots(db, applicant.id)
