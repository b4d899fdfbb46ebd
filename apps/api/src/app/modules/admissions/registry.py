"""
Document Slot Registry

Maps an applicant to their requirement slots and owns the single stored
file behind each slot.

Slot rows are locked (SELECT ... FOR UPDATE inside the caller's
transaction) while their file reference changes. A replacement is written
to a hidden staging name first and only moved over the live name once the
caller has committed, so a failed commit never touches the document the
database still points at.
"""

import logging
from typing import NamedTuple
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.storage import BlobStore
from app.modules.admissions import repository
from app.modules.admissions.errors import MissingIdentityError, RequirementNotFoundError
from app.modules.admissions.helpers import build_stored_filename
from app.modules.admissions.models import Applicant, DocumentSlot, SlotStatus

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".pending-"


class FileReplacement(NamedTuple):
    """A staged upload waiting for its transaction to commit."""

    staged_name: str
    stored_name: str
    previous_name: str | None


async def get_or_create_slot(
    db: AsyncSession,
    applicant: Applicant,
    requirement_id: int,
) -> DocumentSlot:
    """
    Return the applicant's slot for a requirement, creating it if needed.

    The applicant row is locked first, which serializes slot creation with
    the bulk registrar updates: a slot created here copies the registrar
    fields as they stand after any concurrent bulk update, so they stay
    uniform across every slot. The returned slot row is locked for the
    rest of the transaction.

    Raises:
        MissingIdentityError: If the applicant has no applicant number
        RequirementNotFoundError: If the requirement does not exist
    """
    if not applicant.applicant_number:
        raise MissingIdentityError(applicant.person_id)

    requirement = await repository.get_requirement_by_id(db, requirement_id)
    if requirement is None:
        raise RequirementNotFoundError(requirement_id)

    await repository.lock_applicant(db, applicant.id)
    registrar_status, submitted, missing = await repository.get_registrar_flags(db, applicant.id)
    await repository.insert_slot_if_absent(
        db,
        applicant_id=applicant.id,
        requirement_id=requirement_id,
        status=SlotStatus.REGISTRAR_CONFIRMED if registrar_status else SlotStatus.EMPTY,
        registrar_status=registrar_status,
        submitted_documents=submitted,
        missing_documents=missing,
    )
    return await repository.lock_slot(db, applicant.id, requirement_id)


async def list_slots(db: AsyncSession, applicant_id: UUID) -> list[DocumentSlot]:
    """Slots of an applicant in insertion order."""
    return await repository.list_slots(db, applicant_id)


async def initialize_slots(db: AsyncSession, applicant: Applicant) -> list[DocumentSlot]:
    """Create empty slots for every requirement that applies to the applicant's campus."""
    requirements = await repository.get_requirements_for_campus(db, applicant.campus)
    slots = await repository.add_slots(db, applicant.id, requirements)
    logger.info(
        f"Initialized {len(slots)} document slot(s) for applicant {applicant.applicant_number}"
    )
    return slots


async def discard_file(store: BlobStore, name: str) -> bool:
    """
    Delete a stored file, downgrading any failure to a warning.

    Returns:
        True if a file was removed
    """
    try:
        removed = await store.delete(name)
    except OSError as e:
        logger.warning(f"Could not delete stored file {name}: {e}")
        return False

    if not removed:
        logger.warning(f"Stored file {name} was already absent")
    return removed


async def replace_file(
    db: AsyncSession,
    store: BlobStore,
    slot: DocumentSlot,
    data: bytes,
    original_name: str,
    *,
    applicant_number: str,
    year: int,
) -> FileReplacement:
    """
    Stage a new document for a locked slot and point the slot at it.

    The bytes go to a hidden staging name; the live file is left alone.
    After the caller commits, finish_replacement moves the staged file to
    {applicantNumber}_{shortLabel}_{year}{ext} and drops a previous file
    with a different name. If the commit fails, abandon_replacement
    removes the staged file instead.
    """
    stored_name = build_stored_filename(
        applicant_number, slot.requirement.short_label, year, original_name
    )
    staged_name = f"{STAGING_PREFIX}{slot.id}-{uuid4().hex}"

    await store.write(staged_name, data)
    logger.info(f"Staged {len(data)} bytes for slot {slot.id} as {staged_name}")

    replacement = FileReplacement(staged_name, stored_name, slot.file_path)
    slot.file_path = stored_name
    slot.original_name = original_name
    try:
        await repository.save_slot(db, slot)
    except SQLAlchemyError:
        await discard_file(store, staged_name)
        raise
    return replacement


async def finish_replacement(store: BlobStore, replacement: FileReplacement) -> None:
    """Move a committed upload into place and delete the file it replaced."""
    await store.move(replacement.staged_name, replacement.stored_name)
    logger.info(f"Stored {replacement.stored_name}")

    previous = replacement.previous_name
    if previous and previous != replacement.stored_name:
        await discard_file(store, previous)


async def abandon_replacement(store: BlobStore, replacement: FileReplacement) -> None:
    """Remove the staged file of an upload whose transaction did not commit."""
    await discard_file(store, replacement.staged_name)


async def clear_file(db: AsyncSession, slot: DocumentSlot) -> str | None:
    """
    Null a slot's file reference.

    The stored file itself is left in place; the caller discards it with
    discard_file once the change is committed.

    Returns:
        The filename that was referenced, if any
    """
    previous = slot.file_path
    slot.file_path = None
    slot.original_name = None
    await repository.save_slot(db, slot)
    return previous


async def slot_file_present(store: BlobStore, slot: DocumentSlot) -> bool:
    """True when the slot references a file that exists in the store."""
    if not slot.file_path:
        return False
    return await store.exists(slot.file_path)
