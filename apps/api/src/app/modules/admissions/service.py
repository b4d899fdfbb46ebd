"""
Admissions Service Layer

Orchestrates registration and the administrative operations around the
document lifecycle.

This module implements:
1. Registration:
   - Create the person record
   - Allocate the applicant number (numbering.allocate)
   - Initialize empty slots for the campus requirements
   - Audit, commit, then send the "applicant number assigned" email

2. Administrative deletion:
   - Delete the applicant (slots cascade), commit, then remove stored files

3. Requirement definitions and academic periods

4. Audit trail listing

Per-slot and bulk document transitions live in lifecycle.py.
"""

import logging
from typing import NamedTuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Actor
from app.core.email import send_applicant_number_assigned
from app.core.storage import BlobStore
from app.modules.admissions import numbering, registry, repository
from app.modules.admissions.errors import (
    DuplicatePeriodError,
    DuplicateRequirementError,
    PeriodNotFoundError,
    RequirementNotFoundError,
    ValidationError,
)
from app.modules.admissions.helpers import make_short_label
from app.modules.admissions.lifecycle import (
    commit_or_raise,
    get_applicant_for_person,
    get_applicant_or_raise,
)
from app.modules.admissions.models import (
    AcademicPeriod,
    Applicant,
    AuditEvent,
    AuditEventType,
    DocumentSlot,
    Person,
    RequirementDefinition,
)
from app.modules.admissions.notifications import emitter
from app.modules.admissions.schemas import (
    AcademicPeriodCreate,
    ApplicantRegistration,
    RequirementCreate,
    RequirementUpdate,
)

logger = logging.getLogger(__name__)


class Registration(NamedTuple):
    person: Person
    applicant: Applicant
    slots: list[DocumentSlot]


class ApplicantDocuments(NamedTuple):
    applicant: Applicant
    slots: list[DocumentSlot]


# ============================================
# Registration
# ============================================


async def register_applicant(
    db: AsyncSession,
    data: ApplicantRegistration,
    actor: Actor,
) -> Registration:
    """
    Register a new applicant.

    Creates the person, mints the applicant number, initializes empty
    document slots and records a REGISTER audit event, all in one
    transaction. The notification email is sent after commit and never
    fails the request.

    Raises:
        NoActivePeriodError: If no academic period is active
        DuplicateApplicantNumberError: If allocation kept colliding
        PersistenceFailureError: If the registration could not be saved
    """
    logger.info(f"Processing registration for campus: {data.campus.value}")

    person = await repository.create_person(
        db,
        first_name=data.first_name,
        middle_name=data.middle_name,
        last_name=data.last_name,
        email=data.email,
        mobile=data.mobile,
    )
    applicant = await numbering.allocate(db, person.id, data.campus)
    slots = await registry.initialize_slots(db, applicant)

    event = emitter.stage(
        db,
        AuditEventType.REGISTER,
        f"Registered {person.full_name} for the {data.campus.value} campus",
        applicant.applicant_number,
        actor,
    )
    await commit_or_raise(db, f"registering {applicant.applicant_number}")
    logger.info(f"Registered applicant {applicant.applicant_number} (person {person.id})")
    emitter.publish(event)

    # Send notification email (non-blocking - log error but don't fail the request)
    if person.email:
        try:
            email_sent = await send_applicant_number_assigned(
                to_email=person.email,
                applicant_name=person.full_name,
                applicant_number=applicant.applicant_number,
            )
            if not email_sent:
                logger.error(
                    f"Failed to send applicant number email for {applicant.applicant_number}"
                )
        except Exception as e:
            logger.error(
                f"Exception sending applicant number email for {applicant.applicant_number}: {e}"
            )

    return Registration(person=person, applicant=applicant, slots=slots)


async def get_applicant_documents(db: AsyncSession, person_id: UUID) -> ApplicantDocuments:
    """
    Raises:
        PersonNotFoundError: If the person does not exist
        MissingIdentityError: If the person has no applicant number yet
    """
    applicant = await get_applicant_for_person(db, person_id)
    slots = await registry.list_slots(db, applicant.id)
    return ApplicantDocuments(applicant=applicant, slots=slots)


# ============================================
# Administrative deletion
# ============================================


async def delete_applicant(
    db: AsyncSession,
    store: BlobStore,
    applicant_number: str,
    actor: Actor,
) -> int:
    """
    Delete an applicant, their slots and their stored files.

    The rows are removed first; files are deleted only after the commit
    succeeds, and a file that is already gone is just a warning. The
    person record and the audit trail are kept.

    Returns:
        Number of stored files removed
    """
    applicant = await get_applicant_or_raise(db, applicant_number)
    slots = await registry.list_slots(db, applicant.id)
    file_names = [slot.file_path for slot in slots if slot.file_path]

    await repository.delete_applicant(db, applicant)
    event = emitter.stage(
        db,
        AuditEventType.DELETE,
        f"Deleted applicant with {len(slots)} slot(s) and {len(file_names)} file(s)",
        applicant_number,
        actor,
    )
    await commit_or_raise(db, f"deleting applicant {applicant_number}")
    logger.info(f"Applicant {applicant_number} deleted by {actor.name}")

    removed = 0
    for name in file_names:
        if await registry.discard_file(store, name):
            removed += 1

    emitter.publish(event)
    return removed


# ============================================
# Requirement definitions
# ============================================


async def list_requirements(db: AsyncSession) -> list[RequirementDefinition]:
    return await repository.list_requirements(db)


async def create_requirement(
    db: AsyncSession,
    data: RequirementCreate,
    actor: Actor,
) -> RequirementDefinition:
    """
    Create a requirement definition.

    The short label is derived from the description when not given and is
    never recomputed afterwards.

    Raises:
        ValidationError: If no label can be derived from the description
        DuplicateRequirementError: If the short label is taken
    """
    if data.short_label:
        short_label = data.short_label
    else:
        try:
            short_label = make_short_label(data.description)
        except ValueError as e:
            raise ValidationError(
                "Provide a short_label; none can be derived from the description.",
                error_code="INVALID_SHORT_LABEL",
            ) from e

    if await repository.get_requirement_by_short_label(db, short_label):
        raise DuplicateRequirementError(short_label)

    requirement = await repository.create_requirement(
        db,
        description=data.description,
        short_label=short_label,
        category=data.category.lower(),
        is_verifiable=data.is_verifiable,
    )
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateRequirementError(short_label) from e

    logger.info(f"Requirement {short_label} created by {actor.name}")
    return requirement


async def update_requirement(
    db: AsyncSession,
    requirement_id: int,
    data: RequirementUpdate,
    actor: Actor,
) -> RequirementDefinition:
    requirement = await repository.get_requirement_by_id(db, requirement_id)
    if requirement is None:
        raise RequirementNotFoundError(requirement_id)

    fields = data.model_dump(exclude_unset=True, exclude_none=True)
    if "category" in fields:
        fields["category"] = fields["category"].lower()

    await repository.update_requirement(db, requirement, **fields)
    await commit_or_raise(db, f"updating requirement {requirement_id}")
    logger.info(f"Requirement {requirement.short_label} updated by {actor.name}: {sorted(fields)}")
    return requirement


# ============================================
# Academic periods
# ============================================


async def list_periods(db: AsyncSession) -> list[AcademicPeriod]:
    return await repository.list_periods(db)


async def create_period(
    db: AsyncSession,
    data: AcademicPeriodCreate,
    actor: Actor,
) -> AcademicPeriod:
    """
    Raises:
        DuplicatePeriodError: If the year + semester already exists
    """
    if await repository.get_period(db, data.year, data.semester_code):
        raise DuplicatePeriodError(data.year, data.semester_code)

    period = await repository.create_period(
        db,
        year=data.year,
        semester_code=data.semester_code,
        semester_description=data.semester_description,
    )
    if data.activate:
        await repository.activate_period(db, period.id)

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicatePeriodError(data.year, data.semester_code) from e

    await db.refresh(period)
    logger.info(f"Academic period {period.period_key} created by {actor.name}")
    return period


async def activate_period(db: AsyncSession, period_id: int, actor: Actor) -> AcademicPeriod:
    """Make one period the active one; every other period is deactivated."""
    period = await repository.get_period_by_id(db, period_id)
    if period is None:
        raise PeriodNotFoundError(period_id)

    await repository.activate_period(db, period_id)
    await commit_or_raise(db, f"activating period {period_id}")
    await db.refresh(period)
    logger.info(f"Academic period {period.period_key} activated by {actor.name}")
    return period


# ============================================
# Audit trail
# ============================================


async def list_audit_events(
    db: AsyncSession,
    applicant_number: str,
    limit: int = 100,
) -> list[AuditEvent]:
    """Audit events survive applicant deletion, so the applicant need not exist."""
    return await repository.list_audit_events(db, applicant_number, limit=limit)


__all__ = [
    "ApplicantDocuments",
    "Registration",
    "activate_period",
    "create_period",
    "create_requirement",
    "delete_applicant",
    "get_applicant_documents",
    "list_audit_events",
    "list_periods",
    "list_requirements",
    "register_applicant",
    "update_requirement",
]
