"""
Admissions Repository

Database operations for academic periods, the applicant counter, persons,
applicants, requirement definitions, document slots and audit events.

Design Principles:
- Only database operations, no business logic
- Functions flush but never commit; the service layer owns the transaction
- Multi-slot writes are single UPDATE statements
- Audit events are insert-only
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import case, func, literal, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .helpers import SEQUENCE_WIDTH
from .models import (
    REGULAR_CATEGORY,
    AcademicPeriod,
    Applicant,
    ApplicantCounter,
    AuditEvent,
    Campus,
    DocumentSlot,
    Person,
    RequirementDefinition,
    SlotStatus,
)


# ============================================
# Academic periods
# ============================================


async def get_active_period(db: AsyncSession) -> AcademicPeriod | None:
    """Get the period currently marked active."""
    result = await db.execute(
        select(AcademicPeriod)
        .where(AcademicPeriod.is_active == True)  # noqa: E712
        .order_by(AcademicPeriod.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_period_by_id(db: AsyncSession, period_id: int) -> AcademicPeriod | None:
    return await db.get(AcademicPeriod, period_id)


async def get_period(db: AsyncSession, year: int, semester_code: str) -> AcademicPeriod | None:
    result = await db.execute(
        select(AcademicPeriod).where(
            AcademicPeriod.year == year,
            AcademicPeriod.semester_code == semester_code,
        )
    )
    return result.scalar_one_or_none()


async def list_periods(db: AsyncSession) -> list[AcademicPeriod]:
    result = await db.execute(
        select(AcademicPeriod).order_by(
            AcademicPeriod.year.desc(), AcademicPeriod.semester_code.desc()
        )
    )
    return list(result.scalars().all())


async def create_period(
    db: AsyncSession,
    year: int,
    semester_code: str,
    semester_description: str | None = None,
) -> AcademicPeriod:
    period = AcademicPeriod(
        year=year,
        semester_code=semester_code,
        semester_description=semester_description,
        is_active=False,
    )
    db.add(period)
    await db.flush()
    return period


async def activate_period(db: AsyncSession, period_id: int) -> None:
    """Mark one period active and every other period inactive, in one statement."""
    await db.execute(
        update(AcademicPeriod)
        .values(is_active=(AcademicPeriod.id == period_id))
        .execution_options(synchronize_session="fetch")
    )


# ============================================
# Applicant counter
# ============================================


async def reserve_sequence(db: AsyncSession, period_key: str) -> int:
    """
    Atomically advance the counter for a year+semester and return the new value.

    A new counter row is seeded from the numbers already issued for the
    prefix, so periods that predate the counter continue from count + 1.
    The row lock taken by the upsert is held until the caller's transaction
    ends, which serializes allocation per period.
    """
    already_issued = (
        select(func.count())
        .select_from(Applicant)
        .where(
            Applicant.applicant_number.like(f"{period_key}%"),
            func.length(Applicant.applicant_number) == len(period_key) + SEQUENCE_WIDTH,
        )
        .scalar_subquery()
    )

    stmt = pg_insert(ApplicantCounter).values(
        period_key=period_key,
        last_sequence=already_issued + 1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ApplicantCounter.period_key],
        set_={
            "last_sequence": ApplicantCounter.last_sequence + 1,
            "updated_at": func.now(),
        },
    ).returning(ApplicantCounter.last_sequence)

    result = await db.execute(stmt)
    return result.scalar_one()


# ============================================
# Persons and applicants
# ============================================


async def get_person_by_id(db: AsyncSession, person_id: UUID) -> Person | None:
    return await db.get(Person, person_id)


async def create_person(
    db: AsyncSession,
    first_name: str,
    last_name: str,
    middle_name: str | None = None,
    email: str | None = None,
    mobile: str | None = None,
) -> Person:
    person = Person(
        first_name=first_name,
        middle_name=middle_name,
        last_name=last_name,
        email=email,
        mobile=mobile,
    )
    db.add(person)
    await db.flush()
    return person


async def get_applicant_by_id(db: AsyncSession, applicant_id: UUID) -> Applicant | None:
    return await db.get(Applicant, applicant_id)


async def get_applicant_by_person_id(db: AsyncSession, person_id: UUID) -> Applicant | None:
    result = await db.execute(select(Applicant).where(Applicant.person_id == person_id))
    return result.scalar_one_or_none()


async def get_applicant_by_number(db: AsyncSession, applicant_number: str) -> Applicant | None:
    result = await db.execute(
        select(Applicant).where(Applicant.applicant_number == applicant_number)
    )
    return result.scalar_one_or_none()


async def lock_applicant(db: AsyncSession, applicant_id: UUID) -> None:
    """
    SELECT ... FOR UPDATE the applicant row.

    Slot creation and the bulk slot updates take this lock first, so a
    new slot never misses a concurrent registrar update.
    """
    await db.execute(
        select(Applicant.id).where(Applicant.id == applicant_id).with_for_update()
    )


async def create_applicant(
    db: AsyncSession,
    person_id: UUID,
    applicant_number: str,
    campus: Campus,
    period_id: int,
) -> Applicant:
    """
    Insert the applicant number mapping.

    Raises:
        IntegrityError: On flush, if the number is already taken
    """
    applicant = Applicant(
        person_id=person_id,
        applicant_number=applicant_number,
        campus=campus,
        period_id=period_id,
    )
    db.add(applicant)
    await db.flush()
    return applicant


async def delete_applicant(db: AsyncSession, applicant: Applicant) -> None:
    """Delete an applicant; its slots go with it through ON DELETE CASCADE."""
    await db.delete(applicant)
    await db.flush()


# ============================================
# Requirement definitions
# ============================================


async def list_requirements(db: AsyncSession) -> list[RequirementDefinition]:
    result = await db.execute(select(RequirementDefinition).order_by(RequirementDefinition.id))
    return list(result.scalars().all())


async def get_requirement_by_id(
    db: AsyncSession, requirement_id: int
) -> RequirementDefinition | None:
    return await db.get(RequirementDefinition, requirement_id)


async def get_requirement_by_short_label(
    db: AsyncSession, short_label: str
) -> RequirementDefinition | None:
    result = await db.execute(
        select(RequirementDefinition).where(RequirementDefinition.short_label == short_label)
    )
    return result.scalar_one_or_none()


async def get_short_labels(db: AsyncSession, labels: Iterable[str]) -> set[str]:
    """Return which of the given labels exist as requirement short labels."""
    wanted = list(set(labels))
    if not wanted:
        return set()
    result = await db.execute(
        select(RequirementDefinition.short_label).where(
            RequirementDefinition.short_label.in_(wanted)
        )
    )
    return set(result.scalars().all())


async def get_requirements_for_campus(
    db: AsyncSession, campus: Campus
) -> list[RequirementDefinition]:
    """Regular requirements plus those specific to the campus."""
    result = await db.execute(
        select(RequirementDefinition)
        .where(RequirementDefinition.category.in_([REGULAR_CATEGORY, campus.value]))
        .order_by(RequirementDefinition.id)
    )
    return list(result.scalars().all())


async def create_requirement(
    db: AsyncSession,
    description: str,
    short_label: str,
    category: str = REGULAR_CATEGORY,
    is_verifiable: bool = True,
) -> RequirementDefinition:
    requirement = RequirementDefinition(
        description=description,
        short_label=short_label,
        category=category,
        is_verifiable=is_verifiable,
    )
    db.add(requirement)
    await db.flush()
    return requirement


async def update_requirement(
    db: AsyncSession,
    requirement: RequirementDefinition,
    **fields,
) -> RequirementDefinition:
    for key, value in fields.items():
        setattr(requirement, key, value)
    await db.flush()
    return requirement


# ============================================
# Document slots
# ============================================


async def get_registrar_flags(db: AsyncSession, applicant_id: UUID) -> tuple[bool, bool, list]:
    """
    The applicant-wide registrar fields, read from any one of their slots.

    Returns (registrar_status, submitted_documents, missing_documents);
    defaults when the applicant has no slots yet.
    """
    result = await db.execute(
        select(
            DocumentSlot.registrar_status,
            DocumentSlot.submitted_documents,
            DocumentSlot.missing_documents,
        )
        .where(DocumentSlot.applicant_id == applicant_id)
        .order_by(DocumentSlot.id)
        .limit(1)
    )
    row = result.first()
    if row is None:
        return False, False, []
    return bool(row[0]), bool(row[1]), list(row[2] or [])


async def insert_slot_if_absent(
    db: AsyncSession,
    applicant_id: UUID,
    requirement_id: int,
    status: SlotStatus = SlotStatus.EMPTY,
    registrar_status: bool = False,
    submitted_documents: bool = False,
    missing_documents: list | None = None,
) -> None:
    """INSERT ... ON CONFLICT DO NOTHING on (applicant_id, requirement_id)."""
    stmt = (
        pg_insert(DocumentSlot)
        .values(
            applicant_id=applicant_id,
            requirement_id=requirement_id,
            status=status,
            registrar_status=registrar_status,
            submitted_documents=submitted_documents,
            missing_documents=missing_documents or [],
        )
        .on_conflict_do_nothing(constraint="uq_document_slots_applicant_req")
    )
    await db.execute(stmt)


async def lock_slot(db: AsyncSession, applicant_id: UUID, requirement_id: int) -> DocumentSlot:
    """
    SELECT ... FOR UPDATE the slot for an applicant and requirement.

    The row lock is held until the caller's transaction ends.
    """
    result = await db.execute(
        select(DocumentSlot)
        .where(
            DocumentSlot.applicant_id == applicant_id,
            DocumentSlot.requirement_id == requirement_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_slot_by_id(
    db: AsyncSession, slot_id: int, for_update: bool = False
) -> DocumentSlot | None:
    stmt = select(DocumentSlot).where(DocumentSlot.id == slot_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_slots(db: AsyncSession, applicant_id: UUID) -> list[DocumentSlot]:
    """All slots of an applicant in insertion order."""
    result = await db.execute(
        select(DocumentSlot)
        .where(DocumentSlot.applicant_id == applicant_id)
        .order_by(DocumentSlot.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def add_slots(
    db: AsyncSession, applicant_id: UUID, requirements: Iterable[RequirementDefinition]
) -> list[DocumentSlot]:
    slots = [
        DocumentSlot(
            applicant_id=applicant_id,
            requirement_id=requirement.id,
            requirement=requirement,
            status=SlotStatus.EMPTY,
            registrar_status=False,
            submitted_documents=False,
            missing_documents=[],
        )
        for requirement in requirements
    ]
    db.add_all(slots)
    await db.flush()
    return slots


async def save_slot(db: AsyncSession, slot: DocumentSlot) -> DocumentSlot:
    await db.flush()
    return slot


async def bulk_confirm_slots(db: AsyncSession, applicant_id: UUID, updated_by: str) -> int:
    """Confirm every slot of an applicant in one statement. Returns the row count."""
    result = await db.execute(
        update(DocumentSlot)
        .where(DocumentSlot.applicant_id == applicant_id)
        .values(
            status=SlotStatus.REGISTRAR_CONFIRMED,
            registrar_status=True,
            submitted_documents=True,
            missing_documents=[],
            last_updated_by=updated_by,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def bulk_unconfirm_slots(db: AsyncSession, applicant_id: UUID, updated_by: str) -> int:
    """
    Revert registrar confirmation on every slot of an applicant in one statement.

    Confirmed slots holding a file go back to uploaded, confirmed slots
    without one go back to empty, all other statuses are kept.
    """
    reverted_status = case(
        (
            (DocumentSlot.status == SlotStatus.REGISTRAR_CONFIRMED)
            & DocumentSlot.file_path.is_not(None),
            literal(SlotStatus.UPLOADED, DocumentSlot.status.type),
        ),
        (
            DocumentSlot.status == SlotStatus.REGISTRAR_CONFIRMED,
            literal(SlotStatus.EMPTY, DocumentSlot.status.type),
        ),
        else_=DocumentSlot.status,
    )
    result = await db.execute(
        update(DocumentSlot)
        .where(DocumentSlot.applicant_id == applicant_id)
        .values(
            status=reverted_status,
            registrar_status=False,
            submitted_documents=False,
            missing_documents=[],
            last_updated_by=updated_by,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def bulk_set_missing_documents(
    db: AsyncSession, applicant_id: UUID, labels: list[str], updated_by: str
) -> int:
    result = await db.execute(
        update(DocumentSlot)
        .where(DocumentSlot.applicant_id == applicant_id)
        .values(
            missing_documents=labels,
            last_updated_by=updated_by,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def list_slots_with_files(db: AsyncSession) -> list[DocumentSlot]:
    """Every slot that references a stored file."""
    result = await db.execute(
        select(DocumentSlot)
        .where(DocumentSlot.file_path.is_not(None))
        .order_by(DocumentSlot.id)
    )
    return list(result.scalars().all())


async def get_applicant_numbers(
    db: AsyncSession, applicant_ids: Iterable[UUID]
) -> dict[UUID, str]:
    ids = list(set(applicant_ids))
    if not ids:
        return {}
    result = await db.execute(
        select(Applicant.id, Applicant.applicant_number).where(Applicant.id.in_(ids))
    )
    return {row[0]: row[1] for row in result.all()}


# ============================================
# Audit events (append-only)
# ============================================


def add_audit_event(db: AsyncSession, event: AuditEvent) -> AuditEvent:
    db.add(event)
    return event


async def list_audit_events(
    db: AsyncSession,
    applicant_number: str,
    limit: int = 100,
) -> list[AuditEvent]:
    """Most recent audit events for an applicant number, newest first."""
    result = await db.execute(
        select(AuditEvent)
        .where(AuditEvent.applicant_number == applicant_number)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
