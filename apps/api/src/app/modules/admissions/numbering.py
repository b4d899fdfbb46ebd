"""
Applicant Number Allocation

Applicant numbers are {year}{semesterCode}{sequence:05d}, minted against
the active academic period.

The sequence comes from an atomic per-period counter row rather than a
count of existing applicants, and the unique constraint on
applicants.applicant_number backs it up. Each applicant insert runs in a
SAVEPOINT: on a collision only the insert is rolled back, the counter keeps
its increment and the next attempt draws a fresh sequence. Allocation never
commits. If the caller rolls back, every counter increment goes with it, so
a failed registration never consumes a number.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.admissions import repository
from app.modules.admissions.errors import DuplicateApplicantNumberError, NoActivePeriodError
from app.modules.admissions.helpers import applicant_number_prefix, format_applicant_number
from app.modules.admissions.models import AcademicPeriod, Applicant, Campus

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 3
APPLICANT_NUMBER_CONSTRAINT = "uq_applicants_applicant_number"


def is_applicant_number_conflict(error: IntegrityError) -> bool:
    """True when an IntegrityError is a clash on the applicant number."""
    return APPLICANT_NUMBER_CONSTRAINT in str(error.orig)


async def get_active_period_or_raise(db: AsyncSession) -> AcademicPeriod:
    period = await repository.get_active_period(db)
    if period is None:
        raise NoActivePeriodError()
    return period


async def next_applicant_number(db: AsyncSession, period: AcademicPeriod) -> str:
    """Reserve the next sequence for a period and format it."""
    prefix = applicant_number_prefix(period.year, period.semester_code)
    sequence = await repository.reserve_sequence(db, prefix)
    return format_applicant_number(period.year, period.semester_code, sequence)


async def allocate(db: AsyncSession, person_id: UUID, campus: Campus) -> Applicant:
    """
    Mint an applicant number for a person and stage the Applicant row.

    The caller owns the transaction and must commit (or roll back) it.

    Raises:
        NoActivePeriodError: If no academic period is active
        DuplicateApplicantNumberError: If every attempt collided
    """
    period = await get_active_period_or_raise(db)

    for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        applicant_number = await next_applicant_number(db, period)
        try:
            async with db.begin_nested():
                applicant = await repository.create_applicant(
                    db,
                    person_id=person_id,
                    applicant_number=applicant_number,
                    campus=campus,
                    period_id=period.id,
                )
        except IntegrityError as e:
            if not is_applicant_number_conflict(e):
                raise
            logger.warning(
                f"Applicant number {applicant_number} already taken "
                f"(attempt {attempt}/{MAX_ALLOCATION_ATTEMPTS})"
            )
            continue

        logger.info(
            f"Allocated applicant number {applicant_number} for period {period.period_key}"
        )
        return applicant

    logger.error(
        f"Could not allocate an applicant number for period {period.period_key} "
        f"after {MAX_ALLOCATION_ATTEMPTS} attempts"
    )
    raise DuplicateApplicantNumberError(MAX_ALLOCATION_ATTEMPTS)
