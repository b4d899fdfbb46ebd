"""
Admissions Background Jobs

Periodic consistency sweep between document slots and the blob store.

A slot's file reference must name a file that exists, or be null. Two
states break that:
- dangling slot: file_path is set but the file is gone (e.g. the process
  stopped between committing an upload and moving its staged file into
  place, or the file was removed outside the API)
- orphan file: a stored file no slot references (e.g. the file delete that
  follows a committed document delete failed)

Dangling slots are repaired by clearing the reference. Orphan files are
only reported.

Schedule:
- Runs every CONSISTENCY_SWEEP_INTERVAL_MINUTES
- Can also be triggered from the admin API
"""

import logging
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SYSTEM_ACTOR, Actor
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.scheduler import register_job
from app.core.storage import BlobStore, get_blob_store
from app.modules.admissions import registry, repository
from app.modules.admissions.lifecycle import commit_or_raise
from app.modules.admissions.models import AuditEvent, AuditEventType, SlotStatus
from app.modules.admissions.notifications import emitter
from app.modules.admissions.schemas import (
    ConsistencyRepairResponse,
    ConsistencyReport,
    DanglingSlot,
)

logger = logging.getLogger(__name__)

JOB_ID_CONSISTENCY_SWEEP = "admissions_consistency_sweep"


async def scan_consistency(db: AsyncSession, store: BlobStore) -> ConsistencyReport:
    """Report dangling slots and orphan files without changing anything."""
    slots = await repository.list_slots_with_files(db)
    stored_names = await store.list_names()

    dangling = [slot for slot in slots if not await registry.slot_file_present(store, slot)]
    referenced = {slot.file_path for slot in slots}
    orphans = sorted(name for name in stored_names if name not in referenced)

    numbers = await repository.get_applicant_numbers(db, [slot.applicant_id for slot in dangling])
    report = ConsistencyReport(
        dangling_slots=[
            DanglingSlot(
                slot_id=slot.id,
                applicant_number=numbers.get(slot.applicant_id),
                file_path=slot.file_path,
            )
            for slot in dangling
        ],
        orphan_files=orphans,
        checked_slots=len(slots),
        checked_files=len(stored_names),
    )

    if report.dangling_slots or report.orphan_files:
        logger.warning(
            f"Consistency scan found {len(report.dangling_slots)} dangling slot(s) "
            f"and {len(report.orphan_files)} orphan file(s)"
        )
    return report


async def repair_dangling_slots(
    db: AsyncSession,
    store: BlobStore,
    actor: Actor = SYSTEM_ACTOR,
) -> ConsistencyRepairResponse:
    """
    Clear the file reference of every slot whose file is missing.

    Each slot is locked and re-checked before it is changed, so a slot
    re-uploaded since the scan is left alone. Repaired slots go back to
    empty unless the registrar has confirmed them.
    """
    report = await scan_consistency(db, store)

    repaired: list[DanglingSlot] = []
    events: list[AuditEvent] = []
    for entry in report.dangling_slots:
        slot = await repository.get_slot_by_id(db, entry.slot_id, for_update=True)
        if slot is None or slot.file_path != entry.file_path:
            continue
        if await registry.slot_file_present(store, slot):
            continue

        slot.file_path = None
        slot.original_name = None
        if slot.status != SlotStatus.REGISTRAR_CONFIRMED:
            slot.status = SlotStatus.EMPTY
        slot.last_updated_by = actor.display
        events.append(
            emitter.stage(
                db,
                AuditEventType.STATUS_CHANGE,
                f"Cleared missing file {entry.file_path} from slot {slot.id}",
                entry.applicant_number,
                actor,
            )
        )
        repaired.append(entry)

    if repaired:
        await commit_or_raise(db, "repairing dangling slots")
        for event in events:
            emitter.publish(event)
        logger.info(f"Repaired {len(repaired)} dangling slot(s)")
    else:
        await db.rollback()

    return ConsistencyRepairResponse(repaired_slots=repaired, orphan_files=report.orphan_files)


async def run_consistency_sweep() -> dict[str, Any]:
    """
    Scheduled entry point.

    Handles its own database session and returns a summary for logging
    and manual triggers.
    """
    logger.info("Starting consistency sweep job")

    async with async_session_maker() as db:
        result = await repair_dangling_slots(db, get_blob_store())

    summary = {
        "repaired_slots": len(result.repaired_slots),
        "orphan_files": len(result.orphan_files),
    }
    logger.info(
        f"Consistency sweep completed. Repaired: {summary['repaired_slots']}, "
        f"orphan files: {summary['orphan_files']}"
    )
    return summary


def register_admission_jobs() -> None:
    """
    Register admissions background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    interval = settings.consistency_sweep_interval_minutes
    register_job(
        job_id=JOB_ID_CONSISTENCY_SWEEP,
        func=run_consistency_sweep,
        trigger=IntervalTrigger(minutes=interval),
    )
    logger.info(f"Registered job: {JOB_ID_CONSISTENCY_SWEEP} (interval: {interval} minutes)")
