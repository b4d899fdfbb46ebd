"""
Fixtures for admissions tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.core.auth import Actor
from app.core.storage import LocalBlobStore
from app.modules.admissions.models import (
    AcademicPeriod,
    Applicant,
    Campus,
    DocumentSlot,
    Person,
    RequirementDefinition,
    SlotStatus,
)
from app.modules.admissions.schemas import ApplicantRegistration


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    # Used as "async with db.begin_nested():"
    db.begin_nested = MagicMock()
    return db


@pytest.fixture
def blob_store(tmp_path):
    """A blob store rooted in a per-test temporary directory."""
    return LocalBlobStore(tmp_path / "uploads")


@pytest.fixture
def registrar():
    return Actor(id="reg-1", name="Maria Santos", email="registrar@school.test", role="registrar")


@pytest.fixture
def applicant_actor():
    return Actor(id="user-7", name="Juan Dela Cruz", email="juan@example.com", role="applicant")


@pytest.fixture
def active_period():
    """2025, first semester, active."""
    return AcademicPeriod(
        id=1,
        year=2025,
        semester_code="1",
        semester_description="First Semester",
        is_active=True,
    )


@pytest.fixture
def sample_person():
    return Person(
        id=uuid4(),
        first_name="Juan",
        middle_name="Santos",
        last_name="Dela Cruz",
        email="juan@example.com",
        mobile="09171234567",
    )


@pytest.fixture
def sample_applicant(sample_person, active_period):
    return Applicant(
        id=uuid4(),
        person_id=sample_person.id,
        applicant_number="2025100007",
        campus=Campus.MAIN,
        period_id=active_period.id,
    )


@pytest.fixture
def form138():
    return RequirementDefinition(
        id=1,
        description="Form 138",
        short_label="Form138",
        category="regular",
        is_verifiable=True,
    )


@pytest.fixture
def good_moral():
    return RequirementDefinition(
        id=2,
        description="Good Moral Certificate",
        short_label="GoodMoralCertificate",
        category="regular",
        is_verifiable=True,
    )


def make_slot(
    applicant: Applicant,
    requirement: RequirementDefinition,
    slot_id: int = 1,
    status: SlotStatus = SlotStatus.EMPTY,
    file_path: str | None = None,
    **fields,
) -> DocumentSlot:
    """Build a detached slot with every applicant-wide field initialised."""
    now = datetime.now(UTC)
    slot = DocumentSlot(
        id=slot_id,
        applicant_id=applicant.id,
        requirement_id=requirement.id,
        status=status,
        file_path=file_path,
        original_name=fields.pop("original_name", "upload.pdf" if file_path else None),
        remarks=fields.pop("remarks", None),
        document_status=fields.pop("document_status", None),
        registrar_status=fields.pop("registrar_status", False),
        submitted_documents=fields.pop("submitted_documents", False),
        missing_documents=fields.pop("missing_documents", []),
        last_updated_by=fields.pop("last_updated_by", None),
        created_at=now,
        updated_at=now,
    )
    slot.requirement = requirement
    return slot


@pytest.fixture
def empty_slot(sample_applicant, form138):
    return make_slot(sample_applicant, form138)


@pytest.fixture
def uploaded_slot(sample_applicant, form138):
    return make_slot(
        sample_applicant,
        form138,
        status=SlotStatus.UPLOADED,
        file_path="2025100007_Form138_2025.pdf",
    )


@pytest.fixture
def registration_data():
    return ApplicantRegistration(
        first_name="Juan",
        middle_name="Santos",
        last_name="Dela Cruz",
        email="juan@example.com",
        mobile="09171234567",
        campus=Campus.MAIN,
    )


@pytest.fixture
def slot_factory():
    """Return make_slot for tests that need several slots."""
    return make_slot
