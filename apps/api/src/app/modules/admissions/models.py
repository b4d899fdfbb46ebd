"""
Admissions Models

Database models for applicant numbering and the document-requirement lifecycle:
academic periods, the per-period numbering counter, persons, applicants,
requirement definitions, document slots and the append-only audit trail.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Campus(str, enum.Enum):
    """Campuses an applicant can register for."""

    MAIN = "main"
    SATELLITE = "satellite"


REGULAR_CATEGORY = "regular"


class SlotStatus(str, enum.Enum):
    """Lifecycle state of one document slot."""

    EMPTY = "empty"
    UPLOADED = "uploaded"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    REJECTED = "rejected"
    REGISTRAR_CONFIRMED = "registrar_confirmed"


class AuditEventType(str, enum.Enum):
    """Kinds of lifecycle transitions recorded in the audit trail."""

    REGISTER = "register"
    UPLOAD = "upload"
    DELETE = "delete"
    SUBMIT = "submit"
    UNSUBMIT = "unsubmit"
    STATUS_CHANGE = "status-change"


class AcademicPeriod(Base):
    """
    A school year + semester.

    Exactly one period is active at a time; applicant numbers are minted
    against the active period.
    """

    __tablename__ = "academic_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    semester_code: Mapped[str] = mapped_column(String(4), nullable=False)
    semester_description: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("year", "semester_code", name="uq_academic_periods_year_semester"),
    )

    @property
    def period_key(self) -> str:
        return f"{self.year}{self.semester_code}"


class ApplicantCounter(Base):
    """
    Atomic sequence counter per year+semester.

    Advanced with a single upsert so concurrent registrations never read
    the same value.
    """

    __tablename__ = "applicant_counters"

    period_key: Mapped[str] = mapped_column(String(12), primary_key=True)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Person(Base):
    """Personal record an applicant number is issued to."""

    __tablename__ = "persons"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    applicant: Mapped["Applicant | None"] = relationship("Applicant", back_populates="person")

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(part for part in parts if part)


class Applicant(Base):
    """
    Applicant number issued to a person.

    The number is globally unique and never changes once assigned.
    """

    __tablename__ = "applicants"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    person_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    applicant_number: Mapped[str] = mapped_column(String(20), nullable=False)
    campus: Mapped[Campus] = mapped_column(
        Enum(Campus, name="campus", values_callable=_enum_values), nullable=False
    )
    period_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("academic_periods.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    person: Mapped["Person"] = relationship("Person", back_populates="applicant")
    period: Mapped["AcademicPeriod"] = relationship("AcademicPeriod")
    slots: Mapped[list["DocumentSlot"]] = relationship(
        "DocumentSlot",
        back_populates="applicant",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DocumentSlot.id",
    )

    __table_args__ = (
        UniqueConstraint("applicant_number", name="uq_applicants_applicant_number"),
    )


class RequirementDefinition(Base):
    """
    A document type an applicant may need to submit.

    short_label is the stable token used in stored filenames.
    category is "regular" or a campus value for campus-specific requirements.
    """

    __tablename__ = "requirements"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    short_label: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default=REGULAR_CATEGORY)
    is_verifiable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class DocumentSlot(Base):
    """
    One applicant's state for one requirement.

    file_path names the single live stored file for the slot, or is NULL.
    registrar_status / submitted_documents / missing_documents are written
    only by bulk updates across all of an applicant's slots.
    """

    __tablename__ = "document_slots"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        nullable=False,
    )
    requirement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("requirements.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Stored file
    file_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Review
    status: Mapped[SlotStatus] = mapped_column(
        Enum(SlotStatus, name="slot_status", values_callable=_enum_values),
        nullable=False,
        default=SlotStatus.EMPTY,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Registrar sign-off
    registrar_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_documents: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    missing_documents: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    last_updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    applicant: Mapped["Applicant"] = relationship("Applicant", back_populates="slots")
    requirement: Mapped["RequirementDefinition"] = relationship(
        "RequirementDefinition", lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint("applicant_id", "requirement_id", name="uq_document_slots_applicant_req"),
        Index("ix_document_slots_applicant_id", "applicant_id"),
        Index("ix_document_slots_file_path", "file_path"),
    )


class AuditEvent(Base):
    """
    Append-only record of a lifecycle transition.

    Keyed by applicant number rather than a foreign key so the trail
    outlives an applicant's deletion.
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[AuditEventType] = mapped_column(
        Enum(AuditEventType, name="audit_event_type", values_callable=_enum_values),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    applicant_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_audit_events_applicant_number", "applicant_number"),)
