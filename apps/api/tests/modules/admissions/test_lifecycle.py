"""
Unit tests for the upload lifecycle manager.

Covers the slot state machine, per-slot transitions (upload, review,
delete) and the bulk registrar transitions.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.modules.admissions import lifecycle
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
from app.modules.admissions.lifecycle import VALID_SLOT_TRANSITIONS, validate_transition
from app.modules.admissions.models import AuditEventType, SlotStatus


def _db_failure() -> OperationalError:
    return OperationalError("COMMIT", {}, Exception("connection reset"))


class TestSlotTransitions:
    """Tests for the slot state machine."""

    def test_all_statuses_are_in_transition_map(self):
        for status in SlotStatus:
            assert status in VALID_SLOT_TRANSITIONS

    def test_empty_slot_can_only_receive_upload_or_confirmation(self):
        assert VALID_SLOT_TRANSITIONS[SlotStatus.EMPTY] == {
            SlotStatus.UPLOADED,
            SlotStatus.REGISTRAR_CONFIRMED,
        }

    def test_reupload_allowed_from_every_review_state(self):
        for status in (
            SlotStatus.UPLOADED,
            SlotStatus.UNDER_REVIEW,
            SlotStatus.VERIFIED,
            SlotStatus.REJECTED,
        ):
            assert SlotStatus.UPLOADED in VALID_SLOT_TRANSITIONS[status]

    def test_empty_slot_cannot_be_reviewed(self):
        for status in (SlotStatus.UNDER_REVIEW, SlotStatus.VERIFIED, SlotStatus.REJECTED):
            with pytest.raises(InvalidSlotTransitionError):
                validate_transition(SlotStatus.EMPTY, status)

    def test_confirmed_slot_refuses_upload(self):
        with pytest.raises(InvalidSlotTransitionError) as exc_info:
            validate_transition(SlotStatus.REGISTRAR_CONFIRMED, SlotStatus.UPLOADED)

        assert exc_info.value.current_status == SlotStatus.REGISTRAR_CONFIRMED
        assert exc_info.value.new_status == SlotStatus.UPLOADED
        assert exc_info.value.status_code == 409

    def test_confirmed_slot_can_be_emptied(self):
        validate_transition(SlotStatus.REGISTRAR_CONFIRMED, SlotStatus.EMPTY)

    def test_verified_to_rejected_is_allowed(self):
        validate_transition(SlotStatus.VERIFIED, SlotStatus.REJECTED)


class TestUploadDocument:
    """Tests for upload_document."""

    @pytest.fixture
    def upload_mocks(self, sample_person, sample_applicant, active_period):
        """Patch database access; the real registry and a temp store do the file work."""
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.registry.repository") as mock_registry_repo,
            patch(
                "app.modules.admissions.lifecycle.get_active_period_or_raise",
                new=AsyncMock(return_value=active_period),
            ),
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_person_by_id = AsyncMock(return_value=sample_person)
            mock_repo.get_applicant_by_person_id = AsyncMock(return_value=sample_applicant)
            mock_registry_repo.lock_applicant = AsyncMock()
            mock_registry_repo.get_registrar_flags = AsyncMock(return_value=(False, False, []))
            mock_registry_repo.insert_slot_if_absent = AsyncMock()
            mock_registry_repo.save_slot = AsyncMock()
            yield mock_repo, mock_registry_repo, mock_emitter

    @pytest.mark.asyncio
    async def test_upload_stores_file_and_marks_slot_uploaded(
        self,
        mock_db,
        blob_store,
        upload_mocks,
        sample_person,
        form138,
        empty_slot,
        applicant_actor,
    ):
        _, mock_registry_repo, mock_emitter = upload_mocks
        mock_registry_repo.get_requirement_by_id = AsyncMock(return_value=form138)
        mock_registry_repo.lock_slot = AsyncMock(return_value=empty_slot)

        slot = await lifecycle.upload_document(
            mock_db,
            blob_store,
            person_id=sample_person.id,
            requirement_id=form138.id,
            data=b"%PDF-1.7",
            original_name="form138.pdf",
            actor=applicant_actor,
        )

        assert slot.status == SlotStatus.UPLOADED
        assert slot.file_path == "2025100007_Form138_2025.pdf"
        assert slot.last_updated_by == "Juan Dela Cruz <juan@example.com>"
        assert await blob_store.read(slot.file_path) == b"%PDF-1.7"
        mock_db.commit.assert_called_once()

        stage_args = mock_emitter.stage.call_args.args
        assert stage_args[1] == AuditEventType.UPLOAD
        assert stage_args[3] == "2025100007"
        mock_emitter.publish.assert_called_once_with(mock_emitter.stage.return_value)

    @pytest.mark.asyncio
    async def test_reupload_replaces_previous_file(
        self,
        mock_db,
        blob_store,
        upload_mocks,
        sample_person,
        form138,
        uploaded_slot,
        applicant_actor,
    ):
        _, mock_registry_repo, _ = upload_mocks
        mock_registry_repo.get_requirement_by_id = AsyncMock(return_value=form138)
        mock_registry_repo.lock_slot = AsyncMock(return_value=uploaded_slot)
        await blob_store.write(uploaded_slot.file_path, b"old")

        slot = await lifecycle.upload_document(
            mock_db,
            blob_store,
            person_id=sample_person.id,
            requirement_id=form138.id,
            data=b"new image",
            original_name="form138.png",
            actor=applicant_actor,
        )

        assert slot.file_path == "2025100007_Form138_2025.png"
        assert await blob_store.list_names() == ["2025100007_Form138_2025.png"]

    @pytest.mark.asyncio
    async def test_upload_into_confirmed_slot_is_refused(
        self,
        mock_db,
        blob_store,
        upload_mocks,
        sample_person,
        sample_applicant,
        form138,
        slot_factory,
        applicant_actor,
    ):
        _, mock_registry_repo, mock_emitter = upload_mocks
        confirmed = slot_factory(
            sample_applicant,
            form138,
            status=SlotStatus.REGISTRAR_CONFIRMED,
            file_path="2025100007_Form138_2025.pdf",
            registrar_status=True,
            submitted_documents=True,
        )
        mock_registry_repo.get_requirement_by_id = AsyncMock(return_value=form138)
        mock_registry_repo.lock_slot = AsyncMock(return_value=confirmed)

        with pytest.raises(InvalidSlotTransitionError):
            await lifecycle.upload_document(
                mock_db,
                blob_store,
                person_id=sample_person.id,
                requirement_id=form138.id,
                data=b"%PDF-1.7",
                original_name="form138.pdf",
                actor=applicant_actor,
            )

        assert await blob_store.list_names() == []
        mock_db.commit.assert_not_called()
        mock_emitter.stage.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_failure_on_first_upload_leaves_no_file(
        self,
        mock_db,
        blob_store,
        upload_mocks,
        sample_person,
        form138,
        empty_slot,
        applicant_actor,
    ):
        _, mock_registry_repo, mock_emitter = upload_mocks
        mock_registry_repo.get_requirement_by_id = AsyncMock(return_value=form138)
        mock_registry_repo.lock_slot = AsyncMock(return_value=empty_slot)
        mock_db.commit = AsyncMock(side_effect=_db_failure())

        with pytest.raises(PersistenceFailureError) as exc_info:
            await lifecycle.upload_document(
                mock_db,
                blob_store,
                person_id=sample_person.id,
                requirement_id=form138.id,
                data=b"%PDF-1.7",
                original_name="form138.pdf",
                actor=applicant_actor,
            )

        assert exc_info.value.status_code == 500
        mock_db.rollback.assert_called_once()
        mock_emitter.publish.assert_not_called()
        assert list(blob_store.root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_commit_failure_on_reupload_keeps_reviewed_document(
        self,
        mock_db,
        blob_store,
        upload_mocks,
        sample_person,
        form138,
        uploaded_slot,
        applicant_actor,
    ):
        """A rolled-back re-upload under the same name must not replace the stored bytes."""
        _, mock_registry_repo, _ = upload_mocks
        uploaded_slot.status = SlotStatus.VERIFIED
        mock_registry_repo.get_requirement_by_id = AsyncMock(return_value=form138)
        mock_registry_repo.lock_slot = AsyncMock(return_value=uploaded_slot)
        await blob_store.write("2025100007_Form138_2025.pdf", b"verified copy")
        mock_db.commit = AsyncMock(side_effect=_db_failure())

        with pytest.raises(PersistenceFailureError):
            await lifecycle.upload_document(
                mock_db,
                blob_store,
                person_id=sample_person.id,
                requirement_id=form138.id,
                data=b"unreviewed copy",
                original_name="rescan.pdf",
                actor=applicant_actor,
            )

        assert await blob_store.read("2025100007_Form138_2025.pdf") == b"verified copy"
        assert [p.name for p in blob_store.root.iterdir()] == ["2025100007_Form138_2025.pdf"]

    @pytest.mark.asyncio
    async def test_commit_failure_on_reupload_with_new_extension_keeps_old_file(
        self,
        mock_db,
        blob_store,
        upload_mocks,
        sample_person,
        form138,
        uploaded_slot,
        applicant_actor,
    ):
        _, mock_registry_repo, _ = upload_mocks
        mock_registry_repo.get_requirement_by_id = AsyncMock(return_value=form138)
        mock_registry_repo.lock_slot = AsyncMock(return_value=uploaded_slot)
        await blob_store.write("2025100007_Form138_2025.pdf", b"old pdf")
        mock_db.commit = AsyncMock(side_effect=_db_failure())

        with pytest.raises(PersistenceFailureError):
            await lifecycle.upload_document(
                mock_db,
                blob_store,
                person_id=sample_person.id,
                requirement_id=form138.id,
                data=b"png bytes",
                original_name="scan.png",
                actor=applicant_actor,
            )

        assert await blob_store.list_names() == ["2025100007_Form138_2025.pdf"]
        assert await blob_store.read("2025100007_Form138_2025.pdf") == b"old pdf"

    @pytest.mark.asyncio
    async def test_empty_upload_is_rejected(self, mock_db, blob_store, applicant_actor):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_person_by_id = AsyncMock()

            with pytest.raises(MissingFileError):
                await lifecycle.upload_document(
                    mock_db,
                    blob_store,
                    person_id=uuid4(),
                    requirement_id=1,
                    data=b"",
                    original_name="",
                    actor=applicant_actor,
                )

            mock_repo.get_person_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_unsupported_extension_is_rejected(self, mock_db, blob_store, applicant_actor):
        with pytest.raises(UnsupportedFileError) as exc_info:
            await lifecycle.upload_document(
                mock_db,
                blob_store,
                person_id=uuid4(),
                requirement_id=1,
                data=b"MZ",
                original_name="setup.exe",
                actor=applicant_actor,
            )

        assert exc_info.value.status_code == 415
        assert await blob_store.list_names() == []

    @pytest.mark.asyncio
    async def test_oversized_upload_is_rejected(self, mock_db, blob_store, applicant_actor):
        with patch.object(settings, "max_upload_size_mb", 1):
            with pytest.raises(FileTooLargeError) as exc_info:
                await lifecycle.upload_document(
                    mock_db,
                    blob_store,
                    person_id=uuid4(),
                    requirement_id=1,
                    data=b"x" * (1024 * 1024 + 1),
                    original_name="big.pdf",
                    actor=applicant_actor,
                )

        assert exc_info.value.status_code == 413

    @pytest.mark.asyncio
    async def test_unknown_person(self, mock_db, blob_store, applicant_actor):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_person_by_id = AsyncMock(return_value=None)

            with pytest.raises(PersonNotFoundError):
                await lifecycle.upload_document(
                    mock_db,
                    blob_store,
                    person_id=uuid4(),
                    requirement_id=1,
                    data=b"%PDF",
                    original_name="a.pdf",
                    actor=applicant_actor,
                )

    @pytest.mark.asyncio
    async def test_person_without_applicant_number(
        self, mock_db, blob_store, sample_person, applicant_actor
    ):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_person_by_id = AsyncMock(return_value=sample_person)
            mock_repo.get_applicant_by_person_id = AsyncMock(return_value=None)

            with pytest.raises(MissingIdentityError):
                await lifecycle.upload_document(
                    mock_db,
                    blob_store,
                    person_id=sample_person.id,
                    requirement_id=1,
                    data=b"%PDF",
                    original_name="a.pdf",
                    actor=applicant_actor,
                )


class TestUpdateSlotStatus:
    """Tests for update_slot_status."""

    @pytest.mark.asyncio
    async def test_review_sets_status_and_remarks(
        self, mock_db, sample_applicant, uploaded_slot, registrar
    ):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=uploaded_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)

            slot = await lifecycle.update_slot_status(
                mock_db,
                uploaded_slot.id,
                SlotStatus.VERIFIED,
                registrar,
                remarks="Clear copy",
                document_status="original",
            )

            assert slot.status == SlotStatus.VERIFIED
            assert slot.remarks == "Clear copy"
            assert slot.document_status == "original"
            assert slot.last_updated_by == registrar.display
            mock_repo.get_slot_by_id.assert_called_once_with(
                mock_db, uploaded_slot.id, for_update=True
            )
            mock_db.commit.assert_called_once()

            message = mock_emitter.stage.call_args.args[2]
            assert message == "Form 138: uploaded -> verified"
            mock_emitter.publish.assert_called_once()

    @pytest.mark.asyncio
    async def test_remarks_kept_when_not_given(
        self, mock_db, sample_applicant, slot_factory, form138, registrar
    ):
        slot = slot_factory(
            sample_applicant, form138, status=SlotStatus.UPLOADED, remarks="Blurry"
        )
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter"),
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)

            await lifecycle.update_slot_status(mock_db, slot.id, SlotStatus.REJECTED, registrar)

        assert slot.remarks == "Blurry"

    @pytest.mark.asyncio
    async def test_non_review_status_is_rejected(self, mock_db, registrar):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_slot_by_id = AsyncMock()

            with pytest.raises(ValidationError) as exc_info:
                await lifecycle.update_slot_status(
                    mock_db, 1, SlotStatus.REGISTRAR_CONFIRMED, registrar
                )

            assert exc_info.value.error_code == "INVALID_REVIEW_STATUS"
            mock_repo.get_slot_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_slot_cannot_be_verified(self, mock_db, empty_slot, registrar):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=empty_slot)

            with pytest.raises(InvalidSlotTransitionError):
                await lifecycle.update_slot_status(
                    mock_db, empty_slot.id, SlotStatus.VERIFIED, registrar
                )

            assert empty_slot.status == SlotStatus.EMPTY
            mock_emitter.stage.assert_not_called()

    @pytest.mark.asyncio
    async def test_slot_not_found(self, mock_db, registrar):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_slot_by_id = AsyncMock(return_value=None)

            with pytest.raises(SlotNotFoundError):
                await lifecycle.update_slot_status(
                    mock_db, 404, SlotStatus.UNDER_REVIEW, registrar
                )

    @pytest.mark.asyncio
    async def test_commit_failure_is_reported(
        self, mock_db, sample_applicant, uploaded_slot, registrar
    ):
        mock_db.commit = AsyncMock(side_effect=_db_failure())

        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=uploaded_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)

            with pytest.raises(PersistenceFailureError):
                await lifecycle.update_slot_status(
                    mock_db, uploaded_slot.id, SlotStatus.UNDER_REVIEW, registrar
                )

            mock_db.rollback.assert_called_once()
            mock_emitter.publish.assert_not_called()


class TestUpdateSlotRemarks:
    """Tests for update_slot_remarks."""

    @pytest.mark.asyncio
    async def test_status_is_unchanged(self, mock_db, sample_applicant, uploaded_slot, registrar):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=uploaded_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)

            slot = await lifecycle.update_slot_remarks(
                mock_db, uploaded_slot.id, "Please upload a clearer scan", registrar
            )

            assert slot.status == SlotStatus.UPLOADED
            assert slot.remarks == "Please upload a clearer scan"
            assert mock_emitter.stage.call_args.args[1] == AuditEventType.STATUS_CHANGE


class TestDeleteDocument:
    """Tests for delete_document."""

    @pytest.mark.asyncio
    async def test_delete_clears_file_and_empties_slot(
        self, mock_db, blob_store, sample_applicant, uploaded_slot, applicant_actor
    ):
        await blob_store.write(uploaded_slot.file_path, b"data")

        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.registry.repository") as mock_registry_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=uploaded_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)
            mock_registry_repo.save_slot = AsyncMock()

            slot = await lifecycle.delete_document(
                mock_db, blob_store, uploaded_slot.id, applicant_actor
            )

            assert slot.status == SlotStatus.EMPTY
            assert slot.file_path is None
            assert await blob_store.list_names() == []
            assert mock_emitter.stage.call_args.args[1] == AuditEventType.DELETE
            mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_delete_confirmed_slot_keeps_registrar_fields(
        self, mock_db, blob_store, sample_applicant, form138, slot_factory, registrar
    ):
        confirmed = slot_factory(
            sample_applicant,
            form138,
            status=SlotStatus.REGISTRAR_CONFIRMED,
            file_path="2025100007_Form138_2025.pdf",
            registrar_status=True,
            submitted_documents=True,
        )
        await blob_store.write(confirmed.file_path, b"data")

        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.registry.repository") as mock_registry_repo,
            patch("app.modules.admissions.lifecycle.emitter"),
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=confirmed)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)
            mock_registry_repo.save_slot = AsyncMock()

            slot = await lifecycle.delete_document(mock_db, blob_store, confirmed.id, registrar)

        assert slot.status == SlotStatus.EMPTY
        assert slot.registrar_status is True
        assert slot.submitted_documents is True

    @pytest.mark.asyncio
    async def test_delete_on_empty_slot_is_a_no_op(
        self, mock_db, blob_store, sample_applicant, empty_slot, applicant_actor
    ):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.registry.repository") as mock_registry_repo,
            patch("app.modules.admissions.lifecycle.emitter"),
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=empty_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)
            mock_registry_repo.save_slot = AsyncMock()

            slot = await lifecycle.delete_document(
                mock_db, blob_store, empty_slot.id, applicant_actor
            )

        assert slot.status == SlotStatus.EMPTY
        assert slot.file_path is None

    @pytest.mark.asyncio
    async def test_delete_when_file_already_gone(
        self, mock_db, blob_store, sample_applicant, uploaded_slot, applicant_actor
    ):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.registry.repository") as mock_registry_repo,
            patch("app.modules.admissions.lifecycle.emitter"),
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=uploaded_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)
            mock_registry_repo.save_slot = AsyncMock()

            slot = await lifecycle.delete_document(
                mock_db, blob_store, uploaded_slot.id, applicant_actor
            )

        assert slot.status == SlotStatus.EMPTY
        assert slot.file_path is None

    @pytest.mark.asyncio
    async def test_commit_failure_keeps_file(
        self, mock_db, blob_store, sample_applicant, uploaded_slot, applicant_actor
    ):
        """The file is removed only once the cleared reference is committed."""
        await blob_store.write(uploaded_slot.file_path, b"data")
        mock_db.commit = AsyncMock(side_effect=_db_failure())

        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.registry.repository") as mock_registry_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_slot_by_id = AsyncMock(return_value=uploaded_slot)
            mock_repo.get_applicant_by_id = AsyncMock(return_value=sample_applicant)
            mock_registry_repo.save_slot = AsyncMock()

            with pytest.raises(PersistenceFailureError):
                await lifecycle.delete_document(
                    mock_db, blob_store, uploaded_slot.id, applicant_actor
                )

            mock_db.rollback.assert_called_once()
            mock_emitter.publish.assert_not_called()

        assert await blob_store.read("2025100007_Form138_2025.pdf") == b"data"


class TestSubmitAll:
    """Tests for submit_all."""

    @pytest.mark.asyncio
    async def test_confirms_every_slot_and_sends_email(
        self, mock_db, sample_applicant, sample_person, registrar
    ):
        slots = [MagicMock(), MagicMock()]

        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
            patch(
                "app.modules.admissions.lifecycle.send_documents_confirmed",
                new_callable=AsyncMock,
            ) as mock_email,
        ):
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.bulk_confirm_slots = AsyncMock(return_value=2)
            mock_repo.get_person_by_id = AsyncMock(return_value=sample_person)
            mock_repo.list_slots = AsyncMock(return_value=slots)
            mock_email.return_value = True

            result = await lifecycle.submit_all(mock_db, "2025100007", registrar)

            assert result == slots
            mock_repo.bulk_confirm_slots.assert_called_once_with(
                mock_db, sample_applicant.id, registrar.display
            )
            calls = [name for name, _, _ in mock_repo.mock_calls]
            assert calls.index("lock_applicant") < calls.index("bulk_confirm_slots")
            mock_repo.lock_applicant.assert_called_once_with(mock_db, sample_applicant.id)
            assert mock_emitter.stage.call_args.args[1] == AuditEventType.SUBMIT
            mock_db.commit.assert_called_once()
            mock_email.assert_called_once_with(
                to_email="juan@example.com",
                applicant_name="Juan Santos Dela Cruz",
                applicant_number="2025100007",
            )

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_submit(
        self, mock_db, sample_applicant, sample_person, registrar
    ):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter"),
            patch(
                "app.modules.admissions.lifecycle.send_documents_confirmed",
                new_callable=AsyncMock,
            ) as mock_email,
        ):
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.bulk_confirm_slots = AsyncMock(return_value=1)
            mock_repo.get_person_by_id = AsyncMock(return_value=sample_person)
            mock_repo.list_slots = AsyncMock(return_value=[])
            mock_email.side_effect = RuntimeError("resend down")

            result = await lifecycle.submit_all(mock_db, "2025100007", registrar)

            assert result == []
            mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_applicant(self, mock_db, registrar):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_applicant_by_number = AsyncMock(return_value=None)
            mock_repo.bulk_confirm_slots = AsyncMock()

            with pytest.raises(ApplicantNotFoundError):
                await lifecycle.submit_all(mock_db, "2025199999", registrar)

            mock_repo.bulk_confirm_slots.assert_not_called()


class TestUnsubmitAll:
    """Tests for unsubmit_all."""

    @pytest.mark.asyncio
    async def test_reverts_every_slot(self, mock_db, sample_applicant, registrar):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.bulk_unconfirm_slots = AsyncMock(return_value=3)
            mock_repo.list_slots = AsyncMock(return_value=[])

            await lifecycle.unsubmit_all(mock_db, "2025100007", registrar)

            mock_repo.bulk_unconfirm_slots.assert_called_once_with(
                mock_db, sample_applicant.id, registrar.display
            )
            calls = [name for name, _, _ in mock_repo.mock_calls]
            assert calls.index("lock_applicant") < calls.index("bulk_unconfirm_slots")
            assert mock_emitter.stage.call_args.args[1] == AuditEventType.UNSUBMIT
            mock_emitter.publish.assert_called_once()

    @pytest.mark.asyncio
    async def test_repeat_unsubmit_is_harmless(self, mock_db, sample_applicant, registrar):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter"),
        ):
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.bulk_unconfirm_slots = AsyncMock(return_value=3)
            mock_repo.list_slots = AsyncMock(return_value=[])

            await lifecycle.unsubmit_all(mock_db, "2025100007", registrar)
            await lifecycle.unsubmit_all(mock_db, "2025100007", registrar)

            assert mock_db.commit.call_count == 2


class TestSetMissingDocuments:
    """Tests for set_missing_documents."""

    @pytest.mark.asyncio
    async def test_writes_deduplicated_labels(self, mock_db, sample_applicant, registrar):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.get_short_labels = AsyncMock(return_value={"Form138", "GoodMoral"})
            mock_repo.bulk_set_missing_documents = AsyncMock(return_value=2)
            mock_repo.list_slots = AsyncMock(return_value=[])

            await lifecycle.set_missing_documents(
                mock_db, "2025100007", ["Form138", "GoodMoral", "Form138"], registrar
            )

            mock_repo.bulk_set_missing_documents.assert_called_once_with(
                mock_db, sample_applicant.id, ["Form138", "GoodMoral"], registrar.display
            )
            calls = [name for name, _, _ in mock_repo.mock_calls]
            assert calls.index("lock_applicant") < calls.index("bulk_set_missing_documents")
            assert mock_emitter.stage.call_args.args[2] == "Missing documents: Form138, GoodMoral"

    @pytest.mark.asyncio
    async def test_empty_list_clears_missing_documents(
        self, mock_db, sample_applicant, registrar
    ):
        with (
            patch("app.modules.admissions.lifecycle.repository") as mock_repo,
            patch("app.modules.admissions.lifecycle.emitter") as mock_emitter,
        ):
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.get_short_labels = AsyncMock(return_value=set())
            mock_repo.bulk_set_missing_documents = AsyncMock(return_value=2)
            mock_repo.list_slots = AsyncMock(return_value=[])

            await lifecycle.set_missing_documents(mock_db, "2025100007", [], registrar)

            assert mock_repo.bulk_set_missing_documents.call_args.args[2] == []
            assert mock_emitter.stage.call_args.args[2] == "Missing documents: none"

    @pytest.mark.asyncio
    async def test_unknown_label_is_rejected(self, mock_db, sample_applicant, registrar):
        with patch("app.modules.admissions.lifecycle.repository") as mock_repo:
            mock_repo.get_applicant_by_number = AsyncMock(return_value=sample_applicant)
            mock_repo.lock_applicant = AsyncMock()
            mock_repo.get_short_labels = AsyncMock(return_value={"Form138"})
            mock_repo.bulk_set_missing_documents = AsyncMock()

            with pytest.raises(ValidationError) as exc_info:
                await lifecycle.set_missing_documents(
                    mock_db, "2025100007", ["Form138", "Diploma"], registrar
                )

            assert exc_info.value.error_code == "UNKNOWN_REQUIREMENT_LABEL"
            assert "Diploma" in exc_info.value.message
            mock_repo.bulk_set_missing_documents.assert_not_called()
