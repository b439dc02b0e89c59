# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository for Recording operations."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, desc, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dental_scribe.models import database as db_models
from dental_scribe.models.database.recordings_model import utcnow

# Statuses from which a new processing run may start
CLAIMABLE_STATUSES = ("pending", "completed", "failed")


class RecordingRepository:
    """Repository for Recording CRUD and processing-state transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        studio_id: str,
        patient_id: str,
        recording_id: Optional[str] = None,
        user_id: Optional[str] = None,
        visit_type: Optional[str] = None,
        doctor_name: Optional[str] = None,
        duration: int = 0,
        audio_url: Optional[str] = None,
    ) -> db_models.Recording:
        """
        Create a new recording in the pending state.

        Args:
            studio_id: Owning studio
            patient_id: Patient the visit belongs to
            recording_id: Pre-generated id (the audio filename embeds it)
            user_id: Recording clinician
            visit_type: Visit type key
            doctor_name: Doctor signing the report
            duration: Length in seconds
            audio_url: Stable reference to the stored audio

        Returns:
            Created Recording instance
        """
        recording = db_models.Recording(
            studio_id=studio_id,
            patient_id=patient_id,
            user_id=user_id,
            visit_type=visit_type,
            doctor_name=doctor_name,
            duration=duration,
            audio_url=audio_url,
            processing_status="pending",
            status="completed",
        )
        if recording_id:
            recording.id = recording_id
        self.db.add(recording)
        await self.db.flush()
        await self.db.refresh(recording)
        return recording

    async def get_by_id(
        self, recording_id: str, include_deleted: bool = False
    ) -> Optional[db_models.Recording]:
        """Get recording by ID. Soft-deleted rows are hidden unless asked for."""
        query = select(db_models.Recording).where(db_models.Recording.id == recording_id)
        if not include_deleted:
            query = query.where(db_models.Recording.status != "deleted")
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def list_by_studio(
        self, studio_id: str, patient_id: Optional[str] = None
    ) -> List[db_models.Recording]:
        """List a studio's non-deleted recordings, newest first."""
        query = select(db_models.Recording).where(
            and_(
                db_models.Recording.studio_id == studio_id,
                db_models.Recording.status != "deleted",
            )
        )
        if patient_id:
            query = query.where(db_models.Recording.patient_id == patient_id)

        query = query.order_by(desc(db_models.Recording.created_at))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_by_patient(self, patient_id: str, studio_id: str) -> List[db_models.Recording]:
        """List a patient's non-deleted recordings within a studio, newest first."""
        return await self.list_by_studio(studio_id, patient_id=patient_id)

    async def update(self, recording_id: str, **kwargs) -> Optional[db_models.Recording]:
        """Update plain attributes of a recording."""
        recording = await self.get_by_id(recording_id)
        if recording:
            for key, value in kwargs.items():
                if hasattr(recording, key):
                    setattr(recording, key, value)
            await self.db.flush()
            await self.db.refresh(recording)
        return recording

    async def soft_delete(self, recording_id: str) -> Optional[db_models.Recording]:
        """Flag a recording as deleted. Returns the row as it was, or None."""
        recording = await self.get_by_id(recording_id)
        if recording:
            recording.status = "deleted"
            await self.db.flush()
        return recording

    async def claim_for_processing(self, recording_id: str, stale_before: datetime) -> bool:
        """
        Atomically move a recording into ``processing``.

        A single conditional UPDATE succeeds only from a claimable status or from a
        ``processing`` claim older than ``stale_before``.

        Args:
            recording_id: Recording to claim
            stale_before: Claims started before this instant may be taken over

        Returns:
            True if this caller now holds the claim
        """
        result = await self.db.execute(
            update(db_models.Recording)
            .where(
                db_models.Recording.id == recording_id,
                db_models.Recording.status != "deleted",
                or_(
                    db_models.Recording.processing_status.in_(CLAIMABLE_STATUSES),
                    and_(
                        db_models.Recording.processing_status == "processing",
                        or_(
                            db_models.Recording.processing_started_at.is_(None),
                            db_models.Recording.processing_started_at < stale_before,
                        ),
                    ),
                ),
            )
            .values(
                processing_status="processing",
                processing_started_at=utcnow(),
                processing_error=None,
            )
            .returning(db_models.Recording.id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none() is not None

    async def save_transcript(self, recording_id: str, transcript: str) -> None:
        """Persist the transcript as intermediate state of a running job."""
        await self.db.execute(
            update(db_models.Recording)
            .where(db_models.Recording.id == recording_id)
            .values(transcript=transcript)
            .execution_options(synchronize_session="fetch")
        )

    async def mark_completed(
        self,
        recording_id: str,
        transcript: str,
        referto_data: str,
        odontogramma_data: str,
    ) -> None:
        """
        Write all processing outputs and the ``completed`` status in one UPDATE.

        Args:
            recording_id: Recording ID
            transcript: Final transcript text
            referto_data: Serialized report JSON
            odontogramma_data: Serialized chart JSON
        """
        await self.db.execute(
            update(db_models.Recording)
            .where(db_models.Recording.id == recording_id)
            .values(
                transcript=transcript,
                referto_data=referto_data,
                odontogramma_data=odontogramma_data,
                processing_status="completed",
                processing_error=None,
                processing_started_at=None,
            )
            .execution_options(synchronize_session="fetch")
        )

    async def release_claim(self, recording_id: str, status: str, error_message: str) -> None:
        """
        End a failed run: hand the row back in ``status`` and record the error.

        Transcript and outputs are left as they are.
        """
        await self.db.execute(
            update(db_models.Recording)
            .where(db_models.Recording.id == recording_id)
            .values(
                processing_status=status,
                processing_error=error_message,
                processing_started_at=None,
            )
            .execution_options(synchronize_session="fetch")
        )
