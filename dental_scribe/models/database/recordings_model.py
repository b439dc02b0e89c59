# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Recording SQLAlchemy model."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from dental_scribe.database import Base

PROCESSING_STATUSES = ("pending", "processing", "completed", "failed")
RECORD_STATUSES = ("completed", "deleted")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Recording(Base):
    """Recorded dental visit plus its AI processing outputs.

    ``processing_status`` tracks the pipeline; ``status`` is the soft-delete flag.
    Report and chart are stored as serialized JSON text.
    """

    __tablename__ = "recordings"
    __table_args__ = (
        Index("ix_recordings_studio_created", "studio_id", "created_at"),
        Index("ix_recordings_patient", "patient_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    visit_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    doctor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    audio_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referto_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    odontogramma_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processing_status: Mapped[str] = mapped_column(
        Enum(*PROCESSING_STATUSES, name="processing_status", native_enum=False),
        default="pending",
        nullable=False,
    )
    processing_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        Enum(*RECORD_STATUSES, name="record_status", native_enum=False),
        default="completed",
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    @property
    def audio_filename(self) -> Optional[str]:
        """Filename part of ``audio_url``."""
        if not self.audio_url:
            return None
        return self.audio_url.rsplit("/", 1)[-1]
