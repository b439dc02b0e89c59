# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Pydantic schemas for the recordings API."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordingCreate(BaseModel):
    """Recording creation request.

    Identity fields are optional here so that their absence maps to a 400 with a
    field name rather than a generic schema error.
    """

    studio_id: Optional[str] = Field(None, description="Owning studio")
    patient_id: Optional[str] = Field(None, description="Patient the visit belongs to")
    user_id: Optional[str] = Field(None, description="Clinician who recorded the visit")
    visit_type: Optional[str] = Field(None, description="Visit type key")
    doctor_name: Optional[str] = Field(None, description="Doctor signing the report")
    duration: int = Field(0, description="Recording length in seconds")
    audio_data: Optional[str] = Field(None, description="Base64 audio or data: URL")
    audio_format: Optional[str] = Field(None, description="Container extension, e.g. webm or wav")


class RecordingUpdate(BaseModel):
    """Recording update request. Only provided fields change."""

    studio_id: Optional[str] = Field(None, description="Must match the recording when given")
    doctor_name: Optional[str] = None
    transcript: Optional[str] = None
    referto_data: Optional[Any] = Field(None, description="Report document, any legacy nesting")
    odontogramma_data: Optional[Any] = Field(None, description="Tooth chart document")


class RecordingResponse(BaseModel):
    """Recording as returned by the API."""

    id: str
    studio_id: str
    patient_id: str
    user_id: Optional[str]
    duration: int
    visit_type: Optional[str]
    doctor_name: Optional[str]
    audio_url: Optional[str]
    transcript: Optional[str]
    referto_data: Optional[Dict[str, Any]]
    odontogramma_data: Optional[Dict[str, Any]]
    processing_status: str
    processing_error: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime


class RecordingListResponse(BaseModel):
    success: bool = True
    count: int
    recordings: List[RecordingResponse]


class RecordingDetailResponse(BaseModel):
    success: bool = True
    recording: RecordingResponse


class DeleteResponse(BaseModel):
    success: bool = True
    message: str


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessResponse(_CamelModel):
    """Result of a synchronous processing run."""

    success: bool = True
    recording_id: str
    doctor_name: Optional[str]
    transcript: str
    referto: Dict[str, Any]
    odontogramma: Dict[str, Any]


class RefertoStatusResponse(_CamelModel):
    """Processing status plus outputs, as polled by the client."""

    success: bool = True
    recording_id: str
    patient_id: str
    visit_type: Optional[str]
    doctor_name: Optional[str]
    transcript: Optional[str]
    referto: Optional[Dict[str, Any]]
    odontogramma: Optional[Dict[str, Any]]
    processing_status: str = "pending"
    processing_error: Optional[str] = None
    created_at: datetime


class VisitTypeInfo(BaseModel):
    """Supported visit type."""

    value: str = Field(..., description="Visit type key")
    name: str = Field(..., description="Display name")
    description: str = Field(..., description="What the visit covers")
