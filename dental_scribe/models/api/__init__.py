# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Public API for Pydantic schemas."""
from dental_scribe.models.api.common_schema import ErrorResponse, HealthResponse
from dental_scribe.models.api.odontogramma_schema import Odontogramma
from dental_scribe.models.api.recordings_schema import (
    DeleteResponse,
    ProcessResponse,
    RecordingCreate,
    RecordingDetailResponse,
    RecordingListResponse,
    RecordingResponse,
    RecordingUpdate,
    RefertoStatusResponse,
    VisitTypeInfo,
)
from dental_scribe.models.api.referto_schema import StructuredReport, parse_report, unwrap_referto

__all__ = [
    # Recordings
    "RecordingCreate",
    "RecordingUpdate",
    "RecordingResponse",
    "RecordingListResponse",
    "RecordingDetailResponse",
    "DeleteResponse",
    "ProcessResponse",
    "RefertoStatusResponse",
    "VisitTypeInfo",
    # Report and chart
    "StructuredReport",
    "Odontogramma",
    "parse_report",
    "unwrap_referto",
    # Common
    "ErrorResponse",
    "HealthResponse",
]
