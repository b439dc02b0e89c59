# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Error taxonomy shared by the API, the processing pipeline and the client."""
from typing import Optional


class DentalScribeError(Exception):
    """Base class for all domain errors.

    ``status_code`` and ``code`` drive the HTTP mapping in ``main.py``.
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(DentalScribeError):
    """Caller-supplied input was missing or malformed."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.field = field


class NotFoundError(DentalScribeError):
    """Recording does not exist or has been soft-deleted."""

    status_code = 404
    code = "not_found"


class ProcessingConflictError(DentalScribeError):
    """Another pipeline run currently holds the recording."""

    status_code = 409
    code = "processing_in_progress"


class MissingAudioError(DentalScribeError):
    """The recording references no audio or the stored file is gone."""

    status_code = 422
    code = "audio_not_found"


class TranscriptionError(DentalScribeError):
    """Speech-to-text failed, timed out or returned nothing."""

    status_code = 502
    code = "transcription_failed"


class ReportGenerationError(DentalScribeError):
    """The language model returned no usable structured report."""

    status_code = 502
    code = "report_generation_failed"


class ChartExtractionError(DentalScribeError):
    """Tooth chart extraction failed. Always recovered with an empty chart."""

    status_code = 502
    code = "chart_extraction_failed"


class TransportError(DentalScribeError):
    """Client-side network failure talking to the API."""

    status_code = 503
    code = "transport_error"


class PollingTimeout(DentalScribeError):
    """Client-side: the report did not complete within the attempt ceiling."""

    status_code = 504
    code = "polling_timeout"


class ApiError(DentalScribeError):
    """Client-side: the API answered with an error payload."""

    def __init__(
        self,
        message: str,
        status_code: int,
        code: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code
        self.code = code or "api_error"
