# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Public API for SQLAlchemy models."""
from dental_scribe.models.database.recordings_model import (
    PROCESSING_STATUSES,
    RECORD_STATUSES,
    Recording,
)

__all__ = [
    "Recording",
    "PROCESSING_STATUSES",
    "RECORD_STATUSES",
]
