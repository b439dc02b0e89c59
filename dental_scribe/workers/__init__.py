# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Recording processing pipeline."""
from dental_scribe.workers.processing_context import ProcessingContext
from dental_scribe.workers.recording_processor import (
    ProcessingResult,
    ProcessingStage,
    RecordingProcessor,
)

__all__ = ["ProcessingContext", "ProcessingResult", "ProcessingStage", "RecordingProcessor"]
