# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository pattern implementations for database access."""
from dental_scribe.repositories.recording_repository import RecordingRepository

__all__ = ["RecordingRepository"]
