# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Clinician-side client: capture, API access, report polling and rendering."""
from dental_scribe.client.api import ScribeApiClient
from dental_scribe.client.config import ClientSettings, get_client_settings
from dental_scribe.client.poller import PollOutcome, PollState, RefertoPoller
from dental_scribe.client.recorder import AudioRecorder
from dental_scribe.client.renderer import RefertoRenderer
from dental_scribe.client.report_view import ReportView
from dental_scribe.client.visit import VisitController

__all__ = [
    "AudioRecorder",
    "ClientSettings",
    "PollOutcome",
    "PollState",
    "RefertoPoller",
    "RefertoRenderer",
    "ReportView",
    "ScribeApiClient",
    "VisitController",
    "get_client_settings",
]
