# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Health check router."""
import os

from fastapi import APIRouter, Depends

from dental_scribe.deps import Settings, get_settings
from dental_scribe.models.api import HealthResponse

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Basic health check endpoint."""
    services = {}

    services["openai_api"] = "configured" if settings.openai_api_key else "not_configured"

    if settings.storage_backend == "s3":
        services["storage"] = "s3"
    else:
        services["storage"] = "ok" if os.path.exists(settings.upload_dir) else "missing"

    return HealthResponse(status="healthy", version=settings.api_version, services=services)
