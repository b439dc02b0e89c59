# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Visit types router."""
from typing import List

from fastapi import APIRouter

from dental_scribe.models.api import VisitTypeInfo
from dental_scribe.services.visit_types import list_visit_types

router = APIRouter(prefix="/api/visit-types", tags=["visit-types"])


@router.get("", response_model=List[VisitTypeInfo])
async def get_visit_types():
    """List the visit types a recording can be processed with."""
    return [
        VisitTypeInfo(value=config.visit_type.value, name=config.name, description=config.description)
        for config in list_visit_types()
    ]
