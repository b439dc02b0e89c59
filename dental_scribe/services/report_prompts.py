# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Prompt rendering for report and chart generation using Jinja2."""
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from dental_scribe.models.api.odontogramma_schema import CATEGORY_NAMES, chart_skeleton
from dental_scribe.models.api.referto_schema import PLACEHOLDER, report_skeleton_json
from dental_scribe.services.visit_types import VisitTypeConfig

PROMPTS_DIR = Path(__file__).parent / "prompts"

CHART_SYSTEM_PROMPT = (
    "Sei un assistente dentale che estrae e struttura dati dall'odontogramma clinico. "
    "Fornisci risposte in JSON valido."
)


@lru_cache()
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(PROMPTS_DIR)),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
    )


def render_prompt(name: str, **context: Any) -> str:
    """Render ``prompts/<name>.j2`` with ``context``."""
    return _environment().get_template(f"{name}.j2").render(**context).strip()


def build_report_messages(
    transcript: str, config: VisitTypeConfig, doctor_name: Optional[str]
) -> List[Dict[str, str]]:
    """Chat messages asking for the full structured report."""
    system = render_prompt(
        "referto_system",
        config=config,
        placeholder=PLACEHOLDER,
        categories=CATEGORY_NAMES,
        skeleton=report_skeleton_json(),
    )
    user = render_prompt("referto_user", transcript=transcript, doctor_name=doctor_name)
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def build_chart_messages(referto: Dict[str, Any]) -> List[Dict[str, str]]:
    """Chat messages asking only for the tooth chart of an existing report."""
    user = render_prompt(
        "chart_user",
        referto=json.dumps(referto, ensure_ascii=False, indent=2),
        skeleton=json.dumps(chart_skeleton(), ensure_ascii=False, indent=2),
        categories=CATEGORY_NAMES,
    )
    return [
        {"role": "system", "content": CHART_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
