# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Large Language Model service for report and tooth chart generation."""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from dental_scribe.deps import Settings
from dental_scribe.exceptions import ChartExtractionError, ReportGenerationError, ValidationError
from dental_scribe.models.api.odontogramma_schema import Odontogramma
from dental_scribe.models.api.referto_schema import StructuredReport, is_specified, parse_report
from dental_scribe.services.report_prompts import build_chart_messages, build_report_messages
from dental_scribe.services.visit_types import get_visit_type

logger = logging.getLogger(__name__)


def create_openai_client(settings: Settings) -> AsyncOpenAI:
    """Build the shared async OpenAI client from settings."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not configured; AI processing requests will fail")
    return AsyncOpenAI(
        api_key=settings.openai_api_key or "not-configured",
        base_url=settings.openai_base_url,
    )


class RefertoGenerator:
    """Turns a transcript into a structured report and a tooth chart."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.client = client or create_openai_client(settings)

    async def _complete_json(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> Any:
        """Run a JSON-mode chat completion and decode the reply.

        Raises:
            OpenAIError: transport or API failure
            ValueError: empty or non-JSON reply
        """
        response = await self.client.with_options(
            timeout=timeout, max_retries=0
        ).chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise ValueError("Empty completion")
        logger.debug(f"{model} returned {len(content)} characters")
        return json.loads(content)

    async def generate_referto(
        self,
        transcript: str,
        visit_type: str,
        doctor_name: Optional[str],
        visit_date: Optional[datetime] = None,
    ) -> StructuredReport:
        """
        Generate the structured report for a transcript.

        Args:
            transcript: Visit transcript
            visit_type: Visit type key selecting the instructions
            doctor_name: Doctor the report is written on behalf of
            visit_date: Date shown in the header when the model gives none

        Returns:
            Canonical StructuredReport with derived fields recomputed

        Raises:
            ValidationError: unsupported visit type
            ReportGenerationError: failed request or unusable output
        """
        config = get_visit_type(visit_type)
        if config is None:
            raise ValidationError(f"Tipo di visita non supportato: {visit_type}", field="visit_type")

        logger.info(
            f"Generating referto ({config.visit_type.value}) for {doctor_name or 'unknown doctor'} "
            f"from {len(transcript)} transcript characters"
        )
        messages = build_report_messages(transcript, config, doctor_name)

        try:
            raw = await self._complete_json(
                messages,
                model=self.settings.report_model,
                temperature=self.settings.report_temperature,
                max_tokens=self.settings.report_max_tokens,
                timeout=self.settings.report_timeout,
            )
            report = parse_report(raw)
        except OpenAIError as e:
            logger.error(f"Referto request failed: {e}")
            raise ReportGenerationError(f"Generazione referto fallita: {e}") from e
        except ValueError as e:
            logger.error(f"Referto output unusable: {e}")
            raise ReportGenerationError(
                "Generazione referto fallita: risposta non valida", detail=str(e)
            ) from e

        header = report.intestazione
        header.tipo_visita = config.name
        if doctor_name and not is_specified(header.medico):
            header.medico = doctor_name
        if visit_date and not is_specified(header.data):
            header.data = visit_date.strftime("%d/%m/%Y")

        logger.info(
            f"Referto generated: {report.validazione.sezioni_cliniche_complete} clinical sections, "
            f"{len(report.validazione.avvisi)} warnings"
        )
        return report

    async def extract_odontogramma(self, report: StructuredReport) -> Odontogramma:
        """
        Derive the tooth chart with a dedicated, narrower request.

        Raises:
            ChartExtractionError: failed request or unusable output
        """
        document = report.to_document()
        document.pop("odontogramma", None)
        document.pop("validazione", None)

        try:
            raw = await self._complete_json(
                build_chart_messages(document),
                model=self.settings.chart_model,
                temperature=self.settings.chart_temperature,
                max_tokens=self.settings.chart_max_tokens,
                timeout=self.settings.chart_timeout,
            )
        except (OpenAIError, ValueError) as e:
            raise ChartExtractionError(f"Estrazione odontogramma fallita: {e}") from e

        if not isinstance(raw, dict) or not raw.keys() & {"denti_da_evidenziare", "denti", "odontogramma"}:
            raise ChartExtractionError("Estrazione odontogramma fallita: risposta non valida")
        chart = Odontogramma.from_payload(raw)
        logger.info(f"Odontogramma extracted: {chart.completezza.denti_classificati} teeth classified")
        return chart
