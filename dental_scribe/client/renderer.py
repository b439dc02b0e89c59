# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Renders a stored report and tooth chart into a view model and HTML."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from dental_scribe.models.api.odontogramma_schema import (
    CATEGORY_COLORS,
    CHART_CATEGORIES,
    Odontogramma,
    normalize_tooth_id,
)
from dental_scribe.models.api.referto_schema import (
    ANAMNESIS_FIELDS,
    CLINICAL_SECTIONS,
    PLACEHOLDER,
    StructuredReport,
    is_specified,
    unwrap_referto,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Chart rows as seen from the front: upper 18..11 21..28, lower 48..41 31..38
UPPER_ROW: Tuple[str, ...] = tuple(f"1{p}" for p in range(8, 0, -1)) + tuple(
    f"2{p}" for p in range(1, 9)
)
LOWER_ROW: Tuple[str, ...] = tuple(f"4{p}" for p in range(8, 0, -1)) + tuple(
    f"3{p}" for p in range(1, 9)
)

ANAMNESIS_LABELS: Dict[str, str] = {
    "motivo_visita": "Motivo della visita",
    "anamnesi_medica_generale": "Anamnesi medica generale",
    "farmaci_assunti": "Farmaci assunti",
    "allergie": "Allergie",
    "abitudini": "Abitudini",
    "igiene_orale_domiciliare": "Igiene orale domiciliare",
    "anamnesi_odontoiatrica": "Anamnesi odontoiatrica",
}

# Field-specific fallbacks, everything else shows PLACEHOLDER
FALLBACKS: Dict[str, str] = {
    "motivo_visita": "Controllo di routine",
    "farmaci_assunti": "Nessuno",
    "allergie": "Nessuna nota",
    "follow_up": "Controllo di routine",
    "piano_terapeutico": "Nessuna cura indicata",
}

TOOTH_STATE_LABELS: Dict[str, str] = {
    "presente": "Presente",
    "mancante": "Mancante",
    "incluso": "Incluso",
    "deciduo": "Deciduo",
    "in_eruzione": "In eruzione",
}


def display(value: Any, fallback: str = PLACEHOLDER) -> str:
    """Text to show for ``value``, or ``fallback`` when it is missing or a placeholder."""
    if value is None:
        return fallback
    text = str(value).strip()
    return text if is_specified(text) else fallback


@dataclass
class ToothCell:
    """One chart position."""

    tooth: str
    categories: List[str] = field(default_factory=list)

    @property
    def category(self) -> Optional[str]:
        # First category in legend order wins the colour
        return self.categories[0] if self.categories else None

    @property
    def color(self) -> Optional[str]:
        return CATEGORY_COLORS.get(self.category) if self.category else None


@dataclass
class ChartView:
    upper: List[ToothCell]
    lower: List[ToothCell]
    legend: List[Dict[str, str]]
    missing_count: int = 0
    classified_count: int = 0
    error: Optional[str] = None

    def lookup_tooth(self, tooth: Any) -> Optional[ToothCell]:
        tooth_id = normalize_tooth_id(tooth)
        if tooth_id is None:
            return None
        return next((cell for cell in self.upper + self.lower if cell.tooth == tooth_id), None)

    def describe_tooth(self, tooth: Any) -> Optional[str]:
        cell = self.lookup_tooth(tooth)
        if cell is None:
            return None
        labels = {name: label for name, _, label in CHART_CATEGORIES}
        findings = ", ".join(labels[name] for name in cell.categories) or "Nessun reperto"
        return f"Dente {cell.tooth}: {findings}"


@dataclass
class Row:
    label: str
    value: str
    mandatory: bool = False


@dataclass
class SectionView:
    key: str
    title: str
    rows: List[Row] = field(default_factory=list)
    empty: bool = True


@dataclass
class ReportViewModel:
    header: List[Row]
    anamnesi: List[Row]
    sections: List[SectionView]
    conclusioni: List[Row]
    warnings: List[str]
    chart: ChartView
    schema_version: str


def _item_text(item: Dict[str, Any]) -> str:
    parts = []
    for key, value in item.items():
        if value is None or value == [] or not is_specified(str(value)):
            continue
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        parts.append(f"{key.replace('_', ' ')}: {value}")
    return "; ".join(parts) or PLACEHOLDER


def build_chart_view(payload: Any) -> ChartView:
    """Chart view model. Unknown tooth ids are ignored; legacy shapes are migrated."""
    chart = Odontogramma.from_payload(payload)
    cells = {tooth: ToothCell(tooth=tooth) for tooth in UPPER_ROW + LOWER_ROW}
    highlighted = chart.denti_da_evidenziare
    for name, _, _ in CHART_CATEGORIES:
        for tooth in getattr(highlighted, name):
            cell = cells.get(tooth)
            if cell is not None and name not in cell.categories:
                cell.categories.append(name)
    return ChartView(
        upper=[cells[t] for t in UPPER_ROW],
        lower=[cells[t] for t in LOWER_ROW],
        legend=[entry.model_dump() for entry in chart.legenda_colori],
        missing_count=chart.totale_denti_mancanti,
        classified_count=chart.completezza.denti_classificati,
        error=chart.errore,
    )


def _section_rows(key: str, section: Any) -> List[Row]:
    rows = []
    if key == "1_elementi_dentari":
        for tooth, state in section.mappa.items():
            rows.append(Row(label=f"Dente {tooth}", value=TOOTH_STATE_LABELS.get(state, state)))
        if is_specified(section.note):
            rows.append(Row(label="Note", value=section.note))
        return rows

    for name in section.TEXT_FIELDS:
        value = getattr(section, name)
        if is_specified(value):
            rows.append(Row(label=name.replace("_", " ").capitalize(), value=value))
    for name in section.ITEM_FIELDS:
        for item in getattr(section, name):
            data = item.model_dump()
            tooth = data.pop("dente", None)
            label = f"Dente {tooth}" if tooth else name.replace("_", " ").capitalize()
            rows.append(Row(label=label, value=_item_text(data)))
    return rows


def build_view_model(referto: Any, odontogramma: Any = None) -> ReportViewModel:
    """
    Build the view model for a report payload.

    Args:
        referto: Report document in any nesting (bare, single or double wrapped)
        odontogramma: Separately stored chart; falls back to the report's own chart

    Returns:
        ReportViewModel with every missing value replaced by a display fallback
    """
    document = unwrap_referto(referto)
    if not isinstance(document, dict) or not document:
        logger.warning("Rendering placeholder report: payload is empty or not an object")
        report = StructuredReport.placeholder()
    else:
        report = StructuredReport.model_validate(document)

    header = report.intestazione
    header_rows = [
        Row(label="Data", value=display(header.data)),
        Row(label="Medico", value=display(header.medico)),
        Row(label="Tipo di visita", value=display(header.tipo_visita)),
    ]

    anamnesi_rows = []
    for name, mandatory, _ in ANAMNESIS_FIELDS:
        entry = getattr(report.anamnesi, name)
        anamnesi_rows.append(
            Row(
                label=ANAMNESIS_LABELS[name],
                value=display(entry.contenuto, FALLBACKS.get(name, PLACEHOLDER)),
                mandatory=mandatory,
            )
        )

    sections = []
    for attribute, key, _, title in CLINICAL_SECTIONS:
        section = getattr(report, attribute)
        rows = _section_rows(key, section)
        sections.append(SectionView(key=key, title=title, rows=rows, empty=not rows))

    conclusioni = report.conclusioni
    conclusion_rows = [
        Row(label="Diagnosi", value=display(conclusioni.diagnosi)),
        Row(
            label="Piano terapeutico",
            value=display(conclusioni.piano_terapeutico, FALLBACKS["piano_terapeutico"]),
        ),
        Row(label="Follow-up", value=display(conclusioni.follow_up, FALLBACKS["follow_up"])),
    ]

    chart_payload = odontogramma if odontogramma else report.odontogramma
    return ReportViewModel(
        header=header_rows,
        anamnesi=anamnesi_rows,
        sections=sections,
        conclusioni=conclusion_rows,
        warnings=list(report.validazione.avvisi),
        chart=build_chart_view(chart_payload),
        schema_version=report.schema_version,
    )


@lru_cache()
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=True,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


class RefertoRenderer:
    """Turns a report payload into HTML."""

    template_name = "referto.html.j2"

    def __init__(self, environment: Optional[Environment] = None):
        self.environment = environment or _environment()

    def build(self, referto: Any, odontogramma: Any = None) -> ReportViewModel:
        return build_view_model(referto, odontogramma)

    def render(
        self,
        referto: Any,
        odontogramma: Any = None,
        patient_name: Optional[str] = None,
        generated_at: Optional[datetime] = None,
    ) -> str:
        view = self.build(referto, odontogramma)
        template = self.environment.get_template(self.template_name)
        html = template.render(
            view=view,
            patient_name=patient_name,
            generated_at=(generated_at or datetime.now()).strftime("%d/%m/%Y %H:%M"),
        )
        logger.debug(
            f"Rendered referto: {sum(not s.empty for s in view.sections)} sections with data, "
            f"{view.chart.classified_count} teeth on chart"
        )
        return html
