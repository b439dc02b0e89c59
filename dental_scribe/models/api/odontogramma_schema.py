# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Pydantic schema for the colour-coded tooth chart (odontogramma)."""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

CHART_SCHEMA_VERSION = "2.0"

# FDI two-digit numbering: quadrant 1-4, position 1-8
VALID_TEETH: Tuple[str, ...] = tuple(
    f"{quadrant}{position}" for quadrant in range(1, 5) for position in range(1, 9)
)
_VALID_TEETH_SET = frozenset(VALID_TEETH)

# Fixed legend, in render priority order
CHART_CATEGORIES: Tuple[Tuple[str, str, str], ...] = (
    ("mancanti", "#9E9E9E", "Denti mancanti"),
    ("carie", "#E53935", "Carie"),
    ("restauri", "#1E88E5", "Restauri"),
    ("endodonzia", "#8E24AA", "Endodonzia"),
    ("estrazioni", "#212121", "Estrazioni"),
    ("impianti", "#43A047", "Impianti"),
    ("protesi", "#FDD835", "Protesi"),
    ("parodontale", "#FB8C00", "Parodontale"),
)
CATEGORY_NAMES: Tuple[str, ...] = tuple(name for name, _, _ in CHART_CATEGORIES)
CATEGORY_COLORS: Dict[str, str] = {name: color for name, color, _ in CHART_CATEGORIES}

# Free-text procedure names (legacy payloads, clinician input) to chart procedure codes
PROCEDURE_CODES: Dict[str, str] = {
    "estrazione": "extract",
    "extract": "extract",
    "extraction": "extract",
    "conservativa": "conservativa",
    "conservative": "conservativa",
    "otturazione": "conservativa",
    "filling": "conservativa",
    "endodonzia": "endodonzia",
    "devitalizzazione": "endodonzia",
    "root_canal": "endodonzia",
    "impianto": "impianto",
    "implant": "impianto",
    "corona": "impianto",
    "crown": "impianto",
    "extract-impianto": "extract-impianto",
    "extraction-implant": "extract-impianto",
    "endodonzia-corona": "endodonzia-corona",
    "root_canal_crown": "endodonzia-corona",
}

# Chart categories each procedure code paints
PROCEDURE_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "extract": ("estrazioni",),
    "conservativa": ("restauri",),
    "endodonzia": ("endodonzia",),
    "impianto": ("impianti",),
    "extract-impianto": ("estrazioni", "impianti"),
    "endodonzia-corona": ("endodonzia", "protesi"),
}

# Legacy per-tooth status values
_STATUS_CATEGORIES: Dict[str, str] = {
    "carie": "carie",
    "cariato": "carie",
    "mancante": "mancanti",
    "assente": "mancanti",
    "estratto": "estrazioni",
}


def map_procedure(procedure: Any) -> Optional[str]:
    """Map a procedure name to its chart code.

    Unknown or empty names map to ``None`` (no visual effect).
    """
    if not procedure:
        return None
    return PROCEDURE_CODES.get(str(procedure).strip().lower())


def normalize_tooth_id(value: Any) -> Optional[str]:
    """Return the canonical FDI id for ``value`` or ``None`` if it is not a valid tooth.

    Accepts ``11``, ``"11"`` and the dotted form ``"1.1"``.
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().replace(".", "")
    return text if text in _VALID_TEETH_SET else None


def normalize_tooth_ids(values: Iterable[Any]) -> List[str]:
    """Canonicalize, de-duplicate and drop invalid tooth ids, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        tooth = normalize_tooth_id(value)
        if tooth is None:
            if value not in (None, ""):
                logger.debug(f"Dropping invalid tooth id: {value!r}")
            continue
        if tooth not in seen:
            seen.add(tooth)
            result.append(tooth)
    return result


class LegendEntry(BaseModel):
    """One entry of the fixed colour legend."""

    categoria: str = Field(..., description="Chart category key")
    colore: str = Field(..., description="Hex colour")
    etichetta: str = Field(..., description="Display label")


def default_legend() -> List[LegendEntry]:
    return [
        LegendEntry(categoria=name, colore=color, etichetta=label)
        for name, color, label in CHART_CATEGORIES
    ]


class HighlightedTeeth(BaseModel):
    """Teeth to highlight, one list per chart category."""

    mancanti: List[str] = Field(default_factory=list)
    carie: List[str] = Field(default_factory=list)
    restauri: List[str] = Field(default_factory=list)
    endodonzia: List[str] = Field(default_factory=list)
    estrazioni: List[str] = Field(default_factory=list)
    impianti: List[str] = Field(default_factory=list)
    protesi: List[str] = Field(default_factory=list)
    parodontale: List[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def normalize_lists(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            return []
        return normalize_tooth_ids(value)

    def classified_teeth(self) -> List[str]:
        """Distinct teeth appearing in any category."""
        return normalize_tooth_ids(
            tooth for name in CATEGORY_NAMES for tooth in getattr(self, name)
        )


class ChartCompleteness(BaseModel):
    """How much of the dentition the chart classifies."""

    denti_classificati: int = 0
    percentuale: float = 0.0


_DERIVED_KEYS = ("schema_version", "legenda_colori", "totale_denti_mancanti", "completezza")


class Odontogramma(BaseModel):
    """Standardized colour-coded dental chart.

    The legend and the statistics are always recomputed, whatever the input said.
    """

    schema_version: str = CHART_SCHEMA_VERSION
    legenda_colori: List[LegendEntry] = Field(default_factory=default_legend)
    denti_da_evidenziare: HighlightedTeeth = Field(default_factory=HighlightedTeeth)
    totale_denti_mancanti: int = 0
    completezza: ChartCompleteness = Field(default_factory=ChartCompleteness)
    errore: Optional[str] = Field(None, description="Set when this is the fallback chart")

    @model_validator(mode="before")
    @classmethod
    def drop_derived(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: item for key, item in value.items() if key not in _DERIVED_KEYS}
        return value

    @field_validator("denti_da_evidenziare", mode="before")
    @classmethod
    def coerce_highlighted(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, HighlightedTeeth)) else {}

    @field_validator("errore", mode="before")
    @classmethod
    def coerce_error(cls, value: Any) -> Optional[str]:
        return str(value) if value else None

    @model_validator(mode="after")
    def recompute(self) -> "Odontogramma":
        self.schema_version = CHART_SCHEMA_VERSION
        self.legenda_colori = default_legend()
        classified = len(self.denti_da_evidenziare.classified_teeth())
        self.totale_denti_mancanti = len(self.denti_da_evidenziare.mancanti)
        self.completezza = ChartCompleteness(
            denti_classificati=classified,
            percentuale=round(classified * 100 / len(VALID_TEETH), 1),
        )
        return self

    @classmethod
    def empty(cls, error: Optional[str] = None) -> "Odontogramma":
        """Well-formed chart with every category empty."""
        return cls(errore=error)

    @classmethod
    def from_payload(cls, payload: Any) -> "Odontogramma":
        """Build a chart from any stored or model-produced payload.

        Accepts the current shape, a ``{"odontogramma": {...}}`` wrapper and the legacy
        per-tooth ``{"denti": {...}}`` shape. Anything else yields the empty chart.
        """
        if isinstance(payload, Odontogramma):
            return payload
        if not isinstance(payload, dict):
            return cls.empty()
        if "denti_da_evidenziare" not in payload and isinstance(payload.get("odontogramma"), dict):
            payload = payload["odontogramma"]
        if "denti_da_evidenziare" in payload:
            return cls.model_validate(payload)
        if isinstance(payload.get("denti"), dict):
            return cls.from_legacy(payload)
        return cls.empty(error=payload.get("errore") or payload.get("error"))

    @classmethod
    def from_legacy(cls, payload: Dict[str, Any]) -> "Odontogramma":
        """Migrate the per-tooth ``denti`` shape through the procedure lookup table."""
        highlighted: Dict[str, List[str]] = {name: [] for name in CATEGORY_NAMES}
        for key, tooth_data in payload.get("denti", {}).items():
            if not isinstance(tooth_data, dict):
                continue
            tooth = normalize_tooth_id(tooth_data.get("numero")) or normalize_tooth_id(key)
            if tooth is None:
                continue
            status_category = _STATUS_CATEGORIES.get(str(tooth_data.get("status", "")).lower())
            if status_category:
                highlighted[status_category].append(tooth)
            code = map_procedure(tooth_data.get("procedure"))
            for category in PROCEDURE_CATEGORIES.get(code, ()):
                highlighted[category].append(tooth)
        return cls(
            denti_da_evidenziare=highlighted,
            errore=payload.get("error") or payload.get("errore"),
        )

    def has_highlights(self) -> bool:
        return bool(self.denti_da_evidenziare.classified_teeth())


def chart_skeleton() -> Dict[str, Any]:
    """JSON skeleton used in prompts."""
    return {
        "denti_da_evidenziare": {name: [] for name in CATEGORY_NAMES},
    }
