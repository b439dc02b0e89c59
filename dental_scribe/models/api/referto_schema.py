# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Pydantic schema for the structured clinical report (referto).

The report is keyed in Italian, as delivered to the clinic. Every key is always
present: unobserved text is ``"Non specificato"``, booleans are ``False`` and lists
are empty. Statistics, anamnesis completeness and the validation block are derived
from the content on every validation and never taken from the input.
"""
import json
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

from dental_scribe.models.api.odontogramma_schema import (
    Odontogramma,
    chart_skeleton,
    normalize_tooth_id,
    normalize_tooth_ids,
)

REPORT_SCHEMA_VERSION = "2.0"
PLACEHOLDER = "Non specificato"


def is_specified(text: Optional[str]) -> bool:
    """True when ``text`` carries information rather than the placeholder."""
    if not text:
        return False
    return text.strip().lower() not in ("", PLACEHOLDER.lower())


def _to_text(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(item) for item in value if item not in (None, ""))
    elif isinstance(value, dict):
        value = "; ".join(f"{k}: {v}" for k, v in value.items() if v not in (None, ""))
    text = str(value).strip()
    return text or PLACEHOLDER


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).replace(",", ".").replace("mm", "").strip())
    except ValueError:
        return None


def _to_items(value: Any) -> List[Dict[str, Any]]:
    """Coerce a model-produced list into a list of item dicts."""
    if value is None:
        return []
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, (list, tuple)):
        value = [value]
    items = []
    for item in value:
        if isinstance(item, BaseModel):
            items.append(item.model_dump())
        elif isinstance(item, dict):
            items.append(item)
        elif item not in (None, ""):
            items.append({"note": str(item)})
    return items


Text = Annotated[str, BeforeValidator(_to_text)]
ToothId = Annotated[Optional[str], BeforeValidator(normalize_tooth_id)]
Millimetres = Annotated[Optional[float], BeforeValidator(_to_float)]


class _ReportModel(BaseModel):
    """Lenient base: unknown keys are ignored and derived keys in the input are dropped."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    DERIVED_FIELDS: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def prepare_input(cls, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value
        value = cls._coerce_input(value)
        return {key: item for key, item in value.items() if key not in cls.DERIVED_FIELDS}

    @classmethod
    def _coerce_input(cls, value: Any) -> Dict[str, Any]:
        return dict(value) if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Header and anamnesis
# ---------------------------------------------------------------------------


class Intestazione(_ReportModel):
    data: Text = PLACEHOLDER
    medico: Text = PLACEHOLDER
    tipo_visita: Text = PLACEHOLDER


Priority = Literal["alta", "media", "bassa"]

# (field, mandatory, priority)
ANAMNESIS_FIELDS: Tuple[Tuple[str, bool, str], ...] = (
    ("motivo_visita", True, "alta"),
    ("anamnesi_medica_generale", True, "alta"),
    ("farmaci_assunti", True, "alta"),
    ("allergie", True, "alta"),
    ("abitudini", False, "media"),
    ("igiene_orale_domiciliare", False, "media"),
    ("anamnesi_odontoiatrica", False, "bassa"),
)


class AnamnesiField(_ReportModel):
    """A single anamnesis entry with its own presence flag."""

    DERIVED_FIELDS = ("obbligatorio", "priorita", "presente")

    obbligatorio: bool = False
    priorita: Priority = "media"
    presente: bool = False
    contenuto: Text = PLACEHOLDER

    @classmethod
    def _coerce_input(cls, value: Any) -> Dict[str, Any]:
        if isinstance(value, dict):
            return dict(value)
        return {"contenuto": value}

    @model_validator(mode="after")
    def derive_presence(self) -> "AnamnesiField":
        self.presente = is_specified(self.contenuto)
        return self


class AnamnesiCompleteness(_ReportModel):
    campi_obbligatori_compilati: int = 0
    campi_facoltativi_compilati: int = 0
    percentuale: float = 0.0


class Anamnesi(_ReportModel):
    DERIVED_FIELDS = ("completezza",)

    motivo_visita: AnamnesiField = Field(default_factory=AnamnesiField)
    anamnesi_medica_generale: AnamnesiField = Field(default_factory=AnamnesiField)
    farmaci_assunti: AnamnesiField = Field(default_factory=AnamnesiField)
    allergie: AnamnesiField = Field(default_factory=AnamnesiField)
    abitudini: AnamnesiField = Field(default_factory=AnamnesiField)
    igiene_orale_domiciliare: AnamnesiField = Field(default_factory=AnamnesiField)
    anamnesi_odontoiatrica: AnamnesiField = Field(default_factory=AnamnesiField)
    completezza: AnamnesiCompleteness = Field(default_factory=AnamnesiCompleteness)

    @classmethod
    def _coerce_input(cls, value: Any) -> Dict[str, Any]:
        # Older reports carried the anamnesis as a single paragraph
        if isinstance(value, str):
            return {"motivo_visita": value}
        return super()._coerce_input(value)

    @model_validator(mode="after")
    def apply_rules(self) -> "Anamnesi":
        mandatory_filled = optional_filled = 0
        for name, mandatory, priority in ANAMNESIS_FIELDS:
            entry: AnamnesiField = getattr(self, name)
            entry.obbligatorio = mandatory
            entry.priorita = priority
            if entry.presente:
                if mandatory:
                    mandatory_filled += 1
                else:
                    optional_filled += 1
        self.completezza = AnamnesiCompleteness(
            campi_obbligatori_compilati=mandatory_filled,
            campi_facoltativi_compilati=optional_filled,
            percentuale=round(
                (mandatory_filled + optional_filled) * 100 / len(ANAMNESIS_FIELDS), 1
            ),
        )
        return self

    def missing_mandatory(self) -> List[str]:
        return [
            name
            for name, mandatory, _ in ANAMNESIS_FIELDS
            if mandatory and not getattr(self, name).presente
        ]


# ---------------------------------------------------------------------------
# Clinical finding items
# ---------------------------------------------------------------------------


class Lesione(_ReportModel):
    dente: ToothId = None
    superfici: Text = PLACEHOLDER
    profondita: Text = PLACEHOLDER
    note: Text = PLACEHOLDER


class Restauro(_ReportModel):
    dente: ToothId = None
    tipo: Text = PLACEHOLDER
    materiale: Text = PLACEHOLDER
    stato: Text = PLACEHOLDER
    note: Text = PLACEHOLDER


class TrattamentoEndodontico(_ReportModel):
    dente: ToothId = None
    stato: Text = PLACEHOLDER
    note: Text = PLACEHOLDER


class Intervento(_ReportModel):
    dente: ToothId = None
    tipo: Text = PLACEHOLDER
    urgenza: Text = PLACEHOLDER
    note: Text = PLACEHOLDER


class Impianto(_ReportModel):
    dente: ToothId = None
    stato: Text = PLACEHOLDER
    note: Text = PLACEHOLDER


class Protesi(_ReportModel):
    denti: List[str] = Field(default_factory=list)
    tipo: Text = PLACEHOLDER
    stato: Text = PLACEHOLDER
    note: Text = PLACEHOLDER

    @field_validator("denti", mode="before")
    @classmethod
    def normalize_teeth(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        return normalize_tooth_ids(value)


class Tasca(_ReportModel):
    dente: ToothId = None
    profondita_mm: Millimetres = None
    note: Text = PLACEHOLDER


class Osservazione(_ReportModel):
    dente: ToothId = None
    note: Text = PLACEHOLDER


# ---------------------------------------------------------------------------
# Numbered clinical categories
# ---------------------------------------------------------------------------


class CategoryStats(_ReportModel):
    totale_voci: int = 0
    denti_coinvolti: int = 0


class _Category(_ReportModel):
    """Base for list-based clinical categories.

    ``ITEM_FIELDS`` maps each list attribute to its item model; ``TEXT_FIELDS``
    lists free-text attributes that count as content when specified.
    """

    DERIVED_FIELDS = ("statistiche",)
    ITEM_FIELDS: ClassVar[Dict[str, Type[BaseModel]]] = {}
    TEXT_FIELDS: ClassVar[Tuple[str, ...]] = ()

    statistiche: CategoryStats = Field(default_factory=CategoryStats)

    @classmethod
    def _coerce_input(cls, value: Any) -> Dict[str, Any]:
        if isinstance(value, list):
            # A bare list is the primary item list
            first = next(iter(cls.ITEM_FIELDS), None)
            value = {first: value} if first else {}
        value = super()._coerce_input(value)
        for name in cls.ITEM_FIELDS:
            if name in value:
                value[name] = _to_items(value[name])
        return value

    @model_validator(mode="after")
    def recompute_stats(self) -> "_Category":
        items = [item for name in self.ITEM_FIELDS for item in getattr(self, name)]
        teeth = []
        for item in items:
            if getattr(item, "dente", None):
                teeth.append(item.dente)
            teeth.extend(getattr(item, "denti", None) or ())
        self.statistiche = CategoryStats(
            totale_voci=len(items), denti_coinvolti=len(normalize_tooth_ids(teeth))
        )
        return self

    def has_content(self) -> bool:
        if self.statistiche.totale_voci:
            return True
        return any(is_specified(getattr(self, name)) for name in self.TEXT_FIELDS)

    @classmethod
    def skeleton(cls) -> Dict[str, Any]:
        """Placeholder dump with one example item per list, for prompts."""
        data = cls().model_dump(by_alias=True, exclude={"statistiche"})
        for name, item_model in cls.ITEM_FIELDS.items():
            data[name] = [item_model().model_dump()]
        return data


ToothState = Literal["presente", "mancante", "incluso", "deciduo", "in_eruzione"]

_TOOTH_STATE_ALIASES = {
    "presente": "presente",
    "sano": "presente",
    "mancante": "mancante",
    "assente": "mancante",
    "estratto": "mancante",
    "incluso": "incluso",
    "deciduo": "deciduo",
    "in_eruzione": "in_eruzione",
}


class ToothMapStats(_ReportModel):
    totale_presenti: int = 0
    totale_mancanti: int = 0
    totale_inclusi: int = 0
    totale_decidui: int = 0
    totale_in_eruzione: int = 0


class ElementiDentari(_ReportModel):
    """Tooth presence map keyed by FDI id. Absent keys mean not recorded."""

    DERIVED_FIELDS = ("statistiche",)

    mappa: Dict[str, ToothState] = Field(default_factory=dict)
    note: Text = PLACEHOLDER
    statistiche: ToothMapStats = Field(default_factory=ToothMapStats)

    @field_validator("mappa", mode="before")
    @classmethod
    def normalize_map(cls, value: Any) -> Dict[str, str]:
        if not isinstance(value, dict):
            return {}
        result = {}
        for key, state in value.items():
            tooth = normalize_tooth_id(key)
            state = _TOOTH_STATE_ALIASES.get(str(state or "").strip().lower().replace(" ", "_"))
            if tooth and state:
                result[tooth] = state
        return dict(sorted(result.items()))

    @model_validator(mode="after")
    def recompute_stats(self) -> "ElementiDentari":
        states = list(self.mappa.values())
        self.statistiche = ToothMapStats(
            totale_presenti=states.count("presente"),
            totale_mancanti=states.count("mancante"),
            totale_inclusi=states.count("incluso"),
            totale_decidui=states.count("deciduo"),
            totale_in_eruzione=states.count("in_eruzione"),
        )
        return self

    def has_content(self) -> bool:
        return bool(self.mappa) or is_specified(self.note)

    @classmethod
    def skeleton(cls) -> Dict[str, Any]:
        return {
            "mappa": {"11": "presente|mancante|incluso|deciduo|in_eruzione"},
            "note": PLACEHOLDER,
        }


class Carie(_Category):
    ITEM_FIELDS = {"lesioni": Lesione}
    TEXT_FIELDS = ("rischio_carie",)

    lesioni: List[Lesione] = Field(default_factory=list)
    rischio_carie: Text = PLACEHOLDER


class Restauri(_Category):
    ITEM_FIELDS = {"restauri": Restauro}

    restauri: List[Restauro] = Field(default_factory=list)


class Endodonzia(_Category):
    ITEM_FIELDS = {"trattamenti": TrattamentoEndodontico}

    trattamenti: List[TrattamentoEndodontico] = Field(default_factory=list)


class Chirurgia(_Category):
    ITEM_FIELDS = {"interventi": Intervento}

    interventi: List[Intervento] = Field(default_factory=list)


class ImplantologiaProtesi(_Category):
    ITEM_FIELDS = {"impianti": Impianto, "protesi": Protesi}

    impianti: List[Impianto] = Field(default_factory=list)
    protesi: List[Protesi] = Field(default_factory=list)


class IgieneParodontologia(_Category):
    ITEM_FIELDS = {"tasche": Tasca}
    TEXT_FIELDS = ("indice_placca", "sanguinamento", "tartaro", "diagnosi_parodontale")

    indice_placca: Text = PLACEHOLDER
    sanguinamento: Text = PLACEHOLDER
    tartaro: Text = PLACEHOLDER
    diagnosi_parodontale: Text = PLACEHOLDER
    tasche: List[Tasca] = Field(default_factory=list)


class Estetica(_Category):
    ITEM_FIELDS = {"osservazioni": Osservazione}

    osservazioni: List[Osservazione] = Field(default_factory=list)


class OrtodonziaPedodonzia(_Category):
    ITEM_FIELDS = {"osservazioni": Osservazione}
    TEXT_FIELDS = ("classe_molare", "morso", "affollamento", "abitudini_viziate")

    classe_molare: Text = PLACEHOLDER
    morso: Text = PLACEHOLDER
    affollamento: Text = PLACEHOLDER
    abitudini_viziate: Text = PLACEHOLDER
    osservazioni: List[Osservazione] = Field(default_factory=list)


# (attribute, serialized key, model, display title)
CLINICAL_SECTIONS: Tuple[Tuple[str, str, Type[_ReportModel], str], ...] = (
    ("elementi_dentari", "1_elementi_dentari", ElementiDentari, "Elementi dentari"),
    ("carie", "2_carie", Carie, "Carie"),
    ("restauri", "3_restauri", Restauri, "Restauri"),
    ("endodonzia", "4_endodonzia", Endodonzia, "Endodonzia"),
    ("chirurgia", "5_chirurgia", Chirurgia, "Chirurgia"),
    ("implantologia_protesi", "6_implantologia_protesi", ImplantologiaProtesi, "Implantologia e protesi"),
    ("igiene_parodontologia", "7_igiene_parodontologia", IgieneParodontologia, "Igiene e parodontologia"),
    ("estetica", "8_estetica", Estetica, "Estetica"),
    ("ortodonzia_pedodonzia", "9_ortodonzia_pedodonzia", OrtodonziaPedodonzia, "Ortodonzia e pedodonzia"),
)


class Conclusioni(_ReportModel):
    diagnosi: Text = PLACEHOLDER
    piano_terapeutico: Text = PLACEHOLDER
    follow_up: Text = PLACEHOLDER

    @classmethod
    def _coerce_input(cls, value: Any) -> Dict[str, Any]:
        if isinstance(value, str):
            return {"diagnosi": value}
        return super()._coerce_input(value)


class Validazione(_ReportModel):
    campi_obbligatori_completati: bool = False
    sezioni_cliniche_complete: int = 0
    avvisi: List[str] = Field(default_factory=list)


class StructuredReport(_ReportModel):
    """Canonical, non-nested clinical report."""

    DERIVED_FIELDS = ("validazione", "schema_version")

    schema_version: str = REPORT_SCHEMA_VERSION
    intestazione: Intestazione = Field(default_factory=Intestazione)
    anamnesi: Anamnesi = Field(default_factory=Anamnesi)
    elementi_dentari: ElementiDentari = Field(
        default_factory=ElementiDentari, alias="1_elementi_dentari"
    )
    carie: Carie = Field(default_factory=Carie, alias="2_carie")
    restauri: Restauri = Field(default_factory=Restauri, alias="3_restauri")
    endodonzia: Endodonzia = Field(default_factory=Endodonzia, alias="4_endodonzia")
    chirurgia: Chirurgia = Field(default_factory=Chirurgia, alias="5_chirurgia")
    implantologia_protesi: ImplantologiaProtesi = Field(
        default_factory=ImplantologiaProtesi, alias="6_implantologia_protesi"
    )
    igiene_parodontologia: IgieneParodontologia = Field(
        default_factory=IgieneParodontologia, alias="7_igiene_parodontologia"
    )
    estetica: Estetica = Field(default_factory=Estetica, alias="8_estetica")
    ortodonzia_pedodonzia: OrtodonziaPedodonzia = Field(
        default_factory=OrtodonziaPedodonzia, alias="9_ortodonzia_pedodonzia"
    )
    conclusioni: Conclusioni = Field(default_factory=Conclusioni)
    odontogramma: Optional[Odontogramma] = None
    validazione: Validazione = Field(default_factory=Validazione)

    @field_validator("odontogramma", mode="before")
    @classmethod
    def coerce_chart(cls, value: Any) -> Optional[Odontogramma]:
        if value is None or value == {}:
            return None
        return Odontogramma.from_payload(value)

    @model_validator(mode="after")
    def validate_content(self) -> "StructuredReport":
        missing = self.anamnesi.missing_mandatory()
        warnings = [f"Campo obbligatorio mancante: {name}" for name in missing]
        complete_sections = sum(1 for section in self.sections() if section.has_content())
        if not complete_sections:
            warnings.append("Nessun dato clinico rilevato nella trascrizione")
        self.validazione = Validazione(
            campi_obbligatori_completati=not missing,
            sezioni_cliniche_complete=complete_sections,
            avvisi=warnings,
        )
        return self

    def sections(self) -> List[Any]:
        return [getattr(self, attribute) for attribute, _, _, _ in CLINICAL_SECTIONS]

    def to_document(self) -> Dict[str, Any]:
        """Serialize with the numbered keys used on the wire and in storage."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def placeholder(cls, **header: str) -> "StructuredReport":
        """Report with every field at its placeholder value."""
        return cls(intestazione=Intestazione(**header))


def report_skeleton() -> Dict[str, Any]:
    """Full placeholder skeleton embedded in the generation prompt."""
    document = StructuredReport.placeholder().to_document()
    document.pop("validazione", None)
    document["anamnesi"] = {name: {"contenuto": PLACEHOLDER} for name, _, _ in ANAMNESIS_FIELDS}
    for _, key, model, _ in CLINICAL_SECTIONS:
        document[key] = model.skeleton()
    document["odontogramma"] = chart_skeleton()
    return document


def report_skeleton_json() -> str:
    return json.dumps(report_skeleton(), ensure_ascii=False, indent=2)


_REPORT_MARKERS = ("schema_version", "anamnesi", "intestazione") + tuple(
    key for _, key, _, _ in CLINICAL_SECTIONS
)


def unwrap_referto(payload: Any) -> Any:
    """Return the innermost clinical document of a possibly nested payload.

    Accepts the bare document, ``{"referto": doc}`` and ``{"referto": {"referto": doc}}``.
    JSON strings are decoded first. Anything else is returned unchanged.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            return payload
    for _ in range(3):
        if not isinstance(payload, dict):
            break
        if any(marker in payload for marker in _REPORT_MARKERS):
            break
        inner = payload.get("referto")
        if isinstance(inner, str):
            inner = unwrap_referto(inner)
        if not isinstance(inner, dict):
            break
        payload = inner
    return payload


def parse_report(payload: Any) -> StructuredReport:
    """Validate a stored or model-produced payload into a canonical report.

    Raises:
        ValueError: payload is empty, not an object, or fails validation
    """
    document = unwrap_referto(payload)
    if not isinstance(document, dict):
        raise ValueError(f"Report must be a JSON object, got {type(document).__name__}")
    if not document:
        raise ValueError("Report is empty")
    return StructuredReport.model_validate(document)
