# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Supported visit types and their report-generation instructions."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class VisitType(str, Enum):
    """Visit type selecting the generation instructions."""

    PRIMA_VISITA_GENERICA = "prima_visita_generica"
    PRIMA_VISITA_PEDODONZIA = "prima_visita_pedodonzia"
    CHIRURGIA_IMPIANTI = "chirurgia_impianti"
    VISITA_ORTODONTICA = "visita_ortodontica"
    VISITA_PARODONTALE = "visita_parodontale"


@dataclass(frozen=True)
class VisitTypeConfig:
    """Display metadata plus the clinical focus handed to the report model."""

    visit_type: VisitType
    name: str
    description: str
    role: str
    focus: Tuple[str, ...]


VISIT_TYPES: Dict[VisitType, VisitTypeConfig] = {
    VisitType.PRIMA_VISITA_GENERICA: VisitTypeConfig(
        visit_type=VisitType.PRIMA_VISITA_GENERICA,
        name="Prima visita generica",
        description="Visita dentale completa per nuovo paziente",
        role="un dentista esperto con oltre 20 anni di esperienza",
        focus=(
            "Organizza i reperti per quadranti (1-4) quando possibile",
            "Compila la mappa degli elementi dentari per ogni dente citato",
            "Identifica le aree critiche che richiedono intervento",
        ),
    ),
    VisitType.PRIMA_VISITA_PEDODONZIA: VisitTypeConfig(
        visit_type=VisitType.PRIMA_VISITA_PEDODONZIA,
        name="Prima visita pedodonzia",
        description="Visita dentale pediatrica specializzata",
        role="un pedodontista esperto",
        focus=(
            "Distingui denti decidui e permanenti nella mappa degli elementi dentari",
            "Identifica i fattori di rischio carie e le abitudini alimentari",
            "Riporta le istruzioni per i genitori nel follow-up",
        ),
    ),
    VisitType.CHIRURGIA_IMPIANTI: VisitTypeConfig(
        visit_type=VisitType.CHIRURGIA_IMPIANTI,
        name="Visita Chirurgia e Impianti",
        description="Pianificazione chirurgica per impianti dentali",
        role="un chirurgo orale esperto con specializzazione in implantologia",
        focus=(
            "Riporta patologie rilevanti, farmaci, allergie e fumo nell'anamnesi",
            "Descrivi ogni intervento chirurgico con dente, tipo e urgenza",
            "Dettaglia impianti e protesi previsti nella sezione implantologia",
        ),
    ),
    VisitType.VISITA_ORTODONTICA: VisitTypeConfig(
        visit_type=VisitType.VISITA_ORTODONTICA,
        name="Visita Ortodontica",
        description="Valutazione e pianificazione ortodontica",
        role="un ortodontista specializzato",
        focus=(
            "Compila classe molare, morso e affollamento nella sezione ortodonzia",
            "Riporta trattamenti precedenti, traumi e abitudini viziate",
            "Descrivi il piano di trattamento ortodontico nelle conclusioni",
        ),
    ),
    VisitType.VISITA_PARODONTALE: VisitTypeConfig(
        visit_type=VisitType.VISITA_PARODONTALE,
        name="Visita Parodontale",
        description="Valutazione parodontale e piano di trattamento",
        role="un parodontologo esperto",
        focus=(
            "Riporta indice di placca, sanguinamento e tartaro",
            "Elenca le tasche parodontali con dente e profondità in millimetri",
            "Indica i fattori di rischio (fumo, diabete, stress) nell'anamnesi",
        ),
    ),
}


def get_visit_type(value: Optional[str]) -> Optional[VisitTypeConfig]:
    """Return the configuration for ``value`` or None if it is not supported."""
    try:
        return VISIT_TYPES[VisitType(value)]
    except ValueError:
        return None


def list_visit_types() -> List[VisitTypeConfig]:
    return list(VISIT_TYPES.values())
