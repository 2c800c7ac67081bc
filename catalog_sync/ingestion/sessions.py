from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from .models import Trimester

TRIMESTER_INDEX: Dict[Trimester, int] = {
    Trimester.HIVER: 1,
    Trimester.ETE: 2,
    Trimester.AUTOMNE: 3,
}

TRIMESTER_LETTER: Dict[Trimester, str] = {
    Trimester.HIVER: "H",
    Trimester.ETE: "E",
    Trimester.AUTOMNE: "A",
}

DEFAULT_HORAIRE_BASE_URL = "https://horaire.etsmtl.ca/HorairesPDF"


def trimester_for_date(day: date) -> Trimester:
    if day.month <= 4:
        return Trimester.HIVER
    if day.month <= 8:
        return Trimester.ETE
    return Trimester.AUTOMNE


def trimester_index(trimester: Trimester) -> int:
    return TRIMESTER_INDEX[trimester]


def session_code(year: int, trimester: Trimester) -> str:
    """Session code used in schedule URLs, e.g. 20243 for autumn 2024."""
    return f"{year}{trimester_index(trimester)}"


def session_label(year: int, trimester: Trimester) -> str:
    """Column label used in schedule documents, e.g. A24 for autumn 2024."""
    return f"{TRIMESTER_LETTER[trimester]}{year % 100:02d}"


def build_horaire_pdf_url(session: str, program_code: str, base_url: Optional[str] = None) -> str:
    root = (base_url or DEFAULT_HORAIRE_BASE_URL).rstrip("/")
    return f"{root}/{session}/{program_code}.pdf"
