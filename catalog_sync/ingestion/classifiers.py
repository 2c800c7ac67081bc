"""
Token predicates used by the schedule parser and the prerequisite parser.
All functions are pure and safe to call repeatedly on the same token.
"""

from __future__ import annotations

import re
from typing import Optional

COURSE_CODE_RE = re.compile(r"^[A-Z]{3}[0-9]{3}$")
SESSION_LABEL_RE = re.compile(r"^[AHE][0-9]{2}$")

AVAILABILITY_LETTERS = "JSI"  # jour, soir, intensif
# Any text made of the allowed letters where no letter appears twice.
AVAILABILITY_RE = re.compile(rf"^(?!.*(.).*\1)[{AVAILABILITY_LETTERS}]+$")

CODE_COLUMN_NAME = "code"
PREREQUISITE_COLUMN_NAMES = frozenset({"préalables", "prealables", "prérequis", "prerequisites"})


def normalize_token_text(raw: Optional[str]) -> str:
    if raw is None:
        return ""
    return raw.strip()


def is_course_code(text: Optional[str]) -> str:
    """
    Return the validated, upper-cased course code or an empty string when
    the text is not a course code.
    """
    if not text:
        return ""
    candidate = text.strip().upper()
    return candidate if COURSE_CODE_RE.match(candidate) else ""


def is_availability(text: Optional[str]) -> bool:
    if not text:
        return False
    return bool(AVAILABILITY_RE.match(text))


def is_session_label(text: Optional[str]) -> bool:
    if not text:
        return False
    return bool(SESSION_LABEL_RE.match(text))


def is_code_column(name: str) -> bool:
    return name.strip().lower() == CODE_COLUMN_NAME


def is_prerequisite_column(name: str) -> bool:
    return name.strip().lower() in PREREQUISITE_COLUMN_NAMES
