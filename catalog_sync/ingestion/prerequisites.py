from __future__ import annotations

import re
from typing import List, Optional

from .classifiers import is_course_code
from .models import PrerequisiteParse

TOKEN_SPLIT_RE = re.compile(r"[^0-9A-Za-z]+")


def parse_prerequisites(text: Optional[str]) -> PrerequisiteParse:
    """
    Extract course codes from free-form prerequisite text such as
    "LOG210 ou MAT145 (ou équivalent)".

    Codes keep their order of appearance and duplicates are kept. The raw
    text is returned untouched so it can be stored as the unstructured
    prerequisite regardless of what was extracted.
    """
    if text is None:
        return PrerequisiteParse(codes=[], has_residue=False, raw_text="")

    codes: List[str] = []
    has_residue = False
    for candidate in TOKEN_SPLIT_RE.split(text):
        if not candidate:
            continue
        code = is_course_code(candidate)
        if code:
            codes.append(code)
        else:
            has_residue = True
    return PrerequisiteParse(codes=codes, has_residue=has_residue, raw_text=text)
