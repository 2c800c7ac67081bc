from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .classifiers import is_availability, is_code_column, is_course_code, is_prerequisite_column, is_session_label
from .columns import classify
from .models import DocumentToken, HeaderColumn, ScheduleRecord

logger = logging.getLogger(__name__)


class AccumulatorState(str, Enum):
    NO_OPEN_RECORD = "no_open_record"
    OPEN_RECORD = "open_record"


class RecordAccumulator:
    """
    Folds a document's token stream into schedule records.

    Rows are delimited by course codes: a valid code in the code column closes
    the open record and starts a new one. Tokens in session columns are
    attached to whatever record is open. Vertical position is not used.
    """

    def __init__(self, columns: Sequence[HeaderColumn]):
        self.columns = list(columns)
        self.state = AccumulatorState.NO_OPEN_RECORD
        self._current: Optional[ScheduleRecord] = None
        self._emitted: List[ScheduleRecord] = []

    @property
    def records(self) -> List[ScheduleRecord]:
        return list(self._emitted)

    def feed(self, token: DocumentToken) -> None:
        column = classify(self.columns, token.x)
        if column is None:
            return

        if is_code_column(column.name):
            code = is_course_code(token.text)
            if code:
                self._emit_open_record()
                self._current = ScheduleRecord(code=code)
                self.state = AccumulatorState.OPEN_RECORD
            return

        if self._current is None:
            return

        if is_session_label(column.name):
            if is_availability(token.text):
                existing = self._current.available.get(column.name)
                self._current.available[column.name] = f"{existing} {token.text}" if existing else token.text
        elif is_prerequisite_column(column.name) and token.text:
            existing = self._current.prerequisites
            self._current.prerequisites = f"{existing} {token.text}" if existing else token.text

    def finish(self) -> List[ScheduleRecord]:
        self._emit_open_record()
        self._current = None
        self.state = AccumulatorState.NO_OPEN_RECORD
        return self.records

    def _emit_open_record(self) -> None:
        if self._current is not None and self._current.code:
            self._emitted.append(self._current)


def accumulate_records(tokens: Iterable[DocumentToken], columns: Sequence[HeaderColumn]) -> List[ScheduleRecord]:
    accumulator = RecordAccumulator(columns)
    for token in tokens:
        accumulator.feed(token)
    return accumulator.finish()


def check_row_contiguity(
    tokens: Iterable[DocumentToken],
    columns: Sequence[HeaderColumn],
    tolerance: float = 1.0,
) -> List[str]:
    """
    Report course codes whose row is interrupted: a token vertically aligned
    with an earlier code row that shows up after a later code was seen. Used
    to sanity-check documents; it never changes how rows are grouped.
    """
    rows: List[Tuple[str, float]] = []
    interrupted: Dict[str, None] = {}
    for token in tokens:
        column = classify(columns, token.x)
        if column is None:
            continue
        if is_code_column(column.name):
            code = is_course_code(token.text)
            if code:
                rows.append((code, token.y))
            continue
        if len(rows) < 2:
            continue
        for code, row_y in rows[:-1]:
            if abs(row_y - token.y) <= tolerance and abs(rows[-1][1] - token.y) > tolerance:
                interrupted[code] = None
    return list(interrupted)
