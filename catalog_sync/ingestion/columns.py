from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from .errors import ExtractionError
from .models import DocumentToken, HeaderCell, HeaderColumn

logger = logging.getLogger(__name__)

# Marked fills are drawn slightly right of the text they frame; widen the
# left edge only.
HEADER_BORDER_OFFSET = 2.0


def _in_box(token: DocumentToken, start_x: float, end_x: float, start_y: float, end_y: float) -> bool:
    return start_x <= token.x <= end_x and start_y <= token.y <= end_y


def build_columns(
    header_cells: Sequence[HeaderCell],
    tokens: Iterable[DocumentToken],
    border_offset: float = HEADER_BORDER_OFFSET,
) -> List[HeaderColumn]:
    """
    Derive the header columns of a schedule document from its marked header
    cells. Each column is named after the tokens that fall inside the cell
    box, joined with spaces in encounter order.
    """
    if not header_cells:
        raise ExtractionError("No header cells found on the first page")

    page_tokens = list(tokens)
    ordered = sorted(header_cells, key=lambda cell: cell.x)
    columns: List[HeaderColumn] = []
    for index, cell in enumerate(ordered):
        start_x = cell.x - border_offset
        end_x = cell.x + cell.width
        start_y = cell.y
        end_y = cell.y + cell.height
        parts = [t.text for t in page_tokens if _in_box(t, start_x, end_x, start_y, end_y)]
        name = " ".join(part for part in parts if part).strip()
        columns.append(HeaderColumn(index=index, name=name, start_x=start_x, end_x=end_x))

    # Only the cells themselves are checked; the left-edge tolerance may
    # overlap the previous column, where the first match wins.
    for left, right in zip(columns, columns[1:]):
        if right.start_x + border_offset < left.end_x:
            logger.warning(
                "Header columns %r and %r overlap (%.2f > %.2f)",
                left.name,
                right.name,
                left.end_x,
                right.start_x,
            )
    return columns


def classify(columns: Sequence[HeaderColumn], x: float) -> Optional[HeaderColumn]:
    for column in columns:
        if column.contains(x):
            return column
    return None
