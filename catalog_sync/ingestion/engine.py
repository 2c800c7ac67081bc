from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from .accumulator import accumulate_records, check_row_contiguity
from .classifiers import normalize_token_text
from .columns import HEADER_BORDER_OFFSET, build_columns
from .errors import ExtractionError
from .fetch import Fetcher
from .models import DocumentToken, HeaderCell, ScheduleDocument, ScheduleRecord

logger = logging.getLogger(__name__)

# Light grey used by the registrar's layout for header cells.
DEFAULT_HEADER_FILL: Tuple[float, float, float] = (0.753, 0.753, 0.753)


class ScheduleEngine:
    """
    Abstract reader turning PDF bytes into positioned tokens and marked
    header cells. Implementations should be stateless and reusable.
    """

    def read(self, pdf_bytes: bytes) -> ScheduleDocument:
        raise NotImplementedError


class PyMuPDFScheduleEngine(ScheduleEngine):
    """
    PyMuPDF-based reader. Tokens are the words of each page in content-stream
    order; header cells are the filled rectangles of the first page whose fill
    color matches `header_fill`.
    """

    def __init__(self, header_fill: Tuple[float, float, float] = DEFAULT_HEADER_FILL, color_tolerance: float = 0.02):
        self.header_fill = header_fill
        self.color_tolerance = color_tolerance

    def read(self, pdf_bytes: bytes) -> ScheduleDocument:
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(f"Unreadable schedule document: {exc}") from exc

        try:
            if doc.page_count == 0:
                raise ExtractionError("Schedule document has zero pages")
            pages: List[List[DocumentToken]] = []
            header_cells: List[HeaderCell] = []
            for idx in range(doc.page_count):
                page = doc.load_page(idx)
                pages.append(self._tokens_from_words(page.get_text("words", sort=False) or []))
                if idx == 0:
                    header_cells = self._header_cells_from_drawings(page.get_drawings())
        finally:
            doc.close()
        return ScheduleDocument(pages=pages, header_cells=header_cells)

    def _tokens_from_words(self, words: Iterable[Sequence]) -> List[DocumentToken]:
        tokens: List[DocumentToken] = []
        for word in words:
            x0, y0, x1, y1, text = word[0], word[1], word[2], word[3], word[4]
            content = normalize_token_text(text)
            if not content:
                continue
            tokens.append(DocumentToken(text=content, x=float(x0), y=float(y0), width=x1 - x0, height=y1 - y0))
        return tokens

    def _header_cells_from_drawings(self, drawings: Iterable[dict]) -> List[HeaderCell]:
        cells: List[HeaderCell] = []
        for drawing in drawings:
            if not self._is_header_fill(drawing.get("fill")):
                continue
            rect = drawing.get("rect")
            if rect is None:
                continue
            cells.append(HeaderCell(x=rect.x0, y=rect.y0, width=rect.width, height=rect.height))
        return cells

    def _is_header_fill(self, fill: Optional[Sequence[float]]) -> bool:
        if not fill or len(fill) != 3:
            return False
        return all(abs(a - b) <= self.color_tolerance for a, b in zip(fill, self.header_fill))


class ScheduleParser:
    """
    Turns a schedule document into ScheduleRecords: builds the header column
    model from the first page, then folds every page's tokens into records.
    """

    def __init__(self, engine: ScheduleEngine, fetcher: Optional[Fetcher] = None, border_offset: float = HEADER_BORDER_OFFSET):
        self.engine = engine
        self.fetcher = fetcher
        self.border_offset = border_offset

    def parse_from_url(self, url: str) -> List[ScheduleRecord]:
        if self.fetcher is None:
            raise RuntimeError("ScheduleParser was built without a fetcher")
        data = self.fetcher.get(url)
        try:
            return self.parse_bytes(data)
        except ExtractionError as exc:
            raise ExtractionError(f"Error parsing schedule document {url}: {exc}") from exc

    def parse_bytes(self, pdf_bytes: bytes) -> List[ScheduleRecord]:
        return self.parse_document(self.engine.read(pdf_bytes))

    def parse_document(self, document: ScheduleDocument) -> List[ScheduleRecord]:
        columns = build_columns(document.header_cells, document.first_page, border_offset=self.border_offset)
        logger.debug("Header columns: %s", [c.name for c in columns])
        tokens = document.tokens()
        interrupted = check_row_contiguity(tokens, columns)
        if interrupted:
            logger.debug("Rows with non-contiguous tokens: %s", interrupted)
        return accumulate_records(tokens, columns)
