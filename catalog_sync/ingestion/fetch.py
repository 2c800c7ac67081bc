from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Protocol

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PayloadValidationError

from .errors import ExtractionError, FetchError
from .models import CourseSnapshot, ProgramSnapshot

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_API_URL = "https://planets.etsmtl.ca/api/catalog"


class Fetcher(Protocol):
    def get(self, url: str) -> bytes:
        ...


class RequestsFetcher:
    """
    Plain byte retrieval over HTTP. Network errors and non-2xx responses are
    raised as FetchError; there is no retry at this level.
    """

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def get(self, url: str) -> bytes:
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchError(url, "non-success response", status_code=status) from exc
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc
        return response.content


class CoursePayload(BaseModel):
    code: str
    title: str
    description: Optional[str] = None
    credits: Optional[int] = None
    cycle: Optional[int] = None
    programs: List[str] = Field(default_factory=list)


class ProgramPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    title: str
    credits: Optional[int] = None
    cycle: Optional[int] = None
    horaire_parsable_pdf: bool = Field(default=False, alias="horaireParsablePdf")


class CatalogServiceClient:
    """
    Client for the course-catalog web service. Both endpoints return a JSON
    list; entries are validated before they reach the reconciler.
    """

    def __init__(self, fetcher: Fetcher, base_url: str = DEFAULT_CATALOG_API_URL):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")

    def fetch_programs(self) -> List[ProgramSnapshot]:
        items = self._get_list(f"{self.base_url}/programs")
        try:
            payloads = [ProgramPayload.model_validate(item) for item in items]
        except PayloadValidationError as exc:
            raise ExtractionError(f"Malformed program payload: {exc}") from exc
        return [
            ProgramSnapshot(
                code=p.code.strip(),
                title=p.title.strip(),
                credits=p.credits,
                cycle=p.cycle,
                horaire_parsable_pdf=p.horaire_parsable_pdf,
            )
            for p in payloads
        ]

    def fetch_courses(self) -> List[CourseSnapshot]:
        items = self._get_list(f"{self.base_url}/courses")
        try:
            payloads = [CoursePayload.model_validate(item) for item in items]
        except PayloadValidationError as exc:
            raise ExtractionError(f"Malformed course payload: {exc}") from exc
        return [
            CourseSnapshot(
                code=p.code.strip().upper(),
                title=p.title.strip(),
                description=p.description,
                credits=p.credits,
                cycle=p.cycle,
                program_codes=[code.strip() for code in p.programs if code.strip()],
            )
            for p in payloads
        ]

    def _get_list(self, url: str) -> List[Any]:
        raw = self.fetcher.get(url)
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ExtractionError(f"Response from {url} is not JSON") from exc
        if not isinstance(data, list):
            raise ExtractionError(f"Expected a JSON list from {url}, got {type(data).__name__}")
        return data
