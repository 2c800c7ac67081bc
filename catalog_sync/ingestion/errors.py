from __future__ import annotations

from typing import Optional


class CatalogSyncError(Exception):
    """
    Base class for ingestion failures.
    """


class ValidationError(CatalogSyncError):
    """A required identifier is missing while building a write."""


class NotFoundError(CatalogSyncError):
    """A referenced course, program or association does not exist."""


class ExtractionError(CatalogSyncError):
    """A fetched document or payload does not have the expected structure."""


class ConflictAlreadyExists(CatalogSyncError):
    """
    Raised by repositories when a uniqueness constraint rejects an insert.
    Callers treat it as "already exists", never as a failure.
    """


class FetchError(CatalogSyncError):
    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        detail = f"{message} (status {status_code})" if status_code is not None else message
        super().__init__(f"Error fetching {url}: {detail}")
