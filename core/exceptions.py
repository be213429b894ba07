# core/exceptions.py
"""
Error taxonomy shared by the crawler, the persistence layer and the API.

Every exception carries a machine-readable ``code`` and the HTTP status the
API should answer with, and serialises to the error envelope returned by the
FastAPI exception handler.
"""

from typing import Any, Dict, Optional


class ScraperException(Exception):
    """Base class for every error the API reports in a structured way."""

    code = "SCRAPER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


# ----------------------------------------------------------------------
# Run-fatal failures – the whole extraction run is aborted
# ----------------------------------------------------------------------
class BrowserLaunchError(ScraperException):
    """Chromium could not be started."""

    code = "BROWSER_LAUNCH_FAILED"


class ListingUnavailableError(ScraperException):
    """The listing page never exposed the link selector."""

    code = "LISTING_UNAVAILABLE"


class ExtractionFailedError(ScraperException):
    """Raised by the run boundary when a run aborts."""

    code = "EXTRACTION_FAILED"


# ----------------------------------------------------------------------
# Boundary errors
# ----------------------------------------------------------------------
class ExtractionInProgressError(ScraperException):
    """A run was requested while another one is still active."""

    code = "EXTRACTION_IN_PROGRESS"
    status_code = 409

    def __init__(self, message: str = "Scraping is already in progress"):
        super().__init__(message)


class DatabaseNotConfiguredError(ScraperException):
    """A database operation was requested but DATABASE_URL is not set."""

    code = "DATABASE_NOT_CONFIGURED"

    def __init__(self, message: str = "DATABASE_URL is not configured"):
        super().__init__(message)
