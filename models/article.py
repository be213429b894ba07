# models/article.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
#  Listing page output – one teaser link
# ----------------------------------------------------------------------
class LinkRecord(BaseModel):
    """A link found on the listing page; ``url`` is always absolute."""

    title: str = ""
    url: str = Field(..., min_length=1)


# ----------------------------------------------------------------------
#  Article page output – what the API returns and the database stores
# ----------------------------------------------------------------------
class ArticleRecord(BaseModel):
    """
    One extracted article.

    ``body`` is the empty string when every extraction strategy failed;
    that is a valid outcome, not an error.  On the wire the body travels
    under the ``news`` key, which is what the ``posts`` table calls it.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    url: str = ""
    body: str = Field(default="", alias="news")

    @classmethod
    def from_link(cls, link: LinkRecord, body: str = "") -> "ArticleRecord":
        return cls(title=link.title, url=link.url, body=body)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


# ----------------------------------------------------------------------
#  One step of the extraction cascade (not persisted)
# ----------------------------------------------------------------------
class ExtractionAttempt(BaseModel):
    index: int = Field(..., ge=0)
    strategy: str
    success: bool = False


class ExtractionResult(BaseModel):
    body: str = ""
    attempt: Optional[ExtractionAttempt] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.body)


# ----------------------------------------------------------------------
#  Persistence outcome for a single record
# ----------------------------------------------------------------------
class SaveResult(BaseModel):
    success: bool
    url: str = ""
    rows: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)
