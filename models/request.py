# models/request.py
from pydantic import BaseModel, ConfigDict, Field


class ScrapeRequest(BaseModel):
    """Body of ``POST /api/scrape``."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"saveToDb": True}},
    )

    save_to_db: bool = Field(
        default=True,
        alias="saveToDb",
        description="Persist the extracted articles after the run",
    )
