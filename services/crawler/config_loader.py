# services/crawler/config_loader.py
"""
Loads the per-source selector configuration from ``configs/sources.yaml`` and
validates it with Pydantic models.  The file can contain a top-level
``sources`` key or just the mapping of source names → config dictionaries.

* ``get_source_config(name)`` – returns a validated ``SourceConfig`` or
  raises ``SourceNotFoundError``.
* ``list_available_sources()`` – convenience helper for the CLI.
"""

import yaml
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator


class SourceConfig(BaseModel):
    """Everything the crawler needs to know about one listing site."""
    listing_url: str
    base_url: str
    container_selector: str
    link_selector: str
    paragraph_selector: str = 'p[data-component="paragraph"]'
    primary_paragraph_selector: str = 'p[data-component="paragraph"]'
    page_data_element_id: str = "__NEXT_DATA__"

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        # hrefs start with "/", so the origin must not end with one
        return value.rstrip("/")


class AllSources(BaseModel):
    """Top-level container – maps source name → its config."""
    sources: Dict[str, SourceConfig] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# Internal helpers & caching
# ----------------------------------------------------------------------
CONFIG_PATH = (
    Path(__file__).resolve().parents[2] / "configs" / "sources.yaml"
)

# In-process cache so the YAML is read/validated only once per process
_cached_all: AllSources | None = None


def _load_yaml(path: Path = CONFIG_PATH) -> dict:
    """Read the YAML file and return the inner ``sources`` mapping."""
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
        return raw.get("sources", raw)


def _load_all() -> AllSources:
    """
    Parse the YAML, validate it against ``AllSources`` and cache the result.
    A malformed entry raises ``pydantic.ValidationError`` naming the field.
    """
    global _cached_all
    if _cached_all is None:
        _cached_all = AllSources(sources=_load_yaml())
    return _cached_all


def reset_cache() -> None:
    """Forget the cached configuration (used by tests)."""
    global _cached_all
    _cached_all = None


# ----------------------------------------------------------------------
# Custom exception for a missing source
# ----------------------------------------------------------------------
class SourceNotFoundError(KeyError):
    """Raised when a requested source does not exist in sources.yaml."""

    def __init__(self, source_name: str):
        super().__init__(f"Source '{source_name}' not found.")
        self.source_name = source_name


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------
def get_source_config(source_name: str) -> SourceConfig:
    """
    Return a **validated** ``SourceConfig`` for the requested source.

    Raises
    ------
    SourceNotFoundError
        If the source name is not present in the YAML.
    ValidationError
        If the YAML exists but does not conform to the schema.
    """
    all_cfg = _load_all()
    try:
        return all_cfg.sources[source_name]
    except KeyError as exc:
        raise SourceNotFoundError(source_name) from exc


def list_available_sources() -> List[str]:
    """Returns all configured source identifiers."""
    return list(_load_all().sources.keys())
