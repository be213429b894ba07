# tests/conftest.py
import pytest

from core.config import Settings
from services.crawler.config_loader import SourceConfig
from tests.fakes import BASE_URL, LISTING_URL


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL=None,
        PARAGRAPH_WAIT_MS=0,
        LINK_WAIT_MS=0,
        MIRROR_WAIT_MS=0,
    )


@pytest.fixture
def source() -> SourceConfig:
    return SourceConfig(
        listing_url=LISTING_URL,
        base_url=BASE_URL,
        container_selector=".teaser",
        link_selector="a.teaser__link",
        paragraph_selector='p[data-component="paragraph"]',
        primary_paragraph_selector='p[data-component="paragraph"].lead',
        page_data_element_id="__NEXT_DATA__",
    )
