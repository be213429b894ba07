# tests/test_crawler_service.py
import asyncio

import pytest

from core.exceptions import (
    ExtractionFailedError,
    ExtractionInProgressError,
    ListingUnavailableError,
)
from models.article import ArticleRecord
from services.crawler.crawler_service import ArticleCrawler, CrawlState, ExtractionService
from tests.fakes import BASE_URL, LISTING_URL, FakeRenderer, session_factory_for

LISTING_HTML = """
<div class="teaser">
  <a class="teaser__link" href="/one">One</a>
  <a class="teaser__link" href="/two">Two</a>
</div>
<div class="teaser">
  <a class="teaser__link" href="https://other.example/three">Three</a>
</div>
"""


def article(text: str) -> str:
    return f'<html><body><p data-component="paragraph">{text}</p></body></html>'


def make_crawler(source, settings, pages, failures=None):
    renderer = FakeRenderer(pages, failures=failures)
    crawler = ArticleCrawler(source, settings, session_factory=session_factory_for(renderer))
    return crawler, renderer


# ----------------------------------------------------------------------
# ArticleCrawler
# ----------------------------------------------------------------------
@pytest.mark.asyncio
async def test_one_empty_article_among_three(source, settings):
    crawler, renderer = make_crawler(
        source,
        settings,
        {
            LISTING_URL: LISTING_HTML,
            f"{BASE_URL}/one": article("First body."),
            f"{BASE_URL}/two": "<html><body><div>paywall</div></body></html>",
            "https://other.example/three": article("Third body."),
        },
    )

    records = await crawler.crawl()

    assert len(records) == 3
    assert [r.title for r in records] == ["One", "Two", "Three"]
    assert [r.body for r in records] == ["First body.", "", "Third body."]
    assert crawler.state is CrawlState.DONE
    assert renderer.closed


@pytest.mark.asyncio
async def test_navigation_error_is_isolated_to_its_article(source, settings):
    crawler, renderer = make_crawler(
        source,
        settings,
        {
            LISTING_URL: LISTING_HTML,
            f"{BASE_URL}/one": article("First body."),
            "https://other.example/three": article("Third body."),
        },
        failures={f"{BASE_URL}/two": RuntimeError("net::ERR_NAME_NOT_RESOLVED")},
    )

    records = await crawler.crawl()

    assert records[1] == ArticleRecord(title="Two", url=f"{BASE_URL}/two", body="")
    assert records[2].body == "Third body."


@pytest.mark.asyncio
async def test_resource_filter_only_covers_the_listing(source, settings):
    crawler, renderer = make_crawler(
        source,
        settings,
        {LISTING_URL: LISTING_HTML, f"{BASE_URL}/one": article("x")},
    )
    await crawler.crawl()

    calls = renderer.calls
    assert calls[0] == ("configure_session",)
    assert calls[1] == ("navigate", LISTING_URL)
    first_article = calls.index(("navigate", f"{BASE_URL}/one"))
    assert ("release_resource_filter",) in calls[:first_article]
    assert not renderer.filter_attached


@pytest.mark.asyncio
async def test_listing_without_links_aborts_and_closes_browser(source, settings):
    crawler, renderer = make_crawler(source, settings, {LISTING_URL: "<div>maintenance</div>"})

    with pytest.raises(ListingUnavailableError):
        await crawler.crawl()
    assert renderer.closed
    assert renderer.visited == [LISTING_URL]


@pytest.mark.asyncio
async def test_unreachable_listing_aborts_and_closes_browser(source, settings):
    crawler, renderer = make_crawler(
        source, settings, {}, failures={LISTING_URL: RuntimeError("net::ERR_TIMED_OUT")}
    )

    with pytest.raises(RuntimeError):
        await crawler.crawl()
    assert renderer.closed


@pytest.mark.asyncio
async def test_empty_listing_container_gives_no_articles(source, settings):
    # link selector exists but sits outside any container
    crawler, _ = make_crawler(
        source, settings, {LISTING_URL: '<a class="teaser__link" href="/x">X</a>'}
    )
    assert await crawler.crawl() == []


# ----------------------------------------------------------------------
# ExtractionService – one run at a time
# ----------------------------------------------------------------------
class BlockingCrawler:
    def __init__(self, release: asyncio.Event):
        self.release = release

    async def crawl(self):
        await self.release.wait()
        return [ArticleRecord(title="T", url="https://x.test/t", body="b")]


@pytest.mark.asyncio
async def test_second_run_is_rejected_without_touching_the_browser(settings):
    release = asyncio.Event()
    created = []

    def factory():
        crawler = BlockingCrawler(release)
        created.append(crawler)
        return crawler

    service = ExtractionService(settings, crawler_factory=factory)
    first = asyncio.create_task(service.run_extraction())
    while not service.is_running:
        await asyncio.sleep(0)

    with pytest.raises(ExtractionInProgressError):
        await service.run_extraction()
    assert len(created) == 1

    release.set()
    records = await first
    assert len(records) == 1
    assert not service.is_running


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_and_lock_released(settings):
    class Exploding:
        async def crawl(self):
            raise KeyError("boom")

    service = ExtractionService(settings, crawler_factory=Exploding)

    with pytest.raises(ExtractionFailedError):
        await service.run_extraction()
    assert not service.is_running


@pytest.mark.asyncio
async def test_fatal_crawl_error_propagates_unchanged(source, settings):
    crawler, renderer = make_crawler(source, settings, {LISTING_URL: ""})
    service = ExtractionService(settings, crawler_factory=lambda: crawler)

    with pytest.raises(ListingUnavailableError):
        await service.run_extraction()
    assert renderer.closed
    assert not service.is_running
