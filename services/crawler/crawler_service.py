# services/crawler/crawler_service.py
import asyncio
import time
from enum import Enum
from typing import AsyncContextManager, Callable, List, Optional

from loguru import logger
from prometheus_client import Counter, Histogram

from core.config import Settings, get_settings
from core.exceptions import (
    ExtractionFailedError,
    ExtractionInProgressError,
    ListingUnavailableError,
    ScraperException,
)
from models.article import ArticleRecord, LinkRecord
from services.crawler.config_loader import SourceConfig, get_source_config
from services.crawler.content_extractor import ContentExtractor
from services.crawler.link_extractor import collect_links
from services.scraper.renderer import BrowserSession, PageRenderer

RUNS_TOTAL = Counter('extraction_runs_total', 'Extraction runs started')
RUNS_FAILED = Counter('extraction_runs_failed_total', 'Extraction runs aborted by a fatal error')
RUNS_REJECTED = Counter('extraction_runs_rejected_total', 'Runs rejected because one was active')
ARTICLES_TOTAL = Counter('articles_processed_total', 'Articles visited')
ARTICLE_FAILURES = Counter('article_failures_total', 'Articles that raised during extraction')
RUN_DURATION = Histogram('extraction_run_duration_seconds', 'Wall-clock time of one run')

SessionFactory = Callable[[Settings], AsyncContextManager[PageRenderer]]


class CrawlState(str, Enum):
    IDLE = "idle"
    LISTING_LOADED = "listing_loaded"
    PER_ARTICLE = "per_article"
    DONE = "done"


# ----------------------------------------------------------------------
#  ArticleCrawler – listing page → article pages over one browser page
# ----------------------------------------------------------------------
class ArticleCrawler:
    """
    Drives a single browser session through the listing page and then each
    article, strictly one at a time and in listing order.

    Failures inside one article produce a record with an empty body.  A
    listing page that never shows the link selector aborts the run.  The
    browser is closed on every path.
    """

    def __init__(
        self,
        source: SourceConfig,
        settings: Optional[Settings] = None,
        session_factory: SessionFactory = BrowserSession,
        extractor: Optional[ContentExtractor] = None,
    ):
        self.source = source
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.extractor = extractor or ContentExtractor(source, self.settings)
        self.state = CrawlState.IDLE

    def _transition(self, state: CrawlState) -> None:
        if state is not self.state:
            logger.debug(f"Crawl state {self.state.value} → {state.value}")
        self.state = state

    async def crawl(self) -> List[ArticleRecord]:
        self._transition(CrawlState.IDLE)
        async with self.session_factory(self.settings) as renderer:
            links = await self._load_listing(renderer)
            logger.info(f"{len(links)} links found – opening each article")

            results: List[ArticleRecord] = []
            for link in links:
                results.append(await self._process_article(renderer, link))

            self._transition(CrawlState.DONE)
            return results

    async def _load_listing(self, renderer: PageRenderer) -> List[LinkRecord]:
        await renderer.configure_session()
        await renderer.navigate(self.source.listing_url)

        found = await renderer.wait_for_selector(
            self.source.link_selector, self.settings.LINK_WAIT_MS
        )
        if not found:
            raise ListingUnavailableError(
                f"No element matching {self.source.link_selector!r} on "
                f"{self.source.listing_url} after {self.settings.LINK_WAIT_MS} ms"
            )

        links = await collect_links(renderer, self.source)
        self._transition(CrawlState.LISTING_LOADED)
        return links

    async def _process_article(self, renderer: PageRenderer, link: LinkRecord) -> ArticleRecord:
        self._transition(CrawlState.PER_ARTICLE)
        ARTICLES_TOTAL.inc()
        try:
            logger.info(f"Opening article {link.url}")
            # article pages need their full resource profile to reach idle
            await renderer.release_resource_filter()
            await renderer.navigate(link.url)
            logger.debug(f"Final URL: {renderer.url}")

            result = await self.extractor.extract(renderer, link.url)
            return ArticleRecord.from_link(link, result.body)
        except Exception as exc:  # pylint: disable=broad-except
            ARTICLE_FAILURES.inc()
            logger.warning(f"Failed to extract content from {link.url}: {exc}")
            return ArticleRecord.from_link(link)


# ----------------------------------------------------------------------
#  ExtractionService – the run boundary shared by the API and the CLI
# ----------------------------------------------------------------------
class ExtractionService:
    """
    Owns the process-wide "one run at a time" lock.

    A second ``run_extraction()`` while one is active fails immediately with
    ``ExtractionInProgressError``; nothing is launched.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        crawler_factory: Optional[Callable[[], ArticleCrawler]] = None,
    ):
        self.settings = settings or get_settings()
        self.crawler_factory = crawler_factory or self._default_crawler
        self._lock = asyncio.Lock()

    def _default_crawler(self) -> ArticleCrawler:
        source = get_source_config(self.settings.SOURCE_NAME)
        return ArticleCrawler(source, self.settings)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_extraction(self) -> List[ArticleRecord]:
        if self._lock.locked():
            RUNS_REJECTED.inc()
            logger.warning("Extraction requested while another run is active – rejected")
            raise ExtractionInProgressError()

        async with self._lock:
            RUNS_TOTAL.inc()
            start = time.perf_counter()
            try:
                records = await self.crawler_factory().crawl()
            except ScraperException as exc:
                RUNS_FAILED.inc()
                logger.error(f"Extraction run aborted: {exc}")
                raise
            except Exception as exc:  # pylint: disable=broad-except
                RUNS_FAILED.inc()
                logger.exception(f"Extraction run failed: {exc}")
                raise ExtractionFailedError(str(exc)) from exc
            finally:
                RUN_DURATION.observe(time.perf_counter() - start)

        logger.info(
            f"Extraction run finished – {len(records)} articles, "
            f"{sum(1 for r in records if not r.body)} without body"
        )
        return records
