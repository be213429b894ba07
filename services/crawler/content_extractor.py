# services/crawler/content_extractor.py
"""
Article body extraction as an ordered cascade of strategies.

Article pages on the same site come in several markup variants, so no
single selector is reliable.  Each strategy below makes a weaker assumption
about the page than the one before it and returns ``None`` (or ``""``) when
its assumption does not hold:

1. ``repeated_paragraphs`` – every paragraph component on the page
2. ``primary_paragraph``   – the main paragraph, else ``<article>``/``<main>`` paragraphs
3. ``json_ld``             – ``articleBody`` from ``application/ld+json``
4. ``page_data``           – long strings from the framework's embedded page data
5. ``mirror_page``         – paragraphs of the AMP mirror of the article

The first non-empty result wins.  A strategy that raises is treated as one
that found nothing.  Consent banners are dismissed once before the cascade.
"""

import json
from typing import Any, Awaitable, Callable, Iterator, List, Optional

from loguru import logger
from prometheus_client import Counter
from pydantic import BaseModel, ConfigDict

from core.config import Settings
from models.article import ExtractionAttempt, ExtractionResult
from services.crawler.config_loader import SourceConfig
from services.crawler.text_sanitizer import clean, collapse_whitespace
from services.scraper.renderer import PageRenderer

CONSENT_BUTTON_PATTERN = r"accept|agree|ok"
JSON_LD_SELECTOR = 'script[type="application/ld+json"]'

STRATEGY_HITS = Counter(
    'extraction_strategy_hits_total',
    'Articles whose body came from a given strategy',
    ['strategy'],
)
STRATEGY_ERRORS = Counter(
    'extraction_strategy_errors_total',
    'Strategies that raised while extracting',
    ['strategy'],
)
EMPTY_BODIES = Counter('extraction_empty_bodies_total', 'Articles where every strategy failed')

MirrorUrlBuilder = Callable[[str], Optional[str]]


def amp_mirror_url(url: str) -> str:
    """Append the ``amp`` flag the site uses for its AMP pages."""
    return f"{url}&amp" if "?" in url else f"{url}?amp"


class ExtractionContext(BaseModel):
    """What a strategy knows besides the live page."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: str
    source: SourceConfig
    settings: Settings
    mirror_url_builder: MirrorUrlBuilder = amp_mirror_url


Strategy = Callable[[PageRenderer, ExtractionContext], Awaitable[Optional[str]]]


def _join_clean(fragments: List[str]) -> str:
    return "\n".join(text for text in (clean(f) for f in fragments) if text)


# ----------------------------------------------------------------------
# Strategy 1 – repeated paragraph components
# ----------------------------------------------------------------------
async def repeated_paragraphs(renderer: PageRenderer, ctx: ExtractionContext) -> Optional[str]:
    nodes = await renderer.select_all(ctx.source.paragraph_selector)
    logger.debug(f"{len(nodes)} paragraph components on {ctx.url}")
    if not nodes:
        return None
    return _join_clean([n.html for n in nodes])


# ----------------------------------------------------------------------
# Strategy 2 – primary paragraph, then the article/main container
# ----------------------------------------------------------------------
async def primary_paragraph(renderer: PageRenderer, ctx: ExtractionContext) -> Optional[str]:
    primary = await renderer.select_all(ctx.source.primary_paragraph_selector)
    if primary:
        return clean(primary[0].html)

    container = None
    for candidate in ("article", "main"):
        if await renderer.count(candidate):
            container = candidate
            break
    if container is None:
        return None

    nodes = await renderer.select_all(
        ctx.source.paragraph_selector, within=container, scope="first"
    )
    if not nodes:
        nodes = await renderer.select_all("p", within=container, scope="first")
    logger.debug(f"{len(nodes)} paragraphs inside <{container}> on {ctx.url}")
    return _join_clean([n.html for n in nodes])


# ----------------------------------------------------------------------
# Strategy 3 – JSON-LD articleBody
# ----------------------------------------------------------------------
def article_body_from_json_ld(payloads: List[str]) -> Optional[str]:
    """First non-empty ``articleBody`` (or ``mainEntity.articleBody``)."""
    for raw in payloads:
        try:
            obj = json.loads(raw or "{}")
        except ValueError:
            continue
        if not isinstance(obj, dict):
            continue
        candidate = obj.get("articleBody")
        if not candidate and isinstance(obj.get("mainEntity"), dict):
            candidate = obj["mainEntity"].get("articleBody")
        if candidate:
            return str(candidate)
    return None


async def json_ld(renderer: PageRenderer, ctx: ExtractionContext) -> Optional[str]:
    nodes = await renderer.select_all(JSON_LD_SELECTOR)
    return article_body_from_json_ld([n.text for n in nodes])


# ----------------------------------------------------------------------
# Strategy 4 – embedded page data, longest-strings heuristic
# ----------------------------------------------------------------------
def iter_strings(value: Any) -> Iterator[str]:
    """Every string in a decoded JSON tree, in document order."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, list):
        for item in value:
            yield from iter_strings(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)


def long_strings(tree: Any, min_length: int, limit: int) -> List[str]:
    found: List[str] = []
    for raw in iter_strings(tree):
        text = collapse_whitespace(raw)
        if len(text) > min_length:
            found.append(text)
            if len(found) >= limit:
                break
    return found


async def page_data(renderer: PageRenderer, ctx: ExtractionContext) -> Optional[str]:
    nodes = await renderer.select_all(f"#{ctx.source.page_data_element_id}")
    if not nodes or not nodes[0].text:
        return None
    tree = json.loads(nodes[0].text)
    strings = long_strings(
        tree,
        min_length=ctx.settings.PAGE_DATA_MIN_LENGTH,
        limit=ctx.settings.PAGE_DATA_MAX_STRINGS,
    )
    return "\n".join(strings)


# ----------------------------------------------------------------------
# Strategy 5 – mirror (AMP) page
# ----------------------------------------------------------------------
async def mirror_page(renderer: PageRenderer, ctx: ExtractionContext) -> Optional[str]:
    mirror_url = ctx.mirror_url_builder(ctx.url)
    if not mirror_url:
        return None
    logger.info(f"Trying mirror page {mirror_url}")
    await renderer.navigate(mirror_url)
    await renderer.wait_for_selector("article", ctx.settings.MIRROR_WAIT_MS)
    nodes = await renderer.select_all("article p")
    logger.debug(f"{len(nodes)} mirror paragraphs on {mirror_url}")
    return "\n".join(text for text in (n.text.strip() for n in nodes) if text)


DEFAULT_STRATEGIES: List[Strategy] = [
    repeated_paragraphs,
    primary_paragraph,
    json_ld,
    page_data,
    mirror_page,
]


# ----------------------------------------------------------------------
# ContentExtractor – runs the cascade against the current page
# ----------------------------------------------------------------------
class ContentExtractor:
    """Extracts the article body from the page the renderer is showing."""

    def __init__(
        self,
        source: SourceConfig,
        settings: Settings,
        strategies: Optional[List[Strategy]] = None,
        mirror_url_builder: MirrorUrlBuilder = amp_mirror_url,
    ):
        self.source = source
        self.settings = settings
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)
        self.mirror_url_builder = mirror_url_builder

    async def dismiss_consent(self, renderer: PageRenderer) -> None:
        """Click the first accept-style button, if any.  Never raises."""
        try:
            clicked = await renderer.click_first_button(CONSENT_BUTTON_PATTERN)
            if clicked:
                logger.debug(f"Dismissed consent banner via button {clicked!r}")
        except Exception as exc:  # pylint: disable=broad-except
            logger.debug(f"Consent dismissal failed: {exc}")

    async def extract(self, renderer: PageRenderer, url: str) -> ExtractionResult:
        """
        Run the cascade for the article at ``url`` (already loaded).

        Returns an ``ExtractionResult`` whose ``body`` is ``""`` when no
        strategy produced text.
        """
        ctx = ExtractionContext(
            url=url,
            source=self.source,
            settings=self.settings,
            mirror_url_builder=self.mirror_url_builder,
        )

        await renderer.wait_for_selector(
            self.source.paragraph_selector, self.settings.PARAGRAPH_WAIT_MS
        )
        await self.dismiss_consent(renderer)

        for index, strategy in enumerate(self.strategies, start=1):
            name = getattr(strategy, "__name__", repr(strategy))
            try:
                body = await strategy(renderer, ctx)
            except Exception as exc:  # pylint: disable=broad-except
                STRATEGY_ERRORS.labels(strategy=name).inc()
                logger.debug(f"Strategy {name} raised for {url}: {exc}")
                body = None

            if body:
                STRATEGY_HITS.labels(strategy=name).inc()
                logger.info(f"Extracted {len(body)} chars from {url} via {name}")
                return ExtractionResult(
                    body=body,
                    attempt=ExtractionAttempt(index=index, strategy=name, success=True),
                )
            logger.debug(f"Strategy {name} found nothing on {url}")

        EMPTY_BODIES.inc()
        logger.warning(f"No strategy recovered text from {url}")
        return ExtractionResult(body="")
