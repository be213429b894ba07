# services/crawler/link_extractor.py
from typing import List

from loguru import logger

from models.article import LinkRecord
from services.crawler.config_loader import SourceConfig
from services.scraper.renderer import PageRenderer


def resolve_href(href: str, base_url: str) -> str:
    """
    Make a listing href absolute.

    Root-relative hrefs get the source origin prepended; anything else
    (absolute URLs, other origins) is kept as-is.
    """
    if href.startswith("/"):
        return f"{base_url}{href}"
    return href


async def collect_links(renderer: PageRenderer, source: SourceConfig) -> List[LinkRecord]:
    """
    Read the teaser links from the rendered listing page.

    Containers are visited in document order, and links inside each
    container in document order.  Duplicates are kept.  A page without
    containers or links yields an empty list.
    """
    nodes = await renderer.select_all(
        source.link_selector, within=source.container_selector
    )

    links: List[LinkRecord] = []
    for node in nodes:
        if not node.href:
            continue
        links.append(
            LinkRecord(
                title=node.text.strip(),
                url=resolve_href(node.href, source.base_url),
            )
        )

    logger.info(f"Found {len(links)} article links on {source.listing_url}")
    return links
