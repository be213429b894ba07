import asyncio
import sys
from pathlib import Path

# -------------------------------------------------------------------------
# Make the repository root importable when run as `python scripts/...`
# -------------------------------------------------------------------------
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from core.config import get_settings
from core.logging import configure_logging
from services.crawler.config_loader import get_source_config
from services.crawler.link_extractor import collect_links
from services.scraper.renderer import BrowserSession


async def main() -> None:
    """Open the listing page of the configured source and print its links."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    source = get_source_config(settings.SOURCE_NAME)

    async with BrowserSession(settings) as renderer:
        await renderer.configure_session()
        await renderer.navigate(source.listing_url)
        if not await renderer.wait_for_selector(source.link_selector, settings.LINK_WAIT_MS):
            print("❌ Link selector not found – the listing markup probably changed")
            return
        links = await collect_links(renderer, source)

    print(f"✅ {len(links)} links on {source.listing_url}")
    for link in links:
        print(f"  - {link.title} → {link.url}")


if __name__ == "__main__":
    asyncio.run(main())
