# run_crawler.py
"""
Run one extraction from the command line and print the articles as JSON.

    python run_crawler.py                 # extract only
    python run_crawler.py --save          # extract and persist
    python run_crawler.py --source NAME   # use another entry of configs/sources.yaml
"""
import argparse
import asyncio
import json
import sys

from loguru import logger

from core.config import get_settings
from core.exceptions import ScraperException
from core.logging import configure_logging
from services.crawler.config_loader import list_available_sources
from services.crawler.crawler_service import ExtractionService
from services.storage.post_repository import close_post_repository, get_post_repository


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract articles from the configured listing page")
    parser.add_argument("--save", action="store_true", help="persist the articles to the database")
    parser.add_argument("--source", help=f"source name, one of: {', '.join(list_available_sources())}")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    if args.source:
        settings = settings.model_copy(update={"SOURCE_NAME": args.source})
    configure_logging(settings.LOG_LEVEL)

    service = ExtractionService(settings)
    try:
        records = await service.run_extraction()
    except ScraperException as exc:
        logger.error(f"Extraction failed: {exc.message}")
        print(json.dumps(exc.to_dict(), indent=2))
        return 1

    print(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False))

    if args.save:
        try:
            saved = await get_post_repository(settings).save_articles(records)
        except ScraperException as exc:
            logger.error(f"Unable to save articles: {exc.message}")
            return 1
        finally:
            await close_post_repository()
        print("\n=== SAVE SUMMARY ===")
        print(f"Saved  : {sum(1 for s in saved if s.success)}")
        print(f"Failed : {sum(1 for s in saved if not s.success)}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
