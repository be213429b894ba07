import argparse
import asyncio
import json
import sys
from pathlib import Path

# -------------------------------------------------------------------------
# Make the repository root importable when run as `python scripts/...`
# -------------------------------------------------------------------------
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.logging import configure_logging
from models.article import ArticleRecord
from services.storage.post_repository import PostRepository, to_async_dsn

SAMPLE_POST = ArticleRecord(
    title="Connectivity check",
    url="https://example.com/connectivity-check",
    body="Inserted by scripts/check_database.py",
)


async def main(argv=None) -> int:
    """Check DATABASE_URL, connectivity and the insert function of the posts table."""
    parser = argparse.ArgumentParser(description="Database connectivity check")
    parser.add_argument(
        "--insert-sample",
        action="store_true",
        help="also call insert_full_post_if_not_exists with a sample post",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    if not settings.database_configured:
        print("❌ DATABASE_URL is not set")
        return 1
    print(f"✅ DATABASE_URL loaded ({len(settings.DATABASE_URL)} chars)")
    print(f"   driver URL: {to_async_dsn(settings.DATABASE_URL).split('@')[-1]}")

    repository = PostRepository.from_url(settings.DATABASE_URL)
    try:
        print(f"✅ Connection OK – SELECT 1 returned {await repository.ping()}")

        routines = await repository.list_insert_routines()
        print(f"📋 {len(routines)} insert/post functions:")
        print(json.dumps(routines, indent=2, default=str))
        if not any(r["routine_name"] == "insert_full_post_if_not_exists" for r in routines):
            print("❌ insert_full_post_if_not_exists is missing")
            return 1

        if args.insert_sample:
            saved = await repository.save_article(SAMPLE_POST)
            print(json.dumps(saved.to_dict(), indent=2))
            if not saved.success:
                return 1
    except (SQLAlchemyError, OSError) as exc:
        print(f"❌ Database check failed: {exc}")
        return 1
    finally:
        await repository.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
