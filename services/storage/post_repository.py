# services/storage/post_repository.py
"""
Persistence for extracted articles.

The ``posts`` table and its helper functions live in the database (Supabase
Postgres) and are not managed here:

* ``insert_full_post_if_not_exists(title, url, news)`` – insert keyed by URL,
  no-op when the URL already exists
* ``get_single_unposted_post()`` – one post not yet published downstream
"""

from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import Settings
from core.exceptions import DatabaseNotConfiguredError
from models.article import ArticleRecord, SaveResult

# Query parameters other Postgres clients add to the URL that asyncpg rejects
_FOREIGN_QUERY_KEYS = ("pgbouncer", "connection_limit", "schema", "sslmode")

_INSERT_POST = text("SELECT * FROM insert_full_post_if_not_exists(:title, :url, :news)")
_LIST_POSTS = text("SELECT * FROM posts ORDER BY created_at DESC LIMIT :limit OFFSET :offset")
_POST_BY_URL = text("SELECT * FROM posts WHERE url = :url LIMIT 1")
_SINGLE_UNPOSTED = text("SELECT * FROM get_single_unposted_post()")
_PING = text("SELECT 1 AS result")
_INSERT_ROUTINES = text(
    "SELECT routine_name, routine_type, data_type AS return_type "
    "FROM information_schema.routines "
    "WHERE routine_schema = 'public' "
    "AND routine_name LIKE '%insert%' AND routine_name LIKE '%post%' "
    "ORDER BY routine_name"
)


def to_async_dsn(database_url: str) -> str:
    """Rewrite a plain ``postgres://`` URL for the asyncpg driver."""
    url = make_url(database_url)
    sslmode = url.query.get("sslmode")
    url = url.set(drivername="postgresql+asyncpg")
    url = url.difference_update_query(_FOREIGN_QUERY_KEYS)
    if sslmode and "ssl" not in url.query:
        # asyncpg spells it "ssl"
        url = url.update_query_dict({"ssl": sslmode})
    return url.render_as_string(hide_password=False)


def _rows_to_dicts(result: Any) -> List[Dict[str, Any]]:
    return [dict(row._mapping) for row in result.fetchall()]


class PostRepository:
    """Reads and writes the ``posts`` table through raw SQL."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ):
        self.session_factory = session_factory
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "PostRepository":
        engine = create_async_engine(
            to_async_dsn(database_url),
            pool_pre_ping=True,
            # transaction-mode poolers cannot keep prepared statements
            connect_args={"statement_cache_size": 0},
        )
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        return cls(factory, engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def save_article(self, record: ArticleRecord) -> SaveResult:
        if not record.title or not record.url:
            logger.warning(f"Skipping record without title or URL: title={record.title!r} url={record.url!r}")
            return SaveResult(success=False, url=record.url, error="Missing title or URL")

        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    _INSERT_POST,
                    {"title": record.title, "url": record.url, "news": record.body},
                )
                rows = len(result.fetchall())
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(f"Error inserting {record.url}: {exc}")
                return SaveResult(success=False, url=record.url, error=str(exc))

        logger.info(f"Inserted/kept {record.url} (rows returned: {rows})")
        return SaveResult(success=True, url=record.url, rows=rows)

    async def save_articles(self, records: Iterable[ArticleRecord]) -> List[SaveResult]:
        """Persist every record; one failure never stops the others."""
        results = [await self.save_article(record) for record in records]
        logger.info(
            f"Database insert finished – {sum(r.success for r in results)} saved, "
            f"{sum(not r.success for r in results)} failed"
        )
        return results

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_posts(self, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """Newest posts first; an unreadable table yields an empty list."""
        async with self.session_factory() as session:
            try:
                result = await session.execute(_LIST_POSTS, {"limit": limit, "offset": offset})
            except SQLAlchemyError as exc:
                logger.warning(f"Unable to list posts: {exc}")
                return []
            return _rows_to_dicts(result)

    async def get_post_by_url(self, url: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            try:
                result = await session.execute(_POST_BY_URL, {"url": url})
            except SQLAlchemyError as exc:
                logger.warning(f"Unable to look up post {url}: {exc}")
                return None
            rows = _rows_to_dicts(result)
        return rows[0] if rows else None

    async def get_single_unposted(self) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(_SINGLE_UNPOSTED)
            rows = _rows_to_dicts(result)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Diagnostics (errors propagate)
    # ------------------------------------------------------------------
    async def ping(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(_PING)
            return result.scalar_one()

    async def list_insert_routines(self) -> List[Dict[str, Any]]:
        """Public ``insert*post*`` functions, e.g. ``insert_full_post_if_not_exists``."""
        async with self.session_factory() as session:
            result = await session.execute(_INSERT_ROUTINES)
            return _rows_to_dicts(result)

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


# ----------------------------------------------------------------------
# Module-level singleton, created on first use
# ----------------------------------------------------------------------
_repository: Optional[PostRepository] = None


def get_post_repository(settings: Settings) -> PostRepository:
    """Return the shared repository or raise if no database is configured."""
    global _repository
    if not settings.database_configured:
        raise DatabaseNotConfiguredError()
    if _repository is None:
        _repository = PostRepository.from_url(settings.DATABASE_URL)
    return _repository


async def close_post_repository() -> None:
    global _repository
    if _repository is not None:
        await _repository.dispose()
        _repository = None
