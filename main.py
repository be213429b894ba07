import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from prometheus_client import make_asgi_app

from core.config import settings
from core.exceptions import ExtractionInProgressError, ScraperException
from core.logging import configure_logging
from models.request import ScrapeRequest
from services.crawler.crawler_service import ExtractionService
from services.storage.post_repository import (
    PostRepository,
    close_post_repository,
    get_post_repository,
)

# Prometheus metrics endpoint
metrics_app = make_asgi_app()

VERSION = "1.0.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _duration(start: float) -> str:
    return f"{time.perf_counter() - start:.2f}s"


# ------------------------------------------------------------------
# FastAPI App Lifecycle
# ------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    logger.info("Initializing application...")
    logger.info(f"Loaded user agent: {settings.DEFAULT_USER_AGENT}")
    if not settings.database_configured:
        logger.warning("DATABASE_URL is not set – database endpoints are disabled")

    app.state.extraction = ExtractionService(settings)

    yield

    logger.info("Shutting down application...")
    await close_post_repository()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Scrapes article listings and extracts each article's text",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------------
def get_extraction_service(request: Request) -> ExtractionService:
    return request.app.state.extraction


def get_repository() -> PostRepository:
    return get_post_repository(settings)


# ------------------------------------------------------------------
# Middleware & error handlers
# ------------------------------------------------------------------
@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    start_time = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.perf_counter() - start_time)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "status": 422,
                "details": exc.errors(),
            }
        },
    )


@app.exception_handler(ScraperException)
async def scraper_exception_handler(request: Request, exc: ScraperException):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "status": 500,
            }
        },
    )


app.mount("/metrics", metrics_app)


# ------------------------------------------------------------------
# Service info
# ------------------------------------------------------------------
@app.get("/")
async def root():
    return {
        "name": settings.PROJECT_NAME,
        "version": VERSION,
        "status": "running",
        "timestamp": _now(),
        "environment": {
            "environment": settings.ENVIRONMENT,
            "databaseConfigured": settings.database_configured,
            "port": settings.PORT,
            "source": settings.SOURCE_NAME,
        },
        "endpoints": {
            "health": "/health",
            "envCheck": "/api/env-check",
            "scrape": {"method": "POST", "path": "/api/scrape"},
            "posts": {"method": "GET", "path": "/api/posts", "requiresDatabase": True},
            "postByUrl": {"method": "GET", "path": "/api/posts/{url}", "requiresDatabase": True},
            "unpostedPost": {
                "method": "GET",
                "path": "/api/posts/unposted/single",
                "requiresDatabase": True,
            },
            "metrics": "/metrics",
        },
        "docs_url": "/docs",
    }


@app.get("/health")
async def health_check(service: ExtractionService = Depends(get_extraction_service)):
    return {"status": "ok", "timestamp": _now(), "isScraping": service.is_running}


@app.get("/api/env-check")
async def env_check():
    return {
        "success": settings.database_configured,
        "message": (
            "All required variables are configured"
            if settings.database_configured
            else "Some required variables are missing"
        ),
        "environment": {
            "DATABASE_URL": "configured" if settings.DATABASE_URL else "missing",
            "DIRECT_URL": "configured" if settings.DIRECT_URL else "optional (not configured)",
            "ENVIRONMENT": settings.ENVIRONMENT,
            "PORT": settings.PORT,
        },
        "timestamp": _now(),
    }


# ------------------------------------------------------------------
# Scraping
# ------------------------------------------------------------------
@app.post("/api/scrape")
async def scrape(
    request: Optional[ScrapeRequest] = None,
    service: ExtractionService = Depends(get_extraction_service),
):
    save_to_db = request.save_to_db if request is not None else True
    start = time.perf_counter()
    logger.info("Starting scrape via API")

    try:
        records = await service.run_extraction()
    except ExtractionInProgressError:
        raise
    except ScraperException as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "articles": [],
                "count": 0,
                "error": exc.message,
                "code": exc.code,
                "message": "Scraping failed",
                "timestamp": _now(),
                "duration": _duration(start),
            },
        )

    result = {
        "success": True,
        "articles": [r.to_dict() for r in records],
        "count": len(records),
        "timestamp": _now(),
        "duration": _duration(start),
        "saved": [],
        "savedCount": 0,
        "failedCount": 0,
    }

    if save_to_db:
        try:
            saved = await get_post_repository(settings).save_articles(records)
            result["saved"] = [s.to_dict() for s in saved]
            result["savedCount"] = sum(1 for s in saved if s.success)
            result["failedCount"] = sum(1 for s in saved if not s.success)
            logger.info(f"Saved: {result['savedCount']}, failed: {result['failedCount']}")
        except Exception as exc:  # pylint: disable=broad-except
            logger.error(f"Error saving to database: {exc}")
            result["saveError"] = str(exc)

    logger.info("Scrape via API finished")
    return result


# ------------------------------------------------------------------
# Posts
# ------------------------------------------------------------------
@app.get("/api/posts")
async def list_posts(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    repository: PostRepository = Depends(get_repository),
):
    posts = await repository.list_posts(limit=limit, offset=offset)
    return {"posts": posts, "count": len(posts), "limit": limit, "offset": offset}


@app.get("/api/posts/unposted/single")
async def unposted_post(repository: PostRepository = Depends(get_repository)):
    post = await repository.get_single_unposted()
    if post is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "success": False,
                "message": "No unposted post found",
                "data": None,
                "timestamp": _now(),
            },
        )
    return {"success": True, "message": "Unposted post found", "data": post, "timestamp": _now()}


@app.get("/api/posts/{url:path}")
async def post_by_url(url: str, repository: PostRepository = Depends(get_repository)):
    post = await repository.get_post_by_url(url)
    if post is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Post not found", "url": url},
        )
    return post


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
