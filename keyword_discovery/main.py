# keyword_discovery/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from keyword_discovery.core.config import get_settings
from keyword_discovery.core.logging_config import configure_logging
from keyword_discovery.database import async_session, create_all_tables
from keyword_discovery.routes import keyword_jobs
from keyword_discovery.scheduler import KeywordJobScheduler, create_aps_scheduler
from keyword_discovery.services.appstore.client import AppStoreClient
from keyword_discovery.services.keyword_job_store import KeywordJobStore
from keyword_discovery.services.keyword_scoring import KeywordScorer
from keyword_discovery.services.keyword_strategy import KeywordStrategyGenerator
from keyword_discovery.services.suggestions.gemini import GeminiSuggestionProvider

logger = logging.getLogger(__name__)


def build_job_scheduler(settings, aps_scheduler, session_factory=async_session) -> KeywordJobScheduler:
    """Wire the scheduler with its store and the two external providers."""
    catalog = AppStoreClient(
        timeout=settings.APP_STORE_TIMEOUT_SECONDS,
        cache_ttl=settings.APP_STORE_CACHE_TTL_SECONDS,
        cache_maxsize=settings.APP_STORE_CACHE_MAX_SIZE,
    )
    provider = GeminiSuggestionProvider(
        api_key=settings.GEMINI_API_KEY,
        model_name=settings.GEMINI_MODEL,
        timeout=settings.SUGGESTION_TIMEOUT_SECONDS,
    )
    return KeywordJobScheduler(
        store=KeywordJobStore(session_factory),
        generator=KeywordStrategyGenerator(provider, call_delay=settings.STRATEGY_CALL_DELAY_SECONDS),
        scorer=KeywordScorer(catalog, search_limit=settings.APP_STORE_SEARCH_LIMIT),
        scheduler=aps_scheduler,
        keyword_delay=settings.KEYWORD_DELAY_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()

    await create_all_tables()

    aps_scheduler = create_aps_scheduler()
    job_scheduler = build_job_scheduler(settings, aps_scheduler)
    app.state.job_scheduler = job_scheduler

    if settings.SCHEDULER_ENABLED:
        aps_scheduler.start()
        logger.info("Scheduler started successfully")
        summary = await job_scheduler.reconcile()
        logger.info(
            f"Reconciled running jobs: {len(summary['resumed'])} resumed, "
            f"{len(summary['completed'])} completed"
        )
    else:
        logger.info("Job scheduler is disabled. Set SCHEDULER_ENABLED=true to enable")

    try:
        yield  # This is where the app runs
    finally:
        await job_scheduler.shutdown()
        if aps_scheduler.running:
            aps_scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped successfully")


app = FastAPI(
    title="Keyword Discovery Jobs",
    lifespan=lifespan
)

app.include_router(keyword_jobs.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
