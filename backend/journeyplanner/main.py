import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv

load_dotenv()  # Load .env before anything reads env vars

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from journeyplanner.config import PlannerConfig, Settings
from journeyplanner.schedule_provider import (
    ScheduleProvider,
    ScheduleStore,
    ScheduleUnavailable,
    load_local_schedule,
)

logger = logging.getLogger("journeyplanner")
logging.basicConfig(level=logging.INFO)

# Global state populated during startup
app_state: dict = {}


def build_store(settings: Settings, http_client: httpx.AsyncClient) -> ScheduleStore:
    """Pick the schedule source: HTTP provider first, then a local GTFS directory."""
    if settings.schedule_base_url:
        provider = ScheduleProvider(
            settings.schedule_base_url,
            api_key=settings.schedule_api_key,
            timeout=settings.schedule_fetch_timeout,
            operator_id=settings.schedule_operator,
            http_client=http_client,
        )
        logger.info(f"Schedule source: {settings.schedule_base_url}")
        return ScheduleStore(
            provider.fetch_snapshot,
            ttl_seconds=settings.schedule_ttl_seconds,
            retry_after_seconds=settings.schedule_retry_seconds,
        )

    if settings.gtfs_data_dir:
        async def load_from_disk():
            return await asyncio.to_thread(load_local_schedule, settings.gtfs_data_dir)

        logger.info(f"Schedule source: GTFS directory {settings.gtfs_data_dir}")
        return ScheduleStore(load_from_disk, ttl_seconds=None)

    async def no_source():
        raise ScheduleUnavailable("No schedule source configured (set SCHEDULE_BASE_URL or GTFS_DATA_DIR)")

    logger.warning("Neither SCHEDULE_BASE_URL nor GTFS_DATA_DIR is set, planning will return 503")
    return ScheduleStore(no_source)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared HTTP client and load the first schedule snapshot."""
    settings = Settings.from_env()
    app_state["settings"] = settings
    app_state["planner_config"] = PlannerConfig.from_env()

    http_client = httpx.AsyncClient(
        timeout=settings.schedule_fetch_timeout,
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )
    app_state["http_client"] = http_client

    store = build_store(settings, http_client)
    app_state["store"] = store

    logger.info("Loading schedule...")
    try:
        await store.refresh()
    except ScheduleUnavailable as e:
        # Start anyway; the store retries on the next request
        logger.warning(f"Initial schedule load failed: {e}")

    yield

    logger.info("Shutting down...")
    await http_client.aclose()
    logger.info("Shared HTTP client closed")


app = FastAPI(title="Journey Planner API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from journeyplanner.routes import router  # noqa: E402

app.include_router(router, prefix="/api")
