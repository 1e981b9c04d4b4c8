"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trainpace.api import journeys, lines, stations, stops, ws
from trainpace.config import settings
from trainpace.core.arrival_catalog import ArrivalCatalog
from trainpace.core.broadcaster import Broadcaster
from trainpace.core.journey_session import SessionConfig, SessionManager
from trainpace.core.platform_times import PlatformTimeStore
from trainpace.core.scheduler import create_scheduler
from trainpace.core.station_resolver import StationResolver
from trainpace.core.tfl_client import TflClient
from trainpace.db.session import async_session, engine
from trainpace.models.base import Base
from trainpace.models import tables  # noqa: F401

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Initialize services
    tfl = TflClient()
    broadcaster = Broadcaster()
    await broadcaster.connect()

    resolver = StationResolver(tfl)
    catalog = ArrivalCatalog(tfl)
    platform_store = PlatformTimeStore(async_session, default_seconds=settings.default_platform_seconds)
    manager = SessionManager(
        resolver,
        catalog,
        platform_store=platform_store,
        broadcaster=broadcaster,
        config=SessionConfig.from_settings(settings),
        default_platform_seconds=settings.default_platform_seconds,
    )

    # Wire up API modules
    stations.resolver = resolver
    stops.catalog = catalog
    lines.client = tfl
    journeys.manager = manager
    ws.broadcaster = broadcaster
    ws.manager = manager

    # Preload the station directory; the resolver falls back to live search
    try:
        await resolver.load_directory()
    except Exception:
        logger.exception("Failed to preload station directory - resolving on demand")

    # Start scheduler
    scheduler = create_scheduler(manager)
    scheduler.start()
    logger.info("trainpace started - refreshing arrivals every %ds", settings.arrival_refresh_seconds)

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    manager.close_all()
    await platform_store.drain()
    await tfl.close()
    await broadcaster.close()
    await engine.dispose()
    logger.info("trainpace shut down")


app = FastAPI(
    title="trainpace",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stations.router)
app.include_router(stops.router)
app.include_router(lines.router)
app.include_router(journeys.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
