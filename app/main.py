from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from app.core.config import STATUS_MONITORING_ENABLED
from app.core.logging import setup_logging
from app.core.init_db import init_db
from app.api.router import api_router
from app.services.container import build_container

setup_logging()
logger.info("Starting venue presence agent")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    container = getattr(app.state, "container", None) or build_container()
    app.state.container = container

    container.event_store.load()
    if STATUS_MONITORING_ENABLED:
        await container.manager.initialize()
    else:
        container.notifications.initialize()
        container.background.initialize_background_tasks()
    await container.presence.resume()

    yield

    await container.manager.shutdown()
    await container.presence.suspend()
    logger.info("Venue presence agent stopped")


app = FastAPI(
    title="Venue Presence Agent",
    version="0.1.0",
    lifespan=lifespan,
)

# All API routes
app.include_router(api_router)


@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
