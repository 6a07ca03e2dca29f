"""changewatch — competitor listing change detection for a product catalog.

FastAPI application entry point. Serves the run-trigger and reporting API.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from changewatch.api.routes import router, get_settings
from changewatch.db.database import connect

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = await connect(get_settings().db_path)
    await db.close()
    logging.getLogger(__name__).info("Database initialized")
    yield


app = FastAPI(
    title="changewatch",
    description="Detects competitor listing changes across a paginated product catalog",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)
