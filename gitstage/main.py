import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gitstage.apps.api import router
from gitstage.config.settings import configure_logging, get_settings
from gitstage.db import Base, get_engine

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DEBUG:
        # Schema is managed by alembic outside of DEBUG mode
        logger.debug("DEBUG mode: creating tables on %s", settings.DATABASE_URL)
        Base.metadata.create_all(get_engine())
    yield


# --- アプリケーション初期化 ---

app = FastAPI(
    title="gitstage",
    version="0.1.0",
    description="Stage project file edits and synchronize them with GitHub repositories",
    lifespan=lifespan,
)

app.include_router(router.router, prefix="/api")


@app.get("/health")
async def health_check():
    """
    Simple health check endpoint to confirm the API is running.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("ENVIRONMENT", "production") == "development"
    uvicorn.run("gitstage.main:app", host=host, port=port, reload=reload)
