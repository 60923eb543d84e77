"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from sqlalchemy import text

from attendee_identity.config import get_settings
from attendee_identity.db.session import SessionLocal
from attendee_identity.resolution.runtime import get_resolution_runtime
from attendee_identity.routers import attendance, identities, ingestion, review

logger = logging.getLogger(__name__)


def _warm_alias_index() -> None:
    """Prime the DB connection and load the alias index at process start."""

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            get_resolution_runtime().ensure_index(db)
    except Exception:
        logger.exception("Alias index warm-up failed; it will load on first resolution.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _warm_alias_index()
    yield


app = FastAPI(title=get_settings().app_name, version="0.1.0", lifespan=lifespan)

app.include_router(ingestion.router, tags=["ingestion"])
app.include_router(attendance.router, tags=["attendance"])
app.include_router(review.router, tags=["review"])
app.include_router(identities.router, tags=["identities"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
