from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from perfeval.config import get_settings
from perfeval.models.base import init_db
from perfeval.api import wbs_assignments

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging() -> None:
    settings = get_settings()
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("perfeval").setLevel(level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize database tables
    configure_logging()
    await init_db()
    yield


app = FastAPI(
    title="Performance Evaluation API",
    description="WBS assignment lifecycle for performance evaluation periods",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(wbs_assignments.router, prefix="/wbs-assignments", tags=["wbs-assignments"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
