"""ClarityCall application entry point.

Quick Start:
    $ claritycall serve        # Start the server
    $ claritycall poll         # Run one dispatch pass and exit

Environment:
    CLARITY_ENV                 # development/production (default: development)
    CLARITY_LOG_LEVEL           # DEBUG/INFO/WARNING/ERROR (default: INFO)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claritycall import __version__
from claritycall.api.routes import router, set_orchestrator
from claritycall.config import get_settings
from claritycall.database import close_db, init_db
from claritycall.logging_config import get_logger, setup_logging
from claritycall.orchestrator import Orchestrator

setup_logging()
logger = get_logger(__name__)

_orchestrator: Optional[Orchestrator] = None


def _ensure_sqlite_dir(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite+aiosqlite:///"
    if database_url.startswith(prefix):
        path = database_url[len(prefix):]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    global _orchestrator
    settings = get_settings()
    logger.info("claritycall_starting", version=__version__, env=settings.clarity_env)

    _ensure_sqlite_dir(settings.database_url)
    await init_db()

    _orchestrator = Orchestrator()
    set_orchestrator(_orchestrator)
    await _orchestrator.startup()
    logger.info("claritycall_ready", version=__version__, **_orchestrator.status())

    yield

    logger.info("claritycall_shutting_down")
    try:
        await _orchestrator.shutdown()
    except Exception as exc:
        logger.warning("orchestrator_shutdown_error", error=str(exc))
    set_orchestrator(None)

    try:
        await close_db()
    except Exception as exc:
        logger.warning("db_close_error", error=str(exc))
    logger.info("claritycall_stopped")


app = FastAPI(
    title="ClarityCall",
    description="Voice-agent calendar planning calls and task reminders",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


def main() -> None:
    """Start the API server."""
    settings = get_settings()
    uvicorn.run(
        "claritycall.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.clarity_env == "development",
        log_level=settings.clarity_log_level.lower(),
    )


if __name__ == "__main__":
    main()
