"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from secmon.api.v1 import router as v1_router
from secmon.core.config import settings
from secmon.core.container import build_services
from secmon.core.database import SessionLocal
from secmon.schemas.forensics import RequestContext
from secmon.services.forensics import request_context

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Tests may install their own services before startup.
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
        try:
            with SessionLocal() as db:
                app.state.services.apply_channel_overrides(db)
        except SQLAlchemyError:
            logger.warning("Could not load stored channel overrides at startup", exc_info=True)
    yield


app = FastAPI(
    title="Secmon API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """Expose the current request to forensic collection for real-time detectors."""
    token = request_context.set(
        RequestContext(
            method=request.method,
            path=request.url.path,
            headers={k.lower(): v for k, v in request.headers.items()},
            client_host=request.client.host if request.client else None,
            started_at=time.time(),
        )
    )
    try:
        return await call_next(request)
    finally:
        request_context.reset(token)


app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Secmon API"}
