"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prompt_ledger.api.router import api_router
from prompt_ledger.config import get_settings
from prompt_ledger.core.errors import LedgerError
from prompt_ledger.core.events import init_event_publisher, shutdown_event_publisher
from prompt_ledger.db.client import get_supabase_client
from prompt_ledger.utils.logging import RequestContextMiddleware, setup_logging

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("promptledger.starting", port=settings.port)

    get_supabase_client()
    logger.info("promptledger.supabase_connected")

    # Broadcast is optional; mutations still commit without NATS
    publisher = await init_event_publisher(settings.nats_url)
    if not publisher.connected:
        logger.info("promptledger.nats_skipped", url=settings.nats_url)

    yield

    await shutdown_event_publisher()
    logger.info("promptledger.shutdown")


app = FastAPI(
    title="PromptLedger",
    description="Audit trail, diff and restore for projects, prompts and snippets",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("http.ledger_error", code=exc.code, detail=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Service info endpoint."""
    return {"service": "promptledger", "version": VERSION}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "promptledger", "version": VERSION}
