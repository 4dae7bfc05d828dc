"""Catchpoint - FastAPI relay that classifies, filters and forwards failure reports."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from catchpoint.client import Client
from catchpoint.config import get_settings
from catchpoint.filters.inbound import InboundFilter, merge_filter_options
from catchpoint.hub import get_current_hub, init
from catchpoint.models.event import EventHint, Mechanism, Severity
from catchpoint.models.options import ClientOptions

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class CaptureExceptionRequest(BaseModel):
    """A failure reported by a remote client, of any JSON shape."""

    exception: Any = Field(default=None, description="The raw failure value")
    event_id: str | None = Field(default=None, description="Pre-assigned event id")


class CaptureMessageRequest(BaseModel):
    message: str
    level: Severity = Severity.INFO
    event_id: str | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Configure logging level
    logging.getLogger().setLevel(settings.log_level.upper())

    try:
        options = ClientOptions.from_settings(settings)
        init(options)
    except Exception as e:
        logger.exception(f"Failed to initialize client: {e}")
        get_current_hub().bind_client(None)

    logger.info("Catchpoint started")

    yield

    # Cleanup on shutdown
    client = get_current_hub().client
    if client is not None:
        await client.close(timeout=2.0)
    get_current_hub().bind_client(None)
    logger.info("Catchpoint stopped")


app = FastAPI(
    title="Catchpoint",
    description="Failure capture relay with classification and inbound filtering",
    version="0.1.0",
    lifespan=lifespan,
)


def _require_client() -> Client:
    client = get_current_hub().client
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client not configured. Check settings and filters config.",
        )
    return client


def _capture_result(event_id: str | None) -> JSONResponse:
    if event_id is None:
        logger.info("Event dropped by filters")
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "dropped", "event_id": None},
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "ok", "event_id": event_id},
    )


@app.exception_handler(Exception)
async def report_unhandled(request: Request, exc: Exception) -> JSONResponse:
    """Report failures raised by route handlers."""
    event_id = get_current_hub().capture_exception(
        exc,
        hint=EventHint(mechanism=Mechanism(type="fastapi", handled=False)),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "event_id": event_id},
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/filters")
async def list_filters() -> dict[str, Any]:
    """Show the effective inbound filter options."""
    client = _require_client()
    inbound = client.get_integration(InboundFilter)
    if inbound is None:
        return {"filters": None}

    effective = merge_filter_options(inbound.options, client.options)
    return {"filters": effective.model_dump(mode="json")}


@app.post("/capture/exception")
async def capture_exception(payload: CaptureExceptionRequest) -> JSONResponse:
    """Classify and forward a remotely reported failure."""
    _require_client()
    logger.info("Received exception capture")

    event_id = get_current_hub().capture_exception(
        payload.exception,
        hint=EventHint(event_id=payload.event_id),
    )
    return _capture_result(event_id)


@app.post("/capture/message")
async def capture_message(payload: CaptureMessageRequest) -> JSONResponse:
    """Forward a plain message report."""
    _require_client()
    logger.info(f"Received message capture: level={payload.level.value}")

    event_id = get_current_hub().capture_message(
        payload.message,
        payload.level,
        hint=EventHint(event_id=payload.event_id),
    )
    return _capture_result(event_id)


def run() -> None:
    """Run the application using uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "catchpoint.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run()
