"""
main.py — Procurement API entry point

Wires logging, the database, the background inbox poller, request-id
middleware, structured error responses and the routers.

Business Rules:
- Every response carries X-Request-ID (8 hex chars)
- Every error body is an ErrorResponse: error, status_code, request_id
- DuplicateProposalError → 409 with the existing proposal id
- ComparisonUnavailableError → 502
- Tables and the inbox poller are skipped under TESTING

Called by: uvicorn (app.main:app)
Depends on: config, database, logging_config, scheduler, routers/*
"""

import asyncio
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database import create_tables
from .http_client import close_clients
from .logging_config import setup_logging
from .routers import conversations, proposals, rfps, vendors
from .scheduler import inbox_poll_loop
from .schemas.errors import ErrorResponse
from .services.comparison_service import ComparisonUnavailableError
from .services.proposal_service import DuplicateProposalError

APP_VERSION = "0.4.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    poll_task = None
    if not os.environ.get("TESTING"):
        create_tables()
        poll_task = asyncio.create_task(inbox_poll_loop())
    logger.info("Procurement API {} started", APP_VERSION)
    yield
    if poll_task is not None:
        poll_task.cancel()
    await close_clients()


app = FastAPI(title="Procurement API", version=APP_VERSION, lifespan=lifespan)


# ── Middleware ────────────────────────────────────────────────────────


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error handlers ───────────────────────────────────────────────────


def _error(request: Request, status_code: int, error: str, detail=None) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        status_code=status_code,
        request_id=getattr(request.state, "request_id", ""),
        detail=detail,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(request, exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    detail = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return _error(request, 422, "Validation error", detail)


@app.exception_handler(DuplicateProposalError)
async def duplicate_proposal_handler(request: Request, exc: DuplicateProposalError):
    return _error(request, 409, str(exc), {"proposal_id": exc.proposal_id})


@app.exception_handler(ComparisonUnavailableError)
async def comparison_unavailable_handler(request: Request, exc: ComparisonUnavailableError):
    return _error(request, 502, str(exc) or "Comparison could not be generated")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on {} {}: {}", request.method, request.url.path, exc)
    return _error(request, 500, "Internal server error")


# ── Routes ───────────────────────────────────────────────────────────


@app.get("/health")
async def health():
    return {"status": "ok", "version": APP_VERSION}


app.include_router(vendors.router)
app.include_router(rfps.router)
app.include_router(proposals.router)
app.include_router(conversations.router)
