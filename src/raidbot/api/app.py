"""
RaidBot HTTP API, FastAPI application factory.

Routes:
- POST /api/ai     : chat request, answered with a response envelope
- GET /api/ai      : provider status (never credentials)
- OPTIONS /api/ai  : CORS preflight
- GET /api/health  : liveness

Logical failures (every provider failed, empty message, no credentials)
still answer 200 with ``success: false`` so clients can render the
structured error. Transport-level problems use HTTP status codes:
malformed body 400, rate limited 429, wrong method 405.
"""

import logging
import math
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict

from raidbot import __version__
from raidbot.config.server import ServiceConfig, get_config
from raidbot.core.context import CORRELATION_ID_HEADER, generate_correlation_id
from raidbot.core.errors.classified import ErrorKind
from raidbot.core.errors.resilience import RateLimitWaitError
from raidbot.core.responses import failure_envelope
from raidbot.core.service import AIService

logger = logging.getLogger(__name__)

# Caller-supplied correlation ids are accepted only in this shape
_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str
    options: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _correlation_id(request: Request) -> str:
    incoming = request.headers.get(CORRELATION_ID_HEADER, "")
    if incoming and _CORRELATION_ID_RE.match(incoming):
        return incoming
    return generate_correlation_id()


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _envelope_response(
    kind: ErrorKind,
    status_code: int,
    correlation_id: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    envelope = failure_envelope(kind, correlation_id)
    return JSONResponse(
        content=envelope.to_dict(),
        status_code=status_code,
        headers={CORRELATION_ID_HEADER: correlation_id, **(headers or {})},
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    service: Optional[AIService] = None,
    config: Optional[ServiceConfig] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        service: Pre-built service (tests inject one with fake adapters).
        config: Configuration used when ``service`` is not given; defaults
            to the global config.

    Returns:
        Configured FastAPI app. The service is available as
        ``app.state.service``.
    """
    if service is None:
        service = AIService(config or get_config())
    cfg = service.config

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        logger.info(
            "RaidBot API starting (environment=%s, providers=%s)",
            cfg.environment,
            cfg.configured_providers() or "none",
        )
        yield
        logger.info("RaidBot API shutting down")

    app = FastAPI(
        title="RaidBot AI",
        version=__version__,
        description="Resilient multi-provider chat relay",
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", CORRELATION_ID_HEADER],
        expose_headers=[CORRELATION_ID_HEADER],
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        cid = _correlation_id(request)
        logger.info(
            "Malformed request body: %s",
            [err.get("msg") for err in exc.errors()],
            extra={"correlation_id": cid},
        )
        return _envelope_response(ErrorKind.BAD_REQUEST, 400, cid)

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.post("/api/ai")
    async def chat(body: ChatRequest, request: Request):
        """Run one chat request through the provider chain."""
        cid = _correlation_id(request)

        try:
            limit = service.check_rate_limit(_client_key(request))
        except RateLimitWaitError as exc:
            retry_after = max(1, math.ceil(exc.wait_needed or 0.0))
            return _envelope_response(
                ErrorKind.RATE_LIMIT,
                429,
                cid,
                headers={"Retry-After": str(retry_after), **exc.headers},
            )

        try:
            envelope = await service.generate_response(
                body.message, body.options, correlation_id=cid
            )
        except Exception:
            logger.exception("Unhandled error serving chat request %s", cid)
            return _envelope_response(ErrorKind.UNKNOWN, 500, cid)

        return JSONResponse(
            content=envelope.to_dict(),
            headers={CORRELATION_ID_HEADER: cid, **limit.to_headers()},
        )

    @app.get("/api/ai")
    async def status():
        """Provider readiness: configured credentials and circuit state."""
        return service.get_status()

    @app.options("/api/ai")
    async def preflight():
        # Browser preflights (Origin + Access-Control-Request-Method) are
        # answered by CORSMiddleware before reaching this route.
        return Response(status_code=204, headers={"Allow": "GET, POST, OPTIONS"})

    @app.get("/api/health")
    async def health():
        """Liveness check."""
        return {"ok": True, "message": "RaidBot API is healthy", "timestamp": _now()}

    return app
