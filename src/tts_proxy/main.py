"""
FastAPI application entry point.

Routers:
    - OpenAI-compatible API: /v1/audio/speech
    - Service routes: /api/generate-tts, /health, /metrics

Middleware:
    - CORS open to every origin (browser demo pages call the API directly)
    - one log line per inbound request (method, path, client)

Usage:
    uvicorn tts_proxy.main:app --host 0.0.0.0 --port 3000
    # or
    tts-proxy serve
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from tts_proxy import __version__
from tts_proxy.api.errors import APIError, api_error_handler, openai_error_response
from tts_proxy.api.openai_compat import router as openai_router
from tts_proxy.api.routes import router
from tts_proxy.core.logging import configure_logging, get_logger, info
from tts_proxy.services.tts_service import shutdown_service

_LOG = get_logger("tts-proxy.http")


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    # Body that is not a JSON object at all; field checks happen in validators.
    return openai_error_response(
        "Invalid request body",
        "invalid_request_error",
        status_code=400,
        details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()],
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    info(_LOG, "startup", version=__version__)
    yield
    await shutdown_service()
    info(_LOG, "shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    configure_logging()

    app = FastAPI(title="tts-proxy", version=__version__, lifespan=_lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Cache", "X-Processed-By", "X-Request-Id"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else "-"
        info(_LOG, "http_request", method=request.method, path=request.url.path, client=client)
        return await call_next(request)

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(openai_router)    # /v1/audio/speech
    app.include_router(router)           # /api/generate-tts, /health, /metrics

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
