"""FastAPI server for FlowSphere email triage"""

from __future__ import annotations

import os
import sqlite3

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowsphere.api.routes.assistant import router as assistant_router
from flowsphere.api.routes.emails import router as emails_router
from flowsphere.api.routes.health import router as health_router
from flowsphere.api.routes.monitor import router as monitor_router
from flowsphere.api.routes.rules import router as rules_router
from flowsphere.api.routes.subscriptions import router as subscriptions_router
from flowsphere.config import APP_ENV, APP_VERSION
from flowsphere.errors import AccountNotFoundError, FlowSphereError, ProviderError
from flowsphere.infrastructure.database import init_database
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.utils.redaction import redact

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

app = FastAPI(title="FlowSphere API", version=APP_VERSION)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Return sanitized 422 bodies (field names only, no validation rules).

    Side Effects:
        - Logs the full validation errors (URL redacted)
        - Increments api.validation_errors counter
    """
    logger.warning("Validation error on %s: %s", redact(str(request.url)), exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


@app.exception_handler(FlowSphereError)
async def flowsphere_exception_handler(request: Request, exc: FlowSphereError) -> JSONResponse:
    """Map domain errors to HTTP statuses."""
    if isinstance(exc, AccountNotFoundError):
        http_exc = HTTPException(status_code=404, detail=str(exc))
    elif isinstance(exc, ProviderError):
        http_exc = HTTPException(status_code=502, detail=f"Upstream provider error: {exc.provider}")
    else:
        http_exc = HTTPException(status_code=500, detail=str(exc))

    log_event("api.error", error_type=type(exc).__name__, status=http_exc.status_code)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


ALLOWED_ORIGINS = [origin for origin in os.getenv("FLOWSPHERE_ALLOWED_ORIGINS", "").split(",") if origin]

if APP_ENV == "development":
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:8000",
        ]
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# Idempotent; safe on every startup
try:
    logger.info("Initializing database schema...")
    init_database()
    logger.info("Database initialization complete")
except sqlite3.OperationalError as e:
    logger.critical("Database schema error: %s", e)
    raise RuntimeError(f"Database initialization failed: {e}") from e

app.include_router(health_router)
app.include_router(emails_router)
app.include_router(rules_router)
app.include_router(assistant_router)
app.include_router(monitor_router)
app.include_router(subscriptions_router)

log_event("api.startup", service="flowsphere", version=APP_VERSION)


@app.on_event("startup")
async def validate_database_schema() -> None:
    """Fail fast if the schema is broken.

    Side Effects:
        - Reads sqlite_master from flowsphere.db
        - Raises RuntimeError on validation failure (crashes the app)
    """
    from flowsphere.infrastructure.database import validate_schema

    try:
        validate_schema()
        logger.info("Database schema validation passed")
    except ValueError as e:
        logger.critical("Database schema invalid: %s", e)
        raise RuntimeError(f"Database schema validation failed: {e}") from e


@app.get("/")
async def root() -> dict[str, str]:
    return {"service": "FlowSphere API", "version": APP_VERSION, "docs": "/docs"}


def main() -> None:
    """Run the API with uvicorn (``flowsphere-api``)."""
    import uvicorn

    uvicorn.run(
        "flowsphere.api.app:app",
        host=os.getenv("FLOWSPHERE_HOST", "127.0.0.1"),
        port=int(os.getenv("FLOWSPHERE_PORT", "8000")),
        reload=APP_ENV == "development" and os.getenv("FLOWSPHERE_RELOAD") == "1",
    )


if __name__ == "__main__":
    main()
