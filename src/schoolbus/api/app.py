# src/schoolbus/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and configures CORS for dashboard frontends.
ETA logic lives in `schoolbus.eta`; the HTTP layer only adapts requests to it.
"""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from schoolbus.core.logging import configure_logging

from .routes import router

configure_logging()

app = FastAPI(title="SchoolBus ETA API", version="0.1.0")

# CORS (dev-friendly): allow local dashboards to call this API.
# - SCHOOLBUS_CORS_ORIGINS="http://localhost:4200,http://127.0.0.1:4200"
# - SCHOOLBUS_CORS_ALLOW_LOCAL=0 to disable the default localhost allowance
cors_origins = [s.strip() for s in os.getenv("SCHOOLBUS_CORS_ORIGINS", "").split(",") if s.strip()]
cors_allow_local = os.getenv("SCHOOLBUS_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
cors_origin_regex = os.getenv("SCHOOLBUS_CORS_ALLOW_ORIGIN_REGEX", "").strip() or (
    r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$" if cors_allow_local and not cors_origins else ""
)
if cors_origins or cors_origin_regex:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_origin_regex=cors_origin_regex or None,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report bad input (e.g. out-of-range coordinates) as 400, like the routes do."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        for err in exc.errors()
    ]
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"detail": {"code": "VALIDATION_ERROR", "message": message, "errors": errors}},
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
