"""
FastAPI application entrypoint.

Run locally:  uvicorn carehub.main:app --reload
"""

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from carehub.api.limiter import limiter
from carehub.api.routes import router
from carehub.config import settings
from carehub.errors import CareHubError
from carehub.models.database import Base, engine

logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger("carehub.requests")

app = FastAPI(
    title="CareHub API",
    description=(
        "Care coordination backend: patient and provider profiles, care and "
        "treatment plans, medication schedules, appointments, subscriptions "
        "and HIPAA-compliant access auditing."
    ),
    version="1.0.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "%s %s -> %d (%.1f ms) [%s]",
        request.method, request.url.path, response.status_code, elapsed_ms, request_id,
    )
    return response


@app.exception_handler(CareHubError)
async def carehub_error_handler(request: Request, exc: CareHubError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code, **exc.extra},
    )


app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
