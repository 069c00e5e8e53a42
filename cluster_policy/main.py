import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cluster_policy.config import settings
from cluster_policy.exceptions.policy_exceptions import PolicyError, UnknownEnvironmentError
from cluster_policy.logging_config import configure_logging, get_logger
from cluster_policy.routers import health, plans

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("application_starting", environment=settings.environment)
    yield
    logger.info("application_stopped")


app = FastAPI(
    title="Cluster Policy API",
    description="Read-only preview of compiled network admission policies and resource plans.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        correlation_id=correlation_id,
        method=request.method,
        path=request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(UnknownEnvironmentError)
async def unknown_environment_exception_handler(request: Request, exc: UnknownEnvironmentError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(PolicyError)
async def policy_exception_handler(request: Request, exc: PolicyError):
    content = {"detail": exc.message, "error": type(exc).__name__}
    rule_index = getattr(exc, "rule_index", None)
    if rule_index is not None:
        content["rule_index"] = rule_index
    return JSONResponse(status_code=422, content=content)


app.include_router(plans.router)
app.include_router(health.router)
