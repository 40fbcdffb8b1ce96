import logging
import os
import time
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Every model module must be imported before create_all so cross-file relationships resolve
from . import (  # noqa: F401
    models,
    models_dispatch,
    models_expense,
    models_fleet,
    models_invoice,
    models_messaging,
)
from .config import ALLOWED_ORIGINS
from .database import Base, SessionLocal, engine
from .domain import customers, dispatch, expenses, fleet, invoices, messaging, quotes, users
from .redis_client import get_redis_client
from .routes.realtime import router as realtime_router
from .services.websocket_manager import get_ws_manager

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Per-request logs from the HTTP clients drown out ours
for noisy in ("httpx", "httpcore"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

SLOW_REQUEST_SECONDS = 2.0

ROUTERS = (
    users.auth_router,
    users.router,
    users.settings_router,
    customers.router,
    invoices.router,
    invoices.payments_router,
    invoices.dashboard_router,
    quotes.router,
    expenses.router,
    expenses.categories_router,
    messaging.router,
    messaging.notifications_router,
    fleet.providers_router,
    fleet.cards_router,
    fleet.assignments_router,
    fleet.vehicles_router,
    dispatch.router,
    realtime_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 ProField API starting")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
    except SQLAlchemyError as e:
        # Several workers can race to create the same table
        if "already exists" not in str(e):
            raise
        logger.info("Tables already created by another worker")

    try:
        get_redis_client()
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis configured but unreachable, continuing without it: {e}")

    yield
    logger.info("👋 ProField API shutting down")


app = FastAPI(title="ProField API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """A missing or malformed Authorization header is an auth failure, not a validation one"""
    errors = exc.errors()
    if any("authorization" in str(err.get("loc", "")).lower() for err in errors):
        logger.warning(f"🔒 {request.method} {request.url.path} rejected: bad Authorization header")
        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})

    logger.info(f"Validation failed for {request.method} {request.url.path}: {errors}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} failed: {e}")
        raise

    elapsed = time.perf_counter() - started
    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(f"🐌 {request.method} {request.url.path} took {elapsed:.2f}s ({response.status_code})")
    return response


for router in ROUTERS:
    app.include_router(router)


@app.get("/")
def root():
    return {"message": "ProField API is running"}


@app.get("/health")
def health():
    """Liveness plus a database round trip"""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"❌ Health check database error: {e}")
        database = "error"
    finally:
        db.close()

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "realtime_connections": get_ws_manager().connection_count(),
    }


@app.get("/health/redis")
async def redis_health_check():
    try:
        client = get_redis_client()
        if client is None:
            return {"status": "not_configured", "redis": {"connected": False}}

        started = time.perf_counter()
        client.ping()
        return {
            "status": "healthy",
            "redis": {
                "connected": True,
                "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
                "version": client.info().get("redis_version", "unknown"),
            },
        }
    except redis.RedisError as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
