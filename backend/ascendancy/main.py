"""
Ascendancy Investor API — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error handlers,
validates gateway configuration and initializes the database on startup.
"""
import asyncio
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from ascendancy.background.cleanup import otp_cleanup_task
from ascendancy.config import get_gateway_config, get_settings
from ascendancy.database import SessionLocal, init_db
from ascendancy.exceptions import ConfigurationError, register_exception_handlers
from ascendancy.logging_config import configure_logging
from ascendancy.routes import auth_router, investor_router, payment_router, subscription_router

settings = get_settings()
logger = logging.getLogger("ascendancy")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Investor onboarding for The Ascendancy Project. Covers the tier catalogue, "
        "Adumo hosted-form payments, return/webhook reconciliation, monthly "
        "subscriptions and emailed one-time-code login."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
async def on_startup():
    """Configure logging, validate secrets, create tables, start background jobs."""
    configure_logging()

    # Fatal: refuse to serve payments without credentials
    gateway = get_gateway_config()
    if not settings.SESSION_SECRET:
        raise ConfigurationError("SESSION_SECRET is not set")
    if not settings.WEBHOOK_SECRET:
        logger.warning("WEBHOOK_SECRET is not set; subscription webhooks will be refused")

    init_db()
    app.state.cleanup_task = asyncio.create_task(otp_cleanup_task(settings.OTP_PURGE_INTERVAL_SECONDS))

    logger.info(
        "%s v%s started (environment=%s, gateway=%s, smtp=%s)",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        gateway.api_base_url, "configured" if settings.smtp_configured else "missing",
    )


@app.on_event("shutdown")
async def on_shutdown():
    task = getattr(app.state, "cleanup_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api") or request.url.path == "/payment-return":
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


register_exception_handlers(app)

# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(payment_router)
app.include_router(subscription_router)
app.include_router(auth_router)
app.include_router(investor_router)


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including dependency statuses."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.exception("Health check database probe failed")
    finally:
        db.close()

    try:
        get_gateway_config()
        gateway_ok = True
    except ConfigurationError:
        gateway_ok = False

    return {
        "status": "healthy" if db_ok and gateway_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "gateway": "configured" if gateway_ok else "missing credentials",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
