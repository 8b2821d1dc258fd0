import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated
from urllib.parse import urlparse

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from agriconnect.api import (
    admin,
    auth,
    cart,
    categories,
    chat,
    contact,
    dashboard,
    newsletter,
    notifications,
    orders,
    products,
    reviews,
    saved_products,
    upload,
    users,
)
from agriconnect.config import settings
from agriconnect.db_init import init_db, seed_categories
from agriconnect.errors import ApiError, api_error_handler
from agriconnect.models import get_db
from agriconnect.webhooks import payment as payment_webhook
from agriconnect.webhooks import sms as sms_webhook

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("agriconnect.startup")

STARTED_AT = time.monotonic()
NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}


def _is_localhost(host: str | None) -> bool:
    return host in {"localhost", "127.0.0.1"}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _is_production() -> bool:
    return settings.ENVIRONMENT.strip().lower() == "production"


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or sqlite://).")
    if scheme == "sqlite":
        if _is_production():
            raise RuntimeError("DATABASE_URL must point to PostgreSQL in production.")
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not parsed.hostname:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not parsed.path.lstrip("/"):
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    host = parsed.hostname or "<missing>"
    port = parsed.port or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    scheme = parsed.scheme or "<missing>"
    return f"scheme={scheme}, host={host}, port={port}, database={db_name}"


def _validate_required_env_for_runtime() -> None:
    errors = []
    warnings = []
    production = _is_production()

    jwt_secret = settings.JWT_SECRET.strip()
    if not jwt_secret:
        errors.append("JWT_SECRET is required.")
    elif production and jwt_secret == "change-me-in-production":
        errors.append("JWT_SECRET uses the insecure default value in production.")

    if not _is_http_url(settings.BASE_URL.strip()):
        errors.append("BASE_URL must be an absolute http(s) URL, e.g. https://api.agriconnect.rw")
    elif production and _is_localhost(urlparse(settings.BASE_URL).hostname):
        errors.append("BASE_URL points to localhost in production.")

    origins = _get_cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if not settings.PAYMENT_WEBHOOK_SECRET:
        warnings.append("PAYMENT_WEBHOOK_SECRET is not set; payment webhooks will be rejected.")
    if not settings.PAYMENT_GATEWAY_URL or not settings.PAYMENT_GATEWAY_API_KEY:
        warnings.append("Payment gateway is not configured; payments and escrow release are unavailable.")
    if not settings.SMS_API_URL or not settings.SMS_API_KEY:
        warnings.append("SMS gateway is not configured; text messages will not be delivered.")

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated.")
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
    except Exception as exc:
        diagnostics = (
            _db_url_diagnostics(database_url)
            if database_url != "<unavailable>"
            else "DATABASE_URL unavailable (missing or unreadable)."
        )
        logger.exception(
            "Database initialization failed: %s. DATABASE_URL diagnostics: %s",
            str(exc),
            diagnostics,
        )
        raise
    db = next(get_db())
    try:
        seed_categories(db)
    finally:
        db.close()
    logger.info("Application startup completed successfully.")
    yield


app = FastAPI(
    title="AgriConnect Rwanda API",
    description=(
        "Marketplace API connecting Rwandan farmers with buyers: products, cart, orders, "
        "escrowed mobile-money payments, reviews and chat. "
        "Use **Authorize** with the token from `POST /api/auth/login` for protected endpoints."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Registration, phone verification, login and tokens."},
        {"name": "Users", "description": "Profiles and role-specific details."},
        {"name": "Products", "description": "Farmer product listings and search."},
        {"name": "Categories", "description": "Product categories."},
        {"name": "Cart", "description": "Buyer shopping cart."},
        {"name": "Orders", "description": "Order lifecycle and payment initiation."},
        {"name": "Reviews", "description": "Product and farmer reviews."},
        {"name": "Notifications", "description": "In-app notifications."},
        {"name": "Chat", "description": "Direct messages between users."},
        {"name": "Admin", "description": "Administration, moderation and escrow."},
        {"name": "Dashboard", "description": "Role-specific dashboard statistics."},
        {"name": "Public", "description": "Contact form, newsletter and saved products."},
        {"name": "Upload", "description": "Signed image upload parameters."},
        {"name": "Webhooks", "description": "Called by the payment and SMS providers."},
        {"name": "Health", "description": "Liveness and database health."},
    ],
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        **openapi_schema.get("components", {}).get("securitySchemes", {}),
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT from POST /api/auth/login",
        },
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
app.add_exception_handler(ApiError, api_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["Reviews"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(chat.router, prefix="/api/chat", tags=["Chat"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(contact.router, prefix="/api/contact", tags=["Public"])
app.include_router(newsletter.router, prefix="/api/newsletter", tags=["Public"])
app.include_router(saved_products.router, prefix="/api/saved-products", tags=["Public"])
app.include_router(upload.router, prefix="/api/upload", tags=["Upload"])
app.include_router(payment_webhook.router, prefix="/api/webhooks", tags=["Webhooks"])
app.include_router(sms_webhook.router, prefix="/api/webhooks", tags=["Webhooks"])


@app.get("/")
def root():
    return {"status": "ok", "service": "AgriConnect Rwanda API"}


def _probe_database(db: Session) -> None:
    db.execute(text("SELECT 1"))


@app.get("/api/health", tags=["Health"])
def health(db: Annotated[Session, Depends(get_db)]):
    started = time.perf_counter()
    try:
        _probe_database(db)
        database_status = "healthy"
    except Exception:
        logger.exception("Health check database probe failed")
        database_status = "unhealthy"

    healthy = database_status == "healthy"
    payload = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "responseTime": round((time.perf_counter() - started) * 1000, 2),
        "checks": {"database": database_status},
    }
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=payload,
        headers=NO_CACHE_HEADERS,
    )
