import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from illust_backend import app_context
from illust_backend.app.billing import StripePaymentProvider
from illust_backend.app.identity import JWTSessionIdentityProvider
from illust_backend.app.routes.account import router as account_router
from illust_backend.app.routes.auth import router as auth_router
from illust_backend.app.routes.billing import router as billing_router
from illust_backend.app.routes.dependencies import (  # noqa: F401
    get_current_user,
    get_optional_current_user,
)
from illust_backend.app.routes.illustrations import router as illustrations_router
from illust_backend.app.routes.library import router as library_router
from illust_backend.app.services.billing import get_billing_service
from illust_backend.app.services.content import get_account_service, get_content_service
from illust_backend.app.services.identity import get_identity_service
from illust_backend.config import Settings, load_settings
from illust_backend.db import Database
from illust_backend.middleware_perf import RequestTimingMiddleware

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("http")


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def _clear_service_caches() -> None:
    for factory in (get_identity_service, get_billing_service, get_content_service, get_account_service):
        factory.cache_clear()


def build_payment_provider(settings: Settings) -> StripePaymentProvider:
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is not set; billing calls will fail")
    return StripePaymentProvider(
        settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        api_base=settings.stripe_api_base,
        timeout=settings.stripe_api_timeout,
    )


def build_identity_provider(settings: Settings) -> JWTSessionIdentityProvider:
    return JWTSessionIdentityProvider(
        settings.identity_jwt_secret,
        algorithm=settings.identity_jwt_algorithm,
        audience=settings.identity_jwt_audience,
    )


settings = load_settings()
configure_logging(settings.log_level)

app = FastAPI(title="Illustration Marketplace API")

app.add_middleware(RequestTimingMiddleware, slow_request_warn_ms=settings.slow_request_warn_ms)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(illustrations_router)
app.include_router(library_router)
app.include_router(billing_router)
app.include_router(account_router)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal server error"},
    )


@app.on_event("startup")
def setup_context() -> None:
    database = Database.from_settings(settings)
    app_context.configure(
        settings=settings,
        database=database,
        identity_provider=build_identity_provider(settings),
        payment_provider=build_payment_provider(settings),
    )
    _clear_service_caches()


@app.on_event("shutdown")
def teardown_context() -> None:
    try:
        database = app_context.get_database()
    except RuntimeError:
        return
    database.close()
    app_context.reset()
    _clear_service_caches()
