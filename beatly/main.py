import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from beatly/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from beatly.core.config import settings, validate_config  # noqa: E402
from beatly.core.logging import configure_logging  # noqa: E402
from beatly.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from beatly.core.database import create_all_tables  # noqa: E402
from beatly.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from beatly.features.plans.service import seed_plans  # noqa: E402
from beatly.api import usage, subscription, midtrans, admin_plans, history, profile, health  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("beatly")
    logger.info("Starting Beatly backend...")
    app.state.startup_time = time.time()
    try:
        create_all_tables()
        seed_plans()
    except Exception as e:
        # Readiness reports the broken store; liveness stays up
        logger.error(f"[startup] schema bootstrap failed: {e}")
    try:
        yield
    finally:
        logger.info("Stopping Beatly backend...")


app = FastAPI(title="Beatly - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(usage.router)
app.include_router(subscription.router)
app.include_router(midtrans.router)
app.include_router(admin_plans.router)
app.include_router(history.router)
app.include_router(profile.router)
app.include_router(health.root_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("beatly.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
