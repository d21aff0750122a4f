import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from bookstreak.core.config import settings, validate_config
from bookstreak.core.database import create_all_tables
from bookstreak.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from bookstreak.core.logging import configure_logging
from bookstreak.core.middleware.request_id import RequestIdMiddleware
from bookstreak.api import goals, health, reading_logs, streaks

configure_logging(settings.ENV)
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("bookstreak")
    logger.info("Starting Bookstreak backend...")
    create_all_tables()
    try:
        yield
    finally:
        logger.info("Stopping Bookstreak backend...")


app = FastAPI(title="Bookstreak - Reading streak backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(streaks.router)
app.include_router(reading_logs.router)
app.include_router(goals.router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run("bookstreak.main:app", host="0.0.0.0", port=port, reload=settings.ENV == "development")
