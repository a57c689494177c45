"""
FastAPI application for the accounts service.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts.config import AccountsConfig
from accounts.dependencies import build_cleanup_service, get_email_dispatcher
from accounts.exceptions import AuthException
from api.auth import router as auth_router
from api.handlers import (
    auth_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from api.registration import router as registration_router
from api.sessions import router as sessions_router
from api.users import router as users_router
from config import Config
from db.engine import init_db

logging.basicConfig(
    level=Config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown."""
    accounts_config = AccountsConfig()
    if accounts_config.ACCOUNTS_STORE == "sql":
        init_db()
        logger.info("Database tables ready")

    cleanup = build_cleanup_service(accounts_config)
    cleanup_task = asyncio.create_task(
        cleanup.run_forever(accounts_config.CLEANUP_INTERVAL_SECONDS)
    )
    try:
        yield
    finally:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
        await get_email_dispatcher().flush()


app = FastAPI(
    title=Config.APP_NAME,
    description="Registration, login and session management API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AuthException, auth_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(registration_router, prefix="/api/v1/auth", tags=["registration"])
app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(sessions_router, prefix="/api/v1/auth", tags=["sessions"])
app.include_router(users_router, prefix="/api/v1/auth", tags=["users"])


@app.get("/health")
async def health():
    """Health check."""
    return {"status": "healthy"}
