import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatquota.api.routes import admin, auth, chat, health, payment
from chatquota.core.config import (
    APP_ENV,
    DATABASE_URL,
    DEFAULT_CHAT_MODEL,
    LOG_LEVEL,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    RUN_MIGRATIONS,
)
from chatquota.core.error_handlers import register_exception_handlers
from chatquota.core.logging_config import sanitize_log_data, setup_logging
from chatquota.core.plan_catalog import get_plan_catalog
from chatquota.db.init_db import init_db
from chatquota.db.migrate import run_migrations

logger = logging.getLogger(__name__)


def startup_settings() -> dict:
    """Effective settings for the startup log line, secrets redacted."""
    return sanitize_log_data({
        "environment": APP_ENV,
        "database_url": DATABASE_URL,
        "run_migrations": RUN_MIGRATIONS,
        "openai_api_key": OPENAI_API_KEY,
        "openai_base_url": OPENAI_BASE_URL,
        "default_chat_model": DEFAULT_CHAT_MODEL,
        "log_level": LOG_LEVEL,
    })


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(LOG_LEVEL)
    logger.info(f"Starting ChatQuota API: {startup_settings()}")
    if RUN_MIGRATIONS:
        run_migrations()
    else:
        init_db()
    catalog = get_plan_catalog()
    logger.info(f"ChatQuota API started: plans={[plan.name for plan in catalog.list_all()]}")
    yield


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="ChatQuota API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type"],
)

register_exception_handlers(app)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(payment.router)
app.include_router(admin.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"status": "ChatQuota API running"}
