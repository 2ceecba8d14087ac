# fanconnect/main.py
from __future__ import annotations

import logging

from dotenv import find_dotenv, load_dotenv

# -------------------------------------------------
# LOAD .env ONCE (before any module reads os.getenv)
# -------------------------------------------------
load_dotenv(find_dotenv(usecwd=True))

from fastapi import FastAPI  # noqa: E402

from fanconnect import config, database  # noqa: E402
from fanconnect.authz_errors import register_exception_handlers  # noqa: E402
from fanconnect.routers import feed, messages, posts, profiles, subscriptions, tiers  # noqa: E402

# -------------------------------------------------
# LOGGING SETUP
# -------------------------------------------------
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("fanconnect")


# -------------------------------------------------
# APP SETUP
# -------------------------------------------------
app = FastAPI(title="FanConnect Backend", version="0.1.0")

register_exception_handlers(app)

app.include_router(profiles.router)
app.include_router(tiers.router)
app.include_router(subscriptions.router)
app.include_router(posts.router)
app.include_router(feed.router)
app.include_router(messages.router)


@app.on_event("startup")
def bootstrap_startup():
    if not database.is_configured():
        logger.warning("DATABASE_URL is empty: reads will return empty results, writes will fail")
        return
    database.init_db()
    logger.info("schema ready")


# -------------------------------------------------
# HEALTH (NO DB REQUIRED)
# -------------------------------------------------
@app.get("/health")
def health():
    return {"status": "ok", "store_configured": database.is_configured()}
