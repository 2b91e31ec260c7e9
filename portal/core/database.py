# portal/core/database.py

import ssl

from loguru import logger
from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy import text

from portal.core.config import settings

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")


# ----------------------------------------------------
# SSL for the Postgres pooler
# ----------------------------------------------------
def make_ssl():
    ctx = ssl.create_default_context()
    if not settings.DB_SSL_VERIFY:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def engine_options(url: str) -> dict:
    """
    asyncpg behind a pooler needs SSL and no prepared statements.
    SQLite (local runs, tests) needs one shared connection for :memory:.
    """
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            options["poolclass"] = StaticPool
        return options

    return {
        "connect_args": {
            "ssl": make_ssl(),
            "statement_cache_size": 0,           # disable prepared statements
            "prepared_statement_name_func": None # prevent SQLAlchemy from naming statements
        },
        "pool_pre_ping": True,
        "poolclass": NullPool,                   # the pooler handles pooling
    }


def build_engine(url: str = DATABASE_URL):
    return create_async_engine(url, echo=False, future=True, **engine_options(url))


logger.info("Configuring database ({})", DATABASE_URL.split(":", 1)[0])

engine = build_engine()


# ----------------------------------------------------
# Sessions
# ----------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


# ----------------------------------------------------
# Create tables
# ----------------------------------------------------
async def init_db(bind=None):
    # Register every table on the metadata before create_all
    from portal.models import audit, notification, user  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def test_connection():
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
        logger.success("DB connection OK")
