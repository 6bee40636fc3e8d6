"""Database connection and session management."""
import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.engine.url import make_url
from pizza_promo.config import Settings, get_settings

logger = logging.getLogger(__name__)

HOSTED_DB_MARKERS = ("heroku", "amazonaws")


def engine_options(settings: Settings) -> dict:
    """Keyword arguments for ``create_async_engine`` suited to the configured backend."""
    options = {"echo": settings.environment == "development", "pool_pre_ping": True}

    if make_url(settings.database_url).drivername.startswith("sqlite"):
        # Concurrent writers wait up to 15 s for SQLite's write lock
        options["connect_args"] = {"timeout": 15}
        return options

    if settings.is_production or any(marker in settings.database_url for marker in HOSTED_DB_MARKERS):
        options["connect_args"] = {"ssl": "require"}
        logger.debug("Postgres SSL enabled (ssl=require)")

    pool_size = max(1, settings.db_pool_size)
    max_overflow = max(0, settings.db_max_overflow)
    if settings.is_production:
        # Hosted plans cap connections tightly
        pool_size, max_overflow = min(pool_size, 2), min(max_overflow, 2)
    options.update(pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600)
    return options


settings = get_settings()
engine = create_async_engine(settings.database_url, **engine_options(settings))

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


async def init_models(bind=None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register with the metadata
    import pizza_promo.models  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency for FastAPI
async def get_db():
    """FastAPI dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
