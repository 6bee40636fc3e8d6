"""FastAPI application entry point."""
import os

# Force UTC before any module caches timezone information
os.environ['TZ'] = 'UTC'

import time
import sys

if hasattr(time, "tzset"):
    time.tzset()

# Ensure console streams can emit Unicode (Spanish messages) on Windows
for stream in (sys.stdout, sys.stderr):
    if hasattr(stream, "reconfigure"):
        stream.reconfigure(encoding="utf-8", errors="backslashreplace")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextlib import asynccontextmanager

from pizza_promo.config import get_settings
from pizza_promo.version import APP_VERSION
from pizza_promo.routers import dev, game, health, timing
from pizza_promo.utils.exceptions import GameError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
MB = 1024 * 1024


class SQLTransactionFilter(logging.Filter):
    """Drop transaction chatter from the SQL log and keep one line per statement."""

    TRANSACTION_PREFIXES = ('BEGIN', 'COMMIT', 'ROLLBACK')
    CACHE_MARKERS = ('generated in', 'cached since')

    def filter(self, record):
        if record.levelno != logging.INFO:
            return True

        message = record.getMessage()
        if message.startswith(self.TRANSACTION_PREFIXES):
            return False
        if any(marker in message for marker in self.CACHE_MARKERS):
            return False

        if message.lstrip().startswith(('SELECT', 'UPDATE', 'INSERT')):
            record.msg = ' '.join(message.split())
            record.args = ()
        return True


def _file_handler(path: Path, max_mb: int, backups: int, fmt: str = LOG_FORMAT) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_mb * MB, backupCount=backups, encoding='utf-8')
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _dedicated_logger(name: str, handler: logging.Handler) -> logging.Logger:
    """Logger that writes only to its own file."""
    dedicated = logging.getLogger(name)
    dedicated.handlers.clear()
    dedicated.addHandler(handler)
    dedicated.setLevel(logging.INFO)
    dedicated.propagate = False
    return dedicated


def configure_logging(logs_dir: Path = Path("logs")) -> logging.Logger:
    """Console plus rotating files: general log, API request log and SQL log.

    Returns the API request logger used by the request middleware.
    """
    logs_dir.mkdir(exist_ok=True)
    general_handler = _file_handler(logs_dir / "pizza_promo.log", max_mb=1, backups=5)

    # force=True overrides whatever uvicorn configured first
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), general_handler],
        force=True,
    )

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.setLevel(logging.INFO)
    if general_handler not in access_logger.handlers:
        access_logger.addHandler(general_handler)

    sql_logger = _dedicated_logger(
        "sqlalchemy.engine.Engine",
        _file_handler(logs_dir / "pizza_promo_sql.log", max_mb=1, backups=5),
    )
    sql_logger.addFilter(SQLTransactionFilter())

    return _dedicated_logger(
        "pizza_promo.api",
        _file_handler(logs_dir / "pizza_promo_api.log", max_mb=2, backups=15, fmt='%(asctime)s - %(levelname)s - %(message)s'),
    )


api_logger = configure_logging()
logger = logging.getLogger(__name__)
logger.info(f"Logging initialized, TZ={os.environ.get('TZ')}, tzname={time.tzname}")

settings = get_settings()


async def initialize_game_state():
    """Create tables, the first round and both games' state rows."""
    from pizza_promo.database import AsyncSessionLocal, init_models
    from pizza_promo.models.base import GameKey
    from pizza_promo.services.game_service import GameService
    from pizza_promo.services.lock_service import LockService

    await init_models()

    async with AsyncSessionLocal() as db:
        for game_key in GameKey:
            await LockService(db, game_key).ensure_state()
        current = await GameService(db).ensure_round()
        logger.info(f"Active round {current.id} ready")


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Manage application startup and shutdown tasks."""
    logger.info("=" * 60)
    logger.info("Pizza Promo API Starting")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'SQLite'}")
    logger.info(f"Coupon service: {'Enabled' if settings.coupon_service_configured else 'Disabled'}")
    logger.info(f"Admin email: {'Enabled' if settings.smtp_configured else 'Disabled'}")
    if settings.force_win:
        logger.warning("FORCE_WIN is enabled: every attempt wins")
    elif settings.ftw_every:
        logger.warning(f"FTW_EVERY={settings.ftw_every}: every {settings.ftw_every}th attempt wins")
    logger.info("=" * 60)

    await initialize_game_state()

    try:
        yield
    finally:
        from pizza_promo.tasks import drain_detached, pending_tasks
        logger.info(f"Shutting down, {pending_tasks()} detached task(s) in flight")

        try:
            await drain_detached()
        except Exception as e:
            logger.error(f"Error draining detached tasks: {e}")

        try:
            from pizza_promo.services.coupon_client import get_coupon_client
            await get_coupon_client().close()
            logger.info("Coupon client session closed")
        except Exception as e:
            logger.error(f"Error closing coupon client: {e}")

        logger.info("Pizza Promo API Shutting Down... Goodbye!")


app = FastAPI(
    title="Pizza Promo API",
    description="Prize games for the pizza shop promotion",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(GameError)
async def game_exception_handler(request: Request, exc: GameError):
    """Translate domain errors into their status code and a stable JSON body."""
    logger.info(f"{exc.reason} on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    # The driver message can contain the connection URL, keep it out of responses
    logger.error(f"Database error on {request.method} {request.url.path}: {type(exc).__name__}")
    return JSONResponse(
        status_code=500,
        content={"message": "Error de base de datos", "reason": "STORAGE_ERROR"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with user-friendly messages."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_path = " -> ".join(str(x) for x in loc[1:]) if len(loc) > 1 else "unknown field"
        errors.append({
            "field": field_path,
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": errors,
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request and its outcome to the dedicated API log."""
    start_time = time.time()

    client_ip = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "unknown")
    method = request.method
    path = request.url.path

    request_id = f"{method}:{path}:{int(start_time * 1000) % 100000}"
    api_logger.info(f">> {request_id} | START | {method} {path} | IP: {client_ip} | UA: {user_agent[:50]}...")

    try:
        response = await call_next(request)
    except Exception as e:
        process_time = time.time() - start_time
        api_logger.error(
            f"<< {request_id} | EXCEPTION | {method} {path} | "
            f"Error: {str(e)[:100]} | "
            f"Time: {process_time:.3f}s | "
            f"IP: {client_ip}"
        )
        raise

    process_time = time.time() - start_time
    api_logger.info(
        f"<< {request_id} | COMPLETE | {method} {path} | "
        f"Status: {response.status_code} | "
        f"Time: {process_time:.3f}s | "
        f"IP: {client_ip}"
    )
    return response


allowed_origins = settings.get_allowed_origins()
if not allowed_origins:
    allowed_origins = [
        settings.frontend_url,
        "http://localhost:3000",              # React dev server
        "http://127.0.0.1:3000",
        "http://localhost:5173",              # Vite dev server
        "http://127.0.0.1:5173",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(game.router)
app.include_router(timing.router)
app.include_router(health.router)
app.include_router(dev.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Pizza Promo API",
        "version": APP_VERSION,
        "environment": settings.environment,
        "docs": "/docs",
    }
