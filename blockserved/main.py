"""
BlockServed - FastAPI Application
Transaction staging backend for legal notice NFTs on TRON.

Startup work (logging, directories, connection pool, schema) happens in the
lifespan handler, never at import time.
"""

import asyncio
import importlib.util
import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from blockserved.core.config import get_settings
from blockserved.core.database import check_db, close_db, init_db
from blockserved.core.errors import setup_exception_handlers
from blockserved.routers import health, served_notices, transaction_staging
from blockserved.services.file_staging import FileStagingArea
from blockserved.services.transaction_staging import reset_transaction_stager

logger = logging.getLogger(__name__)


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging():
    """Configure logging based on settings."""
    from blockserved.core.logging_config import setup_logging as configure_logging
    settings = get_settings()
    configure_logging(
        level=settings.log_level.upper(),
        json_format=settings.log_json_format,
        log_file=Path(settings.log_file) if settings.log_file else None,
    )


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================

MAX_RETRIES = 3     # Max retries per stage
STAGE_DELAY = 0.5   # Delay between retries

REQUIRED_PACKAGES = {
    "fastapi": "Web Framework",
    "pydantic_settings": "Settings Management",
    "sqlalchemy": "Database ORM",
    "aiofiles": "Async File I/O",
    "multipart": "Multipart Form Parsing (python-multipart)",
}

# Async driver per database URL scheme
DATABASE_DRIVERS = {
    "sqlite+aiosqlite": "aiosqlite",
    "postgresql+asyncpg": "asyncpg",
}


def missing_packages(database_url: str) -> list[str]:
    """Required packages (plus the configured database driver) that cannot be imported."""
    packages = dict(REQUIRED_PACKAGES)
    scheme = database_url.split(":", 1)[0]
    if scheme in DATABASE_DRIVERS:
        packages[DATABASE_DRIVERS[scheme]] = "Database Driver"

    missing = []
    for pkg, desc in packages.items():
        if importlib.util.find_spec(pkg) is None:
            missing.append(f"{pkg} ({desc})")
    return missing


async def run_stage(stage_num: int, total: int, name: str, action, verify=None) -> None:
    """Run a startup stage with retries and optional verification."""
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            logger.info("Stage %s/%s: %s - attempt %s/%s", stage_num, total, name, attempt, MAX_RETRIES)
            await action() if asyncio.iscoroutinefunction(action) else action()
            if verify:
                is_valid = await verify() if asyncio.iscoroutinefunction(verify) else verify()
                if not is_valid:
                    raise RuntimeError(f"Verification failed for {name}")
            logger.info("Stage %s/%s: %s - complete", stage_num, total, name)
            return
        except (OSError, RuntimeError, ConnectionError) as e:
            logger.warning("Stage %s '%s' attempt %s failed: %s", stage_num, name, attempt, e)
            if attempt < MAX_RETRIES:
                await asyncio.sleep(STAGE_DELAY)
            else:
                raise RuntimeError(f"Stage {stage_num} '{name}' failed after {MAX_RETRIES} attempts: {e}") from e


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Creates the staged/documents directories
    - Opens the connection pool and runs idempotent schema creation
    - Disposes the pool on shutdown
    """
    settings = get_settings()
    setup_logging()
    start_time = time.time()
    files = FileStagingArea(settings)

    logger.info("=" * 60)
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    logger.info("   Staging TTL: %s min | Fees: %s TRX + %s TRX/recipient",
                settings.staging_ttl_minutes, settings.creation_fee_trx, settings.sponsorship_fee_trx)
    logger.info("=" * 60)

    missing = missing_packages(settings.database_url)
    if missing:
        raise ImportError(f"Missing required packages: {', '.join(missing)}")

    total_stages = 2
    await run_stage(
        1, total_stages, "Create Directories", files.ensure_dirs,
        lambda: files.staged_dir.exists() and files.documents_dir.exists(),
    )
    await run_stage(2, total_stages, "Initialize Database", init_db, check_db)

    logger.info("Setup completed in %.2f seconds", time.time() - start_time)

    yield  # Application runs here

    logger.info("Shutting down")
    reset_transaction_stager()
    await close_db()
    logger.info("   Database connections closed")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.enable_docs else None,
        redoc_url="/api/redoc" if settings.enable_docs else None,
        openapi_url="/api/openapi.json" if settings.enable_docs else None,
    )

    # =========================================================================
    # Middleware
    # =========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Server-Address", "X-Request-Id"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================
    setup_exception_handlers(app)

    # =========================================================================
    # Routers
    # =========================================================================
    app.include_router(health.router)
    app.include_router(transaction_staging.router)
    app.include_router(served_notices.router)

    # Staged and promoted files (static file server collaborator)
    app.mount(
        settings.upload_url_prefix.rstrip("/"),
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )

    return app


# Create the app instance
app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "blockserved.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
