"""
BlockServed - Shared Test Fixtures
Temporary database and upload root, an ASGI client, and staging helpers.
"""

import json
import os
import shutil
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

# Configure test environment BEFORE importing app
TEST_ROOT = Path(tempfile.mkdtemp(prefix="blockserved-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_ROOT / 'test_blockserved.db'}"
os.environ["UPLOAD_DIR"] = str(TEST_ROOT / "uploads")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["CREATION_FEE_TRX"] = "20"
os.environ["SPONSORSHIP_FEE_TRX"] = "2"
os.environ["STAGING_TTL_MINUTES"] = "30"

from sqlalchemy import func, select, update

from blockserved.main import app
from blockserved.core.config import get_settings
from blockserved.core.database import get_db_session
from blockserved.core.utc import utc_now
from blockserved.models.models import StagedTransaction
from blockserved.services.transaction_staging import reset_transaction_stager

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.4 mock notice document"


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def settings():
    """Get test settings."""
    return get_settings()


@pytest.fixture
async def setup_test_database():
    """Create database tables before each test, drop them and the uploads after."""
    from blockserved.core.database import Base, close_db, get_engine
    from blockserved.models import models  # noqa: F401  registers tables

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_db()
    reset_transaction_stager()
    shutil.rmtree(get_settings().upload_dir, ignore_errors=True)


@pytest.fixture
async def client(setup_test_database) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Staging Helpers
# =============================================================================

@pytest.fixture
def stage(client: AsyncClient):
    """POST a stage request; form fields can be overridden by keyword."""

    async def _stage(recipients=("TRecipientAlpha",), files=None, **fields):
        data = {
            "recipients": json.dumps(list(recipients)),
            "noticeType": "Summons",
            "caseNumber": "CASE-2025-001",
            "issuingAgency": "Superior Court",
            "serverAddress": "TServerAddress",
            "publicText": "You have been served",
        }
        data.update(fields)
        return await client.post("/api/stage/transaction", data=data, files=files)

    return _stage


@pytest.fixture
def thumbnail_file():
    return {"thumbnail": ("thumb.png", PNG_BYTES, "image/png")}


@pytest.fixture
def document_files():
    return {
        "thumbnail": ("thumb.png", PNG_BYTES, "image/png"),
        "document": ("notice.pdf", PDF_BYTES, "application/pdf"),
    }


async def expire_transaction(transaction_id: str) -> None:
    """Move expires_at into the past without touching anything else."""
    async with get_db_session() as db:
        await db.execute(
            update(StagedTransaction)
            .where(StagedTransaction.transaction_id == transaction_id)
            .values(expires_at=utc_now() - timedelta(minutes=1))
        )


async def count_rows(model, **filters) -> int:
    async with get_db_session() as db:
        query = select(func.count()).select_from(model)
        for column, value in filters.items():
            query = query.where(getattr(model, column) == value)
        return (await db.execute(query)).scalar_one()
