"""
BlockServed - File Staging Area Tests
Naming, type checks, size limits, promotion and removal.
"""

import io
import re

import pytest
from starlette.datastructures import Headers, UploadFile

from blockserved.core.config import Settings
from blockserved.core.errors import ValidationError
from blockserved.services.file_staging import FileStagingArea


def make_upload(filename: str, content: bytes, content_type: str) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def area(tmp_path) -> FileStagingArea:
    return FileStagingArea(Settings(upload_dir=str(tmp_path), max_upload_size_mb=1))


# =============================================================================
# Naming
# =============================================================================

def test_make_filename_format():
    name = FileStagingArea.make_filename("thumbnail", "Photo.PNG")
    assert re.fullmatch(r"thumbnail-\d{13}-[0-9a-f]{16}\.png", name)


def test_make_filename_is_unique():
    names = {FileStagingArea.make_filename("document", "a.pdf") for _ in range(50)}
    assert len(names) == 50


def test_urls(area):
    assert area.staged_url("x.png") == "/uploads/staged/x.png"
    assert area.document_url("x.png") == "/uploads/documents/x.png"
    assert area.staged_url(None) is None


# =============================================================================
# Type Checks
# =============================================================================

def test_check_type_accepts_images_and_pdf(area):
    area.check_type("thumbnail", make_upload("a.jpg", b"", "image/jpeg"))
    area.check_type("document", make_upload("a.pdf", b"", "application/pdf"))


def test_check_type_rejects_other_types(area):
    with pytest.raises(ValidationError) as exc_info:
        area.check_type("document", make_upload("run.exe", b"", "application/x-msdownload"))
    assert exc_info.value.field == "document"


def test_check_type_rejects_mismatched_mime(area):
    with pytest.raises(ValidationError):
        area.check_type("thumbnail", make_upload("a.png", b"", "text/html"))


def test_encrypted_document_may_be_opaque(area):
    area.check_type("encryptedDocument", make_upload("encrypted.dat", b"", "application/octet-stream"))
    with pytest.raises(ValidationError):
        area.check_type("document", make_upload("encrypted.dat", b"", "application/octet-stream"))


# =============================================================================
# Save / Promote / Discard
# =============================================================================

@pytest.mark.anyio
async def test_save_writes_into_staging_dir(area):
    staged = await area.save("thumbnail", make_upload("t.png", b"png-bytes", "image/png"))
    assert staged.size == len(b"png-bytes")
    assert staged.column == "thumbnail"
    assert staged.url == f"/uploads/staged/{staged.filename}"
    assert (area.staged_dir / staged.filename).read_bytes() == b"png-bytes"


@pytest.mark.anyio
async def test_save_rejects_oversized_upload(area):
    content = b"x" * (1024 * 1024 + 1)
    with pytest.raises(ValidationError, match="1MB"):
        await area.save("document", make_upload("big.pdf", content, "application/pdf"))
    assert list(area.staged_dir.iterdir()) == []


@pytest.mark.anyio
async def test_save_rejects_unknown_field(area):
    with pytest.raises(ValidationError):
        await area.save("avatar", make_upload("a.png", b"x", "image/png"))


@pytest.mark.anyio
async def test_promote_moves_file(area):
    staged = await area.save("document", make_upload("n.pdf", b"%PDF", "application/pdf"))
    assert await area.promote(staged.filename) is True
    assert not (area.staged_dir / staged.filename).exists()
    assert (area.documents_dir / staged.filename).exists()


@pytest.mark.anyio
async def test_promote_missing_file_is_logged_not_raised(area, caplog):
    assert await area.promote("missing.pdf") is False
    assert "missing.pdf" in caplog.text


@pytest.mark.anyio
async def test_discard_many(area):
    first = await area.save("thumbnail", make_upload("a.png", b"1", "image/png"))
    second = await area.save("document", make_upload("b.pdf", b"2", "application/pdf"))
    removed = await area.discard_many([first.filename, second.filename, None, "gone.png"])
    assert removed == 2
    assert list(area.staged_dir.iterdir()) == []
