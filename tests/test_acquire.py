"""Tests for image acquisition."""

import os

import pytest

from conftest import PNG_BYTES
from chronos_relay.ingestion.acquire import (
    AcquiredImage,
    derive_filename,
    describe_url,
    sanitize_filename,
)
from chronos_relay.ingestion.attachments import Attachment
from chronos_relay.ingestion.errors import AcquisitionError


# ── Filename derivation ─────────────────────────────────────

class TestDeriveFilename:
    def test_url_segment_kept_as_is(self):
        att = Attachment(id="1", url="https://x/y/pic.JPG")
        assert derive_filename(att) == "pic.JPG"

    def test_title_preferred(self):
        att = Attachment(id="1", title="holiday.png", name="other.png", url="https://x/y/pic.jpg")
        assert derive_filename(att) == "holiday.png"

    def test_name_when_no_title(self):
        att = Attachment(id="1", name="scan.gif", url="https://x/y/pic.jpg")
        assert derive_filename(att) == "scan.gif"

    def test_synthesized_from_id(self):
        att = Attachment(id="987", url="https://x/y/", content_type="image/webp")
        assert derive_filename(att) == "image_987.webp"

    def test_extension_from_content_type(self):
        att = Attachment(id="1", title="manuscript", content_type="image/jpeg")
        assert derive_filename(att) == "manuscript.jpeg"

    def test_extension_ignores_content_type_params(self):
        att = Attachment(id="1", title="scan", content_type="image/png; charset=binary")
        assert derive_filename(att) == "scan.png"

    def test_fallback_extension(self):
        att = Attachment(id="1", title="scan")
        assert derive_filename(att) == "scan.png"

    def test_unsafe_characters_replaced(self):
        att = Attachment(id="1", title="my photo (1).png")
        assert derive_filename(att) == "my_photo__1_.png"

    def test_path_traversal_neutralised(self):
        att = Attachment(id="1", title="../../etc/passwd.png")
        name = derive_filename(att)
        assert "/" not in name
        assert name == ".._.._etc_passwd.png"


class TestSanitizeFilename:
    def test_allowed_characters_untouched(self):
        assert sanitize_filename("A-b_c.9.png") == "A-b_c.9.png"

    def test_unicode_replaced(self):
        assert sanitize_filename("café.png") == "caf_.png"

    @pytest.mark.parametrize("name", [".", ".."])
    def test_dot_names_cannot_address_directories(self, name):
        assert sanitize_filename(name) not in (".", "..")


def test_describe_url_hides_path():
    described = describe_url("https://api.telegram.org/file/bot123:SECRET/photos/file_1.jpg")
    assert "SECRET" not in described
    assert described.endswith("file_1.jpg")


# ── Acquisition ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_acquire_writes_file(make_acquirer, work_dir, image_attachment):
    url = "https://cdn.example.com/a/photo.png"
    acquirer = make_acquirer({url: (200, PNG_BYTES)})

    image = await acquirer.acquire(image_attachment(url=url))

    assert isinstance(image, AcquiredImage)
    assert image.filename == "photo.png"
    assert image.size == len(PNG_BYTES)
    assert os.path.isabs(image.path)
    assert os.path.dirname(image.path) == str(work_dir.resolve())
    with open(image.path, "rb") as f:
        assert f.read() == PNG_BYTES


@pytest.mark.asyncio
async def test_acquire_creates_work_dir(make_acquirer, work_dir, image_attachment):
    url = "https://cdn.example.com/a/photo.png"
    acquirer = make_acquirer({url: (200, PNG_BYTES)})
    assert not work_dir.exists()

    await acquirer.acquire(image_attachment(url=url))

    assert work_dir.is_dir()
    # idempotent
    assert acquirer.ensure_work_dir() == str(work_dir)


@pytest.mark.asyncio
async def test_acquire_overwrites_existing(make_acquirer, work_dir, image_attachment):
    url = "https://cdn.example.com/a/photo.png"
    work_dir.mkdir(parents=True)
    (work_dir / "photo.png").write_bytes(b"stale")
    acquirer = make_acquirer({url: (200, PNG_BYTES)})

    image = await acquirer.acquire(image_attachment(url=url))

    with open(image.path, "rb") as f:
        assert f.read() == PNG_BYTES


@pytest.mark.asyncio
async def test_acquire_missing_url(make_acquirer):
    acquirer = make_acquirer()
    with pytest.raises(AcquisitionError, match="no URL"):
        await acquirer.acquire(Attachment(id="1", source="Image"))


@pytest.mark.asyncio
async def test_acquire_http_error(make_acquirer, image_attachment):
    acquirer = make_acquirer({"https://cdn.example.com/a/photo.png": (403, b"")})
    with pytest.raises(AcquisitionError) as exc:
        await acquirer.acquire(image_attachment())
    assert exc.value.status_code == 403
    assert "403" in str(exc.value)


@pytest.mark.asyncio
async def test_acquire_unknown_url_is_404(make_acquirer, image_attachment):
    acquirer = make_acquirer()
    with pytest.raises(AcquisitionError) as exc:
        await acquirer.acquire(image_attachment(url="https://cdn.example.com/missing.png"))
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_acquire_local_file(tmp_path, make_acquirer):
    source = tmp_path / "local.png"
    source.write_bytes(PNG_BYTES)
    acquirer = make_acquirer()

    image = await acquirer.acquire(Attachment(id="l1", url=source.as_uri(), name="local.png"))

    assert image.size == len(PNG_BYTES)
    assert image.path != str(source)


@pytest.mark.asyncio
async def test_acquire_local_file_missing(tmp_path, make_acquirer):
    acquirer = make_acquirer()
    missing = (tmp_path / "nope.png").as_uri()
    with pytest.raises(AcquisitionError, match="Failed to read"):
        await acquirer.acquire(Attachment(id="l1", url=missing))


# ── Cleanup ─────────────────────────────────────────────────

def test_cleanup_removes_file(tmp_path):
    path = tmp_path / "x.png"
    path.write_bytes(b"x")
    image = AcquiredImage(attachment_id="1", path=str(path), size=1, filename="x.png")
    assert image.cleanup() is True
    assert not path.exists()


def test_cleanup_missing_file_is_fine(tmp_path):
    image = AcquiredImage(attachment_id="1", path=str(tmp_path / "gone.png"), size=0, filename="gone.png")
    assert image.cleanup() is True


def test_cleanup_failure_is_logged_not_raised(tmp_path, caplog):
    directory = tmp_path / "adir.png"
    directory.mkdir()
    image = AcquiredImage(attachment_id="1", path=str(directory), size=0, filename="adir.png")
    assert image.cleanup() is False
    assert "Failed to delete" in caplog.text


@pytest.mark.asyncio
async def test_unusable_work_dir_is_acquisition_error(make_acquirer, work_dir, image_attachment):
    work_dir.write_bytes(b"a file where the directory should be")
    acquirer = make_acquirer({"https://cdn.example.com/a/photo.png": (200, PNG_BYTES)})

    with pytest.raises(AcquisitionError, match="working directory"):
        await acquirer.acquire(image_attachment())
