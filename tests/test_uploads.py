"""Tests for image upload acceptance (type allow-list, size ceiling, storage)."""

import io
from dataclasses import dataclass

import pytest

import uploads


@dataclass
class FakeUpload:
    filename: str
    content_type: str
    file: io.BytesIO


def _upload(name="pic.jpg", ctype="image/jpeg", data=b"jpegdata"):
    return FakeUpload(filename=name, content_type=ctype, file=io.BytesIO(data))


def test_save_image_writes_file_and_returns_public_path(upload_dir):
    path = uploads.save_image(_upload())
    assert path.startswith("/uploads/")
    stored = upload_dir / path.rsplit("/", 1)[1]
    assert stored.read_bytes() == b"jpegdata"


def test_save_image_strips_directories_from_name(upload_dir):
    path = uploads.save_image(_upload(name="../../etc/evil.png", ctype="image/png"))
    assert path.endswith("-evil.png")
    assert [p.name for p in upload_dir.iterdir()] == [path.rsplit("/", 1)[1]]


@pytest.mark.parametrize(
    "name,ctype",
    [
        ("notes.txt", "text/plain"),
        ("image.gif", "image/gif"),
        ("fake.png", "text/html"),
        ("noext", "image/png"),
    ],
)
def test_disallowed_types_rejected(name, ctype, upload_dir):
    with pytest.raises(uploads.UploadRejected, match="Only JPEG/PNG"):
        uploads.save_image(_upload(name=name, ctype=ctype))
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []


def test_oversized_file_rejected_and_removed(upload_dir, monkeypatch):
    monkeypatch.setattr(uploads, "MAX_IMAGE_BYTES", 10)
    with pytest.raises(uploads.UploadRejected, match="too large"):
        uploads.save_image(_upload(data=b"x" * 11))
    assert list(upload_dir.iterdir()) == []


def test_remove_image(upload_dir):
    path = uploads.save_image(_upload())
    uploads.remove_image(path)
    assert list(upload_dir.iterdir()) == []
    uploads.remove_image(None)
    uploads.remove_image("/elsewhere/x.png")
