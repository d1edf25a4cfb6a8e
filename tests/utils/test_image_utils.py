from io import BytesIO
from pathlib import Path
from types import SimpleNamespace

import pytest
import requests
from PIL import Image

from herald.util import image_utils


def _png(color=(10, 20, 30), size=(8, 8), mode="RGB", fmt="PNG"):
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, content=b"", status_error=None, headers=None):
        self.content = content
        self.headers = headers or {}
        self.chunks_read = 0
        self._status_error = status_error

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def raise_for_status(self):
        if self._status_error:
            raise self._status_error

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            self.chunks_read += 1
            yield self.content[start:start + chunk_size]


def test_download_image_to_pil_success(monkeypatch):
    monkeypatch.setattr(image_utils.requests, "get", lambda url, **kwargs: FakeResponse(_png()))

    image = image_utils.download_image_to_pil("https://example.com/bg.png", timeout=1)

    assert image.size == (8, 8)


def test_download_image_to_pil_http_error(monkeypatch):
    monkeypatch.setattr(
        image_utils.requests,
        "get",
        lambda url, **kwargs: FakeResponse(status_error=requests.HTTPError("404")),
    )

    assert image_utils.download_image_to_pil("https://example.com/missing.png", timeout=1) is None


def test_download_image_to_pil_connection_error(monkeypatch):
    def boom(url, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(image_utils.requests, "get", boom)

    assert image_utils.download_image_to_pil("https://example.invalid/bg.png", timeout=1) is None


def test_download_image_to_pil_not_an_image(monkeypatch):
    monkeypatch.setattr(image_utils.requests, "get", lambda url, **kwargs: FakeResponse(b"<html></html>"))

    assert image_utils.download_image_to_pil("https://example.com/page", timeout=1) is None


def test_download_image_to_pil_streams_with_timeout(monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(kwargs)
        return FakeResponse(_png())

    monkeypatch.setattr(image_utils.requests, "get", fake_get)

    image_utils.download_image_to_pil("https://example.com/bg.png", timeout=3)

    assert calls == [{"stream": True, "timeout": 3}]


def test_download_image_to_pil_rejects_declared_oversize(monkeypatch):
    response = FakeResponse(_png(), headers={"Content-Length": str(50 * 1024 * 1024)})
    monkeypatch.setattr(image_utils.requests, "get", lambda url, **kwargs: response)

    assert image_utils.download_image_to_pil("https://example.com/huge.png", timeout=1) is None
    assert response.chunks_read == 0


def test_download_image_to_pil_aborts_oversized_body(monkeypatch):
    response = FakeResponse(b"x" * 1000)
    monkeypatch.setattr(image_utils, "_MAX_BYTES", 100)
    monkeypatch.setattr(image_utils, "_CHUNK_SIZE", 10)
    monkeypatch.setattr(image_utils.requests, "get", lambda url, **kwargs: response)

    assert image_utils.download_image_to_pil("https://example.com/endless.png", timeout=1) is None
    # Stops on the first chunk past the cap instead of reading all 100 chunks
    assert response.chunks_read == 11


def test_download_image_to_pil_decompression_bomb(monkeypatch):
    monkeypatch.setattr(image_utils.requests, "get", lambda url, **kwargs: FakeResponse(_png(size=(100, 100))))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    assert image_utils.download_image_to_pil("https://example.com/bomb.png", timeout=1) is None


def test_open_local_image_decompression_bomb(tmp_path, monkeypatch):
    path = tmp_path / "bomb.png"
    path.write_bytes(_png(size=(100, 100)))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    assert image_utils.open_local_image(path) is None


def test_open_local_image(tmp_path):
    path = tmp_path / "bg.png"
    path.write_bytes(_png())

    assert image_utils.open_local_image(path).size == (8, 8)
    assert image_utils.open_local_image(tmp_path / "missing.png") is None

    junk = tmp_path / "junk.png"
    junk.write_bytes(b"junk")
    assert image_utils.open_local_image(junk) is None


def test_resolve_local_path(tmp_path):
    uploads = tmp_path / "uploads"

    assert image_utils.resolve_local_path("/uploads/custom_1.png", uploads) == uploads / "custom_1.png"
    # Only the file name of an uploads reference is honoured
    assert image_utils.resolve_local_path("/uploads/../../etc/passwd", uploads) == uploads / "passwd"
    assert image_utils.resolve_local_path("file:///srv/bg%20one.png", uploads) == Path("/srv/bg one.png")
    assert image_utils.resolve_local_path("assets/bg.png", uploads) == Path("assets/bg.png")


def test_is_remote_source():
    assert image_utils.is_remote_source("https://example.com/a.png") is True
    assert image_utils.is_remote_source("http://example.com/a.png") is True
    assert image_utils.is_remote_source("/uploads/a.png") is False
    assert image_utils.is_remote_source("file:///a.png") is False


def test_load_image_source_dispatches(tmp_path, monkeypatch):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "bg.png").write_bytes(_png())
    fetched = []
    monkeypatch.setattr(image_utils, "download_image_to_pil", lambda url, timeout: fetched.append(url))

    assert image_utils.load_image_source("/uploads/bg.png", uploads_dir=uploads, timeout=1).size == (8, 8)
    image_utils.load_image_source(" https://example.com/a.png ", uploads_dir=uploads, timeout=1)
    assert fetched == ["https://example.com/a.png"]
    assert image_utils.load_image_source("  ", uploads_dir=uploads, timeout=1) is None


def test_load_image_source_uploads_only(tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "bg.png").write_bytes(_png())
    outside = tmp_path / "outside.png"
    outside.write_bytes(_png())

    def load(source):
        return image_utils.load_image_source(source, uploads_dir=uploads, timeout=1, uploads_only=True)

    assert load("/uploads/bg.png").size == (8, 8)
    assert load(str(uploads / "bg.png")).size == (8, 8)
    assert load(str(outside)) is None
    assert load(outside.as_uri()) is None
    assert load(str(uploads / ".." / "outside.png")) is None
    # Operator-configured sources may live anywhere
    assert image_utils.load_image_source(str(outside), uploads_dir=uploads, timeout=1).size == (8, 8)


def test_normalize_upload_reencodes_as_png():
    jpeg = _png(fmt="JPEG")

    png = image_utils.normalize_upload(jpeg)

    with Image.open(BytesIO(png)) as image:
        assert image.format == "PNG"


def test_normalize_upload_converts_palette_images():
    png = image_utils.normalize_upload(_png(color=3, mode="P"))

    with Image.open(BytesIO(png)) as image:
        assert image.mode == "RGBA"


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_normalize_upload_rejects_bad_data(data):
    with pytest.raises(ValueError):
        image_utils.normalize_upload(data)


def test_normalize_upload_rejects_oversized(monkeypatch):
    monkeypatch.setattr(image_utils, "_MAX_BYTES", 10)

    with pytest.raises(ValueError, match="20MB"):
        image_utils.normalize_upload(_png())


@pytest.mark.parametrize(
    "attachment, expected",
    [
        (SimpleNamespace(content_type="image/png", width=None, height=None, filename="x"), True),
        (SimpleNamespace(content_type=None, width=10, height=10, filename="x"), True),
        (SimpleNamespace(content_type=None, width=None, height=None, filename="photo.HEIC"), True),
        (SimpleNamespace(content_type="text/plain", width=None, height=None, filename="notes.txt"), False),
    ],
)
def test_is_image_attachment(attachment, expected):
    assert image_utils.is_image_attachment(attachment) is expected
