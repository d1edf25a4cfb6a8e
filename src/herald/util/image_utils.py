"""Image loading and encoding helpers for welcome images and uploaded backgrounds."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from urllib.parse import unquote, urlsplit

import discord
import requests
from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from herald.util.logger import get_logger

logger = get_logger("image_utils")

register_heif_opener()

UPLOADS_PREFIX = "/uploads/"
_MAX_BYTES = 20 * 1024 * 1024  # 20MB safety cap
_CHUNK_SIZE = 64 * 1024

# Everything Pillow raises for data it will not decode
DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError)


class ImageTooLargeError(ValueError):
    pass


def _read_capped(response: requests.Response, url: str) -> bytes:
    """Body of a streamed response, aborting as soon as it passes ``_MAX_BYTES``."""
    declared = response.headers.get("Content-Length")
    if declared and declared.isdigit() and int(declared) > _MAX_BYTES:
        raise ImageTooLargeError(f"{url} declares {declared} bytes")

    body = bytearray()
    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
        body.extend(chunk)
        if len(body) > _MAX_BYTES:
            raise ImageTooLargeError(f"{url} sent more than {_MAX_BYTES} bytes")
    return bytes(body)


def download_image_to_pil(url: str, timeout: float) -> Image.Image | None:
    """
    Download an image from a URL and return it as a fully loaded PIL Image.

    The body is streamed and abandoned once it exceeds the size cap. This
    function blocks the calling thread so it should be called through
    ``asyncio.to_thread`` from async code.

    Args:
        url (str): The URL of the image to download.
        timeout (float): Timeout for the HTTP request in seconds.

    Returns:
        Image.Image | None: The decoded image, or None if the download or
            decoding fails. Failures are logged, never raised.
    """
    try:
        logger.debug("[DOWNLOAD] Downloading image from %s", url)
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            data = _read_capped(response, url)
        return decode_image(data)
    except requests.RequestException as exc:
        logger.error("[DOWNLOAD] Request failed for %s: %s", url, exc)
        return None
    except ImageTooLargeError as exc:
        logger.error("[DOWNLOAD] Image exceeds the %d byte cap: %s", _MAX_BYTES, exc)
        return None
    except DECODE_ERRORS as exc:
        logger.error("[DOWNLOAD] Failed to decode image from %s: %s", url, exc)
        return None


def open_local_image(path: Path) -> Image.Image | None:
    """Open an image file from disk, or return None (logged) when it cannot be read."""
    try:
        with Image.open(path) as img:
            img.load()
            return img.copy()
    except FileNotFoundError:
        logger.error("[LOCAL IMAGE] File %s does not exist", path)
        return None
    except DECODE_ERRORS as exc:
        logger.error("[LOCAL IMAGE] Failed to decode %s: %s", path, exc)
        return None


def resolve_local_path(source: str, uploads_dir: Path) -> Path:
    """Map a background reference to a file path.

    ``/uploads/<file>`` references point into ``uploads_dir``; ``file://`` URLs
    and everything else are treated as filesystem paths.
    """
    if source.startswith(UPLOADS_PREFIX):
        return uploads_dir / Path(source[len(UPLOADS_PREFIX):]).name
    if source.startswith("file://"):
        return Path(unquote(urlsplit(source).path))
    return Path(source).expanduser()


def is_within(path: Path, directory: Path) -> bool:
    return path.resolve().is_relative_to(directory.resolve())


def is_remote_source(source: str) -> bool:
    return urlsplit(source).scheme in ("http", "https")


def load_image_source(
    source: str,
    *,
    uploads_dir: Path,
    timeout: float,
    uploads_only: bool = False,
) -> Image.Image | None:
    """
    Load a background from a remote URL or a local reference.

    With ``uploads_only`` set, local references must resolve inside
    ``uploads_dir``; anything else is refused. Guild-supplied backgrounds are
    loaded this way, operator-configured built-ins are not.

    Returns:
        Image.Image | None: The decoded image, or None on any failure.
    """
    if not source or not source.strip():
        return None
    source = source.strip()
    if is_remote_source(source):
        return download_image_to_pil(source, timeout)

    path = resolve_local_path(source, uploads_dir)
    if uploads_only and not is_within(path, uploads_dir):
        logger.warning("[LOCAL IMAGE] Refusing %s: outside the uploads directory %s", source, uploads_dir)
        return None
    return open_local_image(path)


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes (PNG, JPEG, WebP, HEIF, ...) into a loaded PIL Image.

    Raises:
        UnidentifiedImageError: If Pillow does not recognise the data.
    """
    with Image.open(BytesIO(data)) as img:
        img.load()
        return img.copy()


def encode_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def normalize_upload(data: bytes) -> bytes:
    """Re-encode an uploaded background as PNG so every stored upload has one format.

    Raises:
        ValueError: If the data is empty, too large or not an image.
    """
    if not data:
        raise ValueError("uploaded image is empty")
    if len(data) > _MAX_BYTES:
        raise ValueError("uploaded image exceeds the 20MB limit")
    try:
        image = decode_image(data)
    except DECODE_ERRORS as exc:
        raise ValueError(f"uploaded file is not a readable image: {exc}") from exc
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")
    return encode_png(image)


def is_image_attachment(attachment: discord.Attachment) -> bool:
    """
    Determine if a Discord attachment is an image.

    Checks multiple indicators to identify image attachments:
    1. Content type starts with "image/"
    2. Attachment has width and height properties
    3. Filename ends with common image extensions
    """
    content_type = (attachment.content_type or "").lower()
    if content_type.startswith("image/"):
        return True
    if attachment.width is not None and attachment.height is not None:
        return True
    filename = (attachment.filename or "").lower()
    return filename.endswith((".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".heif", ".heic"))
