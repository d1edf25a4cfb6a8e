"""
Welcome image rendering.

A welcome image is an 800x300 PNG: the resolved background stretched over the
canvas, a 60% black overlay, and three centred lines of text ("WELCOME", the
member name, "to {server}") in the configured colour.

Background resolution never fails because of a bad reference. A custom
background that cannot be loaded, a named background that cannot be loaded,
and an unknown background name all fall back to the ``default`` source. Only
when that source is unreachable as well does :meth:`WelcomeImageRenderer.render`
raise :class:`~herald.errors.BackgroundUnavailableError`.
"""

from __future__ import annotations

import asyncio
import threading
from functools import lru_cache
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont

from herald.configuration.app_configuration import (
    DEFAULT_BACKGROUNDS,
    DEFAULT_BOLD_FONT,
    DEFAULT_REGULAR_FONT,
)
from herald.configuration.guild_configs import BackgroundChoice, WelcomeImageOptions
from herald.errors import BackgroundUnavailableError
from herald.util import image_utils
from herald.util.logger import get_logger

logger = get_logger("welcome_image")

CANVAS_SIZE: Tuple[int, int] = (800, 300)
OVERLAY_RGBA = (0, 0, 0, 153)  # black at 60% opacity
FALLBACK_TEXT_RGB = (255, 255, 255)

# (y baseline, point size, bold)
_HEADLINE = (120, 60, True)
_USERNAME = (180, 40, True)
_SERVER = (230, 30, False)


@lru_cache(maxsize=32)
def load_font(path: str, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """TrueType font at ``size``; Pillow's built-in font when the file is unavailable."""
    try:
        return ImageFont.truetype(path, size)
    except OSError:
        logger.debug("[WELCOME IMAGE] Font %s unavailable, using Pillow's default font", path)
        return ImageFont.load_default(size=size)


def parse_color(value: str) -> Tuple[int, int, int]:
    try:
        return ImageColor.getrgb(value)[:3]
    except (ValueError, AttributeError):
        logger.warning("[WELCOME IMAGE] Invalid text colour %r, using white", value)
        return FALLBACK_TEXT_RGB


class WelcomeImageRenderer:
    """
    Render welcome images from a username, a server name and image options.

    The same instance backs both the live welcome flow and the dashboard
    preview, so the two produce identical bytes for identical inputs.

    Built-in backgrounds are decoded once and kept in memory. Custom
    backgrounds are loaded on every render because admins can replace them.
    """

    def __init__(
        self,
        backgrounds: Optional[Mapping[str, str]] = None,
        *,
        uploads_dir: Path = Path("./uploads"),
        bold_font: str = DEFAULT_BOLD_FONT,
        regular_font: str = DEFAULT_REGULAR_FONT,
        timeout: float = 10.0,
    ) -> None:
        self.backgrounds: Dict[str, str] = dict(backgrounds or DEFAULT_BACKGROUNDS)
        self.uploads_dir = uploads_dir
        self.bold_font = bold_font
        self.regular_font = regular_font
        self.timeout = timeout
        self._builtin_cache: Dict[str, Image.Image] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_app_config(cls, config) -> "WelcomeImageRenderer":
        return cls(
            config.welcome_backgrounds,
            uploads_dir=config.uploads_dir,
            bold_font=config.bold_font,
            regular_font=config.regular_font,
            timeout=config.network_timeout,
        )

    # -------- background resolution --------

    def _load_source(self, source: str, *, uploads_only: bool = False) -> Optional[Image.Image]:
        return image_utils.load_image_source(
            source,
            uploads_dir=self.uploads_dir,
            timeout=self.timeout,
            uploads_only=uploads_only,
        )

    def _load_named(self, name: str) -> Optional[Image.Image]:
        with self._cache_lock:
            cached = self._builtin_cache.get(name)
        if cached is not None:
            return cached

        source = self.backgrounds.get(name)
        if not source:
            return None
        image = self._load_source(source)
        if image is not None:
            image = image.convert("RGBA")
            with self._cache_lock:
                self._builtin_cache[name] = image
        return image

    def resolve_background(self, options: WelcomeImageOptions) -> Image.Image:
        """
        Pick the background for ``options`` following the fallback chain.

        Raises:
            BackgroundUnavailableError: If even the ``default`` background cannot be loaded.
        """
        choice = options.background_choice
        name = choice.value if isinstance(choice, BackgroundChoice) else str(choice or "").strip().lower()

        if name == BackgroundChoice.CUSTOM.value:
            if options.custom_background_url:
                image = self._load_source(options.custom_background_url, uploads_only=True)
                if image is not None:
                    return image
                logger.warning(
                    "[WELCOME IMAGE] Custom background %s could not be loaded, falling back to default",
                    options.custom_background_url,
                )
            else:
                logger.warning("[WELCOME IMAGE] Custom background selected without a URL, falling back to default")
        elif name in self.backgrounds:
            image = self._load_named(name)
            if image is not None:
                return image
            logger.warning("[WELCOME IMAGE] Background %r could not be loaded, falling back to default", name)
        else:
            logger.warning("[WELCOME IMAGE] Unknown background %r, falling back to default", name)

        image = self._load_named(BackgroundChoice.DEFAULT.value)
        if image is None:
            logger.error("[WELCOME IMAGE] Default background is unavailable; cannot render")
            raise BackgroundUnavailableError(
                f"default background {self.backgrounds.get(BackgroundChoice.DEFAULT.value)!r} is unreachable"
            )
        return image

    # -------- compositing --------

    def compose(self, background: Image.Image, username: str, server_name: str, text_color: str) -> Image.Image:
        canvas = background.convert("RGBA").resize(CANVAS_SIZE)
        canvas = Image.alpha_composite(canvas, Image.new("RGBA", CANVAS_SIZE, OVERLAY_RGBA))

        draw = ImageDraw.Draw(canvas)
        fill = parse_color(text_color)
        center_x = CANVAS_SIZE[0] // 2
        for text, (y, size, bold) in (
            ("WELCOME", _HEADLINE),
            (username, _USERNAME),
            (f"to {server_name}", _SERVER),
        ):
            font = load_font(self.bold_font if bold else self.regular_font, size)
            draw.text((center_x, y), text, fill=fill, font=font, anchor="ms")

        return canvas.convert("RGB")

    def render(self, username: str, server_name: str, options: WelcomeImageOptions) -> bytes:
        """
        Render a welcome image and return it PNG-encoded.

        Blocking: loads the background (possibly over the network) and
        composites in the calling thread. Use :meth:`render_async` from the
        event loop.

        Raises:
            BackgroundUnavailableError: When no background at all can be loaded.
        """
        background = self.resolve_background(options)
        image = self.compose(background, username, server_name, options.text_color)
        logger.debug("[WELCOME IMAGE] Rendered welcome image for %s in %s", username, server_name)
        return image_utils.encode_png(image)

    async def render_async(self, username: str, server_name: str, options: WelcomeImageOptions) -> bytes:
        return await asyncio.to_thread(self.render, username, server_name, options)
