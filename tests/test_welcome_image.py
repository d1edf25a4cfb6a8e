"""Tests for welcome image rendering and background fallback."""

from io import BytesIO

import pytest
from PIL import Image

from herald.configuration.guild_configs import BackgroundChoice, WelcomeImageOptions
from herald.errors import BackgroundUnavailableError
from herald.welcome import image_renderer
from herald.welcome.image_renderer import CANVAS_SIZE, WelcomeImageRenderer, parse_color


def _decode(data: bytes) -> Image.Image:
    image = Image.open(BytesIO(data))
    image.load()
    return image


@pytest.fixture
def renderer(tmp_path, make_background):
    default = make_background("default.png", color=(200, 0, 0))
    forest = make_background("forest.png", color=(0, 200, 0))
    return WelcomeImageRenderer(
        {"default": str(default), "forest": str(forest)},
        uploads_dir=tmp_path / "uploads",
    )


def test_render_produces_800_by_300_png(renderer):
    data = renderer.render("alice", "Acme", WelcomeImageOptions())

    assert data.startswith(b"\x89PNG\r\n\x1a\n")
    image = _decode(data)
    assert image.size == CANVAS_SIZE == (800, 300)
    assert image.mode == "RGB"


def test_render_is_deterministic(renderer):
    options = WelcomeImageOptions(background_choice=BackgroundChoice.FOREST, text_color="#FFCC00")

    first = renderer.render("alice", "Acme", options)
    second = renderer.render("alice", "Acme", options)

    assert first == second


def test_overlay_darkens_background(renderer):
    image = _decode(renderer.render("alice", "Acme", WelcomeImageOptions()))

    # Top-left corner carries no text: 200 red under a 60% black overlay
    red, green, blue = image.getpixel((5, 5))
    assert 75 <= red <= 85
    assert green == 0 and blue == 0


def test_named_background_is_used(renderer):
    image = _decode(renderer.render("alice", "Acme", WelcomeImageOptions(background_choice="forest")))

    red, green, _ = image.getpixel((5, 5))
    assert green > red


def test_unreachable_custom_background_falls_back_to_default(renderer):
    options = WelcomeImageOptions(
        background_choice=BackgroundChoice.CUSTOM,
        custom_background_url="/uploads/missing.png",
    )

    data = renderer.render("alice", "Acme", options)

    assert data == renderer.render("alice", "Acme", WelcomeImageOptions())


def test_custom_without_url_falls_back_to_default(renderer):
    options = WelcomeImageOptions(background_choice=BackgroundChoice.CUSTOM)

    assert renderer.render("bob", "Acme", options) == renderer.render("bob", "Acme", WelcomeImageOptions())


def test_unknown_background_name_falls_back_to_default(renderer):
    options = WelcomeImageOptions(background_choice="space")

    assert renderer.render("bob", "Acme", options) == renderer.render("bob", "Acme", WelcomeImageOptions())


def test_named_background_that_cannot_load_falls_back(renderer, tmp_path):
    renderer.backgrounds["city"] = str(tmp_path / "nowhere.png")
    options = WelcomeImageOptions(background_choice=BackgroundChoice.CITY)

    assert renderer.render("bob", "Acme", options) == renderer.render("bob", "Acme", WelcomeImageOptions())


def test_uploaded_custom_background_is_loaded(renderer, tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    Image.new("RGB", (100, 100), (0, 0, 250)).save(uploads / "custom_G1.png")
    options = WelcomeImageOptions(
        background_choice=BackgroundChoice.CUSTOM,
        custom_background_url="/uploads/custom_G1.png",
    )

    image = _decode(renderer.render("alice", "Acme", options))

    red, _, blue = image.getpixel((5, 5))
    assert blue > red


def test_corrupt_custom_background_falls_back_to_default(renderer, tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "custom_G1.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"garbage" * 20)
    options = WelcomeImageOptions(
        background_choice=BackgroundChoice.CUSTOM,
        custom_background_url="/uploads/custom_G1.png",
    )

    assert renderer.render("bob", "Acme", options) == renderer.render("bob", "Acme", WelcomeImageOptions())


def test_oversized_custom_background_falls_back_to_default(renderer, tmp_path, monkeypatch):
    expected = renderer.render("bob", "Acme", WelcomeImageOptions())
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    Image.new("RGB", (100, 100), (0, 0, 250)).save(uploads / "custom_G1.png")
    # 100x100 is more than twice the limit, so Pillow raises DecompressionBombError on open
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    options = WelcomeImageOptions(
        background_choice=BackgroundChoice.CUSTOM,
        custom_background_url="/uploads/custom_G1.png",
    )

    assert renderer.render("bob", "Acme", options) == expected


@pytest.mark.parametrize("as_file_url", [False, True])
def test_custom_background_outside_uploads_is_refused(renderer, tmp_path, as_file_url):
    secret = tmp_path / "secret.png"
    Image.new("RGB", (100, 100), (0, 0, 255)).save(secret)
    reference = secret.as_uri() if as_file_url else str(secret)
    options = WelcomeImageOptions(background_choice=BackgroundChoice.CUSTOM, custom_background_url=reference)

    image = _decode(renderer.render("bob", "Acme", options))

    red, _, blue = image.getpixel((5, 5))
    assert red > blue


def test_custom_background_path_inside_uploads_is_loaded(renderer, tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    Image.new("RGB", (100, 100), (0, 0, 250)).save(uploads / "custom_G1.png")
    options = WelcomeImageOptions(
        background_choice=BackgroundChoice.CUSTOM,
        custom_background_url=str(uploads / "custom_G1.png"),
    )

    red, _, blue = _decode(renderer.render("alice", "Acme", options)).getpixel((5, 5))
    assert blue > red


def test_missing_default_background_raises(tmp_path):
    renderer = WelcomeImageRenderer({"default": str(tmp_path / "gone.png")}, uploads_dir=tmp_path)

    with pytest.raises(BackgroundUnavailableError):
        renderer.render("alice", "Acme", WelcomeImageOptions(background_choice=BackgroundChoice.FOREST))


def test_builtin_backgrounds_are_loaded_once(renderer, monkeypatch):
    calls = []
    original = image_renderer.image_utils.load_image_source

    def counting(source, **kwargs):
        calls.append(source)
        return original(source, **kwargs)

    monkeypatch.setattr(image_renderer.image_utils, "load_image_source", counting)

    renderer.render("a", "b", WelcomeImageOptions())
    renderer.render("c", "d", WelcomeImageOptions())

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_render_async_matches_render(renderer):
    options = WelcomeImageOptions(text_color="#00FF00")

    assert await renderer.render_async("alice", "Acme", options) == renderer.render("alice", "Acme", options)


@pytest.mark.parametrize(
    "value, expected",
    [("#FFFFFF", (255, 255, 255)), ("#f00", (255, 0, 0)), ("not-a-colour", (255, 255, 255))],
)
def test_parse_color(value, expected):
    assert parse_color(value) == expected
