import io

import pytest
from PIL import Image

from models.models import CompressionMode, CompressionRequest, OutputFormat, PresetSize
from services.services import compress_image
from utils.utils import (
    PRESETS,
    DecodeError,
    EncodeError,
    compress_to_target_size,
    decode_image,
    encode_image,
    preset_settings,
    resize_inside,
    resolve_output_format,
)


class CountingEncoder:
    def __init__(self, encode=encode_image):
        self.encode = encode
        self.qualities = []

    def __call__(self, image, fmt, quality):
        self.qualities.append(quality)
        return self.encode(image, fmt, quality)


@pytest.mark.parametrize(
    "detected, requested, expected",
    [
        ("png", None, OutputFormat.PNG),
        ("jpeg", None, OutputFormat.JPEG),
        ("gif", None, OutputFormat.JPEG),
        ("tiff", "auto", OutputFormat.JPEG),
        ("unknown", "bmp", OutputFormat.JPEG),
        ("png", "webp", OutputFormat.WEBP),
        ("jpeg", OutputFormat.PNG, OutputFormat.PNG),
        ("png", "avif", OutputFormat.AVIF),
    ],
)
def test_resolve_output_format(detected, requested, expected):
    assert resolve_output_format(detected, requested) is expected


def test_preset_table_is_total():
    for preset in PresetSize:
        width, height, quality = preset_settings(preset)
        assert 1 <= quality <= 100
        assert width is None or width > 0
        assert height is None

    assert set(PRESETS) == set(PresetSize)
    assert preset_settings(PresetSize.SMALL) == (1280, None, 60)
    assert preset_settings(PresetSize.MEDIUM) == (1920, None, 75)
    assert preset_settings(PresetSize.LARGE) == (None, None, 85)


def test_decode_image_rejects_garbage():
    with pytest.raises(DecodeError):
        decode_image(b"definitely not an image")


def test_decode_image_detects_format(make_image):
    image, detected = decode_image(make_image(fmt="JPEG"))
    assert detected == "jpeg"
    assert image.size == (64, 48)


def test_resize_inside_caps_width_and_keeps_aspect():
    image = Image.new("RGB", (3000, 1500))
    resized = resize_inside(image, 1280, None)
    assert resized.width == 1280
    assert resized.height == 640


def test_resize_inside_never_upscales():
    image = Image.new("RGB", (800, 600))
    assert resize_inside(image, 1280, None).size == (800, 600)
    assert resize_inside(image, 4000, 4000).size == (800, 600)


def test_resize_inside_fits_both_bounds():
    image = Image.new("RGB", (1000, 1000))
    resized = resize_inside(image, 500, 200)
    assert resized.size == (200, 200)


def test_resize_inside_without_bounds_is_noop():
    image = Image.new("RGB", (10, 10))
    assert resize_inside(image) is image


@pytest.mark.parametrize("fmt", [OutputFormat.JPEG, OutputFormat.PNG])
def test_encode_is_deterministic(make_image, fmt):
    image, _ = decode_image(make_image(size=(120, 80), noisy=True))
    assert encode_image(image, fmt, 70) == encode_image(image, fmt, 70)


def test_encode_jpeg_drops_alpha(make_image):
    image, _ = decode_image(make_image(mode="RGBA"))
    data = encode_image(image, OutputFormat.JPEG, 80)
    assert Image.open(io.BytesIO(data)).format == "JPEG"


def test_encode_png_fewer_colors_at_low_quality(make_image):
    image, _ = decode_image(make_image(size=(200, 200), noisy=True))
    assert len(encode_image(image, OutputFormat.PNG, 10)) < len(
        encode_image(image, OutputFormat.PNG, 100)
    )


def test_encode_failure_raises_encode_error(make_image, monkeypatch):
    image, _ = decode_image(make_image())

    def broken_save(*args, **kwargs):
        raise OSError("encoder error -2")

    monkeypatch.setattr(Image.Image, "save", broken_save)
    with pytest.raises(EncodeError):
        encode_image(image, OutputFormat.WEBP, 80)


def test_target_search_stops_after_first_fit(make_image):
    image, _ = decode_image(make_image())
    encoder = CountingEncoder()

    result = compress_to_target_size(image, OutputFormat.JPEG, 500 * 1024, encode=encoder)

    assert encoder.qualities == [90]
    assert len(result) <= 500 * 1024


def test_target_search_returns_floor_result_when_budget_unreachable(make_image):
    image, _ = decode_image(make_image())
    encoder = CountingEncoder()

    result = compress_to_target_size(image, OutputFormat.JPEG, 1, encode=encoder)

    assert encoder.qualities == [90, 85, 80, 75, 70, 65, 60, 55, 50, 45, 40]
    assert len(result) > 1
    assert result == encode_image(image, OutputFormat.JPEG, 40)


def test_target_search_stops_at_first_quality_under_budget():
    sizes = {90: 900, 85: 800, 80: 700, 75: 600}
    encoder = CountingEncoder(lambda image, fmt, quality: b"x" * sizes.get(quality, 100))

    result = compress_to_target_size(None, OutputFormat.WEBP, 650, encode=encoder)

    assert encoder.qualities == [90, 85, 80, 75]
    assert len(result) == 600


def test_compress_image_custom_mode_encodes_once(make_image):
    encoder = CountingEncoder()
    request = CompressionRequest(
        input_bytes=make_image(fmt="JPEG"), mode=CompressionMode.CUSTOM, quality=55
    )

    first = compress_image(request, encode=encoder)
    second = compress_image(request, encode=encoder)

    assert encoder.qualities == [55, 55]
    assert first.output_format is OutputFormat.JPEG
    assert first.output_bytes == second.output_bytes


def test_compress_image_preset_overrides_user_values(make_image):
    encoder = CountingEncoder()
    request = CompressionRequest(
        input_bytes=make_image(size=(3000, 1000)),
        mode=CompressionMode.PRESET,
        preset=PresetSize.SMALL,
        width=100,
        quality=99,
    )

    result = compress_image(request, encode=encoder)
    output, detected = decode_image(result.output_bytes)

    assert encoder.qualities == [60]
    assert detected == "png"
    assert output.size == (1280, 427)


def test_compress_image_target_mode_uses_search(make_image):
    encoder = CountingEncoder()
    request = CompressionRequest(
        input_bytes=make_image(),
        mode=CompressionMode.TARGET,
        target_bytes=1,
        output_format=OutputFormat.JPEG,
    )

    result = compress_image(request, encode=encoder)

    assert len(encoder.qualities) == 11
    assert result.filename == "compressed.jpg"
    assert result.content_type == "image/jpeg"


def test_compress_image_target_mode_without_budget_encodes_once(make_image):
    encoder = CountingEncoder()
    request = CompressionRequest(input_bytes=make_image(), mode=CompressionMode.TARGET)

    compress_image(request, encode=encoder)

    assert encoder.qualities == [80]
