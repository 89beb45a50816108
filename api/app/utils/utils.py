# utils/utils.py

import logging
from io import BytesIO
from typing import Callable, Optional, Union

from aiohttp import TraceConfig
from PIL import Image, UnidentifiedImageError

from config import config
from models.models import OutputFormat, PresetSize


# 入力バイト列を画像としてデコードできない
class DecodeError(ValueError):
    pass


# 入力は正しいが、リサイズ・エンコード処理に失敗した
class EncodeError(RuntimeError):
    pass


# プリセットごとの (最大幅, 最大高さ, 品質)。None は制約なし
PRESETS: dict[PresetSize, tuple[Optional[int], Optional[int], int]] = {
    PresetSize.SMALL: (1280, None, 60),
    PresetSize.MEDIUM: (1920, None, 75),
    PresetSize.LARGE: (None, None, 85),
}

# PillowのフォーマットID
PIL_FORMATS = {
    OutputFormat.JPEG: "JPEG",
    OutputFormat.PNG: "PNG",
    OutputFormat.WEBP: "WEBP",
    OutputFormat.AVIF: "AVIF",
}

Encoder = Callable[[Image.Image, OutputFormat, int], bytes]


def setup_trace():
    trace_config = TraceConfig()
    trace_config.on_request_start.append(on_request_start)
    return [trace_config]


async def on_request_start(session, trace_config_ctx, params):
    logging.debug(f"Starting request {params.method} {params.url}")


def preset_settings(preset: PresetSize) -> tuple[Optional[int], Optional[int], int]:
    return PRESETS[PresetSize(preset)]


def resolve_output_format(
    detected: Optional[str], requested: Union[OutputFormat, str, None]
) -> OutputFormat:
    # 指定が有効なフォーマットならそれを使う。auto・不明な指定はPNG入力ならPNG、それ以外はJPEG
    try:
        return OutputFormat(requested)
    except ValueError:
        pass

    if (detected or "").lower() == "png":
        return OutputFormat.PNG
    return OutputFormat.JPEG


def decode_image(data: bytes) -> tuple[Image.Image, str]:
    # 画像をデコードし、検出したフォーマット名(小文字)と共に返す
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as e:
        raise DecodeError(f"画像のデコードに失敗しました: {e}") from e

    detected = (image.format or "unknown").lower()
    return image, detected


def resize_inside(
    image: Image.Image, width: Optional[int] = None, height: Optional[int] = None
) -> Image.Image:
    # 縦横比を保ったまま枠内に収める(切り抜き・拡大はしない)。None の辺は制約なし
    if not width and not height:
        return image

    box = (width or image.width, height or image.height)
    if image.width <= box[0] and image.height <= box[1]:
        return image

    try:
        resized = image.copy()
        resized.thumbnail(box, Image.Resampling.LANCZOS)
    except (OSError, ValueError) as e:
        raise EncodeError(f"画像のリサイズに失敗しました: {e}") from e

    logging.debug(f"Resized {image.size} -> {resized.size} (box={box})")
    return resized


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )


def _to_color_mode(image: Image.Image, keep_alpha: bool) -> Image.Image:
    if keep_alpha and _has_alpha(image):
        return image if image.mode == "RGBA" else image.convert("RGBA")
    return image if image.mode == "RGB" else image.convert("RGB")


def _png_palette(image: Image.Image, quality: int) -> Image.Image:
    # 品質に応じた色数のパレットに減色する(品質100でも最大256色)
    colors = max(2, min(256, round(256 * quality / 100)))
    return _to_color_mode(image, keep_alpha=True).quantize(
        colors=colors, method=Image.Quantize.FASTOCTREE
    )


def encode_image(image: Image.Image, fmt: OutputFormat, quality: int) -> bytes:
    fmt = OutputFormat(fmt)
    buf = BytesIO()
    try:
        if fmt is OutputFormat.JPEG:
            _to_color_mode(image, keep_alpha=False).save(
                buf, format=PIL_FORMATS[fmt], quality=quality
            )
        elif fmt is OutputFormat.PNG:
            _png_palette(image, quality).save(
                buf, format=PIL_FORMATS[fmt], optimize=True
            )
        else:
            _to_color_mode(image, keep_alpha=True).save(
                buf, format=PIL_FORMATS[fmt], quality=quality
            )
    except (KeyError, OSError, ValueError) as e:
        error_msg = f"{fmt.value} へのエンコードに失敗しました: {e}"
        logging.error(error_msg)
        raise EncodeError(error_msg) from e

    return buf.getvalue()


def compress_to_target_size(
    image: Image.Image,
    fmt: OutputFormat,
    target_bytes: int,
    encode: Encoder = encode_image,
) -> bytes:
    # 品質90から5刻みで下げ、目標サイズ以下になった時点で返す。
    # 下限40でも収まらない場合はその結果をそのまま返す(エラーにはしない)
    quality = config.TARGET_START_QUALITY
    buffer = encode(image, fmt, quality)

    while len(buffer) > target_bytes and quality > config.TARGET_MIN_QUALITY:
        quality -= config.TARGET_QUALITY_STEP
        buffer = encode(image, fmt, quality)

    if len(buffer) > target_bytes:
        logging.info(
            f"Target size not reached: {len(buffer)} bytes > {target_bytes} bytes at quality={quality}"
        )
    else:
        logging.debug(f"Target size reached: {len(buffer)} bytes at quality={quality}")

    return buffer
