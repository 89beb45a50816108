# models/models.py

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from config import config


class OutputFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return "jpg" if self is OutputFormat.JPEG else self.value


class CompressionMode(str, Enum):
    PRESET = "preset"
    TARGET = "target"
    CUSTOM = "custom"


class PresetSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


def _parse_positive_int(value: Optional[str]) -> Optional[int]:
    # 空文字・数値以外・0以下は未指定として扱う
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


class CompressionRequest(BaseModel):
    input_bytes: bytes = Field(..., repr=False)
    mode: CompressionMode = Field(CompressionMode.CUSTOM, examples=["target"])
    preset: Optional[PresetSize] = Field(None, examples=["medium"])
    target_bytes: Optional[int] = Field(None, gt=0, examples=[500 * 1024])
    width: Optional[int] = Field(None, gt=0, examples=[1920])
    height: Optional[int] = Field(None, gt=0, examples=[1080])
    quality: int = Field(config.DEFAULT_QUALITY, ge=1, le=100, examples=[80])
    output_format: Optional[OutputFormat] = Field(None, examples=["webp"])  # None は auto

    @classmethod
    def from_form(
        cls,
        input_bytes: bytes,
        mode: Optional[str] = None,
        preset: Optional[str] = None,
        output_format: Optional[str] = None,
        quality: Optional[str] = None,
        width: Optional[str] = None,
        height: Optional[str] = None,
        target_size_kb: Optional[str] = None,
    ) -> "CompressionRequest":
        # multipartのフォーム文字列から組み立てる。不明なmodeはcustom、不明なoutputFormatはautoとして扱う
        try:
            parsed_mode = CompressionMode(mode)
        except ValueError:
            parsed_mode = CompressionMode.CUSTOM

        try:
            parsed_preset = PresetSize(preset)
        except ValueError:
            parsed_preset = None

        try:
            parsed_format = OutputFormat(output_format)
        except ValueError:
            parsed_format = None

        parsed_quality = _parse_positive_int(quality) or config.DEFAULT_QUALITY
        target_kb = _parse_positive_int(target_size_kb)

        return cls(
            input_bytes=input_bytes,
            mode=parsed_mode,
            preset=parsed_preset,
            target_bytes=target_kb * 1024 if target_kb else None,
            width=_parse_positive_int(width),
            height=_parse_positive_int(height),
            quality=min(parsed_quality, 100),
            output_format=parsed_format,
        )


class CompressionResult(BaseModel):
    output_bytes: bytes = Field(..., repr=False)
    output_format: OutputFormat

    @property
    def content_type(self) -> str:
        return self.output_format.content_type

    @property
    def filename(self) -> str:
        return f"compressed.{self.output_format.extension}"


class SummaryAction(str, Enum):
    SUMMARIZE = "summarize"
    TITLE = "title"
    BULLETS = "bullets"
    BOTH = "both"


class SummaryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


# 要約長ごとの (max_length, min_length)
SUMMARY_LENGTHS = {
    SummaryLength.SHORT: (80, 20),
    SummaryLength.MEDIUM: (150, 30),
    SummaryLength.LONG: (250, 50),
}


class SummarizeRequest(BaseModel):
    text: Optional[str] = Field(None, examples=["Long article text ..."])
    action: Optional[str] = Field(None, examples=["summarize"])
    length: Optional[str] = Field("medium", examples=["short"])

    def length_params(self) -> tuple[int, int]:
        try:
            return SUMMARY_LENGTHS[SummaryLength(self.length)]
        except ValueError:
            return SUMMARY_LENGTHS[SummaryLength.MEDIUM]


class PdfOutputFormat(str, Enum):
    JSON = "json"
    TXT = "txt"
    DOCX = "docx"


class ResumeAnalysis(BaseModel):
    score: int = Field(..., ge=0, le=100, examples=[64])
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)
