# services/services.py

import asyncio
import logging
import re
from datetime import datetime, timezone

from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool

from config import config
from models.models import (
    CompressionMode,
    CompressionRequest,
    CompressionResult,
    PdfOutputFormat,
    SummarizeRequest,
    SummaryAction,
)
from providers.rate_limit import RateLimiter
from providers.summarizer import SummarizerClient, SummarizerError
from utils.pdf import (
    PdfExtractionError,
    extract_pdf_text,
    is_likely_scanned,
    render_docx,
)
from utils.resume import analyze_resume
from utils.utils import (
    DecodeError,
    EncodeError,
    Encoder,
    compress_to_target_size,
    decode_image,
    encode_image,
    preset_settings,
    resize_inside,
    resolve_output_format,
)

SUMMARY_MODEL = "facebook/bart-large-cnn"
TITLE_MODEL = "t5-base"


def failure(error: str, **extra) -> dict:
    return {"error": error, "status": "failure", **extra}


def compress_image(
    compress_request: CompressionRequest, encode: Encoder = encode_image
) -> CompressionResult:
    # preset: プリセット表で幅・高さ・品質を上書きして1回エンコード
    # target: リサイズ後の画像に対して品質を探索
    # custom: 指定の幅・高さ・品質で1回エンコード
    image, detected = decode_image(compress_request.input_bytes)
    output_format = resolve_output_format(detected, compress_request.output_format)

    width, height, quality = (
        compress_request.width,
        compress_request.height,
        compress_request.quality,
    )
    if compress_request.mode == CompressionMode.PRESET and compress_request.preset:
        width, height, quality = preset_settings(compress_request.preset)

    # リサイズは1回だけ行い、以降のエンコードはすべてこの画像を入力とする
    image = resize_inside(image, width, height)

    if compress_request.mode == CompressionMode.TARGET and compress_request.target_bytes:
        output_bytes = compress_to_target_size(
            image, output_format, compress_request.target_bytes, encode=encode
        )
    else:
        output_bytes = encode(image, output_format, quality)

    logging.info(
        f"Compressed {detected} -> {output_format.value}: "
        f"{len(compress_request.input_bytes)} -> {len(output_bytes)} bytes (mode={compress_request.mode.value})"
    )
    return CompressionResult(output_bytes=output_bytes, output_format=output_format)


async def compress_image_request(compress_request: CompressionRequest) -> CompressionResult:
    try:
        return await run_in_threadpool(compress_image, compress_request)

    except DecodeError as decode_exc:
        # 入力が画像として不正
        raise HTTPException(status_code=400, detail=failure(f"{decode_exc}"))

    except EncodeError as encode_exc:
        # 入力は正しいが処理に失敗
        raise HTTPException(status_code=500, detail=failure(f"{encode_exc}"))

    except Exception as exc:
        # その他の予期しないエラー
        logging.exception("image-compress error")
        raise HTTPException(
            status_code=500, detail=failure(f"予期しないエラーが発生しました: {exc}")
        )


def _title_case(text: str) -> str:
    text = (text or "").strip()
    return text[:1].upper() + text[1:]


def _bullets(summary: str) -> list[str]:
    sentences = (s.strip() for s in re.split(r"[.!?]+", summary or ""))
    return [s for s in sentences if len(s) > 10]


async def summarize_text(
    summarize_request: SummarizeRequest,
    client: SummarizerClient,
    limiter: RateLimiter,
    rate_limit_key: str,
) -> dict:
    # レート制限のチェック
    decision = limiter.check(rate_limit_key)
    if not decision.allowed:
        remaining_minutes = decision.remaining_minutes()
        hours = config.SUMMARIZER_RATE_WINDOW_SECONDS // 3600
        raise HTTPException(
            status_code=429,
            detail=failure(
                "Rate limit exceeded",
                message=(
                    f"{limiter.limit}回/{hours}時間 の上限に達しました。"
                    f"{remaining_minutes}分後に再度お試しください。"
                ),
                resetIn=remaining_minutes,
            ),
        )

    text = summarize_request.text or ""
    if not text.strip():
        raise HTTPException(status_code=400, detail=failure("要約するテキストを入力してください。"))

    if not client.configured:
        raise HTTPException(
            status_code=500,
            detail=failure("APIキーが設定されていません。HUGGINGFACE_API_KEY を設定してください。"),
        )

    process_text = text[: config.SUMMARIZER_MAX_TEXT_LENGTH]
    max_length, min_length = summarize_request.length_params()

    try:
        action = SummaryAction(summarize_request.action)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=failure("actionが不正です。summarize, title, bullets, both のいずれかを指定してください。"),
        )

    try:
        if action is SummaryAction.SUMMARIZE:
            summary = await client.summarize(SUMMARY_MODEL, process_text, max_length, min_length)
            data = {
                "summary": summary,
                "originalLength": len(text),
                "summaryLength": len(summary),
            }

        elif action is SummaryAction.TITLE:
            title = await client.summarize(SUMMARY_MODEL, process_text[:1000], 15, 5)
            data = {"title": _title_case(title).removesuffix(".")}

        elif action is SummaryAction.BULLETS:
            summary = await client.summarize(SUMMARY_MODEL, process_text, max_length, min_length)
            data = {"bullets": _bullets(summary)}

        else:
            # 要約とタイトル生成を並列に実行
            summary, title = await asyncio.gather(
                client.summarize(SUMMARY_MODEL, process_text, max_length, min_length),
                client.summarize(TITLE_MODEL, f"summarize: {process_text[:500]}", 20, 5),
            )
            data = {
                "summary": summary,
                "title": _title_case(title),
                "originalLength": len(text),
                "summaryLength": len(summary),
            }

    except SummarizerError as summarizer_exc:
        logging.error(f"text-summarizer error: {summarizer_exc}")
        message = str(summarizer_exc)
        error_message = "テキストの処理に失敗しました"
        if "Model" in message or "not available" in message:
            error_message = "AIモデルが一時的に利用できません。しばらくしてから再度お試しください。"
        raise HTTPException(status_code=500, detail=failure(error_message, details=message))

    except Exception as exc:
        # その他の予期しないエラー
        logging.exception("text-summarizer error")
        raise HTTPException(
            status_code=500,
            detail=failure("テキストの処理に失敗しました", details=f"{exc}"),
        )

    data["action"] = action.value
    return {"success": True, "data": data}


async def extract_pdf(
    file_name: str, content_type: str, data: bytes, output_format: str
) -> tuple[PdfOutputFormat, dict, bytes]:
    # 出力形式・JSONペイロード・(txt/docxの場合)ファイル本体を返す
    if content_type != "application/pdf":
        raise HTTPException(
            status_code=400,
            detail=failure("ファイル形式が不正です。PDFファイルをアップロードしてください。"),
        )

    try:
        fmt = PdfOutputFormat(output_format or PdfOutputFormat.JSON.value)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=failure("formatが不正です。?format=json | txt | docx を指定してください。")
        )

    try:
        text, page_count = await run_in_threadpool(extract_pdf_text, data)
        body = b""
        if fmt is PdfOutputFormat.TXT:
            body = text.encode("utf-8")
        elif fmt is PdfOutputFormat.DOCX:
            body = await run_in_threadpool(render_docx, text)

    except PdfExtractionError as pdf_exc:
        raise HTTPException(
            status_code=500, detail=failure("テキストの抽出に失敗しました", details=f"{pdf_exc}")
        )

    except Exception as exc:
        logging.exception("pdf-text error")
        raise HTTPException(
            status_code=500, detail=failure("テキストの抽出に失敗しました", details=f"{exc}")
        )

    payload = {
        "success": True,
        "data": {
            "fileName": file_name,
            "fileSize": len(data),
            "numPages": page_count,
            "fullText": text,
            "extractedAt": datetime.now(timezone.utc).isoformat(),
            "isLikelyScanned": is_likely_scanned(text, page_count),
        },
    }
    return fmt, payload, body


async def grade_resume(
    file_name: str,
    content_type: str,
    data: bytes,
    limiter: RateLimiter,
    rate_limit_key: str,
    bypass_key: str = "",
) -> dict:
    # 管理用キーが一致する場合はレート制限をかけない
    bypass = bool(config.ADMIN_BYPASS_KEY) and bypass_key == config.ADMIN_BYPASS_KEY

    decision = None
    if not bypass:
        decision = limiter.check(rate_limit_key)
        if not decision.allowed:
            minutes = decision.remaining_minutes()
            raise HTTPException(
                status_code=429,
                detail=failure(
                    f"レート制限を超えました。履歴書の採点は1時間に{limiter.limit}回までです。{minutes}分後に再度お試しください。",
                    rateLimitExceeded=True,
                    resetTime=int(decision.reset_at * 1000),
                ),
            )

    if content_type != "application/pdf":
        raise HTTPException(status_code=400, detail=failure("PDFファイルのみアップロードできます"))

    if len(data) > config.RESUME_MAX_FILE_BYTES:
        raise HTTPException(status_code=400, detail=failure("ファイルサイズは10MB未満にしてください"))

    try:
        text, _ = await run_in_threadpool(extract_pdf_text, data)
        if len(text) < config.RESUME_MIN_TEXT_LENGTH:
            raise HTTPException(
                status_code=400,
                detail=failure(
                    "PDFから十分なテキストを抽出できませんでした。スキャン画像ではなく、選択可能なテキストを含む履歴書をアップロードしてください。"
                ),
            )
        analysis = await run_in_threadpool(analyze_resume, text)

    except HTTPException as e:
        raise e

    except PdfExtractionError as pdf_exc:
        raise HTTPException(
            status_code=500,
            detail=failure(
                "PDFからテキストを抽出できませんでした。パスワード保護や破損がないか確認してください。",
                details=f"{pdf_exc}",
            ),
        )

    except Exception as exc:
        logging.exception("resume-grader error")
        raise HTTPException(
            status_code=500, detail=failure("履歴書の採点に失敗しました。再度お試しください。", details=f"{exc}")
        )

    logging.info(f"Graded resume {file_name}: score={analysis.score}")
    result = analysis.model_dump()
    if decision is not None:
        result["rateLimitInfo"] = {
            "remaining": decision.remaining,
            "resetTime": int(decision.reset_at * 1000),
        }
    return result
