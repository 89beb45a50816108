from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

import logging
from config import config
from models.models import CompressionRequest, PdfOutputFormat, SummarizeRequest
from providers.rate_limit import InMemoryCounterStore, RateLimiter, client_key
from providers.summarizer import SummarizerClient
from services.services import (
    compress_image_request,
    extract_pdf,
    failure,
    grade_resume,
    summarize_text,
)
from utils.pdf import pdf_base_name

# Logging settings
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

app = FastAPI()

# 外部依存はここで生成し、エンドポイントには Depends で渡す
app.state.rate_limiter = RateLimiter(
    InMemoryCounterStore(config.SUMMARIZER_RATE_WINDOW_SECONDS),
    config.SUMMARIZER_RATE_LIMIT,
)
app.state.resume_rate_limiter = RateLimiter(
    InMemoryCounterStore(config.RESUME_RATE_WINDOW_SECONDS),
    config.RESUME_RATE_LIMIT,
)
app.state.summarizer_client = SummarizerClient(config.HUGGINGFACE_API_KEY)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_summarizer_client(request: Request) -> SummarizerClient:
    return request.app.state.summarizer_client


def get_resume_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.resume_rate_limiter


# エラーレスポンスは常に {"error": ..., "status": "failure"} の形で返す
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else failure(f"{exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=failure("リクエストが不正です。", details=jsonable_errors(exc)),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.exception(f"Unhandled error: {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=failure("予期しないエラーが発生しました"))


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


# 画像の圧縮を行うエンドポイント
@app.post("/api/tools/image-compress")
async def image_compress_endpoint(
    file: Optional[UploadFile] = File(None),
    mode: str = Form(""),
    preset: str = Form(""),
    output_format: str = Form("", alias="outputFormat"),
    quality: str = Form(""),
    width: str = Form(""),
    height: str = Form(""),
    target_size_kb: str = Form("", alias="targetSizeKB"),
):
    if file is None:
        return JSONResponse(
            status_code=400,
            content=failure('ファイルがアップロードされていません (フィールド名は "file")'),
        )

    compress_request = CompressionRequest.from_form(
        await file.read(),
        mode=mode,
        preset=preset,
        output_format=output_format,
        quality=quality,
        width=width,
        height=height,
        target_size_kb=target_size_kb,
    )
    result = await compress_image_request(compress_request)

    return Response(
        content=result.output_bytes,
        media_type=result.content_type,
        headers={"Content-Disposition": f'inline; filename="{result.filename}"'},
    )


# テキスト要約を行うエンドポイント
@app.post("/api/tools/text-summarizer")
async def text_summarizer_endpoint(
    request: Request,
    summarize_request: SummarizeRequest,
    limiter: RateLimiter = Depends(get_rate_limiter),
    client: SummarizerClient = Depends(get_summarizer_client),
):
    key = client_key(request.headers, request.client.host if request.client else None)
    return await summarize_text(summarize_request, client, limiter, key)


@app.get("/api/tools/text-summarizer")
async def text_summarizer_usage():
    return {
        "message": "Text Summarizer & Title Generator API",
        "usage": 'POST with { text: "...", action: "summarize" | "title" | "bullets" | "both", length: "short" | "medium" | "long" }',
        "rateLimit": f"{config.SUMMARIZER_RATE_LIMIT} requests every "
        f"{config.SUMMARIZER_RATE_WINDOW_SECONDS // 3600} hours per IP",
    }


# PDFからテキストを抽出するエンドポイント
@app.post("/api/tools/pdf-text")
async def pdf_text_endpoint(
    file: Optional[UploadFile] = File(None),
    output_format: str = Query("json", alias="format"),
):
    if file is None:
        return JSONResponse(status_code=400, content=failure("ファイルが指定されていません"))

    fmt, payload, body = await extract_pdf(
        file.filename or "", file.content_type or "", await file.read(), output_format
    )

    base_name = pdf_base_name(file.filename or "")
    if fmt is PdfOutputFormat.TXT:
        return Response(
            content=body,
            media_type="text/plain; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{base_name}.txt"'},
        )
    if fmt is PdfOutputFormat.DOCX:
        return Response(
            content=body,
            media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            headers={"Content-Disposition": f'attachment; filename="{base_name}.docx"'},
        )
    return payload


@app.get("/api/tools/pdf-text")
async def pdf_text_usage():
    return {
        "message": "PDF Text Extractor API running",
        "usage": "POST a PDF with ?format=json | txt | docx",
    }


# 履歴書PDFを採点するエンドポイント
@app.post("/api/tools/resume-grader")
async def resume_grader_endpoint(
    request: Request,
    file: Optional[UploadFile] = File(None),
    limiter: RateLimiter = Depends(get_resume_rate_limiter),
):
    key = client_key(request.headers, request.client.host if request.client else None)
    if file is None:
        return JSONResponse(status_code=400, content=failure("ファイルが指定されていません"))

    return await grade_resume(
        file.filename or "",
        file.content_type or "",
        await file.read(),
        limiter,
        key,
        bypass_key=request.headers.get("x-bypass-key", ""),
    )


@app.get("/api/tools/resume-grader")
async def resume_grader_usage():
    return {
        "message": "Resume Grader API",
        "usage": "POST a PDF resume file",
        "rateLimit": f"{config.RESUME_RATE_LIMIT} resumes per hour per IP",
    }
