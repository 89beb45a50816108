# utils/pdf.py

import logging
import re
from io import BytesIO

import pdfplumber
from docx import Document
from pdfminer.psparser import PSException
from pdfplumber.utils.exceptions import PdfminerException

from config import config


# PDFの解析に失敗した
class PdfExtractionError(RuntimeError):
    pass


def extract_pdf_text(data: bytes) -> tuple[str, int]:
    # 全ページのテキストを空行区切りで連結し、ページ数と共に返す
    page_texts = []
    try:
        with pdfplumber.open(BytesIO(data)) as pdf:
            page_count = len(pdf.pages)
            for page in pdf.pages:
                page_texts.append(page.extract_text() or "")
    except (PdfminerException, PSException, OSError, ValueError, KeyError) as e:
        error_msg = f"PDFの解析に失敗しました: {e}"
        logging.error(error_msg)
        raise PdfExtractionError(error_msg) from e

    return "\n\n".join(page_texts).strip(), page_count


def is_likely_scanned(text: str, page_count: int) -> bool:
    # テキスト層がほとんどない場合はスキャンPDFとみなす
    avg_chars_per_page = len(text) / max(page_count, 1)
    return avg_chars_per_page < config.SCANNED_PDF_CHARS_PER_PAGE


def pdf_base_name(file_name: str) -> str:
    return re.sub(r"\.pdf$", "", file_name or "", flags=re.IGNORECASE) or "document"


def render_docx(text: str) -> bytes:
    document = Document()
    document.add_paragraph(text)

    buf = BytesIO()
    document.save(buf)
    return buf.getvalue()
