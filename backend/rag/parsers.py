"""
Document text extraction.

Supported: PDF (pdfplumber), Word (python-docx), plain text / Markdown.
Every parser returns the extracted plain text; tables are flattened to pipe rows.
"""
from __future__ import annotations

import io
import logging
import os

logger = logging.getLogger("rag.parsers")

# extension -> parser name
SUPPORTED_EXTENSIONS = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".txt": "txt",
    ".text": "txt",
    ".md": "txt",
}

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
}


def _get_extension(filename: str) -> str:
    if not filename:
        return ""
    return os.path.splitext(filename)[1].lower()


def get_parser_for_file(filename: str) -> str | None:
    """Parser name for the file, None when unsupported."""
    return SUPPORTED_EXTENSIONS.get(_get_extension(filename))


def is_supported(filename: str) -> bool:
    return get_parser_for_file(filename) is not None


def guess_content_type(filename: str) -> str:
    parser = get_parser_for_file(filename)
    return CONTENT_TYPES.get(parser or "", "application/octet-stream")


def _table_rows(table: list[list]) -> str:
    rows = ["| " + " | ".join(str(c or "").strip() for c in row) + " |" for row in table if row]
    return "\n".join(rows)


def _parse_txt(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        return data.decode("latin-1")
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace")


def _parse_pdf(data: bytes) -> str:
    import pdfplumber

    parts: list[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            text = page.extract_text()
            if text and text.strip():
                parts.append(text.strip())
            for table in page.extract_tables() or []:
                table_text = _table_rows(table)
                if table_text.strip():
                    parts.append(table_text)
    return "\n\n".join(parts)


def _parse_docx(data: bytes) -> str:
    from docx import Document

    doc = Document(io.BytesIO(data))
    parts = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        table_text = _table_rows([[c.text for c in row.cells] for row in table.rows])
        if table_text.strip():
            parts.append(table_text)
    return "\n\n".join(parts)


def extract_text(data: bytes, filename: str) -> str:
    """
    Extract plain text by extension.

    Raises ValueError for unsupported types; parser errors propagate.
    """
    parser = get_parser_for_file(filename)
    if not parser:
        raise ValueError(f"Unsupported file type: {filename}")
    if parser == "pdf":
        text = _parse_pdf(data)
    elif parser == "docx":
        text = _parse_docx(data)
    else:
        text = _parse_txt(data)
    logger.info(f"[RAG] extracted {len(text)} chars from {filename} ({parser})")
    return text
