# -*- coding: utf-8 -*-
import io
from pathlib import Path

import pdfplumber
import requests

DOWNLOAD_TIMEOUT = 30


def load_pdf_bytes(path_or_url: str) -> bytes:
    """
    Reads the raw bytes of a local or remote PDF.
    :param path_or_url: A local file path or a URL to a PDF file.
    :return: The PDF file contents.
    """
    if path_or_url.startswith('http://') or path_or_url.startswith('https://'):
        response = requests.get(path_or_url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
        return response.content
    path = Path(path_or_url)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return path.read_bytes()


def extract_pdf_pages_from_content(content: bytes) -> list[str]:
    """
    Extracts text from PDF bytes already held in memory (e.g. an upload).
    :param content: Raw PDF bytes.
    :return: The text contents of the PDF, one entry per non-empty page
    """
    pages: list[str] = []
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        for page in pdf.pages:
            text = page.extract_text()
            if text:
                pages.append(text.strip())
    return pages


def extract_pdf_text(content: bytes) -> str:
    """Joins the page texts of in-memory PDF bytes."""
    return "\n\n".join(extract_pdf_pages_from_content(content))
