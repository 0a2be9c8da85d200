"""
Text layer extraction from PDF documents using pdfplumber.
"""

import io

import pdfplumber

from .config import logger


def extract_text_from_bytes(pdf_bytes: bytes, filename: str = "uploaded.pdf") -> str:
    """
    Extract all text content from an in-memory PDF.

    Args:
        pdf_bytes: Raw PDF content
        filename: Name used in log messages

    Returns:
        Concatenated text from all pages, or an empty string when the
        document has no readable text layer
    """
    if not pdf_bytes:
        return ""

    text_parts = []
    try:
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    text_parts.append(page_text)
    except Exception as e:
        logger.error(f"Error extracting text from {filename}: {e}")
        return ""

    return "\n".join(text_parts)
