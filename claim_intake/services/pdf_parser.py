"""Recognized-text extraction for uploaded claim documents."""

import logging
from pathlib import Path

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_EXTENSIONS: set[str] = {".pdf"}
TEXT_EXTENSIONS: set[str] = {".txt"}


def _pdf_page_texts(path: Path) -> list[str]:
    try:
        doc = fitz.open(str(path))
    except Exception as exc:
        logger.error("Failed to open PDF %s: %s", path, exc)
        raise ValueError(f"Corrupt or unreadable PDF: {path.name}") from exc

    with doc:
        if doc.page_count == 0:
            raise ValueError(f"PDF has zero pages: {path.name}")
        return [page.get_text("text").strip() for page in doc]


def extract_text(file_path: str, mime_type: str | None = None) -> str:
    """Return the recognized text of a stored document.

    PDFs are read page by page with PyMuPDF; plain-text uploads are read
    as-is.

    Args:
        file_path: Path to the stored document.
        mime_type: The upload's content type, if known.

    Returns:
        The document text.

    Raises:
        ValueError: If the file is missing, unreadable, of an unsupported
            type, or contains no extractable text.
    """
    path = Path(file_path)
    if not path.exists():
        raise ValueError(f"File not found: {file_path}")

    extension = path.suffix.lower()
    if mime_type == "application/pdf" or extension in PDF_EXTENSIONS:
        pages = _pdf_page_texts(path)
        text = "\n\n".join(page for page in pages if page)
    elif (mime_type or "").startswith("text/") or extension in TEXT_EXTENSIONS:
        text = path.read_text(encoding="utf-8", errors="replace").strip()
    else:
        raise ValueError(f"No text extraction available for {path.name} ({mime_type or extension})")

    if not text:
        logger.warning("No extractable text found in %s", path.name)
        raise ValueError(
            f"No extractable text found in {path.name}. The file may be image-based or empty."
        )

    logger.info("Extracted %d characters from %s", len(text), path.name)
    return text
