"""Text extraction for uploaded knowledge files.

Only PDF and plain text are accepted. PDF parsing goes through the
unstructured library and is synchronous, so callers in async code use
``extract_text_async``.
"""

import asyncio
import io
from pathlib import PurePath

import structlog

from app.core.exceptions import EmptyDocumentError, InvalidFileTypeError

logger = structlog.get_logger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".txt")


def _extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def _pdf_text(data: bytes) -> str:
    from unstructured.partition.pdf import partition_pdf

    elements = partition_pdf(file=io.BytesIO(data), strategy="fast")
    return "\n\n".join(el.text for el in elements if getattr(el, "text", None))


def extract_text(filename: str, data: bytes) -> str:
    """Return the plain text of an uploaded file.

    Raises:
        InvalidFileTypeError: extension is not .pdf or .txt.
        EmptyDocumentError: nothing but whitespace could be extracted.
    """
    ext = _extension(filename)
    if ext not in SUPPORTED_EXTENSIONS:
        raise InvalidFileTypeError()

    if ext == ".pdf":
        try:
            text = _pdf_text(data)
        except Exception as e:
            logger.warning("pdf_parse_failed", filename=filename, error=str(e))
            raise EmptyDocumentError() from e
    else:
        text = data.decode("utf-8", errors="replace")

    if not text.strip():
        raise EmptyDocumentError()
    logger.debug("document_text_extracted", filename=filename, chars=len(text))
    return text


async def extract_text_async(filename: str, data: bytes) -> str:
    return await asyncio.to_thread(extract_text, filename, data)
