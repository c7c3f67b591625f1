"""Text extraction from uploaded files."""

import logging
from collections.abc import Callable
from pathlib import Path

from finscan.config import settings
from finscan.ocr.engine import OcrError, TesseractEngine
from finscan.ocr.normalizer import normalize

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class UnsupportedFileTypeError(Exception):
    """Raised for files that are neither images nor PDFs."""

    pass


def extract_text_from_file(
    file_path: Path | str,
    mime_type: str,
    engine_factory: Callable[[], TesseractEngine] = TesseractEngine,
) -> str:
    """
    Extract and normalize the text of a stored upload.

    Images go through OCR and the normalizer. PDFs are a known-unsupported
    type and yield empty text rather than an error.

    Args:
        file_path: Path of the stored file
        mime_type: MIME type reported by the client
        engine_factory: Builds a fresh OCR engine for this call

    Returns:
        Normalized text

    Raises:
        OcrError: If OCR fails
        UnsupportedFileTypeError: For any other MIME type
    """
    mime_type = (mime_type or "").lower()

    if mime_type.startswith("image/"):
        with engine_factory() as engine:
            try:
                scan = engine.recognize(
                    file_path,
                    character_whitelist=settings.ocr_char_whitelist,
                    page_segmentation_mode=settings.ocr_page_segmentation_mode,
                )
            except OcrError:
                raise
            except Exception as e:
                raise OcrError(f"Failed to extract text from image: {e}") from e

        logger.info(f"OCR confidence: {scan.confidence:.1f}")
        if scan.confidence < settings.ocr_low_confidence_threshold:
            logger.warning(f"Low OCR confidence: {scan.confidence:.1f}")

        return normalize(scan.text, numeric_context_only=settings.ocr_numeric_context_only)

    if mime_type == PDF_MIME_TYPE:
        logger.warning("PDF text extraction is not supported; continuing with empty text")
        return ""

    raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type or 'unknown'}")
