"""Tesseract OCR engine wrapper."""

import logging
from collections import defaultdict
from pathlib import Path

import pytesseract
from PIL import Image, UnidentifiedImageError

from finscan.config import settings
from finscan.models import RawScanResult

logger = logging.getLogger(__name__)


class OcrError(Exception):
    """Raised when the OCR engine cannot produce text for an image."""

    pass


class TesseractEngine:
    """
    A single-request OCR engine.

    Acquire it with ``with TesseractEngine() as engine:`` so it is released on
    every exit path, including errors. The engine is not shared between
    requests.
    """

    def __init__(self, language: str | None = None, tesseract_cmd: str | None = None):
        self.language = language or settings.ocr_language
        self.tesseract_cmd = tesseract_cmd if tesseract_cmd is not None else settings.tesseract_cmd
        self._open = False

    def __enter__(self) -> "TesseractEngine":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        """Point pytesseract at the configured binary and verify it runs."""
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        try:
            version = pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError as e:
            raise OcrError(
                "Tesseract OCR binary not found. Install it (apt-get install tesseract-ocr / "
                "brew install tesseract) or set TESSERACT_CMD"
            ) from e
        logger.debug(f"Tesseract {version} ready (lang={self.language})")
        self._open = True

    def close(self) -> None:
        """Release the engine. Safe to call more than once."""
        if self._open:
            logger.debug("Tesseract engine released")
        self._open = False

    def recognize(
        self,
        image_path: Path | str,
        character_whitelist: str | None = None,
        page_segmentation_mode: int | None = None,
    ) -> RawScanResult:
        """
        Recognize the text of an image.

        Args:
            image_path: Path to the image file
            character_whitelist: Characters Tesseract may emit
            page_segmentation_mode: Tesseract PSM value

        Returns:
            RawScanResult with the recognized text and mean word confidence

        Raises:
            OcrError: If the engine is closed, the image is unreadable, or Tesseract fails
        """
        if not self._open:
            raise OcrError("OCR engine is not open")

        whitelist = settings.ocr_char_whitelist if character_whitelist is None else character_whitelist
        psm = settings.ocr_page_segmentation_mode if page_segmentation_mode is None else page_segmentation_mode
        config = f"--psm {psm}"
        if whitelist:
            config += f' -c "tessedit_char_whitelist={whitelist}"'

        try:
            with Image.open(image_path) as image:
                image.load()
                data = pytesseract.image_to_data(
                    image, lang=self.language, config=config, output_type=pytesseract.Output.DICT
                )
        except (FileNotFoundError, UnidentifiedImageError) as e:
            raise OcrError(f"Cannot read image {image_path}: {e}") from e
        except pytesseract.TesseractError as e:
            raise OcrError(f"Tesseract failed on {image_path}: {e}") from e

        return RawScanResult(text=_join_words(data), confidence=_mean_confidence(data))


def _join_words(data: dict) -> str:
    """Rebuild line-broken text from Tesseract's word table."""
    lines: dict[tuple[int, int, int], list[str]] = defaultdict(list)
    for i, word in enumerate(data.get("text", [])):
        if not word or not word.strip():
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines[key].append(word.strip())
    return "\n".join(" ".join(words) for _, words in sorted(lines.items()))


def _mean_confidence(data: dict) -> float:
    """Mean of the word confidences; Tesseract reports -1 for non-word boxes."""
    scores = []
    for conf in data.get("conf", []):
        try:
            value = float(conf)
        except (TypeError, ValueError):
            continue
        if value >= 0:
            scores.append(value)
    if not scores:
        return 0.0
    return min(100.0, sum(scores) / len(scores))
