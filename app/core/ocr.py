import io
import logging
from typing import NamedTuple, Optional

import cv2
import numpy as np
import pytesseract
from PIL import Image
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from app.config import settings
from app.exceptions import ReportProcessingError
from app.utils.image_processing import decode_image, resize_image

# Logger setup
logger = logging.getLogger(__name__)

if settings.TESSERACT_CMD:
    pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD


class OCRResult(NamedTuple):
    text: str
    confidence: Optional[float]


def preprocess_for_ocr(image: np.ndarray) -> np.ndarray:
    """
    Grayscale with a simple contrast stretch: light pixels are brightened by
    20%, dark pixels darkened by 20%.
    """
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY).astype(np.float32)
    enhanced = np.where(gray > 128, gray * 1.2, gray * 0.8)
    return np.clip(enhanced, 0, 255).astype(np.uint8)


def extract_text_from_image(content: bytes) -> OCRResult:
    """
    Run Tesseract on an image file.

    Args:
        content: JPEG/PNG bytes

    Returns:
        OCRResult: text and mean word confidence (0-100)

    Raises:
        ReportProcessingError: when the image cannot be read or OCR fails
    """
    image = decode_image(content)
    if image is None:
        raise ReportProcessingError("Could not read the report image")

    prepared = preprocess_for_ocr(resize_image(image, 2400))

    try:
        data = pytesseract.image_to_data(
            Image.fromarray(prepared),
            lang=settings.OCR_LANGUAGE,
            output_type=pytesseract.Output.DICT
        )
    except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as e:
        logger.error(f"OCR processing failed: {str(e)}")
        raise ReportProcessingError(f"OCR processing failed: {str(e)}")

    lines = {}
    confidences = []
    for i, word in enumerate(data["text"]):
        word = word.strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][i])
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for words in lines.values())
    confidence = round(sum(confidences) / len(confidences), 2) if confidences else None

    logger.info(f"OCR extracted {len(text)} characters (confidence: {confidence})")
    return OCRResult(text=text, confidence=confidence)


def extract_text_from_pdf(content: bytes) -> OCRResult:
    """
    Read the text layer of a PDF.

    Raises:
        ReportProcessingError: when the PDF is unreadable or has no text layer
    """
    try:
        reader = PdfReader(io.BytesIO(content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        logger.error(f"Could not read PDF: {str(e)}")
        raise ReportProcessingError("Could not read the PDF file")

    text = "\n".join(p.strip() for p in pages if p.strip())
    if not text:
        raise ReportProcessingError(
            "The PDF has no text layer. Please upload a photo or scan of the report instead"
        )

    logger.info(f"Extracted {len(text)} characters from {len(pages)} PDF page(s)")
    return OCRResult(text=text, confidence=None)


def extract_text(content: bytes, content_type: str) -> OCRResult:
    if content_type == "application/pdf":
        return extract_text_from_pdf(content)
    return extract_text_from_image(content)
