import cv2
import numpy as np
import logging
import base64
import binascii
from typing import Iterable, Optional

from app.config import settings
from app.exceptions import UploadValidationError

# Logger setup
logger = logging.getLogger(__name__)

FACE_CONTENT_TYPES = ["image/jpeg", "image/png"]
REPORT_CONTENT_TYPES = ["image/jpeg", "image/png", "application/pdf"]

JPEG_SIGNATURE = bytes([0xFF, 0xD8, 0xFF])
PNG_SIGNATURE = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])
PDF_SIGNATURE = b"%PDF"


def validate_upload(
    content: Optional[bytes],
    content_type: Optional[str],
    allowed_types: Iterable[str],
    type_error: str
) -> None:
    """
    Validate an uploaded file before it is analyzed.

    Args:
        content: File bytes, or None when no file was sent
        content_type: Declared MIME type
        allowed_types: Accepted MIME types
        type_error: Message used when the type is not accepted

    Raises:
        UploadValidationError: when the file is missing, empty, too large,
        of the wrong type or its bytes do not match the declared type
    """
    if content is None:
        raise UploadValidationError("No file provided")

    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise UploadValidationError(
            f"File size must be less than {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB"
        )

    if len(content) == 0:
        raise UploadValidationError("File is empty")

    if content_type not in allowed_types:
        logger.warning(f"Invalid file type: {content_type}")
        raise UploadValidationError(type_error)

    if not _signature_matches(content, content_type):
        logger.warning(f"File signature does not match declared type {content_type}")
        raise UploadValidationError(type_error)


def _signature_matches(content: bytes, content_type: str) -> bool:
    if content_type == "image/jpeg":
        return content.startswith(JPEG_SIGNATURE)
    if content_type == "image/png":
        return content.startswith(PNG_SIGNATURE)
    if content_type == "application/pdf":
        return content.startswith(PDF_SIGNATURE)
    return False


def decode_image(content: bytes, keep_alpha: bool = False) -> Optional[np.ndarray]:
    """
    Decode image bytes into an OpenCV image.

    Args:
        content: JPEG or PNG bytes
        keep_alpha: keep the alpha channel of PNGs that carry one

    Returns:
        numpy.ndarray: BGR (or BGRA) image or None when decoding fails
    """
    flags = cv2.IMREAD_UNCHANGED if keep_alpha and content.startswith(PNG_SIGNATURE) else cv2.IMREAD_COLOR
    try:
        np_arr = np.frombuffer(content, np.uint8)
        image = cv2.imdecode(np_arr, flags)
        if image is None:
            logger.error("OpenCV could not decode the image")
            return None
        if flags == cv2.IMREAD_UNCHANGED:
            image = _to_8bit_bgr(image)
        return image
    except cv2.error as e:
        logger.error(f"Error decoding image: {str(e)}")
        return None


def _to_8bit_bgr(image: np.ndarray) -> np.ndarray:
    # 16-bit PNGs come back as uint16 and gray ones without a channel axis
    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    return image


def base64_to_bytes(base64_string: str) -> Optional[bytes]:
    """
    Decode a base64 payload, with or without a data URL prefix.
    """
    try:
        if "," in base64_string:
            base64_string = base64_string.split(",")[1]
        return base64.b64decode(base64_string)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Error decoding base64 payload: {str(e)}")
        return None


def opencv_to_base64(image: np.ndarray, image_format: str = ".jpg", quality: int = 80) -> Optional[str]:
    """
    Encode an OpenCV image as base64 without a data URL prefix.

    Args:
        image: OpenCV image
        image_format: ".jpg" or ".png"
        quality: JPEG quality

    Returns:
        str: base64 string or None on failure
    """
    if image_format.lower() not in [".jpg", ".jpeg", ".png"]:
        image_format = ".jpg"

    if image_format.lower() in [".jpg", ".jpeg"]:
        encode_param = [int(cv2.IMWRITE_JPEG_QUALITY), quality]
    else:  # PNG
        encode_param = [int(cv2.IMWRITE_PNG_COMPRESSION), 9]

    success, encoded_image = cv2.imencode(image_format, image, encode_param)
    if not success:
        logger.error("Error encoding image")
        return None

    return base64.b64encode(encoded_image.tobytes()).decode("utf-8")


def resize_image(image: np.ndarray, max_size: int = 1600) -> np.ndarray:
    """
    Shrink an image so its longest side is at most max_size, keeping the aspect ratio.
    """
    height, width = image.shape[:2]

    if height <= max_size and width <= max_size:
        return image

    if height > width:
        ratio = max_size / height
    else:
        ratio = max_size / width

    new_size = (int(width * ratio), int(height * ratio))
    return cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)
