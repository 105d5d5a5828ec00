import cv2
import numpy as np
import logging
import os
from typing import List

from app.config import settings
from app.core.overlay import Dimensions, scale_boxes
from app.models.responses import BoundingBox
from app.utils.image_processing import resize_image

# Logger setup
logger = logging.getLogger(__name__)

# Cached cascade model
_face_cascade = None

# Longest side used for detection; boxes are mapped back to the original size
DETECTION_MAX_SIZE = 800


def load_face_detector():
    """
    Load the face detection model.

    Returns:
        cv2.CascadeClassifier: face detector
    """
    global _face_cascade

    if _face_cascade is not None:
        return _face_cascade

    cascade_path = cv2.data.haarcascades + settings.FACE_DETECTION_MODEL

    if not os.path.exists(cascade_path):
        logger.error(f"Face detection model not found: {cascade_path}")
        raise FileNotFoundError(f"Face detection model not found: {cascade_path}")

    _face_cascade = cv2.CascadeClassifier(cascade_path)
    logger.info("Face detection model loaded")
    return _face_cascade


def detect_faces(image: np.ndarray) -> List[BoundingBox]:
    """
    Detect faces in an image.

    Detection runs on a downscaled grayscale copy with CLAHE contrast
    enhancement; the boxes are returned in the original image's pixels,
    largest face first.

    Args:
        image: OpenCV BGR image

    Returns:
        list: detected face boxes (empty when no face is found)
    """
    face_cascade = load_face_detector()

    height, width = image.shape[:2]
    small = resize_image(image, DETECTION_MAX_SIZE)
    small_height, small_width = small.shape[:2]

    gray = cv2.cvtColor(small, cv2.COLOR_BGR2GRAY)
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    enhanced_gray = clahe.apply(gray)

    faces = face_cascade.detectMultiScale(
        enhanced_gray,
        scaleFactor=1.1,
        minNeighbors=5,
        minSize=(30, 30),
        flags=cv2.CASCADE_SCALE_IMAGE
    )

    if len(faces) == 0:
        logger.info("No face detected")
        return []

    boxes = [BoundingBox(x=int(x), y=int(y), width=int(w), height=int(h)) for (x, y, w, h) in faces]
    boxes = scale_boxes(boxes, Dimensions(small_width, small_height), Dimensions(width, height))
    boxes = [
        BoundingBox(x=round(b.x), y=round(b.y), width=round(b.width), height=round(b.height))
        for b in boxes
    ]
    boxes.sort(key=lambda b: b.width * b.height, reverse=True)

    if len(boxes) > 1:
        logger.info(f"Detected {len(boxes)} faces; the largest is treated as primary")

    return boxes


def center_sample_region(width: int, height: int) -> BoundingBox:
    """
    Region sampled when no face is detected: a centered box of
    min(30% width, 200) by min(40% height, 250) pixels.
    """
    sample_width = min(width * 0.3, 200)
    sample_height = min(height * 0.4, 250)
    start_x = width / 2 - sample_width / 2
    start_y = height / 2 - sample_height / 2

    return BoundingBox(
        x=round(start_x),
        y=round(start_y),
        width=round(sample_width),
        height=round(sample_height)
    )
