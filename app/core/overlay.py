import cv2
import numpy as np
import logging
from typing import List, NamedTuple, Optional, Tuple

from app.models.responses import BoundingBox

# Logger setup
logger = logging.getLogger(__name__)

# Dimensions assumed when the natural size of an image is unknown
DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480

BOX_COLOR = (0, 255, 0)  # BGR green
BOX_THICKNESS = 2


class Dimensions(NamedTuple):
    width: int
    height: int


def resolve_dimensions(
    natural_width: Optional[int],
    natural_height: Optional[int],
    render_width: Optional[int] = None,
    render_height: Optional[int] = None
) -> Tuple[Dimensions, Dimensions]:
    """
    Fill in missing or invalid image dimensions.

    Args:
        natural_width: Width of the image the boxes were detected on
        natural_height: Height of the image the boxes were detected on
        render_width: Width the image is displayed at
        render_height: Height the image is displayed at

    Returns:
        tuple: (natural, rendered) dimensions. A non-positive natural side is
        replaced by the default; a non-positive rendered side equals the
        natural one.
    """
    nat_w = natural_width if natural_width and natural_width > 0 else DEFAULT_WIDTH
    nat_h = natural_height if natural_height and natural_height > 0 else DEFAULT_HEIGHT

    ren_w = render_width if render_width and render_width > 0 else nat_w
    ren_h = render_height if render_height and render_height > 0 else nat_h

    return Dimensions(nat_w, nat_h), Dimensions(ren_w, ren_h)


def scale_factors(natural: Dimensions, rendered: Dimensions) -> Tuple[float, float]:
    """Horizontal and vertical factors mapping natural pixels to rendered pixels."""
    return rendered.width / natural.width, rendered.height / natural.height


def scale_box(box: BoundingBox, natural: Dimensions, rendered: Dimensions) -> BoundingBox:
    """Map a box from natural image coordinates into rendered coordinates."""
    scale_x, scale_y = scale_factors(natural, rendered)
    return BoundingBox(
        x=box.x * scale_x,
        y=box.y * scale_y,
        width=box.width * scale_x,
        height=box.height * scale_y
    )


def scale_boxes(boxes: List[BoundingBox], natural: Dimensions, rendered: Dimensions) -> List[BoundingBox]:
    return [scale_box(box, natural, rendered) for box in boxes]


def clamp_box(box: BoundingBox, frame: Dimensions) -> BoundingBox:
    """Clip a box to the frame; a box fully outside collapses to zero size at the edge."""
    x1 = min(max(box.x, 0), frame.width)
    y1 = min(max(box.y, 0), frame.height)
    x2 = min(max(box.x + box.width, 0), frame.width)
    y2 = min(max(box.y + box.height, 0), frame.height)
    return BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def draw_boxes(image: np.ndarray, boxes: List[BoundingBox]) -> np.ndarray:
    """
    Draw detection boxes on a copy of the image.

    Args:
        image: OpenCV BGR image
        boxes: Boxes in the image's own pixel coordinates

    Returns:
        numpy.ndarray: annotated copy
    """
    annotated = image.copy()
    height, width = annotated.shape[:2]
    frame = Dimensions(width, height)

    for box in boxes:
        clipped = clamp_box(box, frame)
        if clipped.width <= 0 or clipped.height <= 0:
            logger.debug(f"Skipping box outside the image: {box}")
            continue

        top_left = (int(round(clipped.x)), int(round(clipped.y)))
        bottom_right = (int(round(clipped.x + clipped.width)), int(round(clipped.y + clipped.height)))
        cv2.rectangle(annotated, top_left, bottom_right, BOX_COLOR, BOX_THICKNESS)

    return annotated
