from fastapi import APIRouter

from app.core.overlay import clamp_box, resolve_dimensions, scale_boxes, scale_factors
from app.models.requests import OverlayScaleRequest
from app.models.responses import ScaledOverlay

# Router
router = APIRouter()


@router.post("/overlay/scale", response_model=ScaledOverlay)
async def scale_overlay(request: OverlayScaleRequest):
    """
    Map face boxes from natural image pixels to the size the image is shown at.

    Unknown natural dimensions default to 640x480. Unknown rendered
    dimensions leave the boxes unscaled.
    """
    natural, rendered = resolve_dimensions(
        request.natural_width,
        request.natural_height,
        request.render_width,
        request.render_height
    )
    scale_x, scale_y = scale_factors(natural, rendered)

    boxes = scale_boxes(request.boxes, natural, rendered)
    if request.clamp:
        boxes = [clamp_box(box, rendered) for box in boxes]

    return ScaledOverlay(
        scale_x=scale_x,
        scale_y=scale_y,
        natural_width=natural.width,
        natural_height=natural.height,
        render_width=rendered.width,
        render_height=rendered.height,
        boxes=boxes
    )
