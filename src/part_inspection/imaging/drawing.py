"""
Box drawing and JPEG encoding helpers.
"""

from typing import Iterable

import cv2
import numpy as np

from ..errors import InspectionError

Box = tuple[int, int, int, int]

GREEN = (0, 255, 0)


def scale_boxes(
    boxes: Iterable[Box],
    from_size: tuple[int, int],
    to_size: tuple[int, int],
) -> list[Box]:
    """Rescale (x, y, w, h) boxes between two frame sizes.

    Args:
        boxes: Boxes in the source frame.
        from_size: Source (width, height).
        to_size: Target (width, height).
    """
    boxes = list(boxes)
    if from_size == to_size or from_size[0] <= 0 or from_size[1] <= 0:
        return boxes
    sx = to_size[0] / from_size[0]
    sy = to_size[1] / from_size[1]
    return [
        (int(round(x * sx)), int(round(y * sy)), int(round(w * sx)), int(round(h * sy)))
        for x, y, w, h in boxes
    ]


def draw_boxes(
    image: np.ndarray,
    boxes: Iterable[Box],
    color: tuple[int, int, int] = GREEN,
    thickness: int = 2,
) -> np.ndarray:
    """Draw rectangles on a copy of the image."""
    output = image.copy()
    for x, y, w, h in boxes:
        cv2.rectangle(output, (x, y), (x + w, y + h), color, thickness)
    return output


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    """Encode a BGR image as JPEG.

    Raises:
        InspectionError: If OpenCV cannot encode the image.
    """
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise InspectionError("failed to encode highlighted image")
    return buf.tobytes()
