"""
Binary mask helpers.

Masks are single-channel uint8 arrays holding only 0 and 255. Every helper
that combines two arrays checks that their shapes match and raises
``PreconditionError`` otherwise; none of them modify their inputs.
"""

import cv2
import numpy as np

from ..errors import PreconditionError


def require_same_shape(a: np.ndarray, b: np.ndarray, what: str = "masks") -> None:
    """Raise PreconditionError unless both arrays share height and width."""
    if a.shape[:2] != b.shape[:2]:
        raise PreconditionError(
            f"{what} must have the same size, got {a.shape[1]}x{a.shape[0]} "
            f"and {b.shape[1]}x{b.shape[0]}"
        )


def full_mask(height: int, width: int) -> np.ndarray:
    return np.full((height, width), 255, dtype=np.uint8)


def empty_mask(height: int, width: int) -> np.ndarray:
    return np.zeros((height, width), dtype=np.uint8)


def intersect(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    require_same_shape(a, b)
    return cv2.bitwise_and(a, b)


def union(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    require_same_shape(a, b)
    return cv2.bitwise_or(a, b)


def xor(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    require_same_shape(a, b)
    return cv2.bitwise_xor(a, b)


def count(mask: np.ndarray) -> int:
    """Number of set pixels."""
    return int(cv2.countNonZero(mask))


def normalize_kernel_size(size: int, fallback: int) -> int:
    """Force a kernel size to be positive and odd.

    Args:
        size: Requested size.
        fallback: Size used when the request is below 1.

    Returns:
        An odd kernel size.
    """
    if size < 1:
        size = fallback
    if size % 2 == 0:
        size += 1
    return size


def ellipse_kernel(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


def erode(mask: np.ndarray, size: int) -> np.ndarray:
    return cv2.erode(mask, ellipse_kernel(size))


def dilate(mask: np.ndarray, size: int) -> np.ndarray:
    return cv2.dilate(mask, ellipse_kernel(size))


def open_close(mask: np.ndarray, open_size: int, close_size: int) -> np.ndarray:
    """Morphological open followed by close with elliptic kernels.

    Kernel sizes are normalized to odd values (3 and 7 as fallbacks).
    """
    open_size = normalize_kernel_size(open_size, 3)
    close_size = normalize_kernel_size(close_size, 7)
    opened = cv2.morphologyEx(mask, cv2.MORPH_OPEN, ellipse_kernel(open_size))
    return cv2.morphologyEx(opened, cv2.MORPH_CLOSE, ellipse_kernel(close_size))


def mask_iou(a: np.ndarray, b: np.ndarray) -> float:
    """Intersection over union of two masks; 0.0 when both are empty."""
    require_same_shape(a, b)
    inter = count(cv2.bitwise_and(a, b))
    uni = count(cv2.bitwise_or(a, b))
    if uni == 0:
        return 0.0
    return inter / uni


def ratio_in_roi(mask: np.ndarray, roi: np.ndarray) -> float:
    """Share of ROI pixels that are set in ``mask``.

    Falls back to the whole-frame ratio when the ROI is empty or does
    not match the mask size.
    """
    total = mask.shape[0] * mask.shape[1]
    if roi is None or roi.shape[:2] != mask.shape[:2]:
        return count(mask) / total if total else 0.0
    roi_pixels = count(roi)
    if roi_pixels == 0:
        return count(mask) / total if total else 0.0
    return count(cv2.bitwise_and(mask, roi)) / roi_pixels


def largest_contour(mask: np.ndarray):
    """Largest external contour of a mask, or None when the mask is empty."""
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return None
    return max(contours, key=cv2.contourArea)
