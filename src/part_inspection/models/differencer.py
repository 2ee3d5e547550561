"""
Pixel differencing between the base and the (aligned) current photo.
"""

import logging

import cv2
import numpy as np

from ..imaging import masks
from ..imaging.buffers import BufferScope
from .profile import DetectionProfile

logger = logging.getLogger(__name__)


class Differencer:
    """Thresholded absolute difference of two grayscale images.

    Otsu picks the threshold automatically; when it lands below
    ``profile.diff_min_threshold`` (near-identical images) the floor value
    is used instead so sensor noise is not amplified.

    Attributes:
        profile: Detection thresholds.
    """

    def __init__(self, profile: DetectionProfile) -> None:
        self.profile = profile

    def diff(
        self,
        base_gray: np.ndarray,
        current_gray: np.ndarray,
        roi_mask: np.ndarray,
    ) -> np.ndarray:
        """Compute the cleaned difference mask.

        Args:
            base_gray: Base grayscale image.
            current_gray: Current grayscale image in the base frame.
            roi_mask: Region the difference is restricted to.

        Returns:
            {0, 255} mask of changed pixels.

        Raises:
            PreconditionError: If the inputs differ in size.
        """
        masks.require_same_shape(base_gray, current_gray, "base and current images")
        masks.require_same_shape(base_gray, roi_mask, "image and ROI")

        with BufferScope("differencer") as scope:
            delta = scope.track(cv2.absdiff(base_gray, current_gray))
            blurred = scope.track(cv2.GaussianBlur(delta, (5, 5), 0))
            thresh, value, used_floor = self.threshold(blurred)
            scope.track(thresh)
            restricted = scope.track(masks.intersect(thresh, roi_mask))
            cleaned = scope.track(self.clean(restricted))

            logger.debug(
                "differencer.diff threshold=%.1f floor=%s changed=%d",
                value,
                used_floor,
                masks.count(cleaned),
            )
            return scope.keep(cleaned)

    def threshold(self, blurred: np.ndarray) -> tuple[np.ndarray, float, bool]:
        """Binarize a blurred difference image.

        Returns:
            (mask, threshold value actually used, whether the floor applied).
        """
        otsu_value, mask = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        floor = float(self.profile.diff_min_threshold)
        if otsu_value < floor:
            _, mask = cv2.threshold(blurred, floor, 255, cv2.THRESH_BINARY)
            return mask, floor, True
        return mask, float(otsu_value), False

    def clean(self, mask: np.ndarray) -> np.ndarray:
        """Open then close with the configured kernels."""
        return masks.open_close(mask, self.profile.diff_open_kernel, self.profile.diff_close_kernel)
