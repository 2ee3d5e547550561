"""
Part segmentation.

Separates the inspected part from the background with an edge-based
silhouette, and derives the eroded interior used as the analysis ROI.
"""

import logging

import cv2
import numpy as np

from ..imaging import masks
from ..imaging.buffers import BufferScope
from .profile import DetectionProfile

logger = logging.getLogger(__name__)


class PartSegmenter:
    """Edge-based part silhouette extractor.

    The silhouette is built from dilated Canny edges: the largest external
    contour is filled, together with secondary contours large enough to be
    fragments of the same part. When nothing usable is found the whole
    frame is treated as the part.

    Attributes:
        profile: Detection thresholds.
    """

    def __init__(self, profile: DetectionProfile) -> None:
        self.profile = profile

    def segment(self, image: np.ndarray) -> np.ndarray:
        """Compute the part mask of an image.

        Args:
            image: BGR or grayscale image.

        Returns:
            {0, 255} mask with the image's height and width.
        """
        h, w = image.shape[:2]
        total = float(h * w)

        with BufferScope("segmenter") as scope:
            gray = scope.track(self._to_gray(image))
            blurred = scope.track(cv2.GaussianBlur(gray, (5, 5), 0))
            edges = scope.track(cv2.Canny(blurred, 40, 120))
            edges = scope.track(masks.dilate(edges, 5))

            contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
            if not contours:
                logger.debug("segmenter.fallback reason=no_contours")
                return masks.full_mask(h, w)

            contours = sorted(contours, key=cv2.contourArea, reverse=True)
            primary_area = cv2.contourArea(contours[0])
            if primary_area < total * self.profile.min_part_area_ratio:
                logger.debug(
                    "segmenter.fallback reason=small_part area_ratio=%.4f",
                    primary_area / total,
                )
                return masks.full_mask(h, w)

            secondary_floor = max(
                total * self.profile.part_secondary_area_ratio,
                primary_area * self.profile.part_secondary_rel_ratio,
            )
            kept = [contours[0]] + [
                c for c in contours[1:] if cv2.contourArea(c) >= secondary_floor
            ]

            filled = scope.track(masks.empty_mask(h, w))
            cv2.drawContours(filled, kept, -1, 255, thickness=cv2.FILLED)
            mask = cv2.morphologyEx(filled, cv2.MORPH_CLOSE, masks.ellipse_kernel(9))

        logger.debug(
            "segmenter.segment components=%d part_ratio=%.4f",
            len(kept),
            masks.count(mask) / total,
        )
        return mask

    def interior_mask(self, mask: np.ndarray) -> np.ndarray:
        """Erode a part mask to keep only its interior.

        The kernel is ``profile.roi_margin_kernel``; sizes below 3 or even
        sizes disable erosion. An erosion that removes everything returns
        the mask unchanged.

        Args:
            mask: Part mask.

        Returns:
            New {0, 255} mask, never aliasing the input.
        """
        size = self.profile.roi_margin_kernel
        if size < 3 or size % 2 == 0:
            return mask.copy()

        eroded = masks.erode(mask, size)
        if masks.count(eroded) == 0:
            return mask.copy()
        return eroded

    @staticmethod
    def _to_gray(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image.copy()
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
