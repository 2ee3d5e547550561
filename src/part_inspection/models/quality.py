"""
Photo quality gate.

Rejects photos that are too small, blurry, badly exposed or full of glare
before any defect analysis runs. Photometric metrics are measured inside
the part's interior so that a plain background does not skew them.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from ..errors import QualityGateError
from ..imaging import masks
from ..imaging.buffers import BufferScope
from .profile import DetectionProfile
from .segmenter import PartSegmenter
from .types import QualityReport

logger = logging.getLogger(__name__)

BRIGHT_LEVEL = 250
DARK_LEVEL = 20
GLARE_MAX_SATURATION = 40
GLARE_MIN_VALUE = 245


class QualityGate:
    """Size, sharpness, exposure and glare checks.

    When the part ROI covers almost the whole frame the part mask is
    unreliable, so exposure and glare are not checked and the sharpness
    floor is lowered ("relaxed" mode). A frame that is almost entirely
    black or white is rejected before that, whatever the ROI.

    Attributes:
        profile: Detection thresholds.
        segmenter: Segmenter used to find the ROI in ``evaluate``.
    """

    def __init__(
        self,
        profile: DetectionProfile,
        segmenter: Optional[PartSegmenter] = None,
    ) -> None:
        self.profile = profile
        self.segmenter = segmenter or PartSegmenter(profile)

    def check(
        self,
        image: np.ndarray,
        roi_mask: Optional[np.ndarray],
        glare_limit: float,
    ) -> QualityReport:
        """Run the quality checks inside a given ROI.

        Args:
            image: BGR image.
            roi_mask: Region to measure in; None means the whole frame.
            glare_limit: Maximum allowed glare ratio.

        Returns:
            QualityReport; ``reason`` is set when the photo fails.
        """
        p = self.profile
        h, w = image.shape[:2]
        if w < p.min_image_side or h < p.min_image_side:
            return QualityReport(passed=False, reason=f"image is too small ({w}x{h})")

        total = h * w
        metrics: dict[str, float] = {}

        with BufferScope("quality") as scope:
            gray = scope.track(cv2.cvtColor(image, cv2.COLOR_BGR2GRAY))
            _, bright = cv2.threshold(gray, BRIGHT_LEVEL, 255, cv2.THRESH_BINARY)
            _, dark = cv2.threshold(gray, DARK_LEVEL, 255, cv2.THRESH_BINARY_INV)
            scope.track(bright)
            scope.track(dark)

            frame_dark = masks.count(dark) / total
            frame_bright = masks.count(bright) / total
            if frame_dark >= p.blank_frame_ratio:
                return QualityReport(
                    passed=False,
                    reason=f"underexposed image (ratio={frame_dark:.4f})",
                    metrics={"frame_dark_ratio": frame_dark},
                )
            if frame_bright >= p.blank_frame_ratio:
                return QualityReport(
                    passed=False,
                    reason=f"overexposed image (ratio={frame_bright:.4f})",
                    metrics={"frame_bright_ratio": frame_bright},
                )

            if roi_mask is None:
                roi_mask = scope.track(masks.full_mask(h, w))
            masks.require_same_shape(image, roi_mask, "image and ROI")
            roi_pixels = masks.count(roi_mask)
            if roi_pixels == 0:
                return QualityReport(passed=False, reason="part ROI is empty")

            roi_ratio = roi_pixels / total
            relaxed = roi_ratio > p.relaxed_roi_ratio
            metrics["roi_ratio"] = roi_ratio

            edges = scope.track(cv2.Canny(gray, 80, 160))
            edge_ratio = masks.ratio_in_roi(edges, roi_mask)
            metrics["edge_ratio"] = edge_ratio
            min_edge_ratio = p.min_sharpness_edge_ratio
            if relaxed:
                min_edge_ratio *= p.relaxed_sharpness_factor
            if edge_ratio < min_edge_ratio:
                return QualityReport(
                    passed=False,
                    reason=f"image is blurry (edge_ratio={edge_ratio:.4f})",
                    relaxed=relaxed,
                    metrics=metrics,
                )

            if relaxed:
                return QualityReport(passed=True, relaxed=True, metrics=metrics)

            over = masks.ratio_in_roi(bright, roi_mask)
            metrics["overexposed_ratio"] = over
            if over > p.max_overexposed_ratio:
                return QualityReport(
                    passed=False,
                    reason=f"overexposed image (ratio={over:.4f})",
                    metrics=metrics,
                )

            under = masks.ratio_in_roi(dark, roi_mask)
            metrics["underexposed_ratio"] = under
            if under > p.max_underexposed_ratio:
                return QualityReport(
                    passed=False,
                    reason=f"underexposed image (ratio={under:.4f})",
                    metrics=metrics,
                )

            hsv = scope.track(cv2.cvtColor(image, cv2.COLOR_BGR2HSV))
            _, saturation, value = (scope.track(channel) for channel in cv2.split(hsv))
            _, low_sat = cv2.threshold(saturation, GLARE_MAX_SATURATION, 255, cv2.THRESH_BINARY_INV)
            _, high_val = cv2.threshold(value, GLARE_MIN_VALUE, 255, cv2.THRESH_BINARY)
            scope.track(low_sat)
            scope.track(high_val)
            glare = scope.track(cv2.bitwise_and(low_sat, high_val))
            glare_ratio = masks.ratio_in_roi(glare, roi_mask)
            metrics["glare_ratio"] = glare_ratio
            if glare_ratio > glare_limit:
                return QualityReport(
                    passed=False,
                    reason=f"too much glare (ratio={glare_ratio:.4f})",
                    metrics=metrics,
                )

        return QualityReport(passed=True, metrics=metrics)

    def evaluate(self, image: np.ndarray, glare_limit: float) -> QualityReport:
        """Segment the part and check quality inside its interior."""
        h, w = image.shape[:2]
        if w < self.profile.min_image_side or h < self.profile.min_image_side:
            return QualityReport(passed=False, reason=f"image is too small ({w}x{h})")

        part_mask = self.segmenter.segment(image)
        roi = self.segmenter.interior_mask(part_mask)
        return self.check(image, roi, glare_limit)

    def ensure(self, image: np.ndarray, label: str, glare_limit: float) -> QualityReport:
        """Evaluate quality and raise when the photo is rejected.

        Args:
            image: BGR image.
            label: Name used in the error message ("image", "base image", ...).
            glare_limit: Maximum allowed glare ratio.

        Returns:
            The passing QualityReport.

        Raises:
            QualityGateError: If any check fails.
        """
        report = self.evaluate(image, glare_limit)
        if not report.passed:
            logger.info("quality.reject label=%s reason=%s", label, report.reason)
            raise QualityGateError(f"quality gate failed for {label}: {report.reason}")

        logger.debug(
            "quality.pass label=%s relaxed=%s metrics=%s",
            label,
            report.relaxed,
            {k: round(v, 4) for k, v in report.metrics.items()},
        )
        return report
