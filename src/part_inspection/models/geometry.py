"""
Shape-mismatch detection.

Describes the outline of each part mask (concavities, vertices,
circularity, extent), classifies it into a ``ShapeFamily`` and reports a
mismatch when the current outline no longer looks like the base one:
lost gear teeth, a cut polygon corner, a dented round part.
"""

import logging
import math
from typing import Optional

import cv2
import numpy as np

from ..imaging import masks
from ..imaging.buffers import BufferScope
from .profile import DetectionProfile
from .types import GeometryResult, ShapeDescriptor, ShapeFamily

logger = logging.getLogger(__name__)

MAX_POLYGON_VERTICES = 12
MIN_CONTOUR_POINTS = 5


def classify_shape(
    concavity: int,
    vertices: int,
    circularity: float,
    extent: float,
    profile: DetectionProfile,
) -> ShapeFamily:
    """Classify outline descriptors into a shape family.

    Toothed wins over round, round over polygon.
    """
    if concavity >= profile.geometry_min_concavity:
        return ShapeFamily.TOOTHED
    if circularity >= profile.geometry_round_min_circularity:
        return ShapeFamily.ROUND
    if (
        3 <= vertices <= MAX_POLYGON_VERTICES
        and circularity >= profile.geometry_polygon_min_circularity
        and extent >= profile.geometry_polygon_min_extent
    ):
        return ShapeFamily.POLYGON
    return ShapeFamily.UNKNOWN


def count_concavities(contour: np.ndarray) -> int:
    """Number of convexity defects of a finely simplified outline."""
    if len(contour) < 8:
        return 0
    perimeter = cv2.arcLength(contour, True)
    if perimeter <= 0:
        return 0
    approx = cv2.approxPolyDP(contour, 0.006 * perimeter, True)
    if len(approx) < 8:
        return 0

    try:
        hull = cv2.convexHull(approx, returnPoints=False)
        if hull is None or len(hull) < 3:
            return 0
        defects = cv2.convexityDefects(approx, hull)
    except cv2.error as e:
        logger.debug("geometry.concavity failed: %s", e)
        return 0
    if defects is None:
        return 0
    return len(defects)


def count_vertices(contour: np.ndarray) -> int:
    """Vertex count of a coarsely simplified outline."""
    if len(contour) < 3:
        return len(contour)
    perimeter = cv2.arcLength(contour, True)
    if perimeter <= 0:
        return len(contour)
    approx = cv2.approxPolyDP(contour, 0.015 * perimeter, True)
    if len(approx) < 3:
        return len(contour)
    return len(approx)


def describe_contour(contour: np.ndarray, profile: DetectionProfile) -> ShapeDescriptor:
    """Compute the outline descriptors of one contour."""
    area = cv2.contourArea(contour)
    perimeter = cv2.arcLength(contour, True)
    concavity = count_concavities(contour)
    vertices = count_vertices(contour)

    circularity = 0.0
    if area > 0 and perimeter > 0:
        circularity = 4.0 * math.pi * area / (perimeter * perimeter)

    extent = 0.0
    if area > 0:
        _, _, w, h = cv2.boundingRect(contour)
        if w * h > 0:
            extent = area / (w * h)

    return ShapeDescriptor(
        family=classify_shape(concavity, vertices, circularity, extent, profile),
        concavity_count=concavity,
        vertex_count=vertices,
        circularity=circularity,
        extent=extent,
        area=area,
        perimeter=perimeter,
    )


class GeometryDetector:
    """Outline-shape comparison of base and current part masks.

    Attributes:
        profile: Detection thresholds.
    """

    def __init__(self, profile: DetectionProfile) -> None:
        self.profile = profile

    def detect(self, base_mask: np.ndarray, current_mask: np.ndarray) -> GeometryResult:
        """Compare the outlines of two part masks.

        Args:
            base_mask: Part mask of the base image.
            current_mask: Part mask of the current image, in the base frame.

        Returns:
            GeometryResult. When triggered, ``reason`` names the rule that
            fired with every descriptor value, and ``mask`` holds the XOR
            evidence restricted to the outline ring where possible.

        Raises:
            PreconditionError: If the masks differ in size.
        """
        if not self.profile.enable_geometry_check:
            return GeometryResult(triggered=False)
        masks.require_same_shape(base_mask, current_mask)

        base_contour = masks.largest_contour(base_mask)
        current_contour = masks.largest_contour(current_mask)
        if base_contour is None or current_contour is None:
            return GeometryResult(triggered=False)
        if len(base_contour) < MIN_CONTOUR_POINTS or len(current_contour) < MIN_CONTOUR_POINTS:
            return GeometryResult(triggered=False)

        base = describe_contour(base_contour, self.profile)
        current = describe_contour(current_contour, self.profile)
        shape_score = cv2.matchShapes(base_contour, current_contour, cv2.CONTOURS_MATCH_I2, 0)

        rule = self._mismatch_rule(base, current, shape_score)
        details = (
            f"family_base={base.family.value} family_current={current.family.value} "
            f"shape_score={shape_score:.4f} "
            f"concavity_base={base.concavity_count} concavity_current={current.concavity_count} "
            f"vertices_base={base.vertex_count} vertices_current={current.vertex_count} "
            f"circularity_base={base.circularity:.4f} circularity_current={current.circularity:.4f} "
            f"extent_base={base.extent:.4f} extent_current={current.extent:.4f}"
        )
        if rule is None:
            logger.debug("detector.geometry mismatch=false %s", details)
            return GeometryResult(triggered=False)

        reason = f"geometry_mismatch reason={rule} {details}"
        logger.info(
            "detector.geometry mismatch=true reason=%s family_base=%s family_current=%s",
            rule,
            base.family.value,
            current.family.value,
        )
        return GeometryResult(
            triggered=True,
            mask=self._evidence(base_mask, current_mask),
            reason=reason,
            rule=rule,
        )

    def _mismatch_rule(
        self,
        base: ShapeDescriptor,
        current: ShapeDescriptor,
        shape_score: float,
    ) -> Optional[str]:
        """Name of the first mismatch rule that fires, or None."""
        p = self.profile
        concavity_gap = abs(base.concavity_count - current.concavity_count)
        vertex_gap = abs(base.vertex_count - current.vertex_count)
        circularity_gap = abs(base.circularity - current.circularity)
        same = base.family if base.family == current.family else None

        if same is ShapeFamily.TOOTHED and concavity_gap >= p.geometry_min_concavity_gap:
            return "tooth_count"
        if (
            same is ShapeFamily.POLYGON
            and 0 < base.vertex_count <= MAX_POLYGON_VERTICES
            and 0 < current.vertex_count <= MAX_POLYGON_VERTICES
            and vertex_gap >= p.geometry_polygon_vertex_gap
        ):
            return "polygon_vertices"
        if same is ShapeFamily.ROUND and circularity_gap >= p.geometry_round_max_circularity_gap:
            return "round_profile"
        if (
            same is ShapeFamily.TOOTHED
            and concavity_gap >= 1
            and shape_score > p.geometry_match_max_score
        ):
            return "toothed_shape"
        if (
            base.family is not ShapeFamily.UNKNOWN
            and current.family is not ShapeFamily.UNKNOWN
            and base.family is not current.family
        ):
            return "shape_family"
        return None

    def _evidence(self, base_mask: np.ndarray, current_mask: np.ndarray) -> np.ndarray:
        """Cleaned XOR of the masks, kept to the outline ring when non-empty."""
        p = self.profile
        with BufferScope("geometry") as scope:
            raw = scope.track(masks.xor(base_mask, current_mask))
            cleaned = scope.track(masks.open_close(raw, p.diff_open_kernel, p.diff_close_kernel))
            if masks.count(cleaned) == 0:
                return scope.keep(cleaned)

            ring = scope.track(self.outer_ring(base_mask, current_mask))
            if masks.count(ring) == 0:
                return scope.keep(cleaned)

            focused = scope.track(masks.intersect(cleaned, ring))
            if masks.count(focused) == 0:
                logger.debug("detector.geometry fallback=empty_focus")
                return scope.keep(cleaned)
            return scope.keep(focused)

    def outer_ring(self, base_mask: np.ndarray, current_mask: np.ndarray) -> np.ndarray:
        """Band along the outline of the union of both masks."""
        united = masks.union(base_mask, current_mask)
        if masks.count(united) == 0:
            return united
        size = masks.normalize_kernel_size(self.profile.geometry_ring_kernel, 41)
        eroded = masks.erode(united, size)
        if masks.count(eroded) == 0:
            return united
        return masks.xor(united, eroded)
