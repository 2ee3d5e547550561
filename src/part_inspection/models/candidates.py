"""
Defect candidate extraction and duplicate suppression.

Turns binary evidence masks into ``DefectCandidate`` boxes, rejecting
regions that are too small, too elongated or too sparse, then removes
overlapping boxes with a greedy largest-first non-max suppression.
"""

import logging
from typing import Optional, Sequence

import cv2
import numpy as np

from ..imaging import masks
from .profile import DetectionProfile
from .types import DefectCandidate

logger = logging.getLogger(__name__)


def intersection_area(a: DefectCandidate, b: DefectCandidate) -> int:
    ix1 = max(a.x, b.x)
    iy1 = max(a.y, b.y)
    ix2 = min(a.x2, b.x2)
    iy2 = min(a.y2, b.y2)
    if ix2 <= ix1 or iy2 <= iy1:
        return 0
    return (ix2 - ix1) * (iy2 - iy1)


def box_iou(a: DefectCandidate, b: DefectCandidate) -> float:
    """Intersection over union of two candidate boxes."""
    inter = intersection_area(a, b)
    if inter <= 0:
        return 0.0
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def box_containment(a: DefectCandidate, b: DefectCandidate) -> float:
    """Intersection divided by the smaller box's area."""
    inter = intersection_area(a, b)
    if inter <= 0:
        return 0.0
    smaller = min(a.area, b.area)
    if smaller <= 0:
        return 0.0
    return inter / smaller


def append_reason(reason: str, extra: str) -> str:
    if not extra:
        return reason
    if not reason:
        return extra
    return f"{reason}; {extra}"


def combine_reasons(a: str, b: str) -> str:
    if not a:
        return b
    if not b or a == b:
        return a
    return f"{a} | {b}"


class CandidateExtractor:
    """Contour-based candidate extraction with NMS.

    Attributes:
        profile: Detection thresholds.
    """

    def __init__(self, profile: DetectionProfile) -> None:
        self.profile = profile

    def extract(self, mask: Optional[np.ndarray], reason_tag: str) -> list[DefectCandidate]:
        """Extract deduplicated candidates from a binary mask.

        Args:
            mask: {0, 255} evidence mask.
            reason_tag: Stage tag written at the start of every reason.

        Returns:
            Surviving candidates, largest first.
        """
        if mask is None or masks.count(mask) == 0:
            return []
        h, w = mask.shape[:2]
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        return self.extract_from_contours(contours, w, h, reason_tag)

    def extract_from_contours(
        self,
        contours: Sequence[np.ndarray],
        image_width: int,
        image_height: int,
        reason_tag: str,
    ) -> list[DefectCandidate]:
        """Filter contours into candidates and suppress duplicates.

        A contour is rejected when its box area is below
        ``image_area * min_area_ratio``, its contour area is below
        ``image_area * min_contour_area_ratio``, its width/height ratio is
        outside the aspect bounds, or its fill ratio is below
        ``min_fill_ratio``.
        """
        tag = reason_tag or "contour"
        p = self.profile
        image_area = float(image_width * image_height)
        min_rect_area = int(image_area * p.min_area_ratio)
        min_contour_area = image_area * p.min_contour_area_ratio

        dropped = {"rect": 0, "contour": 0, "aspect": 0, "fill": 0}
        candidates: list[DefectCandidate] = []

        for contour in contours:
            x, y, bw, bh = cv2.boundingRect(contour)
            rect_area = bw * bh
            if rect_area <= 0 or rect_area < min_rect_area:
                dropped["rect"] += 1
                continue

            contour_area = cv2.contourArea(contour)
            if contour_area < min_contour_area:
                dropped["contour"] += 1
                continue

            aspect = bw / bh
            if aspect < p.min_aspect_ratio or aspect > p.max_aspect_ratio:
                dropped["aspect"] += 1
                continue

            fill = contour_area / rect_area
            if fill < p.min_fill_ratio:
                dropped["fill"] += 1
                continue

            reason = f"{tag} contour_area={contour_area:.1f} fill={fill:.3f} aspect={aspect:.3f}"
            candidates.append(DefectCandidate.from_box(x, y, bw, bh, reason))

        kept = self.suppress_duplicates(candidates)
        logger.info(
            "detector.filter stage=%s contours=%d kept=%d dropped_rect=%d "
            "dropped_contour=%d dropped_aspect=%d dropped_fill=%d",
            tag,
            len(contours),
            len(kept),
            dropped["rect"],
            dropped["contour"],
            dropped["aspect"],
            dropped["fill"],
        )
        return kept

    def suppress_duplicates(self, candidates: list[DefectCandidate]) -> list[DefectCandidate]:
        """Greedy largest-first non-max suppression.

        A candidate is dropped when its IoU with an already kept box
        reaches ``nms_iou_threshold`` or its containment reaches
        ``nms_containment_ratio``.
        """
        ordered = sorted(candidates, key=lambda c: c.area, reverse=True)
        if len(ordered) < 2:
            return ordered

        kept: list[DefectCandidate] = []
        for candidate in ordered:
            duplicate = any(
                box_iou(candidate, existing) >= self.profile.nms_iou_threshold
                or box_containment(candidate, existing) >= self.profile.nms_containment_ratio
                for existing in kept
            )
            if not duplicate:
                kept.append(candidate)
        return kept

    def union_candidate(
        self,
        mask: Optional[np.ndarray],
        reason: str,
    ) -> list[DefectCandidate]:
        """One candidate spanning every sufficiently large mask component.

        Components below ``image_area * min_contour_area_ratio`` are
        ignored. Used by the geometry branch, whose evidence is a thin ring
        that would not survive the regular fill-ratio filter.

        Returns:
            A single-element list, or an empty list when nothing qualifies.
        """
        if mask is None or masks.count(mask) == 0:
            return []

        h, w = mask.shape[:2]
        min_area = float(w * h) * self.profile.min_contour_area_ratio
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        box: Optional[tuple[int, int, int, int]] = None
        for contour in contours:
            if cv2.contourArea(contour) < min_area:
                continue
            x, y, bw, bh = cv2.boundingRect(contour)
            if bw <= 0 or bh <= 0:
                continue
            if box is None:
                box = (x, y, x + bw, y + bh)
            else:
                box = (min(box[0], x), min(box[1], y), max(box[2], x + bw), max(box[3], y + bh))

        if box is None:
            return []
        x1, y1, x2, y2 = box
        return [
            DefectCandidate.from_box(
                x1, y1, x2 - x1, y2 - y1, append_reason(reason, "geometry_mask_union")
            )
        ]
