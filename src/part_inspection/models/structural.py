"""
Broken-part detection.

Compares the base and current part masks for material that broke off:
either the silhouette split into separate pieces, or it shrank by more
than a configured ratio. Also provides the filters that collapse the
resulting diff candidates into one report per break.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from ..imaging import masks
from ..imaging.buffers import BufferScope
from .candidates import append_reason, box_iou, combine_reasons
from .profile import DetectionProfile
from .types import DefectCandidate, StructuralResult

logger = logging.getLogger(__name__)

# Eroded fragments are smaller than the originals.
ERODED_COMPONENT_SCALE = 0.45


@dataclass(frozen=True)
class MaskComponent:
    """Significant connected piece of a part mask."""

    x: int
    y: int
    width: int
    height: int
    area: float


def significant_components(mask: np.ndarray, min_area: float) -> tuple[list[MaskComponent], float]:
    """External contours with area at least ``min_area``, largest first.

    Returns:
        (components, summed contour area of the components).
    """
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    components = []
    for contour in contours:
        area = cv2.contourArea(contour)
        if area < min_area:
            continue
        x, y, w, h = cv2.boundingRect(contour)
        components.append(MaskComponent(x, y, w, h, area))
    components.sort(key=lambda c: c.area, reverse=True)
    return components, sum(c.area for c in components)


def has_separated_part(components: list[MaskComponent], min_relative_area: float) -> bool:
    if len(components) < 2 or components[0].area <= 0:
        return False
    return components[1].area / components[0].area >= min_relative_area


class StructuralDetector:
    """Detects split or shrunken part silhouettes.

    Attributes:
        profile: Detection thresholds.
    """

    def __init__(self, profile: DetectionProfile) -> None:
        self.profile = profile

    def detect(self, base_mask: np.ndarray, current_mask: np.ndarray) -> StructuralResult:
        """Check the current mask for a broken part.

        Args:
            base_mask: Part mask of the base image.
            current_mask: Part mask of the current image, in the base frame.

        Returns:
            StructuralResult; ``mask`` holds the cleaned XOR evidence when
            triggered, narrowed to the detached fragments for a split.

        Raises:
            PreconditionError: If the masks differ in size.
        """
        masks.require_same_shape(base_mask, current_mask)
        p = self.profile
        h, w = base_mask.shape[:2]
        min_area = float(h * w) * p.broken_min_component_ratio

        base_components, base_area = significant_components(base_mask, min_area)
        current_components, current_area = significant_components(current_mask, min_area)

        eroded_components: list[MaskComponent] = []
        focus_components = current_components
        if len(current_components) < 2:
            eroded_components = self._eroded_components(current_mask, min_area)
            if len(eroded_components) >= 2:
                focus_components = eroded_components

        split = len(base_components) <= 1 and has_separated_part(
            focus_components, p.broken_second_rel_min
        )
        area_loss = 0.0
        if base_area > 0 and current_area < base_area:
            area_loss = (base_area - current_area) / base_area
        lost = area_loss >= p.broken_area_loss_ratio

        logger.debug(
            "structural.check base_components=%d current_components=%d split=%s area_loss=%.4f",
            len(base_components),
            len(current_components),
            split,
            area_loss,
        )
        if not split and not lost:
            return StructuralResult(triggered=False, area_loss=area_loss)

        with BufferScope("structural") as scope:
            raw = scope.track(masks.xor(base_mask, current_mask))
            cleaned = scope.track(masks.open_close(raw, p.diff_open_kernel, p.diff_close_kernel))
            if not split or masks.count(cleaned) == 0:
                return StructuralResult(
                    triggered=True, mask=scope.keep(cleaned), split=split, area_loss=area_loss
                )

            focused = scope.track(self._focus(cleaned, focus_components))
            if focused is None and focus_components is current_components:
                # Retry the split decision on fragments separated by erosion.
                if not eroded_components:
                    eroded_components = self._eroded_components(current_mask, min_area)
                if has_separated_part(eroded_components, p.broken_second_rel_min):
                    focused = scope.track(self._focus(cleaned, eroded_components))

            if focused is None:
                logger.debug("structural.focus empty, keeping unfocused evidence")
                focused = cleaned
            return StructuralResult(
                triggered=True, mask=scope.keep(focused), split=True, area_loss=area_loss
            )

    def _eroded_components(self, mask: np.ndarray, min_area: float) -> list[MaskComponent]:
        size = masks.normalize_kernel_size(self.profile.broken_split_kernel, 17)
        eroded = masks.erode(mask, size)
        if masks.count(eroded) == 0:
            return []
        components, _ = significant_components(eroded, min_area * ERODED_COMPONENT_SCALE)
        return components

    def _focus(self, evidence: np.ndarray, components: list[MaskComponent]) -> Optional[np.ndarray]:
        """Restrict evidence to boxes around the secondary components.

        Returns:
            The focused mask, or None when it would be empty.
        """
        h, w = evidence.shape[:2]
        expand = max(1, self.profile.broken_focus_expand)
        focus = masks.empty_mask(h, w)
        for comp in components[1:]:
            x1 = max(0, comp.x - expand)
            y1 = max(0, comp.y - expand)
            x2 = min(w, comp.x + comp.width + expand)
            y2 = min(h, comp.y + comp.height + expand)
            if x2 > x1 and y2 > y1:
                focus[y1:y2, x1:x2] = 255

        if masks.count(focus) == 0:
            return None
        focused = masks.intersect(evidence, focus)
        if masks.count(focused) == 0:
            return None
        return focused

    def filter_by_overlap(
        self,
        candidates: list[DefectCandidate],
        mask: Optional[np.ndarray],
        min_ratio: Optional[float] = None,
    ) -> list[DefectCandidate]:
        """Keep candidates whose box is covered enough by the structural mask.

        An empty or missing mask leaves the list unchanged.
        """
        if min_ratio is None:
            min_ratio = self.profile.broken_min_overlap_ratio
        if not candidates or mask is None or masks.count(mask) == 0:
            return candidates

        kept = []
        for candidate in candidates:
            overlap = overlap_ratio(candidate, mask)
            if overlap >= min_ratio:
                kept.append(
                    _with_reason(candidate, append_reason(candidate.reason, f"broken_overlap={overlap:.3f}"))
                )
            else:
                logger.debug(
                    "detector.reject stage=broken_overlap overlap=%.3f min=%.3f box=(%d,%d,%d,%d)",
                    overlap,
                    min_ratio,
                    candidate.x,
                    candidate.y,
                    candidate.width,
                    candidate.height,
                )
        return kept

    def merge_nearby(
        self,
        candidates: list[DefectCandidate],
        distance: Optional[int] = None,
    ) -> list[DefectCandidate]:
        """Merge boxes that overlap or lie within ``distance`` pixels.

        Repeats until no more merges happen.
        """
        if distance is None:
            distance = self.profile.broken_merge_distance
        distance = max(0, distance)

        current = list(candidates)
        while len(current) >= 2:
            merged: list[DefectCandidate] = []
            for candidate in current:
                for i, existing in enumerate(merged):
                    if _should_merge(existing, candidate, distance):
                        merged[i] = _union(existing, candidate)
                        break
                else:
                    merged.append(candidate)
            if len(merged) == len(current):
                break
            current = merged
        return current

    def keep_dominant(
        self,
        candidates: list[DefectCandidate],
        min_ratio: Optional[float] = None,
    ) -> list[DefectCandidate]:
        """Keep candidates whose area is close to the largest one.

        Never returns an empty list for non-empty input.
        """
        if min_ratio is None:
            min_ratio = self.profile.broken_dominant_min_ratio
        if len(candidates) < 2 or min_ratio <= 0:
            return candidates
        min_ratio = min(min_ratio, 1.0)

        max_area = max(c.area for c in candidates)
        if max_area <= 0:
            return candidates

        kept = []
        for candidate in candidates:
            ratio = candidate.area / max_area
            if ratio >= min_ratio:
                kept.append(
                    _with_reason(candidate, append_reason(candidate.reason, f"broken_dominant={ratio:.3f}"))
                )
            else:
                logger.debug(
                    "detector.reject stage=broken_dominant ratio=%.3f min=%.3f area=%d",
                    ratio,
                    min_ratio,
                    candidate.area,
                )
        return kept or candidates


def overlap_ratio(candidate: DefectCandidate, mask: np.ndarray) -> float:
    """Share of the candidate's box (clipped to the mask) covered by the mask."""
    if candidate.width <= 0 or candidate.height <= 0:
        return 0.0
    h, w = mask.shape[:2]
    x1, y1 = max(0, candidate.x), max(0, candidate.y)
    x2, y2 = min(w, candidate.x2), min(h, candidate.y2)
    if x2 <= x1 or y2 <= y1:
        return 0.0
    region = mask[y1:y2, x1:x2]
    return int(np.count_nonzero(region)) / float((x2 - x1) * (y2 - y1))


def _should_merge(a: DefectCandidate, b: DefectCandidate, distance: int) -> bool:
    if box_iou(a, b) > 0:
        return True
    dx = max(0, max(a.x, b.x) - min(a.x2, b.x2))
    dy = max(0, max(a.y, b.y) - min(a.y2, b.y2))
    return dx <= distance and dy <= distance


def _union(a: DefectCandidate, b: DefectCandidate) -> DefectCandidate:
    x1, y1 = min(a.x, b.x), min(a.y, b.y)
    x2, y2 = max(a.x2, b.x2), max(a.y2, b.y2)
    return DefectCandidate.from_box(x1, y1, x2 - x1, y2 - y1, combine_reasons(a.reason, b.reason))


def _with_reason(candidate: DefectCandidate, reason: str) -> DefectCandidate:
    return DefectCandidate.from_box(candidate.x, candidate.y, candidate.width, candidate.height, reason)
