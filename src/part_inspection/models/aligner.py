"""
Registration of the current photo onto the base photo.

Alignment is two-phase: a coarse scale/translate estimate from the part
masks' bounding rectangles, then an ECC affine refinement restricted to
the base part's interior. The mask IoU against the base mask scores the
result.
"""

import logging
import math
from typing import Optional

import cv2
import numpy as np

from ..errors import AlignmentError
from ..imaging import masks
from ..imaging.buffers import BufferScope
from .profile import DetectionProfile
from .segmenter import PartSegmenter
from .types import AlignmentResult

logger = logging.getLogger(__name__)


def largest_mask_rect(mask: np.ndarray) -> Optional[tuple[int, int, int, int]]:
    """Bounding rect (x, y, w, h) of the largest contour, or None."""
    contour = masks.largest_contour(mask)
    if contour is None:
        return None
    return cv2.boundingRect(contour)


class Aligner:
    """Maps a current image and mask into the base image's frame.

    Attributes:
        profile: Detection thresholds.
        segmenter: Segmenter providing the interior mask for ECC.
    """

    def __init__(self, profile: DetectionProfile, segmenter: Optional[PartSegmenter] = None) -> None:
        self.profile = profile
        self.segmenter = segmenter or PartSegmenter(profile)

    def align(
        self,
        base_image: np.ndarray,
        current_image: np.ndarray,
        base_mask: np.ndarray,
        current_mask: np.ndarray,
    ) -> AlignmentResult:
        """Align the current image onto the base image.

        Args:
            base_image: Base BGR image.
            current_image: Current BGR image.
            base_mask: Part mask of the base image.
            current_mask: Part mask of the current image.

        Returns:
            AlignmentResult in the base frame. The refined estimate is used
            only when its IoU is strictly higher than the coarse one.

        Raises:
            AlignmentError: If a mask has no contour, the scale is not
                positive, or the transformed image misses the base frame.
        """
        masks.require_same_shape(base_image, base_mask, "base image and mask")
        masks.require_same_shape(current_image, current_mask, "current image and mask")

        coarse_image, coarse_mask = self._coarse(base_image, current_image, base_mask, current_mask)
        coarse_score = masks.mask_iou(base_mask, coarse_mask)

        refined = self._refine(base_image, coarse_image, base_mask, coarse_mask)
        if refined is not None:
            refined_image, refined_mask = refined
            refined_score = masks.mask_iou(base_mask, refined_mask)
            logger.debug(
                "aligner.refine coarse_iou=%.4f refined_iou=%.4f",
                coarse_score,
                refined_score,
            )
            if refined_score > coarse_score:
                return AlignmentResult(
                    image=refined_image, mask=refined_mask, score=refined_score, refined=True
                )

        return AlignmentResult(image=coarse_image, mask=coarse_mask, score=coarse_score)

    def _coarse(
        self,
        base_image: np.ndarray,
        current_image: np.ndarray,
        base_mask: np.ndarray,
        current_mask: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        base_rect = largest_mask_rect(base_mask)
        if base_rect is None:
            raise AlignmentError("alignment failed: base mask is not detected")
        current_rect = largest_mask_rect(current_mask)
        if current_rect is None:
            raise AlignmentError("alignment failed: current mask is not detected")

        bx, by, bw, bh = base_rect
        cx, cy, cw, ch = current_rect
        if bw <= 0 or bh <= 0 or cw <= 0 or ch <= 0:
            raise AlignmentError("alignment failed: invalid mask rectangles")

        scale = math.sqrt((bw / cw) * (bh / ch))
        if not scale > 0:
            raise AlignmentError("alignment failed: invalid scale")

        tx = (bx + bw / 2.0) - scale * (cx + cw / 2.0)
        ty = (by + bh / 2.0) - scale * (cy + ch / 2.0)

        out_h, out_w = base_image.shape[:2]
        cur_h, cur_w = current_image.shape[:2]
        left, top = tx, ty
        right, bottom = tx + scale * cur_w, ty + scale * cur_h
        if right <= 0 or bottom <= 0 or left >= out_w or top >= out_h:
            raise AlignmentError("alignment failed: no overlap after transform")

        matrix = np.float32([[scale, 0.0, tx], [0.0, scale, ty]])
        image = cv2.warpAffine(
            current_image,
            matrix,
            (out_w, out_h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0,
        )
        mask = cv2.warpAffine(
            current_mask,
            matrix,
            (out_w, out_h),
            flags=cv2.INTER_NEAREST,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0,
        )
        logger.debug("aligner.coarse scale=%.4f tx=%.1f ty=%.1f", scale, tx, ty)
        return image, mask

    def _refine(
        self,
        base_image: np.ndarray,
        rough_image: np.ndarray,
        base_mask: np.ndarray,
        rough_mask: np.ndarray,
    ) -> Optional[tuple[np.ndarray, np.ndarray]]:
        """ECC affine refinement; None when it fails or does not converge."""
        with BufferScope("aligner.refine") as scope:
            ecc_mask = scope.track(self.segmenter.interior_mask(base_mask))
            if masks.count(ecc_mask) == 0:
                return None

            base_gray = scope.track(cv2.cvtColor(base_image, cv2.COLOR_BGR2GRAY))
            rough_gray = scope.track(cv2.cvtColor(rough_image, cv2.COLOR_BGR2GRAY))

            warp = np.eye(2, 3, dtype=np.float32)
            criteria = (
                cv2.TERM_CRITERIA_COUNT | cv2.TERM_CRITERIA_EPS,
                self.profile.ecc_iterations,
                self.profile.ecc_epsilon,
            )
            try:
                correlation, warp = cv2.findTransformECC(
                    base_gray, rough_gray, warp, cv2.MOTION_AFFINE, criteria, ecc_mask, 5
                )
            except cv2.error as e:
                logger.debug("aligner.refine skipped: %s", e)
                return None
            if correlation <= 0:
                return None

            h, w = base_image.shape[:2]
            refined_image = cv2.warpAffine(
                rough_image,
                warp,
                (w, h),
                flags=cv2.INTER_LINEAR + cv2.WARP_INVERSE_MAP,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=0,
            )
            refined_mask = cv2.warpAffine(
                rough_mask,
                warp,
                (w, h),
                flags=cv2.INTER_NEAREST + cv2.WARP_INVERSE_MAP,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=0,
            )
            if masks.count(refined_mask) == 0:
                return None

        return refined_image, refined_mask
