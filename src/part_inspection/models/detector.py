"""
Classical computer-vision defect detector.

Implements single-photo inspection, base/current comparison and defect
highlighting on top of the segmentation, registration, differencing,
structural and geometry stages.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import cv2
import numpy as np

from ..errors import AlignmentError, PreconditionError
from ..imaging import drawing, masks
from ..imaging.buffers import BufferScope
from ..preprocessing.image_loader import ImageLoader
from .aligner import Aligner
from .branches import DecisionStep, DiffContext, always, run_decision_steps
from .candidates import CandidateExtractor
from .differencer import Differencer
from .geometry import GeometryDetector
from .profile import DetectionProfile
from .quality import QualityGate
from .segmenter import PartSegmenter
from .structural import StructuralDetector
from .types import DefectCandidate, GeometryResult, InspectionResult, StructuralResult

logger = logging.getLogger(__name__)


class BaseDetector(ABC):
    """Abstract base class for defect detectors.

    Defines the interface that all detector implementations must follow.
    """

    @abstractmethod
    def inspect(self, image_bytes: bytes) -> InspectionResult:
        """Inspect a single encoded photo.

        Args:
            image_bytes: Encoded image (JPEG, PNG, ...).

        Returns:
            Inspection result in the resized frame.
        """

    @abstractmethod
    def inspect_diff(self, base_bytes: bytes, current_bytes: bytes) -> InspectionResult:
        """Compare a current photo against a known-good base photo.

        Args:
            base_bytes: Encoded base image.
            current_bytes: Encoded current image.

        Returns:
            Inspection result in the common frame of both photos.
        """

    @abstractmethod
    def highlight(self, image_bytes: bytes, result: InspectionResult) -> bytes:
        """Draw the result's defect boxes on an encoded photo.

        Returns:
            JPEG bytes.
        """


class PartDefectDetector(BaseDetector):
    """OpenCV defect detector for photographed parts.

    Stateless apart from its frozen profile and stage objects, so one
    instance can serve concurrent calls from several threads.

    Attributes:
        profile: Detection thresholds shared by all stages.
        jpeg_quality: JPEG quality of highlighted images.

    Example:
        >>> detector = PartDefectDetector()
        >>> result = detector.inspect_diff(base_bytes, current_bytes)
        >>> if result.has_defects:
        ...     jpeg = detector.highlight(current_bytes, result)
    """

    def __init__(
        self,
        profile: Optional[DetectionProfile] = None,
        jpeg_quality: int = 90,
    ) -> None:
        """Initialize the detector.

        Args:
            profile: Detection thresholds. Defaults to ``DetectionProfile()``.
            jpeg_quality: JPEG quality (1-100) of highlighted images.
        """
        if not 1 <= jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be between 1 and 100, got {jpeg_quality}")

        self.profile = profile or DetectionProfile()
        self.jpeg_quality = jpeg_quality

        self.loader = ImageLoader()
        self.segmenter = PartSegmenter(self.profile)
        self.quality_gate = QualityGate(self.profile, self.segmenter)
        self.aligner = Aligner(self.profile, self.segmenter)
        self.differencer = Differencer(self.profile)
        self.structural = StructuralDetector(self.profile)
        self.geometry = GeometryDetector(self.profile)
        self.extractor = CandidateExtractor(self.profile)

        self.decision_steps = (
            DecisionStep("structural", self._structural_triggered, self._structural_candidates),
            DecisionStep("geometry", self._geometry_triggered, self._geometry_candidates),
            DecisionStep("diff", always, self._diff_candidates),
        )

    def inspect(self, image_bytes: bytes) -> InspectionResult:
        """Inspect a single photo for high-contrast regions inside the part.

        Raises:
            DecodeError: If the bytes are not an image.
            QualityGateError: If the photo fails the quality gate.
        """
        p = self.profile
        image = self.loader.decode(image_bytes)
        self.quality_gate.ensure(image, "image", p.max_glare_ratio)
        image = self.loader.resize_to_max_side(image, p.max_side)
        h, w = image.shape[:2]

        with BufferScope("inspect") as scope:
            part_mask = scope.track(self.segmenter.segment(image))
            roi = scope.track(self.segmenter.interior_mask(part_mask))
            gray = scope.track(cv2.cvtColor(image, cv2.COLOR_BGR2GRAY))
            blurred = scope.track(cv2.GaussianBlur(gray, (5, 5), 0))
            edges = scope.track(cv2.Canny(blurred, 50, 150))
            edges = scope.track(masks.intersect(edges, roi))
            candidates = self.extractor.extract(edges, "edge_contour")

        self._log_candidates("inspect", candidates)
        return InspectionResult.from_candidates(w, h, candidates)

    def inspect_diff(self, base_bytes: bytes, current_bytes: bytes) -> InspectionResult:
        """Compare a current photo against its base photo.

        Branch precedence is structural, then geometry, then plain diff.
        Alignment failures and failures inside the structural or geometry
        branch are logged and the comparison continues without them.

        Raises:
            DecodeError: If either input is not an image.
            QualityGateError: If either photo fails the quality gate.
        """
        p = self.profile
        base = self.loader.decode(base_bytes)
        current = self.loader.decode(current_bytes)
        self.quality_gate.ensure(base, "base image", p.diff_max_glare_ratio)
        self.quality_gate.ensure(current, "current image", p.diff_max_glare_ratio)

        width = min(base.shape[1], current.shape[1])
        height = min(base.shape[0], current.shape[0])
        base = self.loader.resize_to(base, width, height)
        current = self.loader.resize_to(current, width, height)

        with BufferScope("inspect_diff") as scope:
            base_mask = scope.track(self.segmenter.segment(base))
            current_mask = scope.track(self.segmenter.segment(current))
            current, current_mask = self._register(base, current, base_mask, current_mask)
            scope.track(current)
            scope.track(current_mask)

            base_gray = scope.track(cv2.cvtColor(base, cv2.COLOR_BGR2GRAY))
            current_gray = scope.track(cv2.cvtColor(current, cv2.COLOR_BGR2GRAY))
            overlap = scope.track(masks.intersect(base_mask, current_mask))
            roi = scope.track(self.segmenter.interior_mask(overlap))
            diff_mask = scope.track(self.differencer.diff(base_gray, current_gray, roi))

            context = DiffContext(
                width=width,
                height=height,
                diff_mask=diff_mask,
                roi_mask=roi,
                base_mask=base_mask,
                current_mask=current_mask,
            )
            branch, candidates = run_decision_steps(self.decision_steps, context)
            for evidence in (context.structural, context.geometry):
                if evidence is not None:
                    scope.track(evidence.mask)

        self._log_candidates(f"inspect_diff_{branch or 'none'}", candidates)
        return InspectionResult.from_candidates(width, height, candidates)

    def highlight(self, image_bytes: bytes, result: InspectionResult) -> bytes:
        """Draw 2 px green boxes around every defect and encode as JPEG.

        Boxes are rescaled when the decoded image is not the size the
        result refers to (e.g. the original of a downscaled photo).

        Raises:
            DecodeError: If the bytes are not an image.
        """
        image = self.loader.decode(image_bytes)
        h, w = image.shape[:2]
        boxes = drawing.scale_boxes(
            [(d.x, d.y, d.width, d.height) for d in result.defects],
            (result.image_width, result.image_height),
            (w, h),
        )
        return drawing.encode_jpeg(drawing.draw_boxes(image, boxes), self.jpeg_quality)

    def _register(
        self,
        base: np.ndarray,
        current: np.ndarray,
        base_mask: np.ndarray,
        current_mask: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Aligned current image and mask, or the unaligned pair."""
        if not self.profile.enable_registration:
            return current, current_mask

        try:
            aligned = self.aligner.align(base, current, base_mask, current_mask)
        except AlignmentError as e:
            logger.warning("detector.align failed, comparing unaligned: %s", e)
            return current, current_mask

        if aligned.score < self.profile.min_alignment_score:
            logger.warning(
                "detector.align score=%.4f below min=%.4f, comparing unaligned",
                aligned.score,
                self.profile.min_alignment_score,
            )
            return current, current_mask

        logger.info("detector.align score=%.4f refined=%s", aligned.score, aligned.refined)
        return aligned.image, aligned.mask

    def _structural_triggered(self, ctx: DiffContext) -> bool:
        try:
            ctx.structural = self.structural.detect(ctx.base_mask, ctx.current_mask)
        except (PreconditionError, cv2.error) as e:
            logger.warning("detector.structural failed, skipping branch: %s", e)
            ctx.structural = StructuralResult(triggered=False)
        return ctx.structural.triggered

    def _geometry_triggered(self, ctx: DiffContext) -> bool:
        try:
            ctx.geometry = self.geometry.detect(ctx.base_mask, ctx.current_mask)
        except (PreconditionError, cv2.error) as e:
            logger.warning("detector.geometry failed, skipping branch: %s", e)
            ctx.geometry = GeometryResult(triggered=False)
        return ctx.geometry.triggered

    def _structural_candidates(self, ctx: DiffContext) -> list[DefectCandidate]:
        structural_mask = ctx.structural.mask if ctx.structural else None
        candidates = self.extractor.extract(ctx.diff_mask, "diff_contour")
        before = len(candidates)
        candidates = self.structural.filter_by_overlap(candidates, structural_mask)
        after_overlap = len(candidates)
        candidates = self.structural.merge_nearby(candidates)
        after_merge = len(candidates)
        candidates = self.structural.keep_dominant(candidates)
        logger.info(
            "detector.diff broken_filter before_overlap=%d after_overlap=%d "
            "after_merge=%d after_dominant=%d",
            before,
            after_overlap,
            after_merge,
            len(candidates),
        )

        if not candidates:
            # Broken-off material lies outside the current part, so the ROI
            # (interior of the overlap) would erase it; use the mask unclipped.
            candidates = self.extractor.extract(structural_mask, "broken_structural_mask")
            candidates = self.structural.merge_nearby(candidates)
            candidates = self.structural.keep_dominant(candidates)
            logger.info(
                "detector.diff broken_fallback stage=broken_structural_mask count=%d",
                len(candidates),
            )
        return candidates

    def _geometry_candidates(self, ctx: DiffContext) -> list[DefectCandidate]:
        evidence = ctx.geometry.mask if ctx.geometry else None
        if evidence is not None and masks.count(ctx.roi_mask) > 0:
            inside = masks.intersect(evidence, ctx.roi_mask)
            if masks.count(inside) > 0:
                evidence = inside
        reason = ctx.geometry.reason if ctx.geometry else "geometry_mismatch"
        return self.extractor.union_candidate(evidence, reason)

    def _diff_candidates(self, ctx: DiffContext) -> list[DefectCandidate]:
        return self.extractor.extract(ctx.diff_mask, "diff_contour")

    @staticmethod
    def _log_candidates(stage: str, candidates: list[DefectCandidate]) -> None:
        logger.info("detector.result stage=%s count=%d", stage, len(candidates))
        for i, c in enumerate(candidates):
            logger.debug(
                "detector.defect stage=%s idx=%d box=(x=%d y=%d w=%d h=%d) area=%d reason=%s",
                stage,
                i,
                c.x,
                c.y,
                c.width,
                c.height,
                c.area,
                c.reason,
            )
