"""
Inspection pipeline for part defect detection.

Provides the collaborator-facing facade over the detector: single-photo
inspection, base/current comparison, highlighting, file and batch helpers
and batch statistics.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ..config.settings import Settings, get_settings
from ..errors import ConfigurationError
from ..models.detector import BaseDetector, PartDefectDetector
from ..models.profile import DetectionProfile
from ..models.types import InspectionResult
from ..preprocessing.image_loader import ImageLoader

logger = logging.getLogger(__name__)

NOT_INITIALIZED = "Pipeline not initialized. Call initialize() first."


@dataclass
class PipelineConfig:
    """Configuration for the inspection pipeline.

    Attributes:
        profile: Detection thresholds.
        highlight_jpeg_quality: JPEG quality of highlighted images.
    """

    profile: DetectionProfile = field(default_factory=DetectionProfile)
    highlight_jpeg_quality: int = 90

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PipelineConfig":
        """Create config from application settings.

        Args:
            settings: Settings instance. If None, uses default settings.

        Returns:
            PipelineConfig instance.
        """
        if settings is None:
            settings = get_settings()

        return cls(
            profile=DetectionProfile.from_settings(settings),
            highlight_jpeg_quality=settings.highlight_jpeg_quality,
        )


class InspectionPipeline:
    """Integrated part inspection pipeline.

    Wraps a detector behind the three entry points used by callers:

    1. ``inspect`` - single photo, edge-based candidates
    2. ``inspect_diff`` - base/current comparison
    3. ``highlight`` - draw defect boxes for review

    Attributes:
        config: Pipeline configuration.
        detector: Detector instance.
        image_loader: Image loader used for file input.
        is_initialized: Whether pipeline is ready for inspection.

    Example:
        >>> pipeline = InspectionPipeline(PipelineConfig.from_settings())
        >>> pipeline.initialize()
        >>> result = pipeline.inspect_diff(base_bytes, current_bytes)
        >>> print(f"Defects: {result.defect_count}")
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        detector: Optional[BaseDetector] = None,
    ) -> None:
        """Initialize the inspection pipeline.

        Args:
            config: Pipeline configuration. Defaults to ``PipelineConfig()``.
            detector: Detector to use instead of building one in ``initialize``.
        """
        self.config = config or PipelineConfig()
        self._detector: Optional[BaseDetector] = detector
        self._image_loader: Optional[ImageLoader] = None
        self._is_initialized = False

    @property
    def is_initialized(self) -> bool:
        """Check if pipeline is initialized and ready."""
        return self._is_initialized

    @property
    def detector(self) -> BaseDetector:
        """Get the detector instance."""
        if self._detector is None or not self._is_initialized:
            raise ConfigurationError(NOT_INITIALIZED)
        return self._detector

    @property
    def image_loader(self) -> ImageLoader:
        """Get the image loader instance."""
        if self._image_loader is None:
            raise ConfigurationError(NOT_INITIALIZED)
        return self._image_loader

    def initialize(self) -> None:
        """Build the pipeline components.

        Must be called before using the inspect methods.
        """
        if self._detector is None:
            self._detector = PartDefectDetector(
                profile=self.config.profile,
                jpeg_quality=self.config.highlight_jpeg_quality,
            )
        self._image_loader = ImageLoader()
        self._is_initialized = True
        logger.info("pipeline.initialized detector=%s", type(self._detector).__name__)

    def inspect(self, image_bytes: bytes) -> InspectionResult:
        """Inspect a single encoded photo.

        Raises:
            ConfigurationError: If pipeline is not initialized.
            DecodeError: If the bytes are not an image.
            QualityGateError: If the photo fails the quality gate.
        """
        start_time = time.time()
        result = self.detector.inspect(image_bytes)
        self._log_timing("inspect", start_time, result)
        return result

    def inspect_diff(self, base_bytes: bytes, current_bytes: bytes) -> InspectionResult:
        """Compare an encoded current photo against an encoded base photo.

        Raises:
            ConfigurationError: If pipeline is not initialized.
            DecodeError: If either input is not an image.
            QualityGateError: If either photo fails the quality gate.
        """
        start_time = time.time()
        result = self.detector.inspect_diff(base_bytes, current_bytes)
        self._log_timing("inspect_diff", start_time, result)
        return result

    def highlight(self, image_bytes: bytes, result: InspectionResult) -> bytes:
        """Return a JPEG of the photo with the result's defects boxed."""
        return self.detector.highlight(image_bytes, result)

    def inspect_file(self, image_path: Union[str, Path]) -> InspectionResult:
        """Inspect a single image file.

        Raises:
            FileNotFoundError: If image file doesn't exist.
        """
        return self.inspect(self.image_loader.read_bytes(image_path))

    def inspect_diff_files(
        self,
        base_path: Union[str, Path],
        current_path: Union[str, Path],
    ) -> InspectionResult:
        """Compare two image files."""
        return self.inspect_diff(
            self.image_loader.read_bytes(base_path),
            self.image_loader.read_bytes(current_path),
        )

    def inspect_batch(
        self, image_paths: list[Union[str, Path]]
    ) -> list[InspectionResult]:
        """Inspect multiple image files.

        Args:
            image_paths: List of paths to image files.

        Returns:
            List of InspectionResult, one per image.
        """
        return [self.inspect_file(path) for path in image_paths]

    def get_statistics(self, results: list[InspectionResult]) -> dict:
        """Calculate statistics from multiple inspection results.

        Args:
            results: List of inspection results.

        Returns:
            Dictionary with totals, defect rate and defect counts per stage.
        """
        if not results:
            return {
                "total": 0,
                "defective": 0,
                "clean": 0,
                "defect_rate": 0.0,
                "total_defects": 0,
                "defects_by_stage": {},
            }

        total = len(results)
        defective = sum(1 for r in results if r.has_defects)
        stages = Counter(d.stage for r in results for d in r.defects)

        return {
            "total": total,
            "defective": defective,
            "clean": total - defective,
            "defect_rate": defective / total,
            "total_defects": sum(r.defect_count for r in results),
            "defects_by_stage": dict(stages),
        }

    @staticmethod
    def _log_timing(call: str, start_time: float, result: InspectionResult) -> None:
        logger.info(
            "pipeline.%s defects=%d size=%dx%d time_ms=%.1f",
            call,
            result.defect_count,
            result.image_width,
            result.image_height,
            (time.time() - start_time) * 1000,
        )
