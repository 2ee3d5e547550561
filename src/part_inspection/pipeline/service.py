"""
Inspection service for conversational front ends.

Keeps the last base photo each user submitted, compares later photos
against it and bundles the result with a highlighted image and an
optional text description.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Hashable, Optional, Protocol

from ..errors import BasePhotoNotFoundError, ConfigurationError, InspectionError
from ..models.detector import BaseDetector
from ..models.types import InspectionResult

logger = logging.getLogger(__name__)


class DefectDescriber(Protocol):
    """Turns an inspection result into a human-readable description."""

    def describe(self, result: InspectionResult) -> str:
        ...


@dataclass
class InspectionOutput:
    """What the service hands back to the front end.

    Attributes:
        result: Inspection result.
        highlighted: JPEG with defect boxes, only when defects were found.
        description: Text from the describer, when one is configured and
            it succeeded.
    """

    result: InspectionResult
    highlighted: Optional[bytes] = field(default=None, repr=False)
    description: Optional[str] = None


class BasePhotoStore:
    """Thread-safe map from user to their last submitted base photo."""

    def __init__(self) -> None:
        self._photos: dict[Hashable, bytes] = {}
        self._lock = threading.Lock()

    def put(self, user_id: Hashable, photo: bytes) -> None:
        with self._lock:
            self._photos[user_id] = photo

    def get(self, user_id: Hashable) -> Optional[bytes]:
        with self._lock:
            return self._photos.get(user_id)

    def discard(self, user_id: Hashable) -> None:
        with self._lock:
            self._photos.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._photos)


class InspectionService:
    """Base-photo workflow on top of a detector.

    Attributes:
        detector: Detector used for inspection; None leaves the service
            unconfigured and every processing call fails.
        describer: Optional result describer.
        store: Per-user base photo store.

    Example:
        >>> service = InspectionService(PartDefectDetector())
        >>> service.accept_base_photo(user_id=42, photo=base_bytes)
        >>> output = service.process_current_photo(user_id=42, photo=current_bytes)
        >>> output.result.has_defects
        True
    """

    def __init__(
        self,
        detector: Optional[BaseDetector],
        describer: Optional[DefectDescriber] = None,
        store: Optional[BasePhotoStore] = None,
    ) -> None:
        self.detector = detector
        self.describer = describer
        self.store = store or BasePhotoStore()

    def accept_base_photo(self, user_id: Hashable, photo: bytes) -> None:
        """Remember a user's base photo, replacing any earlier one."""
        if not photo:
            raise ValueError("base photo must not be empty")
        self.store.put(user_id, photo)
        logger.info("service.base_photo user=%s bytes=%d", user_id, len(photo))

    def process_current_photo(self, user_id: Hashable, photo: bytes) -> InspectionOutput:
        """Compare a current photo with the user's stored base photo.

        Raises:
            ConfigurationError: If no detector is configured.
            BasePhotoNotFoundError: If the user has no base photo.
            DecodeError: If either photo is not an image.
            QualityGateError: If either photo fails the quality gate.
        """
        detector = self._require_detector()
        base = self.store.get(user_id)
        if not base:
            raise BasePhotoNotFoundError("original photo is not found")

        result = detector.inspect_diff(base, photo)
        return self._build_output(detector, photo, result)

    def process_single_photo(self, photo: bytes) -> InspectionOutput:
        """Inspect one photo without a base photo.

        Raises:
            ConfigurationError: If no detector is configured.
            DecodeError: If the photo is not an image.
            QualityGateError: If the photo fails the quality gate.
        """
        detector = self._require_detector()
        result = detector.inspect(photo)
        return self._build_output(detector, photo, result)

    def _require_detector(self) -> BaseDetector:
        if self.detector is None:
            raise ConfigurationError("detector is not configured")
        return self.detector

    def _build_output(
        self,
        detector: BaseDetector,
        photo: bytes,
        result: InspectionResult,
    ) -> InspectionOutput:
        highlighted = None
        if result.has_defects:
            try:
                highlighted = detector.highlight(photo, result)
            except InspectionError as e:
                logger.warning("service.highlight failed: %s", e)

        description = None
        if self.describer is not None:
            try:
                description = self.describer.describe(result)
            except Exception as e:
                logger.warning("service.describe failed: %s", e)

        return InspectionOutput(result=result, highlighted=highlighted, description=description)
