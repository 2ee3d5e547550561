"""
Data types for the part inspection package.

Defines the candidate and result records returned to callers, together
with the intermediate records passed between detection stages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class ShapeFamily(Enum):
    """Coarse outline family of a part silhouette.

    Attributes:
        ROUND: Near-circular outline (washers, discs).
        POLYGON: Few straight sides (nuts, plates).
        TOOTHED: Many concavities (gears, sprockets).
        UNKNOWN: None of the above.
    """

    ROUND = "round"
    POLYGON = "polygon"
    TOOTHED = "toothed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DefectCandidate:
    """Axis-aligned box around a suspected defect.

    The area is always the bounding-box area; true contour area is only
    used while filtering and is recorded in the reason string.

    Attributes:
        x: Left edge in pixels.
        y: Top edge in pixels.
        width: Box width in pixels.
        height: Box height in pixels.
        area: Box area (width * height).
        reason: Stage tag followed by diagnostic key=value pairs.
    """

    x: int
    y: int
    width: int
    height: int
    area: int
    reason: str

    def __post_init__(self) -> None:
        """Validate box geometry after initialization."""
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Box size must be non-negative, got {self.width}x{self.height}"
            )
        if self.area != self.width * self.height:
            raise ValueError(
                f"Area must equal width * height, got {self.area} "
                f"for {self.width}x{self.height}"
            )

    @classmethod
    def from_box(cls, x: int, y: int, width: int, height: int, reason: str) -> "DefectCandidate":
        """Build a candidate, deriving the area from the box size."""
        return cls(
            x=int(x),
            y=int(y),
            width=int(width),
            height=int(height),
            area=int(width) * int(height),
            reason=reason,
        )

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> tuple[int, int]:
        """Calculate box center.

        Returns:
            Center coordinates (cx, cy).
        """
        return (self.x + self.width // 2, self.y + self.height // 2)

    @property
    def stage(self) -> str:
        """Stage tag that produced this candidate (first token of reason)."""
        if not self.reason:
            return ""
        return self.reason.split()[0]

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "area": self.area,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class InspectionResult:
    """Result of one inspection call.

    Attributes:
        image_width: Width of the frame the boxes refer to.
        image_height: Height of the frame the boxes refer to.
        defects: Surviving defect candidates.
        has_defects: True exactly when defects is non-empty.
    """

    image_width: int
    image_height: int
    defects: tuple[DefectCandidate, ...] = ()
    has_defects: bool = False

    def __post_init__(self) -> None:
        """Validate the result after initialization."""
        # Lists are accepted and frozen into a tuple.
        if not isinstance(self.defects, tuple):
            object.__setattr__(self, "defects", tuple(self.defects))
        if self.image_width <= 0 or self.image_height <= 0:
            raise ValueError(
                f"Image size must be positive, got {self.image_width}x{self.image_height}"
            )
        if self.has_defects != bool(self.defects):
            raise ValueError("has_defects must be True exactly when defects is non-empty")

    @classmethod
    def from_candidates(
        cls, width: int, height: int, candidates: list[DefectCandidate]
    ) -> "InspectionResult":
        """Build a result, deriving has_defects from the candidate list."""
        return cls(
            image_width=width,
            image_height=height,
            defects=tuple(candidates),
            has_defects=bool(candidates),
        )

    @property
    def defect_count(self) -> int:
        """Get total number of detected defects."""
        return len(self.defects)

    def get_defects_by_stage(self, stage: str) -> list[DefectCandidate]:
        """Filter defects by the stage tag that produced them.

        Args:
            stage: Stage tag, e.g. "diff_contour" or "geometry_mismatch".

        Returns:
            Defects whose reason starts with the tag.
        """
        return [d for d in self.defects if d.stage == stage]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "image_width": self.image_width,
            "image_height": self.image_height,
            "has_defects": self.has_defects,
            "defect_count": self.defect_count,
            "defects": [d.to_dict() for d in self.defects],
        }


@dataclass(frozen=True)
class ShapeDescriptor:
    """Outline descriptors of the largest contour of a part mask."""

    family: ShapeFamily
    concavity_count: int
    vertex_count: int
    circularity: float
    extent: float
    area: float
    perimeter: float


@dataclass
class QualityReport:
    """Outcome of a quality check.

    Attributes:
        passed: Whether the photo is usable.
        reason: Failure reason, empty when passed.
        relaxed: Whether the relaxed gate was applied.
        metrics: Measured ratios keyed by name.
    """

    passed: bool
    reason: str = ""
    relaxed: bool = False
    metrics: dict[str, float] = field(default_factory=dict)


@dataclass
class AlignmentResult:
    """Current image and mask registered into the base frame.

    Attributes:
        image: Aligned current image.
        mask: Aligned current part mask.
        score: IoU of the aligned mask against the base mask.
        refined: Whether ECC refinement improved on the coarse estimate.
    """

    image: np.ndarray = field(repr=False)
    mask: np.ndarray = field(repr=False)
    score: float
    refined: bool = False


@dataclass
class StructuralResult:
    """Outcome of the broken-part check."""

    triggered: bool
    mask: Optional[np.ndarray] = field(default=None, repr=False)
    split: bool = False
    area_loss: float = 0.0


@dataclass
class GeometryResult:
    """Outcome of the shape-mismatch check."""

    triggered: bool
    mask: Optional[np.ndarray] = field(default=None, repr=False)
    reason: str = ""
    rule: str = ""
