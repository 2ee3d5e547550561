"""
Detection profile: the frozen set of thresholds shared by every stage.
"""

from dataclasses import dataclass, fields
from typing import Optional

from ..config.settings import Settings, get_settings


@dataclass(frozen=True)
class DetectionProfile:
    """Immutable detection thresholds.

    One profile is built per detector and shared read-only by all stages
    of a call. Defaults match ``Settings``; use ``from_settings`` to pick up
    environment overrides.
    """

    # Candidate filtering
    min_area_ratio: float = 0.001
    min_aspect_ratio: float = 0.1
    max_aspect_ratio: float = 10.0
    min_contour_area_ratio: float = 0.00012
    min_fill_ratio: float = 0.08
    nms_iou_threshold: float = 0.30
    nms_containment_ratio: float = 0.80

    # Image size and quality gate
    max_side: int = 1024
    min_image_side: int = 400
    min_sharpness_edge_ratio: float = 0.008
    max_overexposed_ratio: float = 0.35
    max_underexposed_ratio: float = 0.45
    max_glare_ratio: float = 0.20
    diff_max_glare_ratio: float = 0.26
    blank_frame_ratio: float = 0.98
    relaxed_roi_ratio: float = 0.90
    relaxed_sharpness_factor: float = 0.35

    # Part segmentation
    min_part_area_ratio: float = 0.05
    part_secondary_area_ratio: float = 0.004
    part_secondary_rel_ratio: float = 0.04
    roi_margin_kernel: int = 9

    # Registration
    enable_registration: bool = True
    min_alignment_score: float = 0.25
    ecc_iterations: int = 80
    ecc_epsilon: float = 1e-4

    # Differencing
    diff_min_threshold: int = 22
    diff_open_kernel: int = 3
    diff_close_kernel: int = 7

    # Structural detection
    broken_min_component_ratio: float = 0.006
    broken_area_loss_ratio: float = 0.06
    broken_focus_expand: int = 49
    broken_min_overlap_ratio: float = 0.10
    broken_merge_distance: int = 48
    broken_split_kernel: int = 17
    broken_second_rel_min: float = 0.05
    broken_dominant_min_ratio: float = 0.50

    # Geometry mismatch
    enable_geometry_check: bool = True
    geometry_match_max_score: float = 0.10
    geometry_min_concavity: int = 8
    geometry_min_concavity_gap: int = 2
    geometry_polygon_vertex_gap: int = 2
    geometry_polygon_min_circularity: float = 0.55
    geometry_polygon_min_extent: float = 0.55
    geometry_round_min_circularity: float = 0.82
    geometry_round_max_circularity_gap: float = 0.10
    geometry_ring_kernel: int = 41

    def __post_init__(self) -> None:
        """Validate threshold ranges after initialization."""
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool):
                continue
            if value < 0:
                raise ValueError(f"{f.name} must be non-negative, got {value}")
            if f.name.endswith(("_ratio", "_factor")) and not f.name.endswith("aspect_ratio"):
                if value > 1:
                    raise ValueError(f"{f.name} must be between 0 and 1, got {value}")

        if self.min_aspect_ratio <= 0 or self.min_aspect_ratio > self.max_aspect_ratio:
            raise ValueError(
                "Aspect bounds must satisfy 0 < min_aspect_ratio <= max_aspect_ratio, "
                f"got {self.min_aspect_ratio}..{self.max_aspect_ratio}"
            )
        if self.max_side < self.min_image_side:
            raise ValueError(
                f"max_side ({self.max_side}) must not be below min_image_side ({self.min_image_side})"
            )
        if self.diff_min_threshold > 255:
            raise ValueError(f"diff_min_threshold must be at most 255, got {self.diff_min_threshold}")
        if self.ecc_iterations < 1:
            raise ValueError(f"ecc_iterations must be positive, got {self.ecc_iterations}")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DetectionProfile":
        """Create a profile from application settings.

        Args:
            settings: Settings instance. If None, uses default settings.

        Returns:
            DetectionProfile instance.
        """
        if settings is None:
            settings = get_settings()

        return cls(**{f.name: getattr(settings, f.name) for f in fields(cls)})
