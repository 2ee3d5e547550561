"""
Application settings using Pydantic Settings.

Provides centralized configuration management with environment variable support.
Every detection threshold can be overridden with an ``INSPECTION_`` prefixed
environment variable or a ``.env`` file.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Example: INSPECTION_MAX_SIDE=1600 INSPECTION_ENABLE_GEOMETRY_CHECK=false

    Attributes:
        log_level: Level used by ``setup_logging`` in scripts.
        highlight_jpeg_quality: JPEG quality of highlighted images.

    The remaining fields mirror ``DetectionProfile`` one to one.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INSPECTION_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level for scripts and services",
    )
    highlight_jpeg_quality: int = Field(
        default=90,
        ge=1,
        le=100,
        description="JPEG quality of highlighted output images",
    )

    # Candidate filtering
    min_area_ratio: float = Field(
        default=0.001, ge=0.0, le=1.0,
        description="Minimum box area as a fraction of the image",
    )
    min_aspect_ratio: float = Field(
        default=0.1, gt=0.0,
        description="Minimum box width/height ratio",
    )
    max_aspect_ratio: float = Field(
        default=10.0, gt=0.0,
        description="Maximum box width/height ratio",
    )
    min_contour_area_ratio: float = Field(
        default=0.00012, ge=0.0, le=1.0,
        description="Minimum contour area as a fraction of the image",
    )
    min_fill_ratio: float = Field(
        default=0.08, ge=0.0, le=1.0,
        description="Minimum contour area / box area",
    )
    nms_iou_threshold: float = Field(
        default=0.30, ge=0.0, le=1.0,
        description="IoU at which overlapping boxes are suppressed",
    )
    nms_containment_ratio: float = Field(
        default=0.80, ge=0.0, le=1.0,
        description="Containment at which nested boxes are suppressed",
    )

    # Image size and quality gate
    max_side: int = Field(
        default=1024, ge=64,
        description="Longest side after downscaling",
    )
    min_image_side: int = Field(
        default=400, ge=1,
        description="Minimum accepted image side",
    )
    min_sharpness_edge_ratio: float = Field(
        default=0.008, ge=0.0, le=1.0,
        description="Minimum Canny edge density inside the part",
    )
    max_overexposed_ratio: float = Field(
        default=0.35, ge=0.0, le=1.0,
        description="Maximum share of near-white pixels",
    )
    max_underexposed_ratio: float = Field(
        default=0.45, ge=0.0, le=1.0,
        description="Maximum share of near-black pixels",
    )
    max_glare_ratio: float = Field(
        default=0.20, ge=0.0, le=1.0,
        description="Maximum glare share for single-photo inspection",
    )
    diff_max_glare_ratio: float = Field(
        default=0.26, ge=0.0, le=1.0,
        description="Maximum glare share for base/current comparison",
    )
    blank_frame_ratio: float = Field(
        default=0.98, ge=0.0, le=1.0,
        description="Frame share of black or white pixels that marks a blank frame",
    )
    relaxed_roi_ratio: float = Field(
        default=0.90, ge=0.0, le=1.0,
        description="ROI coverage above which the relaxed gate applies",
    )
    relaxed_sharpness_factor: float = Field(
        default=0.35, ge=0.0, le=1.0,
        description="Sharpness floor multiplier in relaxed mode",
    )

    # Part segmentation
    min_part_area_ratio: float = Field(
        default=0.05, ge=0.0, le=1.0,
        description="Minimum primary part area; smaller falls back to full frame",
    )
    part_secondary_area_ratio: float = Field(
        default=0.004, ge=0.0, le=1.0,
        description="Secondary component floor as a fraction of the image",
    )
    part_secondary_rel_ratio: float = Field(
        default=0.04, ge=0.0, le=1.0,
        description="Secondary component floor as a fraction of the primary",
    )
    roi_margin_kernel: int = Field(
        default=9, ge=0,
        description="Erosion kernel for the interior ROI",
    )

    # Registration
    enable_registration: bool = Field(
        default=True,
        description="Align the current photo to the base photo",
    )
    min_alignment_score: float = Field(
        default=0.25, ge=0.0, le=1.0,
        description="Minimum mask IoU to accept an alignment",
    )
    ecc_iterations: int = Field(
        default=80, ge=1,
        description="ECC refinement iterations",
    )
    ecc_epsilon: float = Field(
        default=1e-4, gt=0.0,
        description="ECC convergence epsilon",
    )

    # Differencing
    diff_min_threshold: int = Field(
        default=22, ge=0, le=255,
        description="Floor for the Otsu difference threshold",
    )
    diff_open_kernel: int = Field(
        default=3, ge=0,
        description="Opening kernel for the difference mask",
    )
    diff_close_kernel: int = Field(
        default=7, ge=0,
        description="Closing kernel for the difference mask",
    )

    # Structural (broken part) detection
    broken_min_component_ratio: float = Field(
        default=0.006, ge=0.0, le=1.0,
        description="Minimum significant component area",
    )
    broken_area_loss_ratio: float = Field(
        default=0.06, ge=0.0, le=1.0,
        description="Relative part area loss that marks a broken part",
    )
    broken_focus_expand: int = Field(
        default=49, ge=0,
        description="Expansion around split-off components",
    )
    broken_min_overlap_ratio: float = Field(
        default=0.10, ge=0.0, le=1.0,
        description="Minimum structural-mask coverage of a candidate box",
    )
    broken_merge_distance: int = Field(
        default=48, ge=0,
        description="Gap below which structural candidates are merged",
    )
    broken_split_kernel: int = Field(
        default=17, ge=0,
        description="Erosion kernel for separating touching fragments",
    )
    broken_second_rel_min: float = Field(
        default=0.05, ge=0.0, le=1.0,
        description="Second/first component area ratio for a split",
    )
    broken_dominant_min_ratio: float = Field(
        default=0.50, ge=0.0, le=1.0,
        description="Area ratio to the largest candidate to keep",
    )

    # Geometry mismatch
    enable_geometry_check: bool = Field(
        default=True,
        description="Compare outline shapes of base and current",
    )
    geometry_match_max_score: float = Field(
        default=0.10, ge=0.0,
        description="matchShapes score above which toothed shapes differ",
    )
    geometry_min_concavity: int = Field(
        default=8, ge=0,
        description="Concavity count that marks a toothed outline",
    )
    geometry_min_concavity_gap: int = Field(
        default=2, ge=0,
        description="Concavity difference that marks lost teeth",
    )
    geometry_polygon_vertex_gap: int = Field(
        default=2, ge=0,
        description="Vertex difference that marks a changed polygon",
    )
    geometry_polygon_min_circularity: float = Field(
        default=0.55, ge=0.0, le=1.0,
        description="Minimum circularity of a polygon outline",
    )
    geometry_polygon_min_extent: float = Field(
        default=0.55, ge=0.0, le=1.0,
        description="Minimum extent of a polygon outline",
    )
    geometry_round_min_circularity: float = Field(
        default=0.82, ge=0.0, le=1.0,
        description="Minimum circularity of a round outline",
    )
    geometry_round_max_circularity_gap: float = Field(
        default=0.10, ge=0.0, le=1.0,
        description="Circularity drop that marks a damaged round outline",
    )
    geometry_ring_kernel: int = Field(
        default=41, ge=0,
        description="Width of the outline ring searched for shape changes",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to ensure only one Settings instance is created.

    Returns:
        Settings instance.
    """
    return Settings()
