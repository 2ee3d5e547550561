"""
Part Visual Inspection Package.

This package finds surface and structural defects in photos of
manufactured parts with classical computer vision: quality gating, part
segmentation, registration, differencing, broken-part and shape-mismatch
detection.

Example:
    >>> from part_inspection import InspectionPipeline, PipelineConfig
    >>> pipeline = InspectionPipeline(PipelineConfig.from_settings())
    >>> pipeline.initialize()
    >>> result = pipeline.inspect_diff(base_bytes, current_bytes)
    >>> print(f"Defects: {result.defect_count}")
"""

__version__ = "0.1.0"

# Main pipeline
from .pipeline import (
    BasePhotoStore,
    InspectionOutput,
    InspectionPipeline,
    InspectionService,
    PipelineConfig,
)

# Models
from .models import (
    BaseDetector,
    DefectCandidate,
    DetectionProfile,
    InspectionResult,
    PartDefectDetector,
    ShapeFamily,
)

# Errors
from .errors import (
    AlignmentError,
    BasePhotoNotFoundError,
    ConfigurationError,
    DecodeError,
    ErrorKind,
    InspectionError,
    PreconditionError,
    QualityGateError,
    classify_error,
)

# Preprocessing
from .preprocessing import ImageLoader

# Visualization
from .visualization import ResultVisualizer

# Configuration
from .config import Settings, get_settings, setup_logging

__all__ = [
    # Pipeline
    "BasePhotoStore",
    "InspectionOutput",
    "InspectionPipeline",
    "InspectionService",
    "PipelineConfig",
    # Models
    "BaseDetector",
    "DefectCandidate",
    "DetectionProfile",
    "InspectionResult",
    "PartDefectDetector",
    "ShapeFamily",
    # Errors
    "AlignmentError",
    "BasePhotoNotFoundError",
    "ConfigurationError",
    "DecodeError",
    "ErrorKind",
    "InspectionError",
    "PreconditionError",
    "QualityGateError",
    "classify_error",
    # Preprocessing
    "ImageLoader",
    # Visualization
    "ResultVisualizer",
    # Configuration
    "Settings",
    "get_settings",
    "setup_logging",
]
