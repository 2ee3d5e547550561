"""Detection stages and data types for the part inspection package."""

from .aligner import Aligner
from .candidates import CandidateExtractor
from .detector import BaseDetector, PartDefectDetector
from .differencer import Differencer
from .geometry import GeometryDetector, classify_shape
from .profile import DetectionProfile
from .quality import QualityGate
from .segmenter import PartSegmenter
from .structural import StructuralDetector
from .types import (
    AlignmentResult,
    DefectCandidate,
    GeometryResult,
    InspectionResult,
    QualityReport,
    ShapeDescriptor,
    ShapeFamily,
    StructuralResult,
)

__all__ = [
    "Aligner",
    "AlignmentResult",
    "BaseDetector",
    "CandidateExtractor",
    "DefectCandidate",
    "DetectionProfile",
    "Differencer",
    "GeometryDetector",
    "GeometryResult",
    "InspectionResult",
    "PartDefectDetector",
    "PartSegmenter",
    "QualityGate",
    "QualityReport",
    "ShapeDescriptor",
    "ShapeFamily",
    "StructuralDetector",
    "StructuralResult",
    "classify_shape",
]
