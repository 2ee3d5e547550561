"""Pipeline module for the part inspection package."""

from .inspection_pipeline import InspectionPipeline, PipelineConfig
from .service import BasePhotoStore, DefectDescriber, InspectionOutput, InspectionService

__all__ = [
    "BasePhotoStore",
    "DefectDescriber",
    "InspectionOutput",
    "InspectionPipeline",
    "InspectionService",
    "PipelineConfig",
]
