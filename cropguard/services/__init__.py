# =============================================================================
# CropGuard API
# services/__init__.py - Services Package
#
# Business logic: disease reference data, crop matching, image handling,
# the detection cascade and scan persistence.
# =============================================================================

from .disease_reference import DiseaseProfile, DiseaseReferenceStore
from .image_service import LocalImageStore, prepare_image
from .image_validator import ImageValidator
from .detection_service import DetectionOrchestrator, DetectionResult, build_orchestrator
from .scan_service import ScanRecordService
from .analysis_service import AnalysisService

__all__ = [
    'DiseaseProfile',
    'DiseaseReferenceStore',
    'LocalImageStore',
    'prepare_image',
    'ImageValidator',
    'DetectionOrchestrator',
    'DetectionResult',
    'build_orchestrator',
    'ScanRecordService',
    'AnalysisService'
]
