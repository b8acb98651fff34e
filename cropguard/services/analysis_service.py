# =============================================================================
# CropGuard API
# services/analysis_service.py - Detect & Persist Pipeline
#
# Validates an upload, gates it through plant and crop checks, runs the
# detection cascade, merges the result with the disease reference data and
# stores the scan. The whole request runs against one time budget.
# =============================================================================

import time
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from cropguard.constants import (
    ALLOWED_EXTENSIONS,
    ALLOWED_IMAGE_TYPES,
    DEFAULT_CROP_TYPE,
    IMAGE_JPEG_QUALITY,
    IMAGE_MAX_DIMENSION,
    MAX_IMAGE_BYTES,
    PLACEHOLDER_IMAGE_URL,
)
from cropguard.errors import (
    CropMismatchError,
    DetectionTimeoutError,
    NotAPlantError,
    PersistenceError,
)
from cropguard.services.crop_matcher import match_crop_types
from cropguard.services.image_service import ImageRef, check_upload, prepare_image

logger = logging.getLogger(__name__)


class AnalysisService:
    """
    The detect operation.

    Args:
        validator: ImageValidator
        orchestrator: DetectionOrchestrator
        reference_store: DiseaseReferenceStore
        scan_service: ScanRecordService
        image_store: Asset store with upload(data, name) -> ImageRef
        settings: Mapping with the image limits and DETECTION_TIME_BUDGET
    """

    def __init__(self, validator, orchestrator, reference_store, scan_service,
                 image_store=None, settings=None):
        self.validator = validator
        self.orchestrator = orchestrator
        self.reference_store = reference_store
        self.scan_service = scan_service
        self.image_store = image_store
        self.settings = dict(settings or {})

    @property
    def time_budget(self) -> float:
        return float(self.settings.get('DETECTION_TIME_BUDGET', 30))

    def _check_deadline(self, deadline: float, step: str):
        if time.monotonic() > deadline:
            logger.error(f"Detection time budget exceeded after {step}")
            raise DetectionTimeoutError()

    def _store_image(self, owner_id: str, data: bytes) -> ImageRef:
        if self.image_store is None:
            return ImageRef(PLACEHOLDER_IMAGE_URL)
        try:
            return self.image_store.upload(data, owner_id)
        except OSError as e:
            logger.error(f"Image upload failed, using placeholder: {e}")
            return ImageRef(PLACEHOLDER_IMAGE_URL)

    def analyze(
        self,
        owner_id: str,
        data: bytes,
        media_type: Optional[str] = None,
        filename: Optional[str] = None,
        crop_type: Optional[str] = None
    ) -> Dict:
        """
        Run detection on an uploaded image and persist the outcome.

        Returns:
            dict: Composite scan result; 'saved' is False when the write failed

        Raises:
            InputValidationError: Bad media type, size or undecodable image
            NotAPlantError: The validator rejected the image
            CropMismatchError: Declared and detected crops clearly differ
            ServiceConfigurationError: A provider rejected its credentials
            DiseaseNotFoundError: The detected disease is not in the reference store
            DetectionTimeoutError: The time budget was exceeded
        """
        deadline = time.monotonic() + self.time_budget
        crop_type = (crop_type or '').strip() or DEFAULT_CROP_TYPE

        # 1. Local validation before any external call
        check_upload(
            len(data or b''),
            media_type,
            filename,
            max_bytes=self.settings.get('MAX_IMAGE_BYTES', MAX_IMAGE_BYTES),
            allowed_types=self.settings.get('ALLOWED_IMAGE_TYPES', ALLOWED_IMAGE_TYPES),
            allowed_extensions=self.settings.get('ALLOWED_EXTENSIONS', ALLOWED_EXTENSIONS)
        )

        image = prepare_image(
            data,
            max_dimension=self.settings.get('IMAGE_MAX_DIMENSION', IMAGE_MAX_DIMENSION),
            quality=self.settings.get('IMAGE_JPEG_QUALITY', IMAGE_JPEG_QUALITY)
        )
        logger.info(f"Analyzing {crop_type} image for owner {owner_id} ({image.width}x{image.height})")

        # 2. Plant check
        validation = self.validator.validate(image)
        self._check_deadline(deadline, 'image validation')
        if not validation.is_plant:
            raise NotAPlantError(details={
                'reason': validation.error,
                'confidence': validation.confidence,
                'suggestions': validation.suggestions
            })

        # 3. Crop check
        verdict = match_crop_types(crop_type, validation.detected_crop)
        if not verdict.matches:
            logger.info(f"Crop mismatch: selected={verdict.selected_crop}, detected={verdict.detected_crop}")
            raise CropMismatchError(verdict)

        # 4. Detection cascade
        result = self.orchestrator.detect(image, crop_type, deadline=deadline)
        self._check_deadline(deadline, 'detection')

        # 5. Reference data
        profile = self.reference_store.require(result.disease)

        # 6. Image asset
        image_ref = self._store_image(owner_id, image.data)
        self._check_deadline(deadline, 'image upload')

        # 7. Persist, best effort
        scan_id, saved = None, False
        try:
            record = self.scan_service.create(owner_id, result, crop_type, image_ref)
            scan_id, saved = record.id, True
        except PersistenceError as e:
            logger.error(f"Scan not saved for owner {owner_id}: {e.__cause__ or e}")

        return {
            'scan_id': scan_id,
            'saved': saved,
            'disease': profile.name,
            'confidence': result.confidence,
            'severity': result.severity,
            'description': result.crop_analysis or profile.description,
            'symptoms_observed': list(result.symptoms),
            'recommendation': result.recommendation,
            'symptoms': list(profile.symptoms),
            'treatment': list(profile.treatment),
            'prevention': list(profile.prevention),
            'organic_treatment': list(profile.organic_treatment),
            'cost_estimate': profile.cost_estimate,
            'scientific_name': profile.scientific_name,
            'image_url': image_ref.url,
            'crop_type': crop_type,
            'crop_match': verdict.to_dict(),
            'source': result.source,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
