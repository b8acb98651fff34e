# =============================================================================
# CropGuard API
# services/image_validator.py - Plant Image Validation
#
# Asks a vision model whether an upload depicts a plant, crop, fruit or
# vegetable before disease detection runs. Validation fails open: when the
# model cannot be reached or answers garbage, the image is accepted.
# =============================================================================

import logging
from typing import List, Optional

from cropguard.constants import (
    NOT_A_PLANT_SUGGESTIONS,
    PLANT_CONFIDENCE_THRESHOLD,
    VALIDATOR_FALLBACK_CONFIDENCE,
)
from cropguard.errors import ProviderError
from cropguard.services.crop_matcher import normalize_crop_name
from cropguard.utils import parse_json_reply, snippet

logger = logging.getLogger(__name__)

FAIL_OPEN_MESSAGE = 'Could not validate image - proceeding with analysis'

VALIDATION_PROMPT = """Analyze this image and determine if it shows a plant, crop, fruit, or vegetable.

Respond ONLY with a JSON object in this exact format:
{
  "isPlant": true or false,
  "cropType": "specific crop name if identifiable (e.g., Tomato, Apple, Rice), or null",
  "confidence": number between 0-100,
  "reasoning": "brief explanation"
}

Rules:
- isPlant should be true ONLY if the image clearly shows plants, crops, fruits, vegetables, leaves or agricultural produce
- isPlant should be false for people, animals, buildings, vehicles, electronics or other non-plant objects
- If it is a plant, try to identify the specific crop type
- Be strict: only return true if you are confident it is plant-related"""


class ImageValidationResult:
    """Outcome of plant-ness validation."""

    __slots__ = ('is_plant', 'detected_crop', 'confidence', 'error', 'suggestions')

    def __init__(
        self,
        is_plant: bool,
        detected_crop: Optional[str] = None,
        confidence: float = 0,
        error: Optional[str] = None,
        suggestions: Optional[List[str]] = None
    ):
        self.is_plant = is_plant
        self.detected_crop = detected_crop
        self.confidence = confidence
        self.error = error
        self.suggestions = suggestions or []

    @classmethod
    def fail_open(cls, reason: str = FAIL_OPEN_MESSAGE) -> 'ImageValidationResult':
        return cls(
            is_plant=True,
            detected_crop=None,
            confidence=VALIDATOR_FALLBACK_CONFIDENCE,
            error=reason
        )

    def to_dict(self):
        return {
            'is_plant': self.is_plant,
            'detected_crop': self.detected_crop,
            'confidence': self.confidence,
            'error': self.error,
            'suggestions': list(self.suggestions)
        }

    def __repr__(self):
        return (
            f'<ImageValidationResult is_plant={self.is_plant} '
            f'crop={self.detected_crop!r} confidence={self.confidence}>'
        )


class ImageValidator:
    """
    Decide whether an image depicts a plant.

    Args:
        client: Vision chat client exposing complete(prompt, image_data_url),
                or None to skip validation
        threshold: Minimum confidence (0-100, exclusive) to accept a plant
    """

    def __init__(self, client=None, threshold: float = PLANT_CONFIDENCE_THRESHOLD):
        self.client = client
        self.threshold = threshold

    def validate(self, image) -> ImageValidationResult:
        """
        Validate a prepared image.

        Args:
            image: PreparedImage

        Returns:
            ImageValidationResult: Never raises for provider problems
        """
        if self.client is None:
            logger.debug("No validation client configured, accepting image")
            return ImageValidationResult.fail_open()

        try:
            reply = self.client.complete(
                VALIDATION_PROMPT,
                image.data_url,
                max_tokens=256,
                temperature=0.1
            )
        except ProviderError as e:
            logger.warning(f"[validator] provider={e.provider} failed: {e} raw={snippet(e.raw)}")
            return ImageValidationResult.fail_open()

        try:
            data = parse_json_reply(reply)
            confidence = float(data.get('confidence', 0))
        except (ValueError, TypeError) as e:
            logger.warning(f"[validator] unparseable reply ({e}): {snippet(reply)}")
            return ImageValidationResult.fail_open()

        is_plant = data.get('isPlant') is True and confidence > self.threshold

        crop = data.get('cropType')
        detected_crop = normalize_crop_name(crop) if isinstance(crop, str) and crop.strip() else None

        if not is_plant:
            logger.info(f"[validator] rejected image (confidence={confidence}): {snippet(data.get('reasoning'))}")
            return ImageValidationResult(
                is_plant=False,
                detected_crop=detected_crop,
                confidence=confidence,
                error=data.get('reasoning') or 'Image does not appear to show a plant',
                suggestions=list(NOT_A_PLANT_SUGGESTIONS)
            )

        return ImageValidationResult(
            is_plant=True,
            detected_crop=detected_crop,
            confidence=confidence
        )
