# =============================================================================
# CropGuard API
# services/detection_service.py - Disease Detection Cascade
#
# Drives a sequential fallback cascade across classifiers (hosted vision
# model -> hosted label classifier -> offline heuristic) and normalizes every
# provider's response into one canonical DetectionResult.
# =============================================================================

import time
import math
import random
import logging
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cropguard.constants import (
    DEFAULT_SEVERITY,
    HEALTHY_PLANT,
    OFFLINE_CONFIDENCE_JITTER,
    RAW_SNIPPET_LENGTH,
    SEVERITY_LEVELS,
)
from cropguard.errors import (
    DetectionTimeoutError,
    ProviderError,
    ProviderResponseError,
    ServiceConfigurationError,
    StageError,
)
from cropguard.services.crop_matcher import normalize_crop_name
from cropguard.services.vision_clients import GroqVisionClient, HuggingFaceClassifierClient
from cropguard.utils import parse_json_reply, snippet

logger = logging.getLogger(__name__)

_SEVERITY_LOOKUP = {level.lower(): level for level in SEVERITY_LEVELS}


# =============================================================================
# Canonical Result
# =============================================================================

class DetectionResult(BaseModel):
    """
    Canonical detection outcome, whichever stage produced it.

    Confidence is always in [0, 1]; values above 1 are read as percentages.
    Severity is always one of SEVERITY_LEVELS; anything else becomes Moderate.
    """
    model_config = ConfigDict(frozen=True)

    disease: str = Field(min_length=1)
    confidence: float
    severity: str = DEFAULT_SEVERITY
    symptoms: Tuple[str, ...] = ()
    recommendation: str = ''
    crop_analysis: Optional[str] = None
    detected_crop: Optional[str] = None
    source: str = 'unknown'

    @field_validator('disease', mode='before')
    @classmethod
    def _clean_disease(cls, value):
        if not isinstance(value, str):
            raise ValueError('disease must be a string')
        return value.strip().strip('`').strip()

    @field_validator('confidence', mode='before')
    @classmethod
    def _normalize_confidence(cls, value):
        if isinstance(value, bool):
            raise ValueError('confidence must be numeric')
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError('confidence must be numeric')
        if math.isnan(number):
            raise ValueError('confidence must be numeric')

        if number > 1:
            number = number / 100
        return min(max(number, 0.0), 1.0)

    @field_validator('severity', mode='before')
    @classmethod
    def _normalize_severity(cls, value):
        if isinstance(value, str):
            return _SEVERITY_LOOKUP.get(value.strip().lower(), DEFAULT_SEVERITY)
        return DEFAULT_SEVERITY

    def to_dict(self):
        data = self.model_dump()
        data['symptoms'] = list(data['symptoms'])
        return data


# =============================================================================
# Raw Provider Variants & Adapters
# =============================================================================

class VisionDiagnosisPayload(BaseModel):
    """JSON object the vision model is instructed to return."""
    model_config = ConfigDict(extra='ignore')

    disease_detected: str = Field(min_length=1)
    confidence: Any
    severity: Any = None
    symptoms_observed: List[str] = []
    recommendation: str = ''
    crop_analysis: Optional[str] = None
    detected_crop: Optional[str] = None


class VisionCompletion:
    """Free-text reply of a chat-completions vision model."""

    __slots__ = ('text',)

    def __init__(self, text: str):
        self.text = text


class LabelPredictions:
    """Label/score list of an image-classification model."""

    __slots__ = ('predictions',)

    def __init__(self, predictions: List[dict]):
        self.predictions = predictions


class OfflineCandidate:
    """One entry of the offline heuristic's candidate list."""

    __slots__ = ('disease', 'confidence', 'severity')

    def __init__(self, disease: str, confidence: float, severity: str):
        self.disease = disease
        self.confidence = confidence
        self.severity = severity

    def __repr__(self):
        return f'<OfflineCandidate {self.disease} {self.confidence:.2f} {self.severity}>'


def adapt_vision_completion(completion: VisionCompletion, source: str = 'vision_model') -> DetectionResult:
    """
    Parse a vision model reply into a DetectionResult.

    Raises:
        ValueError: Reply is not JSON or does not match the expected schema
    """
    payload = VisionDiagnosisPayload.model_validate(parse_json_reply(completion.text))
    return DetectionResult(
        disease=payload.disease_detected,
        confidence=payload.confidence,
        severity=payload.severity,
        symptoms=tuple(payload.symptoms_observed),
        recommendation=payload.recommendation,
        crop_analysis=payload.crop_analysis,
        detected_crop=payload.detected_crop,
        source=source
    )


# Substring -> canonical disease name. Specific keys come before general ones
# so that 'late_blight' is not captured by 'blight'.
LABEL_SYNONYMS: List[Tuple[str, str]] = [
    ('healthy', HEALTHY_PLANT),
    ('late_blight', 'Late Blight'),
    ('late blight', 'Late Blight'),
    ('early_blight', 'Early Blight'),
    ('early blight', 'Early Blight'),
    ('yellow_leaf_curl', 'Yellow Leaf Curl Virus'),
    ('leaf_curl', 'Yellow Leaf Curl Virus'),
    ('curl', 'Yellow Leaf Curl Virus'),
    ('septoria', 'Septoria Leaf Spot'),
    ('bacterial', 'Bacterial Spot'),
    ('mosaic', 'Mosaic Virus'),
    ('powdery', 'Powdery Mildew'),
    ('mildew', 'Powdery Mildew'),
    ('target', 'Target Spot'),
    ('mold', 'Leaf Mold'),
    ('blight', 'Early Blight'),
    ('spot', 'Target Spot'),
]

LABEL_SYMPTOMS = [
    ('healthy', ['No visible symptoms', 'Healthy green color', 'Normal growth pattern']),
    ('blight', ['Dark spots on leaves', 'Water-soaked lesions', 'Yellowing around spots']),
    ('bacterial', ['Small dark lesions', 'Yellow halos around spots', 'Leaf distortion']),
    ('mosaic', ['Mottled yellow and green patterns', 'Leaf curling', 'Stunted growth']),
    ('powdery', ['White powdery coating', 'Yellowing leaves', 'Distorted growth']),
    ('septoria', ['Small circular spots', 'Gray centers with dark borders', 'Yellowing leaves']),
]
DEFAULT_SYMPTOMS = ['Various symptoms observed', 'Requires closer inspection']

LABEL_RECOMMENDATIONS = [
    ('healthy', 'Continue current care routine and monitor regularly'),
    ('blight', 'Apply copper-based fungicide and improve air circulation'),
    ('bacterial', 'Use bactericide spray and remove infected plant material'),
    ('mosaic', 'Remove infected plants and control aphid vectors'),
    ('powdery', 'Apply sulfur-based fungicide and ensure proper spacing'),
    ('septoria', 'Apply fungicide and remove lower infected leaves'),
]
DEFAULT_RECOMMENDATION = 'Consult with a plant pathologist for proper diagnosis and treatment'


def map_label_to_disease(label: str) -> str:
    """Map a classifier label onto a canonical disease name."""
    lowered = label.lower()
    for key, disease in LABEL_SYNONYMS:
        if key in lowered:
            return disease

    words = [word for word in lowered.replace('_', ' ').split() if word]
    return ' '.join(word.capitalize() for word in words)


def severity_from_score(score: float) -> str:
    if score < 0.3:
        return 'None'
    if score < 0.5:
        return 'Mild'
    if score < 0.8:
        return 'Moderate'
    return 'Severe'


def _keyword_lookup(label: str, table, default):
    lowered = label.lower()
    for key, value in table:
        if key in lowered:
            return value
    return default


def adapt_label_predictions(raw: LabelPredictions, source: str = 'label_classifier') -> DetectionResult:
    """
    Turn classifier predictions into a DetectionResult using the top score.

    Raises:
        ValueError: No usable prediction
    """
    scored = [
        p for p in raw.predictions
        if isinstance(p, dict) and isinstance(p.get('label'), str)
        and isinstance(p.get('score'), (int, float)) and not isinstance(p.get('score'), bool)
    ]
    if not scored:
        raise ValueError('No usable label predictions')

    top = max(scored, key=lambda p: p['score'])
    label, score = top['label'], float(top['score'])
    disease = map_label_to_disease(label)
    if not disease:
        raise ValueError(f'Unusable label: {label!r}')

    keyword_source = f"{label} {disease}"
    return DetectionResult(
        disease=disease,
        confidence=score,
        severity=severity_from_score(score),
        symptoms=tuple(_keyword_lookup(keyword_source, LABEL_SYMPTOMS, DEFAULT_SYMPTOMS)),
        recommendation=_keyword_lookup(keyword_source, LABEL_RECOMMENDATIONS, DEFAULT_RECOMMENDATION),
        source=source
    )


def adapt_offline_candidate(candidate: OfflineCandidate, reference_store, source: str = 'offline') -> DetectionResult:
    """Build a DetectionResult from an offline candidate and its reference profile."""
    profile = reference_store.lookup(candidate.disease)
    symptoms = tuple(profile.symptoms[:3]) if profile else tuple(DEFAULT_SYMPTOMS)
    recommendation = profile.treatment[0] if profile and profile.treatment else DEFAULT_RECOMMENDATION

    return DetectionResult(
        disease=candidate.disease,
        confidence=candidate.confidence,
        severity=candidate.severity,
        symptoms=symptoms,
        recommendation=recommendation,
        crop_analysis='Offline estimate - remote classifiers were unavailable',
        source=source
    )


# =============================================================================
# Stages
# =============================================================================

class DetectionStage:
    """
    One step of the cascade.

    Subclasses implement _run(image, crop_type). Calling the stage wraps
    provider and parse failures in StageError; configuration errors pass
    through untouched.
    """

    name = 'stage'
    provider = None
    offline = False

    def __call__(self, image, crop_type: str) -> DetectionResult:
        try:
            return self._run(image, crop_type)
        except ServiceConfigurationError:
            raise
        except ProviderError as e:
            raise StageError(self.name, str(e), provider=e.provider or self.provider, raw=e.raw) from e
        except ValueError as e:
            raise StageError(self.name, f'Invalid response: {e}', provider=self.provider) from e

    def _run(self, image, crop_type: str) -> DetectionResult:
        raise NotImplementedError

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.name}>'


DIAGNOSIS_PROMPT = """You are an expert plant pathologist. The user says this image shows a {crop_type} plant.

1. Confirm or correct the crop shown in the image.
2. Diagnose the plant using ONLY one of these disease names:
{disease_list}

CRITICAL: Respond ONLY with valid JSON. No markdown, no explanation, no additional text.

{{
  "disease_detected": "exact disease name from the list above or '{healthy}'",
  "confidence": 0.95,
  "severity": "None|Mild|Moderate|Severe",
  "symptoms_observed": ["specific symptom 1", "symptom 2"],
  "recommendation": "brief treatment advice in 1 sentence",
  "detected_crop": "crop shown in the image",
  "crop_analysis": "one sentence about the crop and its overall condition"
}}

Analysis criteria:
- Look for leaf discoloration, spots, mold, curling, lesions and overall health
- If no clear disease symptoms are visible, classify as "{healthy}"
- Confidence should reflect certainty of diagnosis (0.0 to 1.0)
- Severity: None (healthy), Mild (early stage), Moderate (noticeable), Severe (advanced)"""


class VisionModelStage(DetectionStage):
    """Primary stage: hosted vision model prompted with the disease allow-list."""

    name = 'vision_model'

    def __init__(self, client, reference_store):
        self.client = client
        self.reference_store = reference_store
        self.provider = getattr(client, 'provider', 'vision')

    def build_prompt(self, crop_type: str) -> str:
        disease_list = '\n'.join(f"- {name}" for name in self.reference_store.names())
        return DIAGNOSIS_PROMPT.format(
            crop_type=crop_type,
            disease_list=disease_list,
            healthy=HEALTHY_PLANT
        )

    def _run(self, image, crop_type):
        reply = self.client.complete(self.build_prompt(crop_type), image.data_url)
        try:
            return adapt_vision_completion(VisionCompletion(reply), source=self.name)
        except ValueError as e:
            raise ProviderResponseError(
                f'Invalid diagnosis reply: {e}',
                provider=self.provider,
                raw=snippet(reply, RAW_SNIPPET_LENGTH)
            ) from e


class LabelClassifierStage(DetectionStage):
    """Secondary stage: hosted image-classification model."""

    name = 'label_classifier'

    def __init__(self, client):
        self.client = client
        self.provider = getattr(client, 'provider', 'classifier')

    def _run(self, image, crop_type):
        predictions = self.client.classify(image.data)
        try:
            return adapt_label_predictions(LabelPredictions(predictions), source=self.name)
        except ValueError as e:
            raise ProviderResponseError(
                f'Invalid predictions: {e}',
                provider=self.provider,
                raw=snippet(predictions, RAW_SNIPPET_LENGTH)
            ) from e


# Crop -> (disease, baseline confidence, severity)
OFFLINE_CANDIDATES = {
    'Tomato': [
        ('Early Blight', 0.78, 'Moderate'),
        ('Late Blight', 0.74, 'Severe'),
        ('Septoria Leaf Spot', 0.72, 'Mild'),
        ('Bacterial Spot', 0.70, 'Moderate'),
        (HEALTHY_PLANT, 0.80, 'None'),
    ],
}
DEFAULT_OFFLINE_CANDIDATES = [
    ('Powdery Mildew', 0.68, 'Mild'),
    ('Early Blight', 0.70, 'Moderate'),
    (HEALTHY_PLANT, 0.75, 'None'),
]


class OfflineHeuristicStage(DetectionStage):
    """
    Last-resort stage that needs no network.

    Picks a crop-specific candidate at random and perturbs its confidence by
    a uniform value in +/- OFFLINE_CONFIDENCE_JITTER. Only diseases present in
    the reference store are ever chosen.
    """

    name = 'offline'
    provider = 'local'
    offline = True

    def __init__(self, reference_store, rng: Optional[random.Random] = None,
                 jitter: float = OFFLINE_CONFIDENCE_JITTER):
        self.reference_store = reference_store
        self.rng = rng or random.Random()
        self.jitter = jitter

    def candidates(self, crop_type: str) -> List[OfflineCandidate]:
        table = OFFLINE_CANDIDATES.get(normalize_crop_name(crop_type), DEFAULT_OFFLINE_CANDIDATES)
        candidates = [
            OfflineCandidate(disease, confidence, severity)
            for disease, confidence, severity in table
            if disease in self.reference_store
        ]
        return candidates or [OfflineCandidate(HEALTHY_PLANT, 0.75, 'None')]

    def _run(self, image, crop_type):
        base = self.rng.choice(self.candidates(crop_type))
        perturbed = base.confidence + self.rng.uniform(-self.jitter, self.jitter)
        candidate = OfflineCandidate(base.disease, min(max(perturbed, 0.0), 1.0), base.severity)
        return adapt_offline_candidate(candidate, self.reference_store, source=self.name)


# =============================================================================
# Orchestrator
# =============================================================================

class DetectionOrchestrator:
    """
    Sequential fallback cascade.

    Each stage is attempted only after the previous one failed. The last
    stage must be offline so that detect() always produces a result.
    """

    def __init__(self, stages: Sequence[DetectionStage]):
        stages = list(stages)
        if not stages or not getattr(stages[-1], 'offline', False):
            raise ValueError('The last detection stage must be an offline stage')
        self.stages = stages

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def detect(self, image, crop_type: str, deadline: Optional[float] = None) -> DetectionResult:
        """
        Classify an image.

        Args:
            image: PreparedImage
            crop_type: Declared crop
            deadline: Optional time.monotonic() value after which no further
                      remote stage is started

        Returns:
            DetectionResult: From the first stage that succeeded

        Raises:
            ServiceConfigurationError: A provider rejected its credentials
            DetectionTimeoutError: The deadline passed before a remote stage
        """
        for stage in self.stages:
            if deadline is not None and not stage.offline and time.monotonic() > deadline:
                raise DetectionTimeoutError()

            try:
                result = stage(image, crop_type)
            except StageError as e:
                logger.warning(
                    f"Detection stage '{e.stage}' failed (provider={e.provider}): {e} "
                    f"raw={snippet(e.raw, RAW_SNIPPET_LENGTH)}"
                )
                continue

            logger.info(
                f"Detection by '{stage.name}': {result.disease} "
                f"({result.confidence:.2f}, {result.severity})"
            )
            return result

        # Unreachable while the offline stage cannot fail
        raise StageError(self.stages[-1].name, 'All detection stages failed')


def build_orchestrator(config, reference_store, session=None, rng=None) -> DetectionOrchestrator:
    """
    Assemble the cascade from application configuration.

    Providers without an API key are left out; the offline stage is always
    appended.
    """
    timeout = float(config.get('PROVIDER_TIMEOUT', 8))
    stages: List[DetectionStage] = []

    if config.get('GROQ_API_KEY'):
        stages.append(VisionModelStage(
            GroqVisionClient(
                api_key=config['GROQ_API_KEY'],
                model=config['GROQ_VISION_MODEL'],
                api_url=config['GROQ_API_URL'],
                timeout=timeout,
                session=session
            ),
            reference_store
        ))
    else:
        logger.warning("GROQ_API_KEY not set - vision model stage disabled")

    if config.get('HUGGINGFACE_API_KEY'):
        stages.append(LabelClassifierStage(
            HuggingFaceClassifierClient(
                api_key=config['HUGGINGFACE_API_KEY'],
                model_id=config['HUGGINGFACE_MODEL_ID'],
                api_url=config['HUGGINGFACE_API_URL'],
                timeout=timeout,
                session=session
            )
        ))
    else:
        logger.warning("HUGGINGFACE_API_KEY not set - label classifier stage disabled")

    stages.append(OfflineHeuristicStage(reference_store, rng=rng))
    return DetectionOrchestrator(stages)
