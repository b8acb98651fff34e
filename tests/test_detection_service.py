import random
import time
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from cropguard.config import Config
from cropguard.constants import HEALTHY_PLANT, SEVERITY_LEVELS
from cropguard.errors import (
    DetectionTimeoutError,
    ProviderConfigurationError,
    ProviderError,
    ProviderTimeoutError,
    ServiceConfigurationError,
)
from cropguard.services.detection_service import (
    DetectionOrchestrator,
    DetectionResult,
    LabelClassifierStage,
    LabelPredictions,
    OfflineHeuristicStage,
    VisionModelStage,
    adapt_label_predictions,
    build_orchestrator,
    map_label_to_disease,
)
from cropguard.services.disease_reference import DiseaseReferenceStore
from cropguard.services.image_service import prepare_image
from cropguard.services.vision_clients import GroqVisionClient
from conftest import FakeClassifierClient, FakeVisionClient, diagnosis_reply, make_image_bytes


@pytest.fixture(scope='module')
def reference_store():
    return DiseaseReferenceStore.from_json(Config.DISEASE_DATA_FILE)


@pytest.fixture(scope='module')
def image():
    return prepare_image(make_image_bytes())


def _cascade(reference_store, vision_reply, classifier_reply, seed=1):
    vision = FakeVisionClient(vision_reply)
    classifier = FakeClassifierClient(classifier_reply)
    orchestrator = DetectionOrchestrator([
        VisionModelStage(vision, reference_store),
        LabelClassifierStage(classifier),
        OfflineHeuristicStage(reference_store, rng=random.Random(seed)),
    ])
    return orchestrator, vision, classifier


# ---------------------------
# DetectionResult normalization
# ---------------------------
@pytest.mark.parametrize('raw, expected', [
    (0.87, 0.87),
    (92, 0.92),
    ('75', 0.75),
    (1, 1.0),
    (250, 1.0),
    (-0.3, 0.0),
])
def test_confidence_is_normalized(raw, expected):
    result = DetectionResult(disease='Early Blight', confidence=raw)
    assert result.confidence == pytest.approx(expected)


@pytest.mark.parametrize('raw', ['high', None, True, float('nan')])
def test_non_numeric_confidence_is_invalid(raw):
    with pytest.raises(ValidationError):
        DetectionResult(disease='Early Blight', confidence=raw)


@pytest.mark.parametrize('raw, expected', [
    ('Severe', 'Severe'),
    ('mild', 'Mild'),
    (' NONE ', 'None'),
    ('Critical', 'Moderate'),
    (None, 'Moderate'),
    (3, 'Moderate'),
])
def test_severity_is_coerced(raw, expected):
    assert DetectionResult(disease='X', confidence=0.5, severity=raw).severity == expected


# ---------------------------
# Label synonyms
# ---------------------------
@pytest.mark.parametrize('label, disease', [
    ('late_blight', 'Late Blight'),
    ('Tomato___Late_blight', 'Late Blight'),
    ('Tomato___Early_blight', 'Early Blight'),
    ('blight', 'Early Blight'),
    ('Tomato___healthy', HEALTHY_PLANT),
    ('Tomato___Tomato_Yellow_Leaf_Curl_Virus', 'Yellow Leaf Curl Virus'),
    ('Tomato___Septoria_leaf_spot', 'Septoria Leaf Spot'),
    ('Tomato___Target_Spot', 'Target Spot'),
    ('Tomato___Leaf_Mold', 'Leaf Mold'),
    ('leaf_scorch', 'Leaf Scorch'),
])
def test_map_label_to_disease(label, disease):
    assert map_label_to_disease(label) == disease


def test_label_adapter_uses_top_score():
    result = adapt_label_predictions(LabelPredictions([
        {'label': 'healthy', 'score': 0.1},
        {'label': 'powdery_mildew', 'score': 0.45},
    ]))

    assert result.disease == 'Powdery Mildew'
    assert result.severity == 'Mild'
    assert result.symptoms[0] == 'White powdery coating'


def test_label_adapter_rejects_empty_predictions():
    with pytest.raises(ValueError):
        adapt_label_predictions(LabelPredictions([{'label': 'x'}]))


# ---------------------------
# Cascade
# ---------------------------
def test_primary_stage_answers(reference_store, image):
    orchestrator, vision, classifier = _cascade(reference_store, diagnosis_reply(), [])

    result = orchestrator.detect(image, 'Tomato')

    assert result.disease == 'Early Blight'
    assert result.confidence == pytest.approx(0.87)
    assert result.severity == 'Moderate'
    assert result.source == 'vision_model'
    assert classifier.calls == []

    prompt = vision.calls[0][0]
    for name in reference_store.names():
        assert name in prompt


def test_percentage_confidence_from_classifier(reference_store, image):
    orchestrator, _, _ = _cascade(reference_store, diagnosis_reply(confidence=92, fenced=True), [])
    assert orchestrator.detect(image, 'Tomato').confidence == pytest.approx(0.92)


def test_timeout_falls_back_to_label_classifier(reference_store, image):
    orchestrator, _, classifier = _cascade(
        reference_store,
        ProviderTimeoutError('timed out', provider='groq'),
        [{'label': 'late_blight', 'score': 0.91}, {'label': 'healthy', 'score': 0.09}]
    )

    result = orchestrator.detect(image, 'Tomato')

    assert result.disease == 'Late Blight'
    assert result.severity == 'Severe'
    assert result.source == 'label_classifier'
    assert classifier.calls == [image.data]


def test_malformed_reply_falls_back(reference_store, image):
    orchestrator, _, _ = _cascade(
        reference_store,
        'Sorry, I cannot help with that.',
        [{'label': 'Tomato___Bacterial_spot', 'score': 0.66}]
    )
    assert orchestrator.detect(image, 'Tomato').disease == 'Bacterial Spot'


def test_schema_invalid_reply_falls_back(reference_store, image):
    orchestrator, _, _ = _cascade(
        reference_store,
        '{"disease_detected": "Early Blight", "confidence": "very"}',
        [{'label': 'mosaic', 'score': 0.7}]
    )
    assert orchestrator.detect(image, 'Tomato').disease == 'Mosaic Virus'


def test_all_remote_stages_fail_offline_answers(reference_store, image):
    orchestrator, _, _ = _cascade(
        reference_store,
        ProviderError('network down', provider='groq'),
        ProviderError('model loading', provider='huggingface')
    )

    result = orchestrator.detect(image, 'Tomato')

    assert result.source == 'offline'
    assert reference_store.lookup(result.disease) is not None
    assert 0.0 <= result.confidence <= 1.0
    assert result.severity in SEVERITY_LEVELS


def test_wrong_shaped_provider_body_falls_back_to_offline(reference_store, image):
    response = MagicMock(status_code=200, text='{"choices": [{"message": null}]}')
    response.json.return_value = {'choices': [{'message': None}]}
    session = MagicMock()
    session.post.return_value = response
    orchestrator = DetectionOrchestrator([
        VisionModelStage(GroqVisionClient('key', 'vision-model', session=session), reference_store),
        OfflineHeuristicStage(reference_store, rng=random.Random(1)),
    ])

    result = orchestrator.detect(image, 'Tomato')

    assert result.source == 'offline'
    assert session.post.call_count == 1


def test_configuration_error_is_not_absorbed(reference_store, image):
    orchestrator, _, classifier = _cascade(
        reference_store,
        ProviderConfigurationError('groq', reason='HTTP 401'),
        [{'label': 'healthy', 'score': 0.9}]
    )

    with pytest.raises(ServiceConfigurationError):
        orchestrator.detect(image, 'Tomato')
    assert classifier.calls == []


def test_deadline_stops_remote_stages(reference_store, image):
    orchestrator, vision, _ = _cascade(reference_store, diagnosis_reply(), [])

    with pytest.raises(DetectionTimeoutError):
        orchestrator.detect(image, 'Tomato', deadline=time.monotonic() - 1)
    assert vision.calls == []


def test_last_stage_must_be_offline(reference_store):
    with pytest.raises(ValueError):
        DetectionOrchestrator([LabelClassifierStage(FakeClassifierClient([]))])
    with pytest.raises(ValueError):
        DetectionOrchestrator([])


# ---------------------------
# Offline heuristic
# ---------------------------
def test_offline_stage_is_deterministic_with_seeded_rng(reference_store, image):
    first = OfflineHeuristicStage(reference_store, rng=random.Random(42))(image, 'Tomato')
    second = OfflineHeuristicStage(reference_store, rng=random.Random(42))(image, 'Tomato')
    assert first == second


def test_offline_confidence_stays_within_jitter(reference_store, image):
    stage = OfflineHeuristicStage(reference_store, rng=random.Random(3))
    baselines = {c.disease: c.confidence for c in stage.candidates('Tomato')}

    for _ in range(50):
        result = stage(image, 'Tomato')
        assert abs(result.confidence - baselines[result.disease]) <= 0.05 + 1e-9


@pytest.mark.parametrize('crop', ['tomato', '  TOMATO ', 'cherry tomato'])
def test_offline_candidates_use_canonical_crop(reference_store, crop):
    stage = OfflineHeuristicStage(reference_store)
    diseases = [c.disease for c in stage.candidates(crop)]
    assert diseases == [c.disease for c in stage.candidates('Tomato')]
    assert 'Late Blight' in diseases


def test_offline_candidates_come_from_reference_store(reference_store):
    stage = OfflineHeuristicStage(reference_store)
    for crop in ('Tomato', 'Apple', 'Quinoa'):
        for candidate in stage.candidates(crop):
            assert candidate.disease in reference_store


# ---------------------------
# Assembly
# ---------------------------
def test_build_orchestrator_skips_unconfigured_providers(reference_store):
    config = {'PROVIDER_TIMEOUT': 5}
    assert build_orchestrator(config, reference_store).stage_names == ['offline']

    config.update({
        'GROQ_API_KEY': 'g', 'GROQ_VISION_MODEL': 'm', 'GROQ_API_URL': 'https://groq.test',
        'HUGGINGFACE_API_KEY': 'h', 'HUGGINGFACE_MODEL_ID': 'org/model',
        'HUGGINGFACE_API_URL': 'https://hf.test',
    })
    orchestrator = build_orchestrator(config, reference_store)
    assert orchestrator.stage_names == ['vision_model', 'label_classifier', 'offline']
    assert orchestrator.stages[0].client.timeout == 5.0
