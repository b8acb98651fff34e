import base64
import io
import json
from unittest.mock import patch

import pytest

from cropguard.errors import PersistenceError, ProviderConfigurationError
from cropguard.extensions import db
from cropguard.models import ScanRecord
from cropguard.services.detection_service import (
    DetectionOrchestrator,
    OfflineHeuristicStage,
    VisionModelStage,
)
from cropguard.services.image_validator import ImageValidator
from conftest import FakeVisionClient, diagnosis_reply, make_image_bytes, plant_reply


@pytest.fixture
def install_providers(analysis_service, store):
    """Swap the pipeline's providers for canned doubles."""
    def install(validator_reply, diagnosis):
        validator_client = FakeVisionClient(validator_reply)
        vision_client = FakeVisionClient(diagnosis)
        analysis_service.validator = ImageValidator(validator_client)
        analysis_service.orchestrator = DetectionOrchestrator([
            VisionModelStage(vision_client, store),
            OfflineHeuristicStage(store),
        ])
        return validator_client, vision_client
    return install


def _upload(client, headers, data=None, crop_type='Tomato', filename='leaf.jpg', mimetype='image/jpeg'):
    form = {'image': (io.BytesIO(data if data is not None else make_image_bytes()), filename, mimetype)}
    if crop_type is not None:
        form['crop_type'] = crop_type
    return client.post('/api/detect/', data=form, headers=headers, content_type='multipart/form-data')


# ---------------------------
# Happy paths
# ---------------------------
def test_detect_persists_scan_with_profile_snapshot(client, auth_headers, install_providers, store):
    install_providers(plant_reply('Tomato', 90), diagnosis_reply('Early Blight', 0.87, 'Moderate'))

    response = _upload(client, auth_headers)

    assert response.status_code == 200
    data = response.get_json()['data']
    profile = store.lookup('Early Blight')
    assert data['saved'] is True
    assert data['disease'] == 'Early Blight'
    assert data['confidence'] == pytest.approx(0.87)
    assert data['severity'] == 'Moderate'
    assert data['treatment'] == list(profile.treatment)
    assert data['prevention'] == list(profile.prevention)
    assert data['crop_match']['matches'] is True
    assert data['source'] == 'vision_model'
    assert data['image_url'].startswith('/uploads/')

    record = db.session.get(ScanRecord, data['scan_id'])
    assert record.owner_id == 'owner-1'
    assert record.confidence == pytest.approx(0.87)

    image = client.get(data['image_url'])
    assert image.status_code == 200
    assert image.mimetype == 'image/jpeg'


def test_detect_base64(client, auth_headers, install_providers):
    install_providers(plant_reply('Tomato', 90), diagnosis_reply('Late Blight', 92, 'severe'))
    encoded = base64.b64encode(make_image_bytes(fmt='PNG')).decode()

    response = client.post(
        '/api/detect/base64',
        data=json.dumps({'image_base64': f'data:image/png;base64,{encoded}', 'crop_type': 'Tomato'}),
        headers={**auth_headers, 'Content-Type': 'application/json'}
    )

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['disease'] == 'Late Blight'
    assert data['confidence'] == pytest.approx(0.92)
    assert data['severity'] == 'Severe'


def test_detect_without_provider_keys_uses_offline_stage(client, auth_headers):
    response = _upload(client, auth_headers, crop_type=None)

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['source'] == 'offline'
    assert data['crop_type'] == 'Tomato'
    assert 0 <= data['confidence'] <= 1


def test_write_failure_still_returns_result(client, auth_headers, install_providers, analysis_service):
    install_providers(plant_reply(), diagnosis_reply())

    with patch.object(analysis_service.scan_service, 'create', side_effect=PersistenceError()):
        response = _upload(client, auth_headers)

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['saved'] is False
    assert data['scan_id'] is None
    assert data['disease'] == 'Early Blight'


# ---------------------------
# Rejections
# ---------------------------
def test_requires_authentication(client):
    response = _upload(client, headers={})
    assert response.status_code == 401
    body = response.get_json()
    assert body['error'] == 'Not authorized'
    assert body['type'] == 'authorization'


def test_crop_mismatch_blocks_analysis(client, auth_headers, install_providers):
    _, vision = install_providers(plant_reply('Banana', 85), diagnosis_reply())

    response = _upload(client, auth_headers, crop_type='Apple')

    assert response.status_code == 422
    body = response.get_json()
    assert body['type'] == 'crop_mismatch'
    assert body['details']['crop_match']['matches'] is False
    assert body['details']['crop_match']['detected_crop'] == 'Banana'
    assert vision.calls == []
    assert ScanRecord.query.count() == 0


def test_not_a_plant(client, auth_headers, install_providers):
    reply = json.dumps({'isPlant': False, 'cropType': None, 'confidence': 95, 'reasoning': 'A cat'})
    install_providers(reply, diagnosis_reply())

    response = _upload(client, auth_headers)

    assert response.status_code == 400
    body = response.get_json()
    assert body['type'] == 'validation'
    assert body['details']['suggestions']


def test_invalid_media_type_rejected_before_providers(client, auth_headers, install_providers):
    validator, _ = install_providers(plant_reply(), diagnosis_reply())

    response = _upload(client, auth_headers, data=b'%PDF-1.4', filename='leaf.pdf', mimetype='application/pdf')

    assert response.status_code == 400
    assert 'Invalid file type' in response.get_json()['error']
    assert validator.calls == []


def test_oversized_image_rejected(client, auth_headers, install_providers):
    validator, _ = install_providers(plant_reply(), diagnosis_reply())

    response = _upload(client, auth_headers, data=b'\xff' * (10 * 1024 * 1024 + 1))

    assert response.status_code == 400
    assert 'too large' in response.get_json()['error']
    assert validator.calls == []


def test_missing_image(client, auth_headers):
    response = client.post('/api/detect/', data={'crop_type': 'Tomato'}, headers=auth_headers,
                           content_type='multipart/form-data')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'No image file provided'


def test_invalid_base64(client, auth_headers):
    response = client.post(
        '/api/detect/base64',
        data=json.dumps({'image_base64': 'not base64!!'}),
        headers={**auth_headers, 'Content-Type': 'application/json'}
    )
    assert response.status_code == 400


def test_configuration_error_is_reported(client, auth_headers, install_providers):
    install_providers(plant_reply(), ProviderConfigurationError('groq', reason='HTTP 401'))

    response = _upload(client, auth_headers)

    assert response.status_code == 503
    assert response.get_json()['type'] == 'configuration'


def test_unknown_disease_is_a_server_error(client, auth_headers, install_providers):
    install_providers(plant_reply(), diagnosis_reply('Banana Wilt'))

    response = _upload(client, auth_headers)

    assert response.status_code == 500
    assert response.get_json()['type'] == 'disease_not_found'
    assert ScanRecord.query.count() == 0


def test_time_budget_exceeded(client, auth_headers, install_providers, analysis_service):
    install_providers(plant_reply(), diagnosis_reply())
    analysis_service.settings['DETECTION_TIME_BUDGET'] = -1

    response = _upload(client, auth_headers)

    assert response.status_code == 504
    assert response.get_json()['type'] == 'timeout'
