from datetime import datetime

from cropguard.extensions import db
from cropguard.services.detection_service import DetectionResult
from cropguard.services.image_service import ImageRef


# ---------------------------
# Diseases
# ---------------------------
def test_list_diseases_sorted_by_name(client):
    response = client.get('/api/diseases/')

    assert response.status_code == 200
    body = response.get_json()
    names = [d['name'] for d in body['diseases']]
    assert body['total'] == 10
    assert names == sorted(names)


def test_list_diseases_by_severity(client):
    body = client.get('/api/diseases/?sort=severity').get_json()
    severities = [d['severity'] for d in body['diseases']]
    assert severities[0] == 'Severe'
    assert severities[-1] == 'None'


def test_list_diseases_search_and_crop(client):
    search = client.get('/api/diseases/?search=powdery').get_json()
    assert [d['name'] for d in search['diseases']] == ['Powdery Mildew']

    apple = client.get('/api/diseases/?crop=Apple').get_json()
    assert [d['name'] for d in apple['diseases']] == ['Healthy Plant']


def test_invalid_sort(client):
    response = client.get('/api/diseases/?sort=random')
    assert response.status_code == 400
    assert 'frequency' in response.get_json()['details']['allowed']


def test_usage_sorts_require_authentication(client):
    assert client.get('/api/diseases/?sort=frequency').status_code == 401
    assert client.get('/api/diseases/?sort=recent').status_code == 401


def test_usage_sorts(client, auth_headers, scan_service):
    def seed(disease, when):
        record = scan_service.create(
            'owner-1',
            DetectionResult(disease=disease, confidence=0.8),
            'Tomato',
            ImageRef('/uploads/placeholder.jpg')
        )
        record.created_at = when
        db.session.commit()

    seed('Leaf Mold', datetime(2026, 1, 1))
    seed('Leaf Mold', datetime(2026, 1, 2))
    seed('Target Spot', datetime(2026, 2, 1))

    frequency = client.get('/api/diseases/?sort=frequency', headers=auth_headers).get_json()
    assert [d['name'] for d in frequency['diseases'][:2]] == ['Leaf Mold', 'Target Spot']
    assert frequency['diseases'][0]['scan_count'] == 2
    assert frequency['diseases'][2]['scan_count'] == 0

    recent = client.get('/api/diseases/?sort=recent', headers=auth_headers).get_json()
    assert [d['name'] for d in recent['diseases'][:2]] == ['Target Spot', 'Leaf Mold']
    assert recent['diseases'][2]['last_scanned'] is None


def test_get_disease(client):
    response = client.get('/api/diseases/late%20blight')
    assert response.status_code == 200
    assert response.get_json()['disease']['name'] == 'Late Blight'

    assert client.get('/api/diseases/Banana%20Wilt').status_code == 404


# ---------------------------
# Crops
# ---------------------------
def test_list_crops(client):
    body = client.get('/api/crops/').get_json()

    assert body['data']['total'] == 20
    tomato = next(c for c in body['data']['crops'] if c['name'] == 'Tomato')
    assert 'cherry tomato' in tomato['aliases']
    assert 'Late Blight' in tomato['diseases']
    assert 'Healthy Plant' not in tomato['diseases']


def test_crop_suggestions(client):
    body = client.get('/api/crops/suggestions?q=pot').get_json()
    assert body['data']['suggestions'] == ['Potato']

    assert client.get('/api/crops/suggestions?q=p').get_json()['data']['suggestions'] == []


def test_validate_crop(client):
    body = client.post('/api/crops/validate', json={'crop': 'maize'}).get_json()
    assert body['data']['valid'] is True
    assert body['data']['normalized'] == 'Corn'

    short = client.post('/api/crops/validate', json={'crop': 'x'}).get_json()
    assert short['data']['valid'] is False

    assert client.post('/api/crops/validate', json={}).status_code == 400
