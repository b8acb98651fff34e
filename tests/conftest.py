import io
import json

import pytest
from PIL import Image
from flask_jwt_extended import create_access_token

from cropguard.app import create_app
from cropguard.extensions import db


# ---------------------------
# Flask fixtures
# ---------------------------
@pytest.fixture
def app(tmp_path):
    app = create_app('testing', overrides={'IMAGE_STORE_FOLDER': str(tmp_path / 'uploads')})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def store(app):
    return app.config['DISEASE_STORE']


@pytest.fixture
def scan_service(app):
    return app.config['SCAN_SERVICE']


@pytest.fixture
def analysis_service(app):
    return app.config['ANALYSIS_SERVICE']


def bearer(app, owner_id):
    with app.app_context():
        token = create_access_token(identity=owner_id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def auth_headers(app):
    return bearer(app, 'owner-1')


@pytest.fixture
def other_headers(app):
    return bearer(app, 'owner-2')


# ---------------------------
# Images
# ---------------------------
def make_image_bytes(size=(64, 48), fmt='JPEG', color=(40, 140, 40), mode='RGB'):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def leaf_jpeg():
    return make_image_bytes()


# ---------------------------
# Provider doubles
# ---------------------------
class FakeVisionClient:
    """Chat vision client returning canned replies; exceptions are raised."""

    provider = 'groq'

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, prompt, image_data_url, max_tokens=1024, temperature=0.1):
        self.calls.append((prompt, image_data_url))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClassifierClient:
    provider = 'huggingface'

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def classify(self, image_data):
        self.calls.append(image_data)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def plant_reply(crop='Tomato', confidence=92):
    return json.dumps({
        'isPlant': True,
        'cropType': crop,
        'confidence': confidence,
        'reasoning': 'Leaves are visible'
    })


def diagnosis_reply(disease='Early Blight', confidence=0.87, severity='Moderate', fenced=False):
    text = json.dumps({
        'disease_detected': disease,
        'confidence': confidence,
        'severity': severity,
        'symptoms_observed': ['brown spots on leaves', 'yellowing around spots'],
        'recommendation': 'Apply fungicide and remove affected leaves'
    })
    return f"```json\n{text}\n```" if fenced else text
