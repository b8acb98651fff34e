# =============================================================================
# CropGuard API
# routes/detect.py - Disease Detection Routes
#
# Accepts a plant image and declared crop type, runs the detection pipeline
# and returns the merged scan result. Multipart and base64 uploads share the
# same validation rules.
# =============================================================================

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from cropguard.constants import DEFAULT_CROP_TYPE
from cropguard.decorators import log_request, rate_limit_key_user, validate_image_upload, validate_json
from cropguard.extensions import limiter
from cropguard.utils import decode_base64_image, success_response

# Create blueprint
detect_bp = Blueprint('detect', __name__)


def _respond(result):
    message = 'Analysis complete' if result['saved'] else 'Analysis complete, but the scan could not be saved'
    return success_response(result, message=message)


# =============================================================================
# Multipart Upload
# =============================================================================

@detect_bp.route('/', methods=['POST'])
@jwt_required()
@limiter.limit("10 per minute", key_func=rate_limit_key_user)
@log_request
@validate_image_upload()
def detect(file):
    """
    Analyze a plant image for disease.

    Request:
        Content-Type: multipart/form-data

        Fields:
            image (file): Plant image (jpeg, png, webp, gif, bmp, tiff, max 10MB)
            crop_type (str): Declared crop - optional, default Tomato

    Returns:
        200: Scan result with disease, confidence, severity and treatment
        400: Invalid upload or not a plant
        401: Not authenticated
        422: Declared crop does not match the image
        500: Disease not in the reference table
        503: Provider configuration error
        504: Analysis timed out
    """
    owner_id = get_jwt_identity()
    crop_type = request.form.get('crop_type') or request.form.get('cropType') or DEFAULT_CROP_TYPE

    analysis_service = current_app.config['ANALYSIS_SERVICE']
    result = analysis_service.analyze(
        owner_id,
        file.read(),
        media_type=file.mimetype,
        filename=file.filename,
        crop_type=crop_type
    )

    return _respond(result)


# =============================================================================
# Base64 Upload
# =============================================================================

@detect_bp.route('/base64', methods=['POST'])
@jwt_required()
@limiter.limit("10 per minute", key_func=rate_limit_key_user)
@log_request
@validate_json('image_base64')
def detect_base64(data):
    """
    Analyze a base64-encoded plant image.

    Request Body:
        image_base64 (str): Image bytes, optionally as a data: URI - required
        media_type (str): Image media type - optional, default image/jpeg
        crop_type (str): Declared crop - optional, default Tomato
    """
    owner_id = get_jwt_identity()
    image_data = decode_base64_image(data['image_base64'])

    analysis_service = current_app.config['ANALYSIS_SERVICE']
    result = analysis_service.analyze(
        owner_id,
        image_data,
        media_type=data.get('media_type') or _data_uri_type(data['image_base64']) or 'image/jpeg',
        crop_type=data.get('crop_type') or DEFAULT_CROP_TYPE
    )

    return _respond(result)


def _data_uri_type(value):
    if isinstance(value, str) and value.startswith('data:') and ';' in value:
        return value[5:value.index(';')]
    return None
