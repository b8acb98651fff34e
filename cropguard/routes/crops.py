# =============================================================================
# CropGuard API
# routes/crops.py - Crops Routes
#
# Lists the canonical crops with their aliases and known diseases, offers
# autocomplete suggestions and validates user-typed crop names.
# =============================================================================

from flask import Blueprint, request, jsonify, current_app

from cropguard.constants import WILDCARD_CROP
from cropguard.decorators import validate_json
from cropguard.extensions import limiter
from cropguard.services.crop_matcher import (
    CROP_ALIASES,
    crop_suggestions,
    normalize_crop_name,
    validate_custom_crop,
)
from cropguard.utils import error_response

# Create blueprint
crops_bp = Blueprint('crops', __name__)


# =============================================================================
# Get All Crops
# =============================================================================

@crops_bp.route('/', methods=['GET'])
@limiter.limit("100 per minute")
def get_all_crops():
    """
    Get list of all canonical crops.

    Returns:
        200: Crops with aliases and the diseases specific to each crop

    Response Example:
        {
            "success": true,
            "data": {
                "crops": [
                    {"name": "Tomato", "aliases": ["tomato", ...], "diseases": ["Early Blight", ...]},
                    ...
                ],
                "total": 20
            }
        }
    """
    store = current_app.config['DISEASE_STORE']

    crops_list = []
    for name, aliases in CROP_ALIASES.items():
        crops_list.append({
            'name': name,
            'aliases': list(aliases),
            'diseases': [
                profile.name for profile in store.by_crop(name)
                if profile.crop != WILDCARD_CROP
            ]
        })

    return jsonify({
        'success': True,
        'data': {
            'crops': crops_list,
            'total': len(crops_list)
        }
    }), 200


# =============================================================================
# Autocomplete
# =============================================================================

@crops_bp.route('/suggestions', methods=['GET'])
@limiter.limit("200 per minute")
def get_suggestions():
    """
    Suggest canonical crop names for partial input.

    Query Parameters:
        q (str): Partial crop name (at least 2 characters)

    Returns:
        200: Up to 5 canonical crop names
    """
    query = request.args.get('q', '')

    return jsonify({
        'success': True,
        'data': {
            'query': query,
            'suggestions': crop_suggestions(query)
        }
    }), 200


# =============================================================================
# Validate Custom Crop
# =============================================================================

@crops_bp.route('/validate', methods=['POST'])
@limiter.limit("100 per minute")
@validate_json('crop')
def validate_crop(data):
    """
    Validate a user-typed crop name.

    Request Body:
        crop (str): Crop name - required

    Returns:
        200: {valid, message, suggestion, normalized}
        400: Missing or non-string crop
    """
    crop = data['crop']
    if not isinstance(crop, str):
        return error_response('Crop must be a string', error_type='validation')

    result = validate_custom_crop(crop)
    result['normalized'] = normalize_crop_name(crop) if result['valid'] else None

    return jsonify({
        'success': True,
        'data': result
    }), 200
