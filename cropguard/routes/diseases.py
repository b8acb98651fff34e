# =============================================================================
# CropGuard API
# routes/diseases.py - Disease Reference Routes
#
# Read-only access to the disease reference table with search, crop filter
# and sorting. Frequency and recency sorts use the caller's own scans.
# =============================================================================

from datetime import datetime
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from cropguard.errors import NotAuthorizedError
from cropguard.extensions import limiter
from cropguard.services.disease_reference import SORT_KEYS, sort_profiles
from cropguard.utils import error_response

# Create blueprint
diseases_bp = Blueprint('diseases', __name__)

USAGE_SORT_KEYS = ('frequency', 'recent')


def _sort_by_usage(profiles, usage, sort):
    """Order profiles by the owner's scan count or most recent scan."""
    def count(profile):
        return usage.get(profile.name, {}).get('count', 0)

    def last_scanned(profile):
        return usage.get(profile.name, {}).get('last_scanned') or datetime.min

    if sort == 'frequency':
        ranked = sorted(profiles, key=lambda p: p.name)
        return sorted(ranked, key=count, reverse=True)

    ranked = sorted(profiles, key=lambda p: p.name)
    return sorted(ranked, key=last_scanned, reverse=True)


@diseases_bp.route('/', methods=['GET'])
@limiter.limit("60 per minute")
def list_diseases():
    """
    List disease profiles.

    Query Parameters:
        search (str): Substring of name, description or symptoms (optional)
        crop (str): Crop filter; wildcard entries always match (optional)
        sort (str): name | severity | crop | frequency | recent (default: name).
                    frequency and recent require authentication.

    Returns:
        200: {diseases, total, sort}
        400: Unknown sort key
        401: Usage sort without authentication
    """
    store = current_app.config['DISEASE_STORE']

    search = request.args.get('search', '').strip()
    crop = request.args.get('crop', '').strip()
    sort = request.args.get('sort', 'name').strip().lower() or 'name'

    if sort not in SORT_KEYS + USAGE_SORT_KEYS:
        return error_response(
            f"Invalid sort: '{sort}'",
            details={'allowed': list(SORT_KEYS + USAGE_SORT_KEYS)},
            error_type='validation'
        )

    if search:
        profiles = store.search(search)
    elif crop:
        profiles = store.by_crop(crop)
    else:
        profiles = store.all()

    usage = None
    if sort in USAGE_SORT_KEYS:
        verify_jwt_in_request(optional=True)
        owner_id = get_jwt_identity()
        if not owner_id:
            raise NotAuthorizedError()

        usage = current_app.config['SCAN_SERVICE'].disease_usage(owner_id)
        profiles = _sort_by_usage(profiles, usage, sort)
    else:
        profiles = sort_profiles(profiles, sort)

    diseases = []
    for profile in profiles:
        item = profile.to_dict()
        if usage is not None:
            entry = usage.get(profile.name, {})
            last_scanned = entry.get('last_scanned')
            item['scan_count'] = entry.get('count', 0)
            item['last_scanned'] = last_scanned.isoformat() if last_scanned else None
        diseases.append(item)

    return jsonify({
        'success': True,
        'status': 'success',
        'diseases': diseases,
        'total': len(diseases),
        'sort': sort
    }), 200


@diseases_bp.route('/<path:name>', methods=['GET'])
@limiter.limit("60 per minute")
def get_disease(name):
    """
    Get one disease profile by name (case-insensitive).

    Returns:
        200: Disease profile
        404: Unknown disease
    """
    profile = current_app.config['DISEASE_STORE'].lookup(name)
    if profile is None:
        return error_response(
            f'Disease "{name}" not found',
            status_code=404,
            error_type='not_found'
        )

    return jsonify({
        'success': True,
        'status': 'success',
        'disease': profile.to_dict()
    }), 200
