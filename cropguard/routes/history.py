# =============================================================================
# CropGuard API
# routes/history.py - Scan History Routes
#
# Lists, fetches, deletes and aggregates the current owner's scan records.
# Another owner's scan always looks like a missing one.
# =============================================================================

import math
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from cropguard.decorators import handle_db_errors, offset_pagination
from cropguard.errors import PersistenceError
from cropguard.extensions import limiter
from cropguard.services.scan_service import empty_stats
from cropguard.utils import success_response

# Create blueprint
history_bp = Blueprint('history', __name__)


def _scan_service():
    return current_app.config['SCAN_SERVICE']


# =============================================================================
# List Scans
# =============================================================================

@history_bp.route('/', methods=['GET'])
@jwt_required()
@limiter.limit("60 per minute")
@offset_pagination()
def list_scans(limit, offset):
    """
    Get current owner's scans, newest first.

    Query Parameters:
        limit (int): Page size (default: 50, max: 100)
        offset (int): Records to skip (default: 0)
        crop_type (str): Filter by crop (optional)
        severity (str): Filter by severity (optional)
        search (str): Substring of disease or crop (optional)

    Returns:
        200: Scans with pagination info
        401: Not authenticated
        500: Read failure, with an empty scan list
    """
    owner_id = get_jwt_identity()

    try:
        records, total = _scan_service().list(
            owner_id,
            limit=limit,
            offset=offset,
            crop_filter=request.args.get('crop_type', '').strip() or None,
            severity_filter=request.args.get('severity', '').strip() or None,
            text_search=request.args.get('search', '').strip() or None
        )
    except PersistenceError as e:
        current_app.logger.error(f"Failed to list scans for {owner_id}: {e.__cause__ or e}")
        return jsonify({
            'success': False,
            'status': 'error',
            'type': 'persistence',
            'error': 'Failed to fetch scan history',
            'scans': [],
            'pagination': {'total': 0, 'page': 1, 'limit': limit, 'total_pages': 0}
        }), 500

    return jsonify({
        'success': True,
        'status': 'success',
        'scans': [record.to_dict() for record in records],
        'pagination': {
            'total': total,
            'page': offset // limit + 1,
            'limit': limit,
            'total_pages': math.ceil(total / limit)
        }
    }), 200


# =============================================================================
# Statistics
# =============================================================================

@history_bp.route('/stats', methods=['GET'])
@jwt_required()
@limiter.limit("60 per minute")
def get_stats():
    """
    Aggregate statistics for the current owner's scans.

    Returns:
        200: total_scans, last_scan_date, most_common_disease,
             average_confidence, scans_by_month, disease_distribution
        500: Read failure, with zeroed statistics
    """
    owner_id = get_jwt_identity()

    try:
        stats = _scan_service().stats(owner_id)
    except PersistenceError as e:
        current_app.logger.error(f"Failed to compute stats for {owner_id}: {e.__cause__ or e}")
        return jsonify({
            'success': False,
            'status': 'error',
            'type': 'persistence',
            'error': 'Failed to fetch statistics',
            'stats': empty_stats()
        }), 500

    return success_response({'stats': stats})


# =============================================================================
# Single Scan
# =============================================================================

@history_bp.route('/<int:scan_id>', methods=['GET'])
@jwt_required()
@limiter.limit("60 per minute")
@handle_db_errors
def get_scan(scan_id):
    """
    Get one of the current owner's scans.

    Returns:
        200: Scan record
        404: Missing or owned by someone else
    """
    record = _scan_service().get(get_jwt_identity(), scan_id)
    return success_response({'scan': record.to_dict()})


@history_bp.route('/<int:scan_id>', methods=['DELETE'])
@jwt_required()
@limiter.limit("30 per minute")
@handle_db_errors
def delete_scan(scan_id):
    """
    Delete one of the current owner's scans and release its image.

    Returns:
        200: Scan deleted
        404: Missing or owned by someone else
    """
    _scan_service().delete(get_jwt_identity(), scan_id)
    return success_response(message='Scan deleted successfully')
