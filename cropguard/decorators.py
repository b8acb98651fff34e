# =============================================================================
# CropGuard API
# decorators.py - Reusable Decorators
#
# Custom decorators for common route concerns including offset pagination,
# JSON validation, image upload extraction, database errors and request
# logging.
# =============================================================================

from functools import wraps
from flask import request, current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from cropguard.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, MESSAGES
from cropguard.extensions import db
from cropguard.utils import error_response


def offset_pagination(default_limit=DEFAULT_PAGE_LIMIT, max_limit=MAX_PAGE_LIMIT):
    """
    Handle limit/offset parameters for list endpoints.

    Invalid or out-of-range values are clamped rather than rejected.
    Passes 'limit' and 'offset' to the decorated function as keyword arguments.

    Usage:
        @history_bp.route('/', methods=['GET'])
        @offset_pagination(default_limit=50)
        def list_scans(limit, offset):
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limit = request.args.get('limit', default_limit, type=int)
            offset = request.args.get('offset', 0, type=int)

            if limit is None or limit < 1:
                limit = default_limit
            if limit > max_limit:
                limit = max_limit
            if offset is None or offset < 0:
                offset = 0

            kwargs['limit'] = limit
            kwargs['offset'] = offset

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def validate_json(*required_fields):
    """
    Validate that request contains JSON body with required fields.

    Passes validated data to the decorated function as 'data' keyword argument.

    Usage:
        @detect_bp.route('/base64', methods=['POST'])
        @validate_json('image_base64')
        def detect_base64(data):
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not request.is_json:
                return error_response(
                    'Content-Type must be application/json',
                    error_type='validation'
                )

            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return error_response(
                    'Invalid JSON or empty request body',
                    error_type='validation'
                )

            missing_fields = [
                field for field in required_fields
                if field not in data or data[field] in (None, '')
            ]

            if missing_fields:
                return error_response(
                    'Missing required fields',
                    details={'missing_fields': missing_fields},
                    error_type='validation'
                )

            kwargs['data'] = data

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def validate_image_upload(field_names=('image', 'file')):
    """
    Extract the uploaded image from a multipart request.

    Only checks presence; media type and size rules are enforced by the
    analysis pipeline so that multipart and base64 uploads share them.
    Passes the FileStorage object as 'file'.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            file = None
            for name in field_names:
                if name in request.files:
                    file = request.files[name]
                    break

            if file is None or file.filename == '':
                return error_response(
                    MESSAGES['NO_IMAGE'],
                    details={'fields': list(field_names)},
                    error_type='validation'
                )

            kwargs['file'] = file
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def handle_db_errors(f):
    """
    Roll back the session and answer with a JSON error on database failures.

    Usage:
        @history_bp.route('/<int:scan_id>', methods=['DELETE'])
        @handle_db_errors
        def delete_scan(scan_id):
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except OperationalError as e:
            db.session.rollback()
            current_app.logger.error(f"Database operational error: {e}")
            return error_response(
                'Database is temporarily unavailable',
                status_code=503,
                error_type='database_error'
            )

        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Database error: {e}")
            return error_response(
                'An unexpected database error occurred',
                status_code=500,
                error_type='persistence'
            )

    return decorated_function


def log_request(f):
    """
    Log incoming request details and the response status code.

    Usage:
        @detect_bp.route('/', methods=['POST'])
        @log_request
        def detect():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current_app.logger.info(
            f"Request: {request.method} {request.path} "
            f"from {request.remote_addr}"
        )

        response = f(*args, **kwargs)

        if isinstance(response, tuple):
            status_code = response[1] if len(response) > 1 else 200
        else:
            status_code = getattr(response, 'status_code', 200)

        current_app.logger.info(
            f"Response: {status_code} for {request.method} {request.path}"
        )

        return response
    return decorated_function


def rate_limit_key_user():
    """
    Rate limit key that uses the owner identity if authenticated.

    Falls back to IP address for unauthenticated requests.

    Usage:
        @limiter.limit("10 per minute", key_func=rate_limit_key_user)
        def my_endpoint():
            ...
    """
    from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
    from flask_jwt_extended.exceptions import JWTExtendedException
    from jwt.exceptions import PyJWTError

    try:
        verify_jwt_in_request(optional=True)
        owner_id = get_jwt_identity()
        if owner_id:
            return f"user:{owner_id}"
    except (JWTExtendedException, PyJWTError):
        pass

    return request.remote_addr
