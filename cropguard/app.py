# =============================================================================
# CropGuard API
# app.py - Application Factory & Entry Point
#
# Flask application factory pattern implementation with extension
# initialization, service wiring, blueprint registration and error handlers.
# =============================================================================

import os
import logging
from flask import Flask, jsonify, send_from_directory

from cropguard.config import get_config
from cropguard.errors import CropGuardError
from cropguard.extensions import db, migrate, jwt, cors, limiter
from cropguard.utils import error_response


def create_app(config_name=None, overrides=None):
    """
    Application factory function.

    Creates and configures the Flask application with all extensions,
    services, blueprints, and error handlers.

    Args:
        config_name: Configuration environment ('development', 'testing', 'production')
                    Defaults to FLASK_ENV environment variable or 'development'
        overrides: Optional mapping applied on top of the configuration class

    Returns:
        Flask: Configured Flask application instance
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)

    # Load configuration
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    setup_logging(app)
    init_extensions(app)
    init_services(app)
    register_blueprints(app)
    register_error_handlers(app)
    setup_database_handlers(app)

    app.logger.info(f"CropGuard API started in {config_name} mode")

    return app


def setup_logging(app):
    """
    Configure application logging.

    Sets up logging format and level based on environment.
    """
    log_level = logging.DEBUG if app.config['DEBUG'] else logging.INFO

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    app.logger.setLevel(log_level)


def init_extensions(app):
    """
    Initialize Flask extensions with the application instance.

    Extensions are created in extensions.py without app context,
    then initialized here with the app instance.
    """
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    cors.init_app(
        app,
        origins=app.config.get('CORS_ORIGINS', ['http://localhost:3000']),
        supports_credentials=app.config.get('CORS_SUPPORTS_CREDENTIALS', True),
        allow_headers=['Content-Type', 'Authorization'],
        methods=['GET', 'POST', 'DELETE', 'OPTIONS']
    )

    limiter.init_app(app)

    app.logger.info("Flask extensions initialized")


def init_services(app):
    """
    Build the long-lived services and store them in app config.

    The disease table is loaded once here and shared by reference.
    Services that need a provider key are only enabled when it is set.
    """
    from cropguard.services.analysis_service import AnalysisService
    from cropguard.services.detection_service import build_orchestrator
    from cropguard.services.disease_reference import DiseaseReferenceStore
    from cropguard.services.image_service import LocalImageStore
    from cropguard.services.image_validator import ImageValidator
    from cropguard.services.scan_service import ScanRecordService
    from cropguard.services.vision_clients import GroqVisionClient

    config = app.config

    reference_store = DiseaseReferenceStore.from_json(config['DISEASE_DATA_FILE'])
    image_store = LocalImageStore(config['IMAGE_STORE_FOLDER'], config['IMAGE_BASE_URL'])
    scan_service = ScanRecordService(reference_store, image_store)

    validator_client = None
    if config.get('GROQ_API_KEY'):
        validator_client = GroqVisionClient(
            api_key=config['GROQ_API_KEY'],
            model=config['GROQ_VALIDATOR_MODEL'],
            api_url=config['GROQ_API_URL'],
            timeout=config['PROVIDER_TIMEOUT']
        )
    else:
        app.logger.warning("GROQ_API_KEY not set - image validation disabled")

    validator = ImageValidator(validator_client, threshold=config['PLANT_CONFIDENCE_THRESHOLD'])
    orchestrator = build_orchestrator(config, reference_store)

    config['DISEASE_STORE'] = reference_store
    config['IMAGE_STORE'] = image_store
    config['SCAN_SERVICE'] = scan_service
    config['ANALYSIS_SERVICE'] = AnalysisService(
        validator,
        orchestrator,
        reference_store,
        scan_service,
        image_store=image_store,
        settings=config
    )

    app.logger.info(f"Detection cascade: {' -> '.join(orchestrator.stage_names)}")


def register_blueprints(app):
    """
    Register all API route blueprints.

    All API routes are prefixed with '/api'.
    """
    from cropguard.routes.detect import detect_bp
    from cropguard.routes.history import history_bp
    from cropguard.routes.diseases import diseases_bp
    from cropguard.routes.crops import crops_bp

    app.register_blueprint(detect_bp, url_prefix='/api/detect')
    app.register_blueprint(history_bp, url_prefix='/api/history')
    app.register_blueprint(diseases_bp, url_prefix='/api/diseases')
    app.register_blueprint(crops_bp, url_prefix='/api/crops')

    @app.route('/health', methods=['GET'])
    def health_check():
        """
        Health check endpoint for monitoring and load balancers.

        Reports database connectivity and which providers are configured,
        never the key values themselves.
        """
        db_healthy = False
        db_message = 'unknown'

        try:
            db.session.execute(db.text('SELECT 1'))
            db.session.commit()
            db_healthy = True
            db_message = 'connected'
        except Exception as e:
            app.logger.error(f"Database health check failed: {e}")
            db.session.rollback()
            db_message = 'error'

        return jsonify({
            'status': 'healthy' if db_healthy else 'degraded',
            'message': 'CropGuard API is running',
            'version': '1.0.0',
            'database': db_message,
            'providers': {
                'groq': bool(app.config.get('GROQ_API_KEY')),
                'huggingface': bool(app.config.get('HUGGINGFACE_API_KEY'))
            },
            'diseases_loaded': len(app.config['DISEASE_STORE'])
        }), 200 if db_healthy else 503

    @app.route('/uploads/<path:filename>', methods=['GET'])
    def uploaded_image(filename):
        """Serve stored scan images."""
        return send_from_directory(app.config['IMAGE_STORE_FOLDER'], filename)

    app.logger.info("Blueprints registered")


def register_error_handlers(app):
    """
    Register global error handlers.

    Every error answers with the standard JSON error envelope.
    """

    @app.errorhandler(CropGuardError)
    def handle_cropguard_error(error):
        details = dict(error.details)
        if app.debug and error.__cause__ is not None:
            details['debug'] = repr(error.__cause__)

        if error.status_code >= 500:
            app.logger.error(f"{error.category} error: {error.message}")

        return error_response(
            error.message,
            details=details,
            status_code=error.status_code,
            error_type=error.category
        )

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(
            str(error.description) if hasattr(error, 'description') else 'Invalid request',
            status_code=400,
            error_type='validation'
        )

    @app.errorhandler(401)
    def unauthorized(error):
        return error_response('Not authorized', status_code=401, error_type='authorization')

    @app.errorhandler(403)
    def forbidden(error):
        return error_response(
            'You do not have permission to access this resource',
            status_code=403,
            error_type='authorization'
        )

    @app.errorhandler(404)
    def not_found(error):
        return error_response(
            'The requested resource was not found',
            status_code=404,
            error_type='not_found'
        )

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response(
            'The method is not allowed for this endpoint',
            status_code=405
        )

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return error_response(
            'The uploaded file exceeds the maximum allowed size',
            status_code=413,
            error_type='validation'
        )

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        return error_response(
            'Rate limit exceeded. Please wait a moment and try again.',
            status_code=429,
            error_type='rate_limit'
        )

    @app.errorhandler(500)
    def internal_server_error(error):
        db.session.rollback()
        app.logger.error(f"Internal server error: {error}")
        return error_response(
            'An unexpected error occurred. Please try again later.',
            status_code=500,
            error_type='unknown'
        )

    # JWT Error Handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Not authorized', details={'reason': 'token_expired'},
                              status_code=401, error_type='authorization')

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Not authorized', status_code=401, error_type='authorization')

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('Not authorized', status_code=401, error_type='authorization')

    app.logger.info("Error handlers registered")


def setup_database_handlers(app):
    """
    Remove the database session at the end of each request context,
    rolling back when the request failed.
    """

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        if exception:
            db.session.rollback()
        db.session.remove()


# =============================================================================
# Application Entry Point
# =============================================================================

if __name__ == '__main__':
    app = create_app()

    port = int(os.getenv('PORT', 5000))

    app.run(
        host='0.0.0.0',
        port=port,
        debug=app.config['DEBUG']
    )
