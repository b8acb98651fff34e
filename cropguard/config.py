# =============================================================================
# CropGuard API
# config.py - Configuration Management
#
# Environment-based configuration for development, testing, and production.
# Uses python-dotenv to load environment variables from .env file.
# =============================================================================

import os
from datetime import timedelta
from dotenv import load_dotenv

from cropguard import constants

# Load environment variables from .env file
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    """
    Base configuration class with default settings.
    All other configuration classes inherit from this.
    """

    # ==========================================================================
    # Flask Core Settings
    # ==========================================================================
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = False
    TESTING = False

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///cropguard.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}

    # ==========================================================================
    # JWT Authentication Configuration
    # Tokens are issued by the external identity provider; only verified here.
    # ==========================================================================
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=30)
    JWT_TOKEN_LOCATION = ['headers']
    JWT_HEADER_NAME = 'Authorization'
    JWT_HEADER_TYPE = 'Bearer'

    # ==========================================================================
    # Rate Limiting Configuration
    # ==========================================================================
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True').lower() == 'true'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URL', 'memory://')
    RATELIMIT_STRATEGY = os.getenv('RATELIMIT_STRATEGY', 'fixed-window')
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '200 per hour')
    RATELIMIT_HEADERS_ENABLED = True

    # ==========================================================================
    # CORS Configuration
    # ==========================================================================
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    CORS_SUPPORTS_CREDENTIALS = True

    # ==========================================================================
    # Image Upload Configuration
    # ==========================================================================
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # transport ceiling
    MAX_IMAGE_BYTES = constants.MAX_IMAGE_BYTES
    IMAGE_MAX_DIMENSION = constants.IMAGE_MAX_DIMENSION
    IMAGE_JPEG_QUALITY = constants.IMAGE_JPEG_QUALITY
    ALLOWED_IMAGE_TYPES = constants.ALLOWED_IMAGE_TYPES
    ALLOWED_EXTENSIONS = constants.ALLOWED_EXTENSIONS

    IMAGE_STORE_FOLDER = os.getenv(
        'IMAGE_STORE_FOLDER',
        os.path.join(BASE_DIR, 'static', 'uploads')
    )
    IMAGE_BASE_URL = os.getenv('IMAGE_BASE_URL', '/uploads')

    # ==========================================================================
    # Vision Provider Configuration
    # ==========================================================================
    GROQ_API_KEY = os.getenv('GROQ_API_KEY', '')
    GROQ_API_URL = os.getenv('GROQ_API_URL', 'https://api.groq.com/openai/v1/chat/completions')
    GROQ_VISION_MODEL = os.getenv('GROQ_VISION_MODEL', 'meta-llama/llama-4-scout-17b-16e-instruct')
    GROQ_VALIDATOR_MODEL = os.getenv('GROQ_VALIDATOR_MODEL', GROQ_VISION_MODEL)

    HUGGINGFACE_API_KEY = os.getenv('HUGGINGFACE_API_KEY', '')
    HUGGINGFACE_API_URL = os.getenv('HUGGINGFACE_API_URL', 'https://api-inference.huggingface.co')
    HUGGINGFACE_MODEL_ID = os.getenv(
        'HUGGINGFACE_MODEL_ID',
        'linkanjarad/mobilenet_v2_1.0_224-plant-disease-identification'
    )

    PROVIDER_TIMEOUT = float(os.getenv('PROVIDER_TIMEOUT', '8'))

    # ==========================================================================
    # Detection Pipeline Configuration
    # ==========================================================================
    DETECTION_TIME_BUDGET = float(os.getenv('DETECTION_TIME_BUDGET', '30'))
    PLANT_CONFIDENCE_THRESHOLD = constants.PLANT_CONFIDENCE_THRESHOLD
    DISEASE_DATA_FILE = os.getenv(
        'DISEASE_DATA_FILE',
        os.path.join(BASE_DIR, 'data', 'disease_profiles.json')
    )


class DevelopmentConfig(Config):
    """
    Development configuration with debug mode enabled.
    Uses SQLite database for easy local development.
    """
    DEBUG = True
    SQLALCHEMY_ECHO = True  # Log SQL queries for debugging

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///cropguard_dev.db')

    # Relaxed rate limiting for development
    RATELIMIT_DEFAULT = '1000 per hour'


class TestingConfig(Config):
    """
    Testing configuration for automated tests.
    Uses in-memory SQLite database and never talks to remote providers.
    """
    TESTING = True
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Disable rate limiting during tests
    RATELIMIT_ENABLED = False

    JWT_SECRET_KEY = 'testing-jwt-secret-key-at-least-32-bytes'

    GROQ_API_KEY = ''
    HUGGINGFACE_API_KEY = ''


class ProductionConfig(Config):
    """
    Production configuration with security hardening.
    Requires all secrets to be set via environment variables.
    """
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')

    # Connection pooling for production performance
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
        'max_overflow': 20,
        'pool_timeout': 30
    }

    # Use Redis for rate limiting in production
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL', 'memory://')

    # Stricter rate limits for production
    RATELIMIT_DEFAULT = '100 per hour'


# =============================================================================
# Configuration Dictionary
# Maps environment names to configuration classes
# =============================================================================
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """
    Get the configuration class for a name or the FLASK_ENV environment variable.

    Returns:
        Config: Configuration class for the requested environment
    """
    env = config_name or os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
