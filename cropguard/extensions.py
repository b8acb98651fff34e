# =============================================================================
# CropGuard API
# extensions.py - Flask Extensions Initialization
#
# This module initializes Flask extensions without the app instance to prevent
# circular imports. Extensions are initialized with the app in the factory.
# =============================================================================

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# =============================================================================
# Database ORM
# Persistent store for scan records
# =============================================================================
db = SQLAlchemy()

# =============================================================================
# Database Migrations
# Alembic-based migrations for schema version control
# =============================================================================
migrate = Migrate()

# =============================================================================
# JWT Authentication
# Verifies bearer tokens issued by the identity provider
# =============================================================================
jwt = JWTManager()

# =============================================================================
# Cross-Origin Resource Sharing
# Enables frontend to communicate with backend from different origins
# =============================================================================
cors = CORS()

# =============================================================================
# Rate Limiting
# Protects paid vision provider quota and API endpoints from abuse
# =============================================================================
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per hour"],
    storage_uri="memory://",
    strategy="fixed-window"
)
