# =============================================================================
# CropGuard API
# routes/__init__.py - Routes Package
#
# This package contains all API route blueprints organized by feature.
# =============================================================================

from .detect import detect_bp
from .history import history_bp
from .diseases import diseases_bp
from .crops import crops_bp

__all__ = [
    'detect_bp',
    'history_bp',
    'diseases_bp',
    'crops_bp'
]
