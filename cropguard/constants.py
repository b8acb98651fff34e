"""
CropGuard - Shared Constants
Common constants used by the detection pipeline, services and routes
"""

# =============================================================================
# Disease Sentinels
# =============================================================================
HEALTHY_PLANT = 'Healthy Plant'
WILDCARD_CROP = 'All'
DEFAULT_CROP_TYPE = 'Tomato'

# =============================================================================
# Severity Levels (ordinal: None < Mild < Moderate < Severe)
# =============================================================================
SEVERITY_LEVELS = ['None', 'Mild', 'Moderate', 'Severe']
DEFAULT_SEVERITY = 'Moderate'

SEVERITY_ORDER = {level: rank for rank, level in enumerate(SEVERITY_LEVELS)}

SEVERITY_COLORS = {
    'None': '#22C55E',      # Green
    'Mild': '#EAB308',      # Yellow
    'Moderate': '#F97316',  # Orange
    'Severe': '#EF4444'     # Red
}

# =============================================================================
# Image Processing Constants
# =============================================================================
IMAGE_MAX_DIMENSION = 1024
IMAGE_JPEG_QUALITY = 85
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MiB

ALLOWED_IMAGE_TYPES = {
    'image/jpeg',
    'image/jpg',
    'image/png',
    'image/webp',
    'image/gif',
    'image/bmp',
    'image/tiff'
}
ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'webp', 'gif', 'bmp', 'tif', 'tiff'}

PLACEHOLDER_IMAGE_URL = 'https://via.placeholder.com/400x300?text=Image+Upload+Failed'

# =============================================================================
# Detection Configuration
# =============================================================================
PLANT_CONFIDENCE_THRESHOLD = 60
VALIDATOR_FALLBACK_CONFIDENCE = 50
OFFLINE_CONFIDENCE_JITTER = 0.05
RAW_SNIPPET_LENGTH = 200

# =============================================================================
# Pagination
# =============================================================================
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100
STATS_MONTHS = 6

# =============================================================================
# API Response Messages
# =============================================================================
MESSAGES = {
    'NO_IMAGE': 'No image file provided',
    'EMPTY_IMAGE': 'The uploaded image is empty',
    'INVALID_TYPE': 'Invalid file type. Please upload a valid image file.',
    'TOO_LARGE': 'File size too large. Please upload an image under 10MB.',
    'INVALID_IMAGE': 'Invalid or corrupt image file',
    'NOT_A_PLANT': 'The uploaded image does not appear to show a plant or crop',
    'NOT_AUTHORIZED': 'Not authorized',
    'SCAN_NOT_FOUND': 'Scan not found',
    'CONFIGURATION': 'Service configuration error. Please contact support.',
    'RATE_LIMIT': 'Rate limit exceeded. Please wait a moment and try again.',
    'NETWORK': 'Network error. Please check your connection and try again.',
    'TIMEOUT': 'The analysis took too long to complete. Please try again.',
    'UNKNOWN': 'An unexpected error occurred during analysis'
}

NOT_A_PLANT_SUGGESTIONS = [
    'Upload an image of a plant, crop, fruit, or vegetable',
    'Ensure the plant is clearly visible in the image',
    'Use good lighting and focus on the leaves or fruit'
]
