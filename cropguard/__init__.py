# =============================================================================
# CropGuard API
# Plant disease detection service: image validation, a multi-provider
# detection cascade and owner-scoped scan history.
# =============================================================================

__version__ = '1.0.0'
