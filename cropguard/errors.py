# =============================================================================
# CropGuard API
# errors.py - Error Taxonomy
#
# Exceptions raised by the services layer. Application errors carry the HTTP
# status code and a coarse category; provider errors stay internal to the
# detection cascade and are never shown to end users.
# =============================================================================

from cropguard.constants import MESSAGES


class CropGuardError(Exception):
    """
    Base class for errors that are reported to API callers.

    Attributes:
        message: User-facing message
        status_code: HTTP status code for the error response
        category: Coarse error category (validation, authorization, ...)
        details: Optional extra payload for the error response
    """
    status_code = 500
    category = 'unknown'
    default_message = MESSAGES['UNKNOWN']

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class InputValidationError(CropGuardError):
    """Bad media type, oversized file, missing or undecodable image."""
    status_code = 400
    category = 'validation'
    default_message = MESSAGES['INVALID_IMAGE']


class NotAPlantError(InputValidationError):
    """The image validator rejected the upload as not depicting a plant."""
    default_message = MESSAGES['NOT_A_PLANT']


class CropMismatchError(CropGuardError):
    """Declared crop clearly differs from the crop detected in the image."""
    status_code = 422
    category = 'crop_mismatch'

    def __init__(self, verdict):
        self.verdict = verdict
        super().__init__(verdict.message, details={'crop_match': verdict.to_dict()})


class NotAuthorizedError(CropGuardError):
    status_code = 401
    category = 'authorization'
    default_message = MESSAGES['NOT_AUTHORIZED']


class ScanNotFoundError(CropGuardError):
    status_code = 404
    category = 'not_found'
    default_message = MESSAGES['SCAN_NOT_FOUND']


class DiseaseNotFoundError(CropGuardError):
    """The classifier named a disease that the reference store does not know."""
    status_code = 500
    category = 'disease_not_found'

    def __init__(self, disease_name):
        self.disease_name = disease_name
        super().__init__(f'Disease "{disease_name}" not found in database')


class ServiceConfigurationError(CropGuardError):
    status_code = 503
    category = 'configuration'
    default_message = MESSAGES['CONFIGURATION']


class DetectionTimeoutError(CropGuardError):
    status_code = 504
    category = 'timeout'
    default_message = MESSAGES['TIMEOUT']


class PersistenceError(CropGuardError):
    status_code = 500
    category = 'persistence'
    default_message = 'Failed to access scan history'


# =============================================================================
# Provider Errors (internal to the detection cascade)
# =============================================================================

class ProviderError(Exception):
    """
    A remote classifier failed in a way a fallback stage can recover from.

    Attributes:
        provider: Provider identity (e.g. 'groq', 'huggingface')
        raw: Raw response text, kept for diagnostics only
    """

    def __init__(self, message, provider=None, raw=None):
        self.provider = provider
        self.raw = raw
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    pass


class ProviderRateLimitError(ProviderError):
    pass


class ProviderResponseError(ProviderError):
    """Malformed, empty or schema-invalid provider response."""


class ProviderConfigurationError(ServiceConfigurationError):
    """Invalid provider credentials. Not recoverable by falling back."""

    def __init__(self, provider, reason=None):
        self.provider = provider
        self.reason = reason
        super().__init__()


class StageError(Exception):
    """
    A single detection stage failed.

    Attributes:
        stage: Name of the failing stage
        provider: Provider identity of the stage
        raw: Raw response snippet, if any
    """

    def __init__(self, stage, message, provider=None, raw=None):
        self.stage = stage
        self.provider = provider
        self.raw = raw
        super().__init__(message)
