# =============================================================================
# CropGuard API
# services/vision_clients.py - Remote Vision Classifier Clients
#
# Thin HTTP clients for the hosted classifiers used by the detection cascade:
# an OpenAI-compatible chat-completions vision model (Groq) and a Hugging Face
# image-classification inference endpoint. Both translate transport failures
# into provider errors; invalid credentials become configuration errors.
# =============================================================================

import logging
from typing import Any, Dict, List, Optional

import requests

from cropguard.errors import (
    ProviderConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from cropguard.utils import snippet

logger = logging.getLogger(__name__)

DECOMMISSIONED_CODES = {'model_decommissioned', 'model_not_found'}


def _raise_for_status(provider: str, response: requests.Response) -> None:
    """
    Map an HTTP error status onto the provider error hierarchy.

    401/403 mean the credentials are wrong and cannot be fixed by falling back.
    """
    status = response.status_code
    if status < 400:
        return

    body = snippet(response.text)

    if status in (401, 403):
        logger.error(f"[{provider}] rejected credentials ({status}): {body}")
        raise ProviderConfigurationError(provider, reason=f'HTTP {status}')
    if status == 429:
        raise ProviderRateLimitError(f'{provider} rate limit exceeded', provider=provider, raw=body)

    code = None
    try:
        parsed = response.json()
    except ValueError:
        parsed = None
    if isinstance(parsed, dict) and isinstance(parsed.get('error'), dict):
        code = parsed['error'].get('code')

    if code in DECOMMISSIONED_CODES:
        raise ProviderError(f'{provider} model is decommissioned', provider=provider, raw=body)

    raise ProviderError(f'{provider} returned HTTP {status}', provider=provider, raw=body)


class GroqVisionClient:
    """
    Client for a vision-capable chat-completions model.

    Sends one user message made of a text instruction and an inline
    base64 image, and returns the text content of the first choice.
    """

    provider = 'groq'

    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str = 'https://api.groq.com/openai/v1/chat/completions',
        timeout: float = 8.0,
        session: Optional[requests.Session] = None
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(
        self,
        prompt: str,
        image_data_url: str,
        max_tokens: int = 1024,
        temperature: float = 0.1
    ) -> str:
        """
        Ask the model about an image.

        Args:
            prompt: Natural-language instruction
            image_data_url: Image as data:image/jpeg;base64,... URL
            max_tokens: Completion token cap
            temperature: Sampling temperature

        Returns:
            str: Raw text reply

        Raises:
            ProviderConfigurationError: Credentials rejected
            ProviderError: Network failure, HTTP error or empty reply
        """
        payload = {
            'model': self.model,
            'messages': [
                {
                    'role': 'user',
                    'content': [
                        {'type': 'text', 'text': prompt},
                        {'type': 'image_url', 'image_url': {'url': image_data_url}}
                    ]
                }
            ],
            'temperature': temperature,
            'max_tokens': max_tokens,
            'top_p': 1,
            'stream': False
        }
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}'
        }

        try:
            response = self.session.post(
                self.api_url, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError(f'{self.provider} request timed out', provider=self.provider) from e
        except requests.RequestException as e:
            raise ProviderError(f'{self.provider} request failed: {e}', provider=self.provider) from e

        _raise_for_status(self.provider, response)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                f'{self.provider} returned a non-JSON body',
                provider=self.provider,
                raw=snippet(response.text)
            ) from e

        content = None
        choices = body.get('choices') if isinstance(body, dict) else None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get('message')
            if isinstance(message, dict):
                content = message.get('content')
        if not content or not isinstance(content, str):
            raise ProviderResponseError(
                f'No response from {self.provider}',
                provider=self.provider,
                raw=snippet(response.text)
            )

        logger.debug(f"[{self.provider}] reply: {snippet(content)}")
        return content


class HuggingFaceClassifierClient:
    """
    Client for a hosted image-classification model.

    Posts the raw image bytes and returns the list of {label, score}
    predictions produced by the inference endpoint.
    """

    provider = 'huggingface'

    def __init__(
        self,
        api_key: str,
        model_id: str,
        api_url: str = 'https://api-inference.huggingface.co',
        timeout: float = 8.0,
        session: Optional[requests.Session] = None
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f'{self.api_url}/models/{self.model_id}'

    def classify(self, image_data: bytes) -> List[Dict[str, Any]]:
        """
        Classify an image.

        Returns:
            list: Predictions as dicts with 'label' and 'score'

        Raises:
            ProviderConfigurationError: Credentials rejected
            ProviderError: Network failure, model loading, malformed reply
        """
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/octet-stream'
        }

        try:
            response = self.session.post(
                self.endpoint, data=image_data, headers=headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError(f'{self.provider} request timed out', provider=self.provider) from e
        except requests.RequestException as e:
            raise ProviderError(f'{self.provider} request failed: {e}', provider=self.provider) from e

        _raise_for_status(self.provider, response)

        try:
            predictions = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                f'{self.provider} returned a non-JSON body',
                provider=self.provider,
                raw=snippet(response.text)
            ) from e

        if not isinstance(predictions, list) or not predictions:
            raise ProviderResponseError(
                f'{self.provider} returned no predictions',
                provider=self.provider,
                raw=snippet(response.text)
            )

        return predictions
