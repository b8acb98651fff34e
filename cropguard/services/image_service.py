# =============================================================================
# CropGuard API
# services/image_service.py - Image Normalization & Asset Storage
#
# Validates uploads before any external call, downscales images to fit the
# classifier bounding box, re-encodes them as JPEG, and stores scan images
# as deletable assets served under a public URL.
# =============================================================================

import io
import os
import base64
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from cropguard.constants import (
    ALLOWED_EXTENSIONS,
    ALLOWED_IMAGE_TYPES,
    IMAGE_JPEG_QUALITY,
    IMAGE_MAX_DIMENSION,
    MAX_IMAGE_BYTES,
    MESSAGES,
)
from cropguard.errors import InputValidationError
from cropguard.utils import allowed_file, generate_unique_filename

logger = logging.getLogger(__name__)

GENERIC_MEDIA_TYPES = {None, '', 'application/octet-stream'}


class PreparedImage:
    """A normalized JPEG image ready for classification and storage."""

    __slots__ = ('data', 'width', 'height')

    def __init__(self, data: bytes, width: int, height: int):
        self.data = data
        self.width = width
        self.height = height

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode('utf-8')

    @property
    def data_url(self) -> str:
        return f"data:image/jpeg;base64,{self.base64}"

    def __repr__(self):
        return f'<PreparedImage {self.width}x{self.height} {len(self.data)} bytes>'


class ImageRef:
    """Durable reference to a stored image asset."""

    __slots__ = ('url', 'public_id')

    def __init__(self, url: str, public_id: Optional[str] = None):
        self.url = url
        self.public_id = public_id

    def __repr__(self):
        return f'<ImageRef {self.public_id}: {self.url}>'


def check_upload(
    size: int,
    media_type: Optional[str],
    filename: Optional[str] = None,
    max_bytes: int = MAX_IMAGE_BYTES,
    allowed_types=ALLOWED_IMAGE_TYPES,
    allowed_extensions=ALLOWED_EXTENSIONS
) -> None:
    """
    Reject uploads with an unsupported media type or an oversized payload.

    The file extension is consulted only when the client sent a generic
    media type.

    Raises:
        InputValidationError: With a user-facing reason
    """
    if not size:
        raise InputValidationError(MESSAGES['EMPTY_IMAGE'])

    media_type = (media_type or '').split(';')[0].strip().lower() or None
    if media_type in GENERIC_MEDIA_TYPES:
        if not allowed_file(filename, allowed_extensions):
            raise InputValidationError(
                MESSAGES['INVALID_TYPE'],
                details={'allowed': sorted(allowed_types)}
            )
    elif media_type not in allowed_types:
        raise InputValidationError(
            MESSAGES['INVALID_TYPE'],
            details={'allowed': sorted(allowed_types)}
        )

    if size > max_bytes:
        raise InputValidationError(
            MESSAGES['TOO_LARGE'],
            details={'max_bytes': max_bytes, 'size': size}
        )


def prepare_image(
    image_data: bytes,
    max_dimension: int = IMAGE_MAX_DIMENSION,
    quality: int = IMAGE_JPEG_QUALITY
) -> PreparedImage:
    """
    Downscale an image to fit a square bounding box and re-encode as JPEG.

    Images already inside the box keep their size.

    Args:
        image_data: Raw uploaded bytes
        max_dimension: Bounding box edge in pixels
        quality: JPEG quality

    Returns:
        PreparedImage: Normalized image

    Raises:
        InputValidationError: The bytes are not a decodable image
    """
    try:
        image = Image.open(io.BytesIO(image_data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise InputValidationError(MESSAGES['INVALID_IMAGE']) from e

    # Convert to RGB if necessary
    if image.mode != 'RGB':
        image = image.convert('RGB')

    image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    image.save(buffer, format='JPEG', quality=quality)

    return PreparedImage(buffer.getvalue(), image.width, image.height)


class LocalImageStore:
    """
    Image asset store backed by a local folder.

    Assets are written as <public_id>.jpg and exposed under base_url.
    """

    def __init__(self, folder: str, base_url: str = '/uploads'):
        self.folder = folder
        self.base_url = base_url.rstrip('/')

    def _path(self, public_id: str) -> str:
        return os.path.join(self.folder, f"{public_id}.jpg")

    def upload(self, image_data: bytes, name_prefix: str = '') -> ImageRef:
        """
        Store image bytes.

        Returns:
            ImageRef: URL and deletable public id
        """
        os.makedirs(self.folder, exist_ok=True)
        public_id = generate_unique_filename(name_prefix)

        with open(self._path(public_id), 'wb') as f:
            f.write(image_data)

        logger.info(f"Stored image asset {public_id}")
        return ImageRef(f"{self.base_url}/{public_id}.jpg", public_id)

    def delete(self, public_id: str) -> None:
        """
        Delete a stored asset.

        Raises:
            FileNotFoundError: No asset with that id
        """
        os.remove(self._path(public_id))
        logger.info(f"Deleted image asset {public_id}")
