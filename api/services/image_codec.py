"""
Image codec adapter: binary image bytes <-> base64 transport form.

The transport form is what the vision service and the browser exchange. It is
a lossless boundary: decode(encode(x)) returns x byte for byte, images are
never re-encoded here.
"""
import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from core.exceptions import CodecError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"

# Leading bytes of the formats the vision service accepts
_MAGIC_BYTES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


@dataclass(frozen=True)
class ImagePayload:
    """Binary image bytes with their MIME type"""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    def __repr__(self) -> str:
        return f"ImagePayload(mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class TransportImage:
    """Base64 text form of an image, as sent over the wire"""

    data: str
    mime_type: str = DEFAULT_MIME_TYPE

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def sniff_mime_type(image_bytes: bytes) -> Optional[str]:
    """Guess the MIME type from magic bytes; None when unrecognised."""
    for magic, mime_type in _MAGIC_BYTES:
        if image_bytes.startswith(magic):
            return mime_type
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return None


def _verify_image(image_bytes: bytes) -> None:
    if not image_bytes:
        raise CodecError("Image data is empty")
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise CodecError(f"Data is not a decodable image stream: {e}") from e


def encode(image_bytes: bytes, mime_type: Optional[str] = None) -> TransportImage:
    """Encode image bytes for transport. Raises CodecError for non-image input."""
    _verify_image(image_bytes)
    mime_type = mime_type or sniff_mime_type(image_bytes) or DEFAULT_MIME_TYPE
    return TransportImage(data=base64.b64encode(image_bytes).decode("ascii"), mime_type=mime_type)


def decode(transport_image: TransportImage) -> bytes:
    """Decode a transport image back to the exact bytes that were encoded."""
    try:
        image_bytes = base64.b64decode(transport_image.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CodecError(f"Malformed base64 image data: {e}") from e
    _verify_image(image_bytes)
    return image_bytes


def encode_payload(payload: ImagePayload) -> TransportImage:
    return encode(payload.data, payload.mime_type)


def image_dimensions(image_bytes: bytes) -> Tuple[int, int]:
    """Pixel (width, height) of an encoded image."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            return image.size
    except (UnidentifiedImageError, OSError) as e:
        raise CodecError(f"Data is not a decodable image stream: {e}") from e
