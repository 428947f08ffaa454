"""Payload validation for base64 documents and images."""
import base64
import binascii
import logging
import re
from typing import Iterable, Optional, Union

from print_bridge.errors import ValidationError

logger = logging.getLogger(__name__)

PDF_MAGIC = b'%PDF-'
DEFAULT_LABEL_KEYWORDS = ('label', '标签', 'hprt', 'tsc', 'zebra', 'dymo')

_BASE64_CHARS = re.compile(r'^[A-Za-z0-9+/=_-]+$')
_DATA_URL = re.compile(r'^data:[^,]*?;base64,', re.IGNORECASE)


def strip_data_url(data: str) -> str:
    """Remove a ``data:<mime>;base64,`` prefix if present."""
    match = _DATA_URL.match(data)
    return data[match.end():] if match else data


def decode_base64(data: Union[str, bytes], label: str = 'data') -> bytes:
    """
    Decode base64 text (optionally a data URL) to bytes.

    Whitespace is ignored and missing trailing '=' padding is restored.
    """
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode('ascii', errors='replace')
    if not data or not isinstance(data, str):
        raise ValidationError(f"Missing {label} payload")

    raw = re.sub(r'\s', '', strip_data_url(data.strip()))
    if not raw or not _BASE64_CHARS.match(raw):
        raise ValidationError(f"{label} payload is not valid base64")

    raw = raw.rstrip('=')
    raw += '=' * (-len(raw) % 4)
    try:
        if '-' in raw or '_' in raw:
            return base64.urlsafe_b64decode(raw)
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{label} payload is not valid base64: {e}")


def validate_pdf_data(data: Union[str, bytes]) -> bytes:
    """Decode a base64 PDF. A missing %PDF- header is only a warning."""
    buffer = decode_base64(data, 'PDF')
    if not buffer:
        raise ValidationError("PDF payload is empty")
    if len(buffer) >= len(PDF_MAGIC) and not buffer.startswith(PDF_MAGIC):
        logger.warning(
            f"PDF payload has no %PDF- header (starts with {buffer[:10].hex()}) - printing anyway"
        )
    return buffer


def validate_image_data(data: Union[str, bytes]) -> bytes:
    """Decode a base64 image or image data URL."""
    if isinstance(data, (bytes, bytearray)) and not _looks_like_text(data):
        return bytes(data)
    buffer = decode_base64(data, 'image')
    if not buffer:
        raise ValidationError("Image payload is empty")
    return buffer


def is_label_printer(printer_name: Optional[str], explicit: bool = False,
                     keywords: Iterable[str] = DEFAULT_LABEL_KEYWORDS) -> bool:
    """True if the caller says so or the printer name looks like a label printer."""
    if explicit:
        return True
    if not printer_name:
        return False
    lowered = str(printer_name).lower()
    return any(k.lower() in lowered for k in keywords)


def _looks_like_text(data: bytes) -> bool:
    head = bytes(data[:64])
    return head.startswith(b'data:') or bool(re.match(rb'^[A-Za-z0-9+/=\s]+$', head))
