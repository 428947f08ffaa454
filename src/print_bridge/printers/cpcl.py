"""
CPCL bitmap encoding.

A label is a single form:

    ! 0 200 200 <label length> <quantity>
    EG <bytes per row> <height> <x> <y> <hex data>      (or CG with raw bytes)
    FORM
    PRINT

The bitmap is embedded exactly as the rasterizer packed it: MSB-first bits,
rows padded to whole bytes. CPCL's width field counts bytes, not dots.
"""
import logging

from print_bridge.errors import ValidationError
from print_bridge.jobs.models import LabelCommand
from print_bridge.printers.raster import MonochromeBitmap

logger = logging.getLogger(__name__)

CPCL_DPI = 200
CPCL_ENCODINGS = ('hex', 'binary')
CRLF = b'\r\n'


def encode_cpcl(bitmap: MonochromeBitmap, x: int = 0, y: int = 0,
                encoding: str = 'hex', copies: int = 1) -> LabelCommand:
    if encoding not in CPCL_ENCODINGS:
        raise ValidationError(f"Unknown CPCL encoding {encoding!r}, expected one of {CPCL_ENCODINGS}")
    expected = bitmap.bytes_per_row * bitmap.height
    if len(bitmap.data) != expected:
        raise ValidationError(f"Bitmap holds {len(bitmap.data)} bytes, expected {expected}")

    label_length = y + bitmap.height
    header = f"! 0 {CPCL_DPI} {CPCL_DPI} {label_length} {max(1, copies)}".encode('ascii')
    geometry = f"{bitmap.bytes_per_row} {bitmap.height} {x} {y} ".encode('ascii')

    if encoding == 'hex':
        graphic = b'EG ' + geometry + bitmap.data.hex().upper().encode('ascii')
    else:
        graphic = b'CG ' + geometry + bitmap.data

    payload = CRLF.join([header, graphic, b'FORM', b'PRINT']) + CRLF
    logger.debug(f"CPCL command built: {bitmap} at ({x},{y}), {len(payload)} bytes")
    return LabelCommand(
        payload=payload,
        format='cpcl',
        width=bitmap.width,
        height=bitmap.height,
        bytes_per_row=bitmap.bytes_per_row,
    )


def extract_cpcl_bitmap(payload: bytes) -> bytes:
    """Recover the packed bitmap from an EG/CG command built by encode_cpcl."""
    for line_start in (b'EG ', b'CG '):
        start = payload.find(CRLF + line_start)
        if start < 0:
            continue
        start += len(CRLF)
        parts = payload[start:].split(b' ', 5)
        if len(parts) < 6:
            break
        bytes_per_row, height = int(parts[1]), int(parts[2])
        size = bytes_per_row * height
        body = parts[5]
        if line_start == b'EG ':
            return bytes.fromhex(body[:size * 2].decode('ascii'))
        return body[:size]
    raise ValidationError("No CPCL graphic command found")
