"""
ZPL (Zebra Programming Language) bitmap encoding.

Images are sent as a single ^GFA graphic field:

    ^XA^FO<x>,<y>^GFA,<total>,<total>,<bytes per row>,<data>^FS^XZ

<total> is always the uncompressed byte count so the printer can check that
the field decoded completely. <data> is one of:

  z64 - ":Z64:" + base64(zlib(bitmap)) + ":" + CRC-16 of the base64 text
  acs - ZPL ASCII compression: run-length encoded hex, one row at a time
  hex - plain upper-case hex
"""
import base64
import logging
import zlib

from print_bridge.errors import ValidationError
from print_bridge.jobs.models import LabelCommand
from print_bridge.printers.raster import MonochromeBitmap

logger = logging.getLogger(__name__)

ZPL_COMPRESSIONS = ('z64', 'acs', 'hex')

# ACS repeat counts: G..Y = 1..19, g..z = 20..400 in steps of 20
_COUNT_LOW = 'GHIJKLMNOPQRSTUVWXY'
_COUNT_HIGH = 'ghijklmnopqrstuvwxyz'
_HEX_DIGITS = '0123456789ABCDEFabcdef'


class ZPLDocument:
    """Helper class for building ZPL documents."""

    def __init__(self):
        self.commands = []

    def start(self):
        """Start a ZPL document."""
        self.commands.append("^XA")
        return self

    def end(self):
        """End a ZPL document."""
        self.commands.append("^XZ")
        return self

    def field_origin(self, x: int, y: int):
        """Set field origin (^FO)."""
        self.commands.append(f"^FO{x},{y}")
        return self

    def graphic_field(self, total_bytes: int, bytes_per_row: int, data: str):
        """Add an ASCII graphic field (^GFA) terminated by ^FS."""
        self.commands.append(f"^GFA,{total_bytes},{total_bytes},{bytes_per_row},{data}^FS")
        return self

    def print_quantity(self, copies: int):
        """Set print quantity (^PQ)."""
        self.commands.append(f"^PQ{copies}")
        return self

    def build(self, separator: str = '') -> str:
        """Build the ZPL document as a string."""
        return separator.join(self.commands)


def validate_zpl(zpl_content: str) -> bool:
    """
    Validate basic ZPL syntax.

    Args:
        zpl_content: ZPL content string

    Returns:
        True if content appears to be valid ZPL
    """
    if not zpl_content or not isinstance(zpl_content, str):
        return False

    content_upper = zpl_content.strip().upper()
    if '^XA' not in content_upper or '^XZ' not in content_upper:
        logger.warning("ZPL content missing ^XA or ^XZ commands")
        return False

    if content_upper.find('^XA') >= content_upper.rfind('^XZ'):
        logger.warning("ZPL ^XA command should come before ^XZ")
        return False

    return True


# ---------------------------------------------------------------------------
# Z64
# ---------------------------------------------------------------------------

def crc16_xmodem(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def encode_z64(data: bytes) -> str:
    encoded = base64.b64encode(zlib.compress(data, 9)).decode('ascii')
    return f":Z64:{encoded}:{crc16_xmodem(encoded.encode('ascii')):04X}"


def decode_z64(field: str) -> bytes:
    """Decode a :Z64: payload, checking its CRC."""
    if not field.startswith(':Z64:'):
        raise ValidationError("Not a Z64 payload")
    body, _, crc = field[len(':Z64:'):].rpartition(':')
    if not body:
        raise ValidationError("Z64 payload has no CRC")
    if crc and int(crc, 16) != crc16_xmodem(body.encode('ascii')):
        raise ValidationError("Z64 CRC mismatch")
    return zlib.decompress(base64.b64decode(body))


# ---------------------------------------------------------------------------
# ACS (ZPL ASCII run-length compression)
# ---------------------------------------------------------------------------

def _repeat_prefix(count: int) -> str:
    prefix = ''
    while count >= 400:
        prefix += 'z'
        count -= 400
    if count >= 20:
        prefix += _COUNT_HIGH[count // 20 - 1]
        count %= 20
    if count:
        prefix += _COUNT_LOW[count - 1]
    return prefix


def _run_length(hex_text: str) -> str:
    out = []
    i = 0
    while i < len(hex_text):
        ch = hex_text[i]
        j = i
        while j < len(hex_text) and hex_text[j] == ch:
            j += 1
        run = j - i
        out.append(ch if run == 1 else _repeat_prefix(run) + ch)
        i = j
    return ''.join(out)


def encode_acs(data: bytes, bytes_per_row: int) -> str:
    """ZPL ASCII compression of packed bitmap rows."""
    out = []
    previous = None
    for start in range(0, len(data), bytes_per_row):
        row = data[start:start + bytes_per_row].hex().upper()
        if row == previous:
            out.append(':')
            continue
        previous = row
        stripped = row.rstrip('0')
        if not stripped:
            out.append(',')
        elif len(stripped) < len(row):
            out.append(_run_length(stripped) + ',')
        elif row.endswith('F') and row.rstrip('F'):
            out.append(_run_length(row.rstrip('F')) + '!')
        else:
            out.append(_run_length(row))
    return ''.join(out)


def expand_acs(field: str, bytes_per_row: int) -> bytes:
    """Expand ZPL ASCII-compressed graphic data back to packed bytes."""
    row_chars = bytes_per_row * 2
    rows = []
    current = ''
    count = 0

    def flush(fill: str = ''):
        nonlocal current
        if fill:
            current = current.ljust(row_chars, fill)
        rows.append(current[:row_chars])
        current = current[row_chars:]

    for ch in field:
        if ch in _COUNT_LOW:
            count += _COUNT_LOW.index(ch) + 1
        elif ch in _COUNT_HIGH:
            count += (_COUNT_HIGH.index(ch) + 1) * 20
        elif ch in _HEX_DIGITS:
            current += ch.upper() * (count or 1)
            count = 0
            while len(current) >= row_chars:
                flush()
        elif ch == ',':
            flush('0')
        elif ch == '!':
            flush('F')
        elif ch == ':':
            if not rows:
                raise ValidationError("ACS data repeats a row before any row was given")
            rows.append(rows[-1])
        elif not ch.isspace():
            raise ValidationError(f"Unexpected character {ch!r} in ACS data")
    if current:
        flush('0')
    return bytes.fromhex(''.join(rows))


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------

def encode_graphic_data(bitmap: MonochromeBitmap, compression: str = 'z64') -> str:
    if compression == 'z64':
        return encode_z64(bitmap.data)
    if compression == 'acs':
        return encode_acs(bitmap.data, bitmap.bytes_per_row)
    if compression == 'hex':
        return bitmap.data.hex().upper()
    raise ValidationError(f"Unknown ZPL compression {compression!r}, expected one of {ZPL_COMPRESSIONS}")


def encode_zpl(bitmap: MonochromeBitmap, x: int = 0, y: int = 0,
               compression: str = 'z64', copies: int = 1) -> LabelCommand:
    total_bytes = bitmap.bytes_per_row * bitmap.height
    if len(bitmap.data) != total_bytes:
        raise ValidationError(f"Bitmap holds {len(bitmap.data)} bytes, expected {total_bytes}")

    doc = ZPLDocument().start().field_origin(x, y)
    doc.graphic_field(total_bytes, bitmap.bytes_per_row, encode_graphic_data(bitmap, compression))
    if copies > 1:
        doc.print_quantity(copies)
    zpl = doc.end().build()

    logger.debug(f"ZPL command built: {bitmap} at ({x},{y}), {compression}, {len(zpl)} chars")
    return LabelCommand(
        payload=zpl.encode('ascii'),
        format='zpl',
        width=bitmap.width,
        height=bitmap.height,
        bytes_per_row=bitmap.bytes_per_row,
    )


def parse_graphic_field(zpl: str) -> dict:
    """Split the first ^GFA field of a command into header values and data."""
    start = zpl.find('^GFA,')
    if start < 0:
        raise ValidationError("No ^GFA graphic field found")
    end = zpl.find('^FS', start)
    fields = zpl[start + len('^GFA,'):end if end >= 0 else None].split(',', 3)
    if len(fields) != 4:
        raise ValidationError("Malformed ^GFA graphic field")
    return {
        'total_bytes': int(fields[0]),
        'field_count': int(fields[1]),
        'bytes_per_row': int(fields[2]),
        'data': fields[3],
    }


def decode_graphic_field(zpl: str) -> bytes:
    """Recover the packed bitmap from a ^GFA field in any supported encoding."""
    field = parse_graphic_field(zpl)
    data = field['data']
    if data.startswith(':Z64:'):
        raw = decode_z64(data)
    elif all(c in _HEX_DIGITS for c in data):
        raw = bytes.fromhex(data)
    else:
        raw = expand_acs(data, field['bytes_per_row'])
    if len(raw) != field['total_bytes']:
        raise ValidationError(
            f"Graphic field decoded to {len(raw)} bytes, header declares {field['total_bytes']}"
        )
    return raw
