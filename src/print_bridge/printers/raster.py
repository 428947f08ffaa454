"""
Image rasterizer.

Turns encoded image bytes into a 1-bit-per-pixel bitmap for label printers:
row-major, most significant bit first within each byte, every row padded to
a whole number of bytes. A set bit is a printed (black) dot.
"""
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, Optional, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from print_bridge.errors import ImageDecodeError, ValidationError
from print_bridge.printers.validation import validate_image_data

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 128
GRAYSCALE_MODES = ('luminance', 'average')


@dataclass
class MonochromeBitmap:
    width: int
    height: int
    data: bytes

    @property
    def bytes_per_row(self) -> int:
        return (self.width + 7) // 8

    def row(self, y: int) -> bytes:
        start = y * self.bytes_per_row
        return self.data[start:start + self.bytes_per_row]

    def get_pixel(self, x: int, y: int) -> bool:
        byte = self.data[y * self.bytes_per_row + x // 8]
        return bool(byte & (0x80 >> (x % 8)))

    def __str__(self):
        return f"MonochromeBitmap({self.width}x{self.height}, {self.bytes_per_row} bytes/row)"


def pack_bits(marks: Iterable[bool], width: int, height: int) -> bytes:
    """Pack row-major mark flags into MSB-first bytes with per-row padding."""
    bytes_per_row = (width + 7) // 8
    out = bytearray(bytes_per_row * height)
    marks = iter(marks)
    for y in range(height):
        base = y * bytes_per_row
        for x in range(width):
            if next(marks):
                out[base + (x >> 3)] |= 0x80 >> (x & 7)
    return bytes(out)


def load_image(data: Union[bytes, str]) -> Image.Image:
    """Decode image bytes, base64 text or a data URL into a Pillow image."""
    try:
        buffer = validate_image_data(data)
    except ValidationError as e:
        raise ImageDecodeError(str(e))
    try:
        image = Image.open(BytesIO(buffer))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}")
    return image


def flatten(image: Image.Image) -> Image.Image:
    """RGB copy of ``image`` composited over white, so transparency prints blank."""
    rgba = image.convert('RGBA')
    background = Image.new('RGBA', rgba.size, (255, 255, 255, 255))
    background.alpha_composite(rgba)
    return background.convert('RGB')


def resize(image: Image.Image, width: Optional[int] = None,
           height: Optional[int] = None) -> Image.Image:
    if width and height:
        size = (width, height)
    elif width:
        size = (width, max(1, round(image.height * width / image.width)))
    elif height:
        size = (max(1, round(image.width * height / image.height)), height)
    else:
        return image
    if size == image.size:
        return image
    return image.resize(size, Image.Resampling.LANCZOS)


def rasterize(data: Union[bytes, str, Image.Image], width: Optional[int] = None,
              height: Optional[int] = None, invert: bool = False,
              threshold: int = DEFAULT_THRESHOLD, grayscale: str = 'luminance',
              dithering: bool = False) -> MonochromeBitmap:
    """
    Decode and binarize an image.

    Args:
        data: Image bytes, base64 text, a data URL or an already opened image
        width: Output width in dots (default: intrinsic, or scaled from height)
        height: Output height in dots (default: intrinsic, or scaled from width)
        invert: Print light pixels instead of dark ones
        threshold: Gray level cutoff, 0-255
        grayscale: 'luminance' (0.299R + 0.587G + 0.114B) or 'average' ((R+G+B)/3)
        dithering: Floyd-Steinberg error diffusion instead of a hard cutoff

    Returns:
        MonochromeBitmap where set bits are printed dots
    """
    if grayscale not in GRAYSCALE_MODES:
        raise ValidationError(f"Unknown grayscale mode {grayscale!r}")

    image = data if isinstance(data, Image.Image) else load_image(data)
    image = resize(flatten(image), width, height)
    w, h = image.size
    if w == 0 or h == 0:
        raise ImageDecodeError("Image has no pixels")

    if dithering:
        gray = image.convert('L')
        if invert:
            gray = ImageOps.invert(gray)
        marks = (p == 0 for p in gray.convert('1').getdata())
    else:
        marks = _threshold_marks(image.getdata(), threshold, invert, grayscale)

    bitmap = MonochromeBitmap(w, h, pack_bits(marks, w, h))
    logger.debug(f"Rasterized image to {bitmap} (threshold={threshold} invert={invert})")
    return bitmap


def _threshold_marks(pixels, threshold: int, invert: bool, grayscale: str):
    for r, g, b in pixels:
        if grayscale == 'average':
            y = (r + g + b) / 3
        else:
            y = 0.299 * r + 0.587 * g + 0.114 * b
        dark = y < threshold
        yield (not dark) if invert else dark
