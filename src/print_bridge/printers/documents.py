"""
Document staging and image page composition.

PDFs are written to a temp file before being handed to the print backend.
Images printed as documents are laid out on a single page of the requested
size with Pillow and saved as a one-page PDF.
"""
import logging
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageOps

from print_bridge.errors import ValidationError
from print_bridge.printers.raster import flatten, load_image

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4
TEMP_PREFIX = 'print_bridge_'


def stage_temp_file(data: bytes, suffix: str = '.pdf') -> Path:
    """Write ``data`` to a new temp file and return its path."""
    with tempfile.NamedTemporaryFile(delete=False, prefix=TEMP_PREFIX, suffix=suffix) as f:
        f.write(data)
    path = Path(f.name)
    logger.debug(f"Staged {len(data)} bytes at {path}")
    return path


def remove_temp(path: Optional[Union[str, Path]]):
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove temp file {path}: {e}")


def mm_to_px(mm: float, dpi: int) -> int:
    return max(1, round(mm / MM_PER_INCH * dpi))


def fit_image(image: Image.Image, size: tuple, fill_mode: str = 'contain') -> Image.Image:
    """
    Lay ``image`` out on a white page of ``size`` pixels.

    contain - scale to fit inside the page, keep aspect ratio, center
    cover   - scale to cover the page, keep aspect ratio, crop the overflow
    stretch - scale to exactly the page size
    actual  - no scaling, centered, cropped if larger
    """
    if fill_mode == 'stretch':
        return image.resize(size, Image.Resampling.LANCZOS)
    if fill_mode == 'cover':
        return ImageOps.fit(image, size, Image.Resampling.LANCZOS)

    if fill_mode == 'contain':
        image = ImageOps.contain(image, size, Image.Resampling.LANCZOS)
    elif fill_mode != 'actual':
        raise ValidationError(f"Unknown fill mode {fill_mode!r}")

    page = Image.new('RGB', size, (255, 255, 255))
    left = (size[0] - image.width) // 2
    top = (size[1] - image.height) // 2
    page.paste(image, (left, top))
    return page


def image_to_pdf(image_data: Union[bytes, str], width_mm: Optional[float] = None,
                 height_mm: Optional[float] = None, dpi: int = 203,
                 fill_mode: str = 'contain', landscape: bool = False) -> bytes:
    """
    Compose an image onto a single PDF page.

    Args:
        image_data: Image bytes, base64 text or a data URL
        width_mm: Page width; with no page size the image's own size is used
        height_mm: Page height
        dpi: Resolution used to convert mm to pixels
        fill_mode: contain | cover | stretch | actual
        landscape: Swap page dimensions so the page is wider than tall

    Returns:
        PDF document bytes
    """
    image = flatten(load_image(image_data))

    if width_mm and height_mm:
        size = (mm_to_px(width_mm, dpi), mm_to_px(height_mm, dpi))
        if landscape and size[0] < size[1]:
            size = (size[1], size[0])
        page = fit_image(image, size, fill_mode)
    else:
        page = image

    buffer = BytesIO()
    page.save(buffer, format='PDF', resolution=float(dpi))
    pdf = buffer.getvalue()
    logger.debug(
        f"Composed {image.width}x{image.height} image onto {page.width}x{page.height} page "
        f"({fill_mode}, {dpi} dpi, {len(pdf)} bytes)"
    )
    return pdf
