"""Shared fakes for the test suite."""
import base64
import threading
from io import BytesIO
from pathlib import Path

from PIL import Image

from print_bridge.jobs.models import Printer


PRINTERS = [
    Printer(name='HPRT-Label1', description='HPRT label printer'),
    Printer(name='Zebra ZT230', description='Zebra'),
    Printer(name='Canon MX', description='Office', is_default=True),
]


def png_bytes(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def dot_image(width=10, height=3) -> Image.Image:
    """White image with a single black pixel at (0, 0)."""
    image = Image.new('RGB', (width, height), (255, 255, 255))
    image.putpixel((0, 0), (0, 0, 0))
    return image


def dot_png_base64() -> str:
    return base64.b64encode(png_bytes(dot_image())).decode('ascii')


class FakeBackend:
    """Records submissions; fails for any printer listed in ``failing``."""

    def __init__(self, printers=None, failing=(), error=None):
        self.printers = list(PRINTERS if printers is None else printers)
        self.failing = set(failing)
        self.error = error
        self.submissions = []

    def enumerate_printers(self):
        return list(self.printers)

    def submit_document(self, target, printer_name, options):
        existed = Path(target).exists() if isinstance(target, str) else None
        self.submissions.append({
            'target': target,
            'printer': printer_name,
            'options': dict(options),
            'existed': existed,
        })
        if self.error is not None:
            raise self.error
        if printer_name in self.failing or (printer_name is None and None in self.failing):
            return {'success': False, 'message': f"{printer_name or 'default'} is offline"}
        return {'success': True, 'message': 'Job submitted'}


class BlockingBackend(FakeBackend):
    """Holds every submission until ``release`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.started = threading.Event()
        self.release = threading.Event()

    def submit_document(self, target, printer_name, options):
        self.started.set()
        self.release.wait(5)
        return super().submit_document(target, printer_name, options)


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.closed = False

    async def send_json(self, message):
        if self.closed:
            raise ConnectionResetError('Cannot write to closing transport')
        self.sent.append(message)

    async def close(self, **kwargs):
        self.closed = True


class FixedSaveTarget:
    def __init__(self, path):
        self.path = path
        self.requested = []

    def choose_path(self, default_name):
        self.requested.append(default_name)
        return self.path
