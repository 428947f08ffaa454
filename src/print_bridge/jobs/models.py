"""
Request, job and printer models.

Requests come from the WebSocket wire as loosely typed JSON; everything here
turns them into explicit dataclasses with known defaults. No database, no ORM.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

PENDING = 'pending'
COMPLETED = 'completed'
FAILED = 'failed'
CANCELED = 'canceled'

TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, CANCELED})

JOB_KINDS = ('pdf', 'image', 'direct-image', 'cpcl', 'png-cpcl', 'zpl', 'save-pdf')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_request_id() -> str:
    return f"auto_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def _int(val, default=0):
    try:
        return int(val) if val not in (None, '') else default
    except (TypeError, ValueError):
        return default


def _float(val, default=None):
    try:
        return float(val) if val not in (None, '') else default
    except (TypeError, ValueError):
        return default


def _bool(val, default=False):
    if val is None:
        return default
    if isinstance(val, str):
        return val.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(val)


def _text(val) -> Optional[str]:
    if val is None:
        return None
    text = str(val).strip()
    return text or None


def _first(options: dict, *keys):
    for key in keys:
        if options.get(key) is not None:
            return options[key]
    return None


@dataclass(frozen=True)
class Request:
    request_id: str
    action: str
    payload: Optional[str] = None
    options: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: dict) -> 'Request':
        """Build a Request from a decoded wire envelope."""
        request_id = message.get('requestId') or message.get('id') or generate_request_id()
        action = message.get('action') or message.get('type') or ''

        payload = None
        for key in ('data', 'pdf', 'image'):
            if message.get(key):
                payload = message[key]
                break

        options = message.get('options')
        if not isinstance(options, dict):
            # image requests used to send their options as printOptions
            options = message.get('printOptions')
        if not isinstance(options, dict):
            options = {}

        return cls(
            request_id=str(request_id),
            action=str(action),
            payload=payload,
            options=options,
            raw=message,
        )


@dataclass
class Printer:
    name: str
    description: str = ''
    is_default: bool = False
    status: str = 'idle'        # idle | offline

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'description': self.description,
            'isDefault': self.is_default,
            'status': self.status,
        }


@dataclass
class LabelCommand:
    payload: bytes
    format: str                 # cpcl | zpl
    width: int = 0
    height: int = 0
    bytes_per_row: int = 0

    def __len__(self):
        return len(self.payload)


@dataclass
class PrintJob:
    id: str
    kind: str
    printer: Optional[str] = None
    status: str = PENDING
    error: Optional[str] = None
    result: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'kind': self.kind,
            'printer': self.printer,
            'status': self.status,
            'error': self.error,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
        }
        if self.finished_at:
            data['finishedAt'] = self.finished_at.isoformat()
        return data

    def __str__(self):
        return (
            f"PrintJob(id={self.id} kind={self.kind} "
            f"printer={self.printer or 'default'} status={self.status})"
        )


# ---------------------------------------------------------------------------
# Per-action options
# ---------------------------------------------------------------------------

@dataclass
class PdfPrintOptions:
    printer: Optional[str] = None
    silent: bool = True
    copies: int = 1
    landscape: bool = False
    width: Optional[float] = None       # mm
    height: Optional[float] = None      # mm
    fallback_to_default: bool = True

    @classmethod
    def from_dict(cls, options: dict, fallback_to_default: bool = True) -> 'PdfPrintOptions':
        width = _float(options.get('width'))
        height = _float(options.get('height'))
        landscape = _bool(options.get('landscape'))
        if width and height and width > height:
            landscape = True
        return cls(
            printer=_text(options.get('printer')),
            silent=_bool(options.get('silent'), True),
            copies=max(1, _int(options.get('copies'), 1)),
            landscape=landscape,
            width=width,
            height=height,
            fallback_to_default=_bool(options.get('fallbackToPrintDefault'), fallback_to_default),
        )

    def submit_options(self) -> dict:
        """Options understood by PrintBackend.submit_document."""
        opts = {
            'copies': self.copies,
            'landscape': self.landscape,
            'silent': self.silent,
        }
        if self.width and self.height:
            opts['media_mm'] = (self.width, self.height)
        return opts


FILL_MODES = ('contain', 'cover', 'stretch', 'actual')


@dataclass
class ImagePrintOptions(PdfPrintOptions):
    fill_mode: str = 'contain'
    dpi: int = 203
    is_label_printer: bool = False

    @classmethod
    def from_dict(cls, options: dict, fallback_to_default: bool = True) -> 'ImagePrintOptions':
        base = PdfPrintOptions.from_dict(options, fallback_to_default)
        fill_mode = str(_first(options, 'fillMode', 'fitOption') or 'contain').lower()
        if fill_mode == 'fill':
            fill_mode = 'stretch'
        if fill_mode not in FILL_MODES:
            logger.warning(f"Unknown fill mode {fill_mode!r} - using 'contain'")
            fill_mode = 'contain'
        return cls(
            **base.__dict__,
            fill_mode=fill_mode,
            dpi=max(72, _int(options.get('dpi'), 203)),
            is_label_printer=_bool(options.get('isLabelPrinter')),
        )


@dataclass
class LabelImageOptions:
    printer: Optional[str] = None
    width: Optional[int] = None         # dots
    height: Optional[int] = None        # dots
    x: int = 0
    y: int = 0
    invert: bool = False
    threshold: int = 128
    dithering: bool = False
    copies: int = 1
    fallback_to_default: bool = True
    compression: str = 'z64'            # zpl: z64 | acs | hex
    encoding: str = 'hex'               # cpcl: hex | binary

    @classmethod
    def from_dict(cls, options: dict, fallback_to_default: bool = True) -> 'LabelImageOptions':
        threshold = _int(_first(options, 'threshold', 'blackWhiteThreshold'), 128)
        return cls(
            printer=_text(options.get('printer')),
            width=_int(options.get('width'), 0) or None,
            height=_int(options.get('height'), 0) or None,
            x=max(0, _int(options.get('x'), 0)),
            y=max(0, _int(options.get('y'), 0)),
            invert=_bool(options.get('invert')),
            threshold=min(255, max(0, threshold)),
            dithering=_bool(options.get('dithering')),
            copies=max(1, _int(options.get('copies'), 1)),
            fallback_to_default=_bool(options.get('fallbackToPrintDefault'), fallback_to_default),
            compression=str(options.get('compression') or 'z64').lower(),
            encoding=str(options.get('encoding') or 'hex').lower(),
        )

    def submit_options(self) -> dict:
        return {'copies': 1, 'raw': True}


@dataclass
class SavePdfOptions:
    default_path: str = 'document.pdf'

    @classmethod
    def from_dict(cls, options: dict) -> 'SavePdfOptions':
        return cls(default_path=str(options.get('defaultPath') or 'document.pdf'))


def describe(value: Any, limit: int = 80) -> str:
    """Short repr for logging payloads without dumping base64 blobs."""
    text = str(value)
    return text if len(text) <= limit else f"{text[:limit]}... ({len(text)} chars)"
