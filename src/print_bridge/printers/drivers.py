"""
Print backend implementations.

The bridge never talks to printers itself; it enumerates OS print queues and
hands documents or raw label command streams to the OS spooler.

Backends:
  cups  - POSIX: lpstat for enumeration, lp for submission
  win32 - Windows: win32print for enumeration and RAW jobs, ShellExecute
          "printto" for PDF documents
"""

import re
import subprocess
import sys
import tempfile
import logging
from pathlib import Path
from typing import List, Optional, Union

from print_bridge.jobs.models import LabelCommand, Printer

try:
    import win32api
    import win32print
except ImportError:
    win32api = None
    win32print = None

logger = logging.getLogger(__name__)

LP_TIMEOUT = 60
LPSTAT_TIMEOUT = 10

_LPSTAT_PRINTER = re.compile(r'^printer\s+(\S+)\s+(.*)$')
_LPSTAT_DEFAULT = re.compile(r'^system default destination:\s*(\S+)')


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class PrintBackend:
    """Adapter between the bridge and the OS printing system."""

    def enumerate_printers(self) -> List[Printer]:
        raise NotImplementedError

    def submit_document(self, target: Union[LabelCommand, str, Path],
                        printer_name: Optional[str], options: dict) -> dict:
        """
        Submit a document path or a raw LabelCommand.

        ``printer_name`` None means the system default printer. Returns
        ``{'success': bool, 'message': str}``; should not raise.
        """
        raise NotImplementedError


# ---------------------------------------------------------------------------
# CUPS (lp / lpstat)
# ---------------------------------------------------------------------------

class CUPSBackend(PrintBackend):
    """Enumerates and submits through the CUPS command line tools."""

    def __init__(self, lp_timeout: int = LP_TIMEOUT):
        self.lp_timeout = lp_timeout

    def enumerate_printers(self) -> List[Printer]:
        default = None
        try:
            result = subprocess.run(
                ['lpstat', '-d'], capture_output=True, text=True, timeout=LPSTAT_TIMEOUT
            )
            match = _LPSTAT_DEFAULT.match(result.stdout.strip())
            if match:
                default = match.group(1)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"lpstat -d failed: {e}")

        try:
            result = subprocess.run(
                ['lpstat', '-p'], capture_output=True, text=True, timeout=LPSTAT_TIMEOUT
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Could not enumerate CUPS printers: {e}")
            return []

        return parse_lpstat(result.stdout, default)

    def submit_document(self, target, printer_name, options) -> dict:
        if isinstance(target, LabelCommand):
            return self._lp_bytes(target.payload, printer_name, options, raw=True)
        return self._lp(str(target), printer_name, _build_lp_options(options))

    def _lp_bytes(self, content: bytes, printer_name, options, raw=False) -> dict:
        tmp = None
        try:
            with tempfile.NamedTemporaryFile(delete=False, suffix='.bin') as f:
                tmp = f.name
                f.write(content)
            extra = _build_lp_options(dict(options or {}, raw=raw))
            return self._lp(tmp, printer_name, extra)
        finally:
            if tmp:
                Path(tmp).unlink(missing_ok=True)

    def _lp(self, path: str, printer_name: Optional[str], extra_opts: list) -> dict:
        cmd = ['lp']
        if printer_name:
            cmd += ['-d', printer_name]
        cmd += extra_opts + [path]
        logger.info(f"CUPS: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.lp_timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"CUPS lp timed out for {printer_name or 'default printer'}")
            return {'success': False, 'message': f"lp timed out after {self.lp_timeout}s"}
        except OSError as e:
            logger.error(f"CUPS print error: {e}")
            return {'success': False, 'message': f"Could not run lp: {e}"}

        if result.returncode == 0:
            logger.info(f"✓ CUPS job accepted: {result.stdout.strip()}")
            return {'success': True, 'message': result.stdout.strip() or 'Job submitted'}
        error = result.stderr.strip() or f"lp exited with status {result.returncode}"
        logger.error(f"CUPS error: {error}")
        return {'success': False, 'message': error}


def parse_lpstat(output: str, default: Optional[str] = None) -> List[Printer]:
    """Parse ``lpstat -p`` output into Printer records."""
    printers = []
    for line in output.splitlines():
        match = _LPSTAT_PRINTER.match(line.strip())
        if not match:
            continue
        name, state = match.groups()
        printers.append(Printer(
            name=name,
            description=state.split('.')[0].strip(),
            is_default=(name == default),
            status='offline' if 'disabled' in state else 'idle',
        ))
    return printers


# ---------------------------------------------------------------------------
# Windows (win32print)
# ---------------------------------------------------------------------------

class Win32Backend(PrintBackend):
    """Enumerates with EnumPrinters; RAW jobs via WritePrinter, PDFs via the shell."""

    def __init__(self):
        if win32print is None:
            raise RuntimeError("pywin32 is required for printing on Windows")

    def enumerate_printers(self) -> List[Printer]:
        flags = win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
        try:
            default = win32print.GetDefaultPrinter()
        except Exception as e:
            logger.debug(f"No default printer: {e}")
            default = None

        printers = []
        for info in win32print.EnumPrinters(flags, None, 2):
            offline = (
                info.get('Status', 0) & win32print.PRINTER_STATUS_OFFLINE
                or info.get('Attributes', 0) & win32print.PRINTER_ATTRIBUTE_WORK_OFFLINE
            )
            printers.append(Printer(
                name=info['pPrinterName'],
                description=info.get('pComment') or info.get('pDriverName') or '',
                is_default=(info['pPrinterName'] == default),
                status='offline' if offline else 'idle',
            ))
        return printers

    def submit_document(self, target, printer_name, options) -> dict:
        try:
            printer = printer_name or win32print.GetDefaultPrinter()
            if isinstance(target, LabelCommand):
                self._write_raw(printer, target.payload, copies=int(options.get('copies') or 1))
            else:
                _warn_shell_ignored(options)
                # ShellExecute hands the file to the registered PDF viewer
                win32api.ShellExecute(0, 'printto', str(target), f'"{printer}"', '.', 0)
        except Exception as e:
            logger.error(f"Windows print error ({printer_name or 'default printer'}): {e}")
            return {'success': False, 'message': str(e)}
        logger.info(f"✓ Sent to {printer}")
        return {'success': True, 'message': f"Sent to {printer}"}

    def _write_raw(self, printer: str, content: bytes, copies: int = 1):
        handle = win32print.OpenPrinter(printer)
        try:
            win32print.StartDocPrinter(handle, 1, ('Label', None, 'RAW'))
            try:
                for _ in range(max(1, copies)):
                    win32print.StartPagePrinter(handle)
                    win32print.WritePrinter(handle, content)
                    win32print.EndPagePrinter(handle)
            finally:
                win32print.EndDocPrinter(handle)
        finally:
            win32print.ClosePrinter(handle)


def _warn_shell_ignored(options: dict):
    """The shell print verb only knows the target printer."""
    ignored = []
    if options.get('copies') and int(options['copies']) > 1:
        ignored.append(f"copies={int(options['copies'])}")
    if options.get('landscape'):
        ignored.append('landscape')
    if options.get('media_mm'):
        ignored.append('media size')
    if options.get('fit_to_page'):
        ignored.append('fit to page')
    if ignored:
        logger.warning(f"Windows shell printing ignores: {', '.join(ignored)}")


# ---------------------------------------------------------------------------
# Options mapping: submit options to lp flags
# ---------------------------------------------------------------------------

def _build_lp_options(options: dict) -> list:
    """
    Convert submit options to an `lp` argument list.
    Ignores unknown keys silently.
    """
    opts = []
    if not options:
        return opts

    _copies = options.get('copies')
    if _copies and int(_copies) > 1:
        opts += ['-n', str(int(_copies))]

    if options.get('raw'):
        opts += ['-o', 'raw']
        return opts

    if options.get('landscape'):
        opts += ['-o', 'landscape']

    media = options.get('media_mm')
    if media:
        width, height = media
        opts += ['-o', f'media=Custom.{_mm(width)}x{_mm(height)}mm']

    if options.get('fit_to_page'):
        opts += ['-o', 'fit-to-page']

    return opts


def _mm(value) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else f"{value:g}"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

class SystemPrintBackend(PrintBackend):
    """Picks the platform backend on first use."""

    def __init__(self, platform: Optional[str] = None):
        self.platform = platform or sys.platform
        self._delegate = None

    @property
    def delegate(self) -> PrintBackend:
        if self._delegate is None:
            self._delegate = Win32Backend() if self.platform == 'win32' else CUPSBackend()
            logger.debug(f"Using {type(self._delegate).__name__} for {self.platform}")
        return self._delegate

    def enumerate_printers(self) -> List[Printer]:
        return self.delegate.enumerate_printers()

    def submit_document(self, target, printer_name, options) -> dict:
        return self.delegate.submit_document(target, printer_name, options)
