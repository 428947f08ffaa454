"""
Action handlers.

Each handler takes the ServerContext and a parsed Request and returns the one
response frame for it. Job handlers always drive their PrintJob to a terminal
status before returning, so the observer and the client see the same outcome.
"""
import asyncio
import functools
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from print_bridge.errors import BridgeError, DuplicateJobError, PrintError, ValidationError
from print_bridge.jobs.models import (
    COMPLETED, ImagePrintOptions, LabelImageOptions, PdfPrintOptions, Printer,
    PrintJob, Request, SavePdfOptions, describe, utcnow,
)
from print_bridge.printers.cpcl import encode_cpcl
from print_bridge.printers.documents import image_to_pdf, remove_temp, stage_temp_file
from print_bridge.printers.raster import rasterize
from print_bridge.printers.resolver import resolve_printer_name
from print_bridge.printers.validation import is_label_printer, validate_pdf_data
from print_bridge.printers.zpl import encode_zpl

logger = logging.getLogger(__name__)


async def _in_thread(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


async def list_printers(context) -> List[Printer]:
    return await _in_thread(context.backend.enumerate_printers)


async def resolve_printer(context, query: Optional[str], fallback_to_default: bool = True) -> Optional[str]:
    """
    Canonical queue name for ``query``; None means the system default.

    An unmatched name falls back to the default printer only when
    ``fallback_to_default`` is set, otherwise it raises ValidationError.
    """
    if not query:
        return None
    try:
        printers = await list_printers(context)
    except Exception as e:
        logger.warning(f"Could not enumerate printers to resolve {query!r}: {e}")
        return query
    name = resolve_printer_name(query, printers)
    if name is None:
        if not fallback_to_default:
            raise ValidationError(f"Printer '{query}' not found")
        logger.warning(f"Printer {query!r} not found - using the default printer")
    return name


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

def print_success(request: Request, result: dict) -> dict:
    printer_name = result.get('printerName')
    response = {
        'event': 'printResult',
        'type': 'printResult',
        'requestId': request.request_id,
        'success': True,
        'message': f"Print job sent to {printer_name}",
        'printerName': printer_name,
    }
    if result.get('fallback'):
        response['fallback'] = True
        response['message'] += ' (fallback)'
    return response


def print_failure(request: Request, error: str) -> dict:
    return {
        'event': 'printResult',
        'type': 'error',
        'requestId': request.request_id,
        'success': False,
        'error': error,
    }


def duplicate_result(request: Request, job: PrintJob) -> dict:
    """Answer a resubmitted job id from the tracked job without printing again."""
    message = f"Job {job.id} already {job.status}"
    if job.status == COMPLETED:
        response = print_success(request, job.result)
        response['message'] = message
    else:
        response = print_failure(request, job.error or message)
    response['duplicate'] = True
    response['status'] = job.status
    return response


def error_event(error: str, request_id: Optional[str] = None) -> dict:
    response = {'event': 'error', 'error': error}
    if request_id:
        response['requestId'] = request_id
    return response


# ---------------------------------------------------------------------------
# Job plumbing
# ---------------------------------------------------------------------------

# prepare(printer) -> (target, submit options, temp file to remove or None)
Prepare = Callable[[Optional[str]], Awaitable[tuple]]


async def run_job(context, request: Request, kind: str, printer_query: Optional[str],
                  fallback_to_default: bool, prepare: Prepare) -> dict:
    try:
        job = context.tracker.create(request.request_id, kind, printer_query)
    except DuplicateJobError as e:
        logger.warning(str(e))
        return duplicate_result(request, e.job)

    staged = None
    try:
        printer = await resolve_printer(context, printer_query, fallback_to_default)
        job.printer = printer
        target, submit_options, staged = await prepare(printer)
        result = await context.executor.run(
            job, target, printer, submit_options, fallback_to_default
        )
    except PrintError as e:
        return print_failure(request, str(e))
    except BridgeError as e:
        logger.warning(f"Job {job.id} rejected: {e}")
        context.tracker.fail(job.id, str(e))
        return print_failure(request, str(e))
    except asyncio.CancelledError:
        context.tracker.cancel(job.id, 'Request canceled')
        raise
    except Exception as e:
        logger.error(f"Job {job.id} failed unexpectedly: {e}", exc_info=True)
        context.tracker.fail(job.id, str(e) or e.__class__.__name__)
        return print_failure(request, str(e) or e.__class__.__name__)
    finally:
        remove_temp(staged)

    return print_success(request, result)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

async def handle_get_printers(context, request: Request) -> dict:
    printers = await list_printers(context)
    logger.info(f"Found {len(printers)} printer(s)")
    return {
        'event': 'printerList',
        'type': 'printers',
        'requestId': request.request_id,
        'printers': [p.to_dict() for p in printers],
    }


async def handle_ping(context, request: Request) -> dict:
    return {'event': 'pong', 'requestId': request.request_id, 'time': utcnow().isoformat()}


async def handle_print_pdf(context, request: Request) -> dict:
    options = PdfPrintOptions.from_dict(request.options, context.fallback_to_default)
    logger.info(f"printPdf {request.request_id}: printer={options.printer} copies={options.copies}")

    async def prepare(printer):
        pdf = validate_pdf_data(request.payload)
        path = stage_temp_file(pdf, '.pdf')
        return str(path), options.submit_options(), path

    return await run_job(context, request, 'pdf', options.printer,
                         options.fallback_to_default, prepare)


async def _print_image(context, request: Request, kind: str, direct: bool) -> dict:
    options = ImagePrintOptions.from_dict(request.options, context.fallback_to_default)
    logger.info(
        f"{kind} {request.request_id}: printer={options.printer} "
        f"size={options.width}x{options.height}mm fill={options.fill_mode}"
    )

    async def prepare(printer):
        if not request.payload:
            raise ValidationError("Missing image payload")
        width, height = options.width, options.height
        label = is_label_printer(printer or options.printer, options.is_label_printer,
                                 context.label_keywords)
        if (direct or label) and not (width and height):
            width, height = context.label_width_mm, context.label_height_mm
        pdf = await _in_thread(
            image_to_pdf, request.payload, width, height, options.dpi,
            options.fill_mode, options.landscape,
        )
        path = stage_temp_file(pdf, '.pdf')
        submit_options = options.submit_options()
        if width and height:
            submit_options['media_mm'] = (width, height)
        return str(path), submit_options, path

    return await run_job(context, request, kind, options.printer,
                         options.fallback_to_default, prepare)


async def handle_print_image(context, request: Request) -> dict:
    return await _print_image(context, request, 'image', direct=False)


async def handle_direct_print_image(context, request: Request) -> dict:
    return await _print_image(context, request, 'direct-image', direct=True)


async def _print_label(context, request: Request, kind: str, fmt: str,
                       grayscale: str = 'luminance') -> dict:
    options = LabelImageOptions.from_dict(request.options, context.fallback_to_default)
    logger.info(
        f"{kind} {request.request_id}: printer={options.printer} "
        f"size={options.width}x{options.height} threshold={options.threshold} "
        f"data={describe(request.payload, 40)}"
    )

    def build():
        bitmap = rasterize(
            request.payload, options.width, options.height, invert=options.invert,
            threshold=options.threshold, grayscale=grayscale, dithering=options.dithering,
        )
        if fmt == 'cpcl':
            return encode_cpcl(bitmap, options.x, options.y, options.encoding, options.copies)
        return encode_zpl(bitmap, options.x, options.y, options.compression, options.copies)

    async def prepare(printer):
        if not request.payload:
            raise ValidationError("Missing image payload")
        command = await _in_thread(build)
        logger.info(f"{fmt.upper()} command ready: {len(command)} bytes")
        return command, options.submit_options(), None

    return await run_job(context, request, kind, options.printer,
                         options.fallback_to_default, prepare)


async def handle_print_cpcl(context, request: Request) -> dict:
    return await _print_label(context, request, 'cpcl', 'cpcl')


async def handle_print_png_cpcl(context, request: Request) -> dict:
    return await _print_label(context, request, 'png-cpcl', 'cpcl', grayscale='average')


async def handle_print_zpl(context, request: Request) -> dict:
    return await _print_label(context, request, 'zpl', 'zpl')


async def handle_save_pdf(context, request: Request) -> dict:
    options = SavePdfOptions.from_dict(request.options)
    response = {'event': 'saveResult', 'requestId': request.request_id}

    try:
        job = context.tracker.create(request.request_id, 'save-pdf')
    except DuplicateJobError as e:
        logger.warning(str(e))
        response.update(success=e.job.status == COMPLETED, duplicate=True, status=e.job.status)
        if e.job.result.get('filePath'):
            response['filePath'] = e.job.result['filePath']
        return response

    try:
        pdf = validate_pdf_data(request.payload)
        path = await _in_thread(context.save_target.choose_path, options.default_path)
        if path is None:
            context.tracker.cancel(job.id, 'Save canceled')
            response.update(success=False, canceled=True)
            return response
        await _in_thread(Path(path).write_bytes, pdf)
    except BridgeError as e:
        context.tracker.fail(job.id, str(e))
        response.update(success=False, error=str(e))
        return response
    except asyncio.CancelledError:
        context.tracker.cancel(job.id, 'Request canceled')
        raise
    except Exception as e:
        logger.error(f"Could not save PDF for {job.id}: {e}", exc_info=True)
        context.tracker.fail(job.id, f"Could not save PDF: {e}")
        response.update(success=False, error=f"Could not save PDF: {e}")
        return response

    logger.info(f"✓ PDF saved: {path}")
    context.tracker.complete(job.id, {'filePath': str(path)})
    response.update(success=True, filePath=str(path))
    return response


ACTIONS = {
    'getPrinters': handle_get_printers,
    'get-printers': handle_get_printers,
    'printPdf': handle_print_pdf,
    'print-pdf': handle_print_pdf,
    'printImage': handle_print_image,
    'print-image': handle_print_image,
    'savePdf': handle_save_pdf,
    'save-pdf': handle_save_pdf,
    'directPrintImage': handle_direct_print_image,
    'direct-print-image': handle_direct_print_image,
    'printCPCL': handle_print_cpcl,
    'print-cpcl': handle_print_cpcl,
    'printImageWithCPCL': handle_print_cpcl,
    'print-image-with-cpcl': handle_print_cpcl,
    'printPngCPCL': handle_print_png_cpcl,
    'print-png-cpcl': handle_print_png_cpcl,
    'printZPL': handle_print_zpl,
    'print-zpl': handle_print_zpl,
    'printImageWithZPL': handle_print_zpl,
    'print-image-with-zpl': handle_print_zpl,
    'printBase64WithZPL': handle_print_zpl,
    'print-base64-with-zpl': handle_print_zpl,
    'ping': handle_ping,
}
