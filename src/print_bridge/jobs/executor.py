"""
Job executor: hands a finished command stream or document to the print
backend and records the outcome.

A failed submission to an explicitly named printer is retried exactly once
against the system default printer when the caller allows fallback.
"""
import asyncio
import logging
from typing import Optional, Union

from print_bridge.errors import PrintError
from print_bridge.jobs.models import LabelCommand, PrintJob
from print_bridge.jobs.tracker import JobTracker

logger = logging.getLogger(__name__)

DEFAULT_PRINTER_LABEL = 'default printer'


class JobExecutor:

    def __init__(self, backend, tracker: JobTracker, submit_timeout: float = 0):
        self.backend = backend
        self.tracker = tracker
        self.submit_timeout = submit_timeout or None

    async def run(self, job: PrintJob, target: Union[LabelCommand, str],
                  printer: Optional[str], options: dict,
                  fallback_to_default: bool = True) -> dict:
        """
        Submit ``target`` and mark ``job`` completed or failed.

        Returns the backend result on success; raises PrintError carrying the
        client-facing message once the job has been marked failed.
        """
        try:
            result = await self._attempt(target, printer, options)
            if not result.get('success') and printer and fallback_to_default:
                logger.warning(
                    f"Print to {printer!r} failed ({result.get('message')}) - "
                    f"retrying job {job.id} on the default printer"
                )
                first_error = result.get('message')
                result = await self._attempt(target, None, options)
                if result.get('success'):
                    result['fallback'] = True
                else:
                    result['message'] = (
                        f"Printing failed on {printer} ({first_error}) and on the "
                        f"default printer ({result.get('message')})"
                    )
        except Exception as e:
            # tracker must still see exactly one terminal status
            logger.error(f"Unexpected executor error for job {job.id}: {e}", exc_info=True)
            result = {'success': False, 'message': str(e) or e.__class__.__name__}

        if result.get('success'):
            result.setdefault('printerName', DEFAULT_PRINTER_LABEL)
            self.tracker.complete(job.id, result)
            return result

        message = result.get('message') or 'Printing failed'
        self.tracker.fail(job.id, message)
        raise PrintError(message)

    async def _attempt(self, target, printer: Optional[str], options: dict) -> dict:
        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(None, self.backend.submit_document, target, printer, options)
        try:
            if self.submit_timeout:
                result = await asyncio.wait_for(call, self.submit_timeout)
            else:
                result = await call
        except asyncio.TimeoutError:
            return {'success': False, 'message': f"Print submission timed out after {self.submit_timeout}s"}
        except Exception as e:
            logger.error(f"Print backend error ({printer or DEFAULT_PRINTER_LABEL}): {e}", exc_info=True)
            return {'success': False, 'message': str(e) or e.__class__.__name__}

        result = dict(result or {})
        result.setdefault('success', False)
        if result['success']:
            result['printerName'] = printer or DEFAULT_PRINTER_LABEL
        return result
