import unittest
from unittest.mock import Mock

from fakes import FakeBackend
from print_bridge.errors import DuplicateJobError, PrintError
from print_bridge.jobs.executor import JobExecutor
from print_bridge.jobs.models import (
    CANCELED, COMPLETED, FAILED, PENDING, ImagePrintOptions, LabelCommand,
    LabelImageOptions, PdfPrintOptions, Request,
)
from print_bridge.jobs.tracker import JobTracker


class TestRequest(unittest.TestCase):

    def test_envelope_fields(self):
        request = Request.from_message({
            'requestId': 'r1', 'action': 'printPdf', 'data': 'JVBER', 'options': {'copies': 2},
        })
        self.assertEqual(request.request_id, 'r1')
        self.assertEqual(request.action, 'printPdf')
        self.assertEqual(request.payload, 'JVBER')
        self.assertEqual(request.options, {'copies': 2})

    def test_aliases(self):
        request = Request.from_message({
            'id': 7, 'type': 'printImage', 'image': 'iVBOR', 'printOptions': {'fillMode': 'cover'},
        })
        self.assertEqual(request.request_id, '7')
        self.assertEqual(request.action, 'printImage')
        self.assertEqual(request.payload, 'iVBOR')
        self.assertEqual(request.options, {'fillMode': 'cover'})

    def test_generated_id(self):
        request = Request.from_message({'action': 'getPrinters'})
        self.assertRegex(request.request_id, r'^auto_\d+_[0-9a-f]{6}$')


class TestOptions(unittest.TestCase):

    def test_pdf_options(self):
        options = PdfPrintOptions.from_dict({
            'printer': 'Zebra', 'copies': '3', 'width': 100, 'height': 50,
            'fallbackToPrintDefault': False,
        })
        self.assertEqual(options.copies, 3)
        self.assertTrue(options.landscape)
        self.assertFalse(options.fallback_to_default)
        self.assertEqual(options.submit_options()['media_mm'], (100.0, 50.0))

    def test_image_options(self):
        options = ImagePrintOptions.from_dict({'fitOption': 'fill', 'dpi': 10})
        self.assertEqual(options.fill_mode, 'stretch')
        self.assertEqual(options.dpi, 72)
        self.assertEqual(ImagePrintOptions.from_dict({'fillMode': 'zoom'}).fill_mode, 'contain')

    def test_label_options(self):
        options = LabelImageOptions.from_dict({'blackWhiteThreshold': 300, 'invert': 'true', 'x': -4})
        self.assertEqual(options.threshold, 255)
        self.assertTrue(options.invert)
        self.assertEqual(options.x, 0)
        self.assertEqual(options.compression, 'z64')

    def test_printer_name_is_text(self):
        self.assertEqual(PdfPrintOptions.from_dict({'printer': 5}).printer, '5')
        self.assertIsNone(LabelImageOptions.from_dict({'printer': '  '}).printer)
        self.assertIsNone(PdfPrintOptions.from_dict({}).printer)


class TestJobTracker(unittest.TestCase):

    def setUp(self):
        self.observer = Mock()
        self.tracker = JobTracker(observer=self.observer)

    def test_lifecycle(self):
        job = self.tracker.create('j1', 'zpl', 'Zebra')
        self.assertEqual(job.status, PENDING)
        self.assertTrue(self.tracker.complete('j1', {'printerName': 'Zebra'}))
        self.assertEqual(job.status, COMPLETED)
        self.assertIsNotNone(job.finished_at)
        statuses = [c.args[1] for c in self.observer.notify_job_event.call_args_list]
        self.assertEqual(statuses, [PENDING, COMPLETED])

    def test_terminal_status_never_regresses(self):
        self.tracker.create('j1', 'pdf')
        self.tracker.fail('j1', 'offline')
        self.assertFalse(self.tracker.complete('j1'))
        self.assertFalse(self.tracker.cancel('j1'))
        self.assertFalse(self.tracker.fail('j1', 'again'))
        job = self.tracker.get('j1')
        self.assertEqual(job.status, FAILED)
        self.assertEqual(job.error, 'offline')
        self.assertEqual(self.observer.notify_job_event.call_count, 2)

    def test_cancel(self):
        self.tracker.create('j1', 'save-pdf')
        self.assertTrue(self.tracker.cancel('j1', 'Save canceled'))
        self.assertEqual(self.tracker.get('j1').status, CANCELED)

    def test_unknown_job(self):
        self.assertFalse(self.tracker.complete('missing'))

    def test_duplicate_id(self):
        self.tracker.create('j1', 'pdf')
        self.tracker.complete('j1')
        with self.assertRaises(DuplicateJobError) as cm:
            self.tracker.create('j1', 'pdf')
        self.assertEqual(cm.exception.job.status, COMPLETED)

    def test_history_prunes_oldest_finished(self):
        tracker = JobTracker(max_history=2)
        tracker.create('a', 'pdf')
        tracker.complete('a')
        tracker.create('b', 'pdf')
        tracker.create('c', 'pdf')
        self.assertIsNone(tracker.get('a'))
        self.assertEqual([j.id for j in tracker.all()], ['b', 'c'])

    def test_pending_jobs_are_not_pruned(self):
        tracker = JobTracker(max_history=1)
        tracker.create('a', 'pdf')
        tracker.create('b', 'pdf')
        self.assertEqual(len(tracker.all()), 2)

    def test_recent_and_to_dict(self):
        for i in range(3):
            self.tracker.create(f'j{i}', 'cpcl', 'HPRT')
        self.tracker.fail('j2', 'paper out')
        recent = [job.to_dict() for job in self.tracker.recent(2)]
        self.assertEqual([j['id'] for j in recent], ['j1', 'j2'])
        self.assertEqual(recent[1]['status'], FAILED)
        self.assertEqual(recent[1]['error'], 'paper out')
        self.assertIn('finishedAt', recent[1])
        self.assertNotIn('finishedAt', recent[0])

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            self.tracker.create('j1', 'fax')

    def test_observer_errors_are_contained(self):
        self.observer.notify_job_event.side_effect = RuntimeError('boom')
        self.tracker.create('j1', 'pdf')
        self.assertTrue(self.tracker.complete('j1'))


class TestJobExecutor(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tracker = JobTracker()
        self.command = LabelCommand(payload=b'^XA^XZ', format='zpl')

    async def test_success(self):
        backend = FakeBackend()
        executor = JobExecutor(backend, self.tracker)
        job = self.tracker.create('j1', 'zpl', 'Zebra ZT230')

        result = await executor.run(job, self.command, 'Zebra ZT230', {'raw': True})

        self.assertTrue(result['success'])
        self.assertEqual(result['printerName'], 'Zebra ZT230')
        self.assertNotIn('fallback', result)
        self.assertEqual(job.status, COMPLETED)
        self.assertEqual(len(backend.submissions), 1)

    async def test_falls_back_to_default_once(self):
        backend = FakeBackend(failing={'Zebra ZT230'})
        executor = JobExecutor(backend, self.tracker)
        job = self.tracker.create('j1', 'zpl', 'Zebra ZT230')

        result = await executor.run(job, self.command, 'Zebra ZT230', {})

        self.assertTrue(result['fallback'])
        self.assertEqual(result['printerName'], 'default printer')
        self.assertEqual([s['printer'] for s in backend.submissions], ['Zebra ZT230', None])
        self.assertEqual(job.status, COMPLETED)

    async def test_fallback_fails_too(self):
        backend = FakeBackend(failing={'Zebra ZT230', None})
        executor = JobExecutor(backend, self.tracker)
        job = self.tracker.create('j1', 'zpl', 'Zebra ZT230')

        with self.assertRaises(PrintError) as cm:
            await executor.run(job, self.command, 'Zebra ZT230', {})

        self.assertIn('default printer', str(cm.exception))
        self.assertEqual(len(backend.submissions), 2)
        self.assertEqual(job.status, FAILED)

    async def test_no_fallback_when_disabled(self):
        backend = FakeBackend(failing={'Zebra ZT230'})
        executor = JobExecutor(backend, self.tracker)
        job = self.tracker.create('j1', 'zpl', 'Zebra ZT230')

        with self.assertRaises(PrintError):
            await executor.run(job, self.command, 'Zebra ZT230', {}, fallback_to_default=False)
        self.assertEqual(len(backend.submissions), 1)

    async def test_backend_exception_is_a_failure(self):
        backend = FakeBackend(error=OSError('spooler not running'))
        executor = JobExecutor(backend, self.tracker)
        job = self.tracker.create('j1', 'pdf')

        with self.assertRaises(PrintError) as cm:
            await executor.run(job, '/tmp/doc.pdf', None, {})

        self.assertIn('spooler not running', str(cm.exception))
        self.assertEqual(len(backend.submissions), 1)
        self.assertEqual(job.status, FAILED)


if __name__ == '__main__':
    unittest.main()
