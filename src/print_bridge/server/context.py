"""
Server context and collaborator interfaces.

Everything the handlers need is reached through one ServerContext built at
startup, so tests can assemble a context from fakes without touching module
state.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from print_bridge import __version__
from print_bridge.config.manager import ConfigManager
from print_bridge.jobs.executor import JobExecutor
from print_bridge.jobs.tracker import JobTracker
from print_bridge.printers.drivers import PrintBackend, SystemPrintBackend
from print_bridge.printers.validation import DEFAULT_LABEL_KEYWORDS
from print_bridge.server.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

__all__ = [
    'BridgeObserver', 'LoggingObserver', 'PrintBackend', 'SaveTarget',
    'DirectorySaveTarget', 'ServerContext',
]


class BridgeObserver:
    """Receives job and client lifecycle events. A desktop shell would implement this."""

    def get_main_window(self):
        return None

    def notify_job_event(self, job_id: str, status: str, details: dict):
        pass

    def notify_client_event(self, kind: str, info: dict):
        pass


class LoggingObserver(BridgeObserver):

    def notify_job_event(self, job_id, status, details):
        logger.info(f"Job event: {job_id} → {status} {details}")

    def notify_client_event(self, kind, info):
        logger.debug(f"Client event: {kind} {info}")


class SaveTarget:
    def choose_path(self, default_name: str) -> Optional[Path]:
        """Return where to save, or None if the user canceled."""
        raise NotImplementedError


class DirectorySaveTarget(SaveTarget):
    """Saves into a fixed directory, never overwriting an existing file."""

    def __init__(self, directory: str = '~/Documents'):
        self.directory = Path(directory).expanduser()

    def choose_path(self, default_name: str) -> Optional[Path]:
        name = Path(default_name or 'document.pdf').name or 'document.pdf'
        if not name.lower().endswith('.pdf'):
            name += '.pdf'
        self.directory.mkdir(parents=True, exist_ok=True)

        path = self.directory / name
        stem, suffix = path.stem, path.suffix
        n = 1
        while path.exists():
            path = self.directory / f"{stem} ({n}){suffix}"
            n += 1
        return path


@dataclass
class ServerContext:
    registry: ConnectionRegistry
    tracker: JobTracker
    executor: JobExecutor
    backend: PrintBackend
    observer: BridgeObserver = field(default_factory=LoggingObserver)
    save_target: SaveTarget = field(default_factory=DirectorySaveTarget)
    version: str = __version__
    serialize_jobs: bool = True
    fallback_to_default: bool = True
    label_width_mm: float = 50
    label_height_mm: float = 30
    label_dpi: int = 203
    label_keywords: tuple = DEFAULT_LABEL_KEYWORDS

    @classmethod
    def create(cls, backend: Optional[PrintBackend] = None,
               observer: Optional[BridgeObserver] = None,
               save_target: Optional[SaveTarget] = None,
               submit_timeout: float = 0, max_history: int = 500,
               **settings) -> 'ServerContext':
        """Wire registry, tracker and executor around the given collaborators."""
        backend = backend or SystemPrintBackend()
        observer = observer or LoggingObserver()
        tracker = JobTracker(observer=observer, max_history=max_history)
        return cls(
            registry=ConnectionRegistry(observer=observer),
            tracker=tracker,
            executor=JobExecutor(backend, tracker, submit_timeout=submit_timeout),
            backend=backend,
            observer=observer,
            save_target=save_target or DirectorySaveTarget(),
            **settings,
        )

    @classmethod
    def from_config(cls, config: ConfigManager, **collaborators) -> 'ServerContext':
        collaborators.setdefault(
            'save_target', DirectorySaveTarget(config.get('printing.save_dir'))
        )
        return cls.create(
            submit_timeout=float(config.get('printing.submit_timeout') or 0),
            max_history=int(config.get('jobs.max_history')),
            serialize_jobs=bool(config.get('server.serialize_jobs')),
            fallback_to_default=bool(config.get('printing.fallback_to_default')),
            label_width_mm=float(config.get('printing.label_width_mm')),
            label_height_mm=float(config.get('printing.label_height_mm')),
            label_dpi=int(config.get('printing.label_dpi')),
            label_keywords=tuple(config.get('printing.label_keywords')),
            **collaborators,
        )
