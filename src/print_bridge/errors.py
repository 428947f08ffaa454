"""Exception hierarchy shared by the router, handlers and executor."""


class BridgeError(Exception):
    """Base class for errors that are reported back to the client."""


class ValidationError(BridgeError):
    """Request payload is missing or malformed."""


class ImageDecodeError(ValidationError):
    """Image bytes could not be decoded."""


class ProtocolError(BridgeError):
    """Frame could not be parsed into a request envelope."""

    def __init__(self, message, request_id=None):
        super().__init__(message)
        self.request_id = request_id


class PrintError(BridgeError):
    """Print submission failed after any fallback attempt."""


class DuplicateJobError(BridgeError):
    """A job with the same id is already tracked."""

    def __init__(self, job):
        super().__init__(f"Job {job.id} already exists (status: {job.status})")
        self.job = job
