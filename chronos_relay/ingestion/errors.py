"""Ingestion exception hierarchy.

Every error here is scoped to a single attachment. The orchestrator
catches them per attachment and turns each into one user-visible notice.
A non-image attachment is not an error: the classifier simply says no.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for all per-attachment ingestion errors."""
    pass


class AcquisitionError(IngestionError):
    """Missing URL, non-success fetch response, or failed local write."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvocationError(IngestionError):
    """Pipeline exited non-zero, timed out, or could not be started."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.timed_out = timed_out


class ExtractionError(IngestionError):
    """Pipeline output has no delimited results block."""
    pass


class DeliveryError(IngestionError):
    """Outbound callback raised while sending a chunk."""

    def __init__(self, message: str, chunks_sent: int = 0):
        super().__init__(message)
        self.chunks_sent = chunks_sent
