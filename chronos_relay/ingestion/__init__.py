"""Ingestion core: attachment → image → pipeline → results.

The orchestrator lives in ``chronos_relay.ingestion.orchestrator`` and is
not re-exported here, since it depends on the communication package.
"""

from .acquire import AcquiredImage, ImageAcquirer, derive_filename, sanitize_filename
from .attachments import Attachment, filter_image_attachments, is_image_attachment
from .errors import AcquisitionError, DeliveryError, ExtractionError, IngestionError, InvocationError
from .pipeline import PipelineInvocation, PipelineInvoker
from .results import QAResult, extract_results

__all__ = [
    # Attachments
    "Attachment",
    "is_image_attachment",
    "filter_image_attachments",
    # Acquisition
    "AcquiredImage",
    "ImageAcquirer",
    "derive_filename",
    "sanitize_filename",
    # Pipeline
    "PipelineInvocation",
    "PipelineInvoker",
    # Results
    "QAResult",
    "extract_results",
    # Errors
    "IngestionError",
    "AcquisitionError",
    "InvocationError",
    "ExtractionError",
    "DeliveryError",
]
