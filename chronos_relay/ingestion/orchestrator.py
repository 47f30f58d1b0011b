"""Ingestion orchestrator: drives each image attachment through the pipeline.

For every image attachment of one inbound message, strictly in order:

    acquire → invoke → extract → format → split → deliver → cleanup

A failure in any stage is scoped to its attachment: it is logged, turned
into exactly one failure notice, and the loop moves on to the next
attachment. Chunks of one attachment are delivered in order, each
delivery awaited before the next, and never interleaved with another
attachment's chunks.

Attachments of one message never run concurrently. Separate messages may
be handled concurrently by the channel; see PipelineInvoker(exclusive=...)
for serializing pipeline runs across messages.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..communication.errors import classify_error
from ..communication.outbound import (
    DEFAULT_CHUNK_LENGTH,
    NO_RESULTS_TEXT,
    REPORT_TITLE,
    format_download_summary,
    format_results,
    split_message,
)
from .acquire import AcquiredImage, ImageAcquirer
from .attachments import Attachment, filter_image_attachments
from .errors import DeliveryError, ExtractionError, IngestionError
from .pipeline import PipelineInvoker
from .results import QAResult, extract_results

logger = logging.getLogger("chronos_relay.orchestrator")

# (text, source tag) → sends one message back to the originating channel
DeliveryCallback = Callable[[str, Optional[str]], Awaitable[Any]]


@dataclass
class InboundMessage:
    """The parts of an inbound chat message the ingestion core reads."""
    id: str = ""
    entity_id: Optional[str] = None
    source: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "InboundMessage":
        """Build from a framework record, flat or with a nested ``content``.

        Attachment records that are not mappings are skipped.
        """
        content = record.get("content")
        if not isinstance(content, Mapping):
            content = record

        raw_attachments = content.get("attachments") or []
        attachments = [
            Attachment.from_dict(item)
            for item in raw_attachments
            if isinstance(item, Mapping)
        ]

        entity_id = record.get("entityId", record.get("entity_id"))
        source = content.get("source")
        raw_id = record.get("id")
        return cls(
            id=str(raw_id) if raw_id is not None else "",
            entity_id=str(entity_id) if entity_id else None,
            source=source if isinstance(source, str) else None,
            attachments=attachments,
        )


@dataclass
class AttachmentOutcome:
    attachment_id: str
    name: str
    success: bool = False
    results: Optional[list[QAResult]] = None
    chunks_sent: int = 0
    path: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


@dataclass
class IngestionReport:
    """What happened to each image attachment of one message."""
    outcomes: list[AttachmentOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return self.processed - self.succeeded

    @property
    def success(self) -> bool:
        return self.processed > 0 and self.failed == 0


class IngestionOrchestrator:
    """Top-level driver for image attachments of inbound chat messages."""

    def __init__(
        self,
        acquirer: ImageAcquirer,
        invoker: PipelineInvoker,
        chunk_length: int = DEFAULT_CHUNK_LENGTH,
        default_user_id: str = "chat_user",
        report_title: str = REPORT_TITLE,
    ):
        self.acquirer = acquirer
        self.invoker = invoker
        self.chunk_length = chunk_length
        self.default_user_id = default_user_id
        self.report_title = report_title

    async def handle_message(
        self,
        message: InboundMessage,
        callback: Optional[DeliveryCallback] = None,
    ) -> IngestionReport:
        """Run every image attachment of ``message`` through the pipeline.

        Without a callback the results are still computed and logged, just
        not delivered. Never raises for per-attachment failures.
        """
        report = IngestionReport()
        images = filter_image_attachments(message.attachments)
        if not images:
            logger.debug(f"Message {message.id}: no image attachments")
            return report

        logger.info(f"Message {message.id}: {len(images)} image(s) detected")
        user_id = message.entity_id or self.default_user_id

        for attachment in images:
            outcome = await self._process_attachment(attachment, user_id, message.source, callback)
            report.outcomes.append(outcome)

        logger.info(
            f"Message {message.id}: {report.succeeded} image(s) analysed, {report.failed} failed"
        )
        return report

    async def _process_attachment(
        self,
        attachment: Attachment,
        user_id: str,
        source: Optional[str],
        callback: Optional[DeliveryCallback],
    ) -> AttachmentOutcome:
        outcome = AttachmentOutcome(attachment_id=attachment.id, name=attachment.display_name)
        image: Optional[AcquiredImage] = None

        try:
            image = await self.acquirer.acquire(attachment)
            outcome.path = image.path

            logger.info(f"Starting pipeline for {image.filename}")
            invocation = await self.invoker.invoke(image.path, user_id)
            invocation.raise_for_status()

            results = extract_results(invocation.take_stdout())
            if results is None:
                raise ExtractionError("Pipeline output has no results block")
            outcome.results = results

            if results:
                text = format_results(results, title=self.report_title)
            else:
                text = NO_RESULTS_TEXT
            chunks = split_message(text, self.chunk_length)

            logger.info(f"Sending {len(chunks)} message chunk(s) for {image.filename}")
            outcome.chunks_sent = await self._deliver(chunks, source, callback)
            outcome.success = True

        except Exception as e:
            if isinstance(e, DeliveryError):
                outcome.chunks_sent = e.chunks_sent
            outcome.error = str(e)
            outcome.error_kind = type(e).__name__
            logger.error(
                f"Error processing image {attachment.display_name}: {outcome.error_kind}: {e}",
                exc_info=not isinstance(e, IngestionError),
            )
            await self._notify(classify_error(e, attachment.display_name), source, callback)

        finally:
            if image is not None:
                image.cleanup()

        return outcome

    async def _deliver(
        self,
        chunks: list[str],
        source: Optional[str],
        callback: Optional[DeliveryCallback],
    ) -> int:
        if callback is None:
            logger.info("No delivery callback, results computed but not delivered")
            for chunk in chunks:
                logger.info(f"[undelivered] {chunk}")
            return 0

        sent = 0
        for chunk in chunks:
            try:
                await callback(chunk, source)
            except Exception as e:
                raise DeliveryError(f"Delivery failed after {sent} chunk(s): {e}", chunks_sent=sent) from e
            sent += 1
        return sent

    async def _notify(self, text: str, source: Optional[str], callback: Optional[DeliveryCallback]):
        """Send a failure notice. Best-effort: a failing callback is only logged."""
        if callback is None:
            return
        try:
            await callback(text, source)
        except Exception as e:
            logger.warning(f"Failed to deliver failure notice: {e}")

    async def download_only(
        self,
        message: InboundMessage,
        callback: Optional[DeliveryCallback] = None,
    ) -> IngestionReport:
        """Save image attachments without analysing them and send one summary.

        Files stay in the working directory.
        """
        report = IngestionReport()
        images = filter_image_attachments(message.attachments)
        downloaded: list[str] = []
        errors: list[str] = []

        for attachment in images:
            outcome = AttachmentOutcome(attachment_id=attachment.id, name=attachment.display_name)
            try:
                image = await self.acquirer.acquire(attachment)
                outcome.path = image.path
                outcome.success = True
                downloaded.append(image.filename)
            except Exception as e:
                outcome.error = str(e)
                outcome.error_kind = type(e).__name__
                logger.error(f"Error downloading image {attachment.display_name}: {e}")
                errors.append(f"{attachment.display_name}: {e}")
            report.outcomes.append(outcome)

        summary = format_download_summary(downloaded, errors)
        logger.info(f"Downloaded {len(downloaded)} image(s), {len(errors)} failed")
        await self._notify(summary, message.source, callback)
        return report
