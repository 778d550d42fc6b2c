"""
Series Enrichment Pipeline

Processes one inbound request end to end:

    RECEIVED → RESOLVING → PERSISTING → (ANNOUNCING) → ACKNOWLEDGED
        └──────────┴────────────┴────────────┴──→ FAILED

1. Parse the message value into a SeriesRequest
2. Resolve it against the provider (find, then get-seasons)
3. Upsert the series document, then write its episode rows
4. Publish {"title": ...} when an announcement topic is configured
5. Acknowledge the inbound message

ACKNOWLEDGMENT GATING:
acknowledge() is called only after every preceding step succeeded. Any
error moves the message to FAILED without acknowledging it; the transport
then redelivers it. Nothing is retried locally.

KNOWN TRADE-OFF:
The announcement is published before the acknowledgment. A crash between
the two redelivers the request: persistence is idempotent, but downstream
consumers may see the same announcement twice and must tolerate it.

The pipeline knows nothing about Kafka; the consumer supplies the
acknowledge callback and decides what "not acknowledged" means.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from src.shared.errors import EnrichmentError, MalformedMessageError
from src.shared.logger import CorrelationAdapter
from src.shared.messages import CanonicalSeriesRecord, OutboundAnnouncement, SeriesRequest


class MessageState(str, enum.Enum):
    """Lifecycle states of one in-flight message."""

    RECEIVED = "received"
    RESOLVING = "resolving"
    PERSISTING = "persisting"
    ANNOUNCING = "announcing"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


@dataclass
class ProcessingResult:
    """
    Outcome of processing one message.

    Attributes:
        state: ACKNOWLEDGED on success, otherwise FAILED
        failed_at: State that was active when the error occurred
        request: Parsed request (None when the body was malformed)
        record: Resolved record (None when resolution did not succeed)
        error: Exception that stopped processing
    """

    state: MessageState
    failed_at: Optional[MessageState] = None
    request: Optional[SeriesRequest] = None
    record: Optional[CanonicalSeriesRecord] = None
    error: Optional[BaseException] = None

    @property
    def acknowledged(self) -> bool:
        return self.state is MessageState.ACKNOWLEDGED

    @property
    def malformed(self) -> bool:
        return isinstance(self.error, MalformedMessageError)


class EnrichmentPipeline:
    """
    Orchestrates lookup → persist → announce → acknowledge for one message.

    Attributes:
        lookup: Object with ``resolve(name) -> CanonicalSeriesRecord``
        documents: Object with ``upsert_series(record)``
        episodes: Optional object with ``insert_episodes(series_id, episodes)``;
            None disables the relational sink
        announcer: Optional DurablePublisher; None disables chaining
    """

    def __init__(
        self,
        lookup: Any,
        documents: Any,
        episodes: Optional[Any] = None,
        announcer: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.lookup = lookup
        self.documents = documents
        self.episodes = episodes
        self.announcer = announcer
        self.logger = logger or logging.getLogger(__name__)

    def process(self, payload: Optional[bytes], acknowledge: Callable[[], None]) -> ProcessingResult:
        """
        Run one message through the pipeline.

        Args:
            payload: Raw message value
            acknowledge: Called exactly once, and only when every step
                succeeded

        Returns:
            ProcessingResult; errors are reported through it, not raised
        """
        start_time = time.monotonic()
        state = MessageState.RECEIVED
        request: Optional[SeriesRequest] = None
        record: Optional[CanonicalSeriesRecord] = None
        log: Any = self.logger

        try:
            request = SeriesRequest.from_message(payload)
            log = CorrelationAdapter(self.logger, {"correlation_id": request.name})
            log.debug("Series request received")

            state = MessageState.RESOLVING
            record = self.lookup.resolve(request.name)

            state = MessageState.PERSISTING
            self.documents.upsert_series(record)
            if self.episodes is not None:
                self.episodes.insert_episodes(record.series_id, record.episodes)

            if self.announcer is not None:
                state = MessageState.ANNOUNCING
                self.announcer.publish(
                    OutboundAnnouncement(title=record.title).to_message(),
                    key=record.series_id,
                )

            acknowledge()

        except EnrichmentError as exc:
            log.error(
                "Series request failed, leaving it unacknowledged",
                extra={"state": state.value, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return ProcessingResult(MessageState.FAILED, state, request, record, exc)

        except Exception as exc:
            log.error(
                "Unexpected error processing series request",
                exc_info=True,
                extra={"state": state.value, "error_type": type(exc).__name__},
            )
            return ProcessingResult(MessageState.FAILED, state, request, record, exc)

        log.info(
            "Series request processed",
            extra={
                "series_id": record.series_id,
                "title": record.title,
                "episodes": len(record.episodes),
                "announced": self.announcer is not None,
                "processing_time_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return ProcessingResult(MessageState.ACKNOWLEDGED, None, request, record, None)
