"""
Kafka Series Request Consumer

Reads series requests from the request topic and feeds them, one at a time,
through the EnrichmentPipeline.

ONE MESSAGE IN FLIGHT:
- A single poll loop; a message is fully processed (lookup, upserts,
  announcement, commit) before the next poll()
- This is the prefetch-1 discipline: never two lookup+persist sequences at
  once per process, so writers to the same seriesId never race

ACKNOWLEDGMENT (manual offset commits):
- enable.auto.commit=False
- Success: commit(message=msg) synchronously; the offset moves past msg
- Failure: seek back to msg's own offset; the next poll() delivers the
  same message again (at-least-once redelivery, no local retry loop)
- Malformed body: committed and counted as skipped, since no redelivery
  can ever make it parse

CONSUMER GROUP BEHAVIOR:
- Uncommitted messages are also redelivered after a restart or rebalance,
  from the group's last committed offset
"""

import logging
import time
from typing import Any, Iterable, List, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException, Message, TopicPartition

from src.enricher.config import EnricherConfig
from src.enricher.pipeline import EnrichmentPipeline, ProcessingResult

POLL_TIMEOUT_SECONDS = 1.0

FATAL_KAFKA_ERRORS = (
    KafkaError._ALL_BROKERS_DOWN,
    KafkaError._AUTHENTICATION,
    KafkaError.TOPIC_AUTHORIZATION_FAILED,
)


class SeriesRequestConsumer:
    """
    Kafka consumer loop around the enrichment pipeline.

    Attributes:
        config: Enricher configuration
        pipeline: EnrichmentPipeline handling each message
        consumer: confluent_kafka.Consumer (injectable for tests)
        closeables: Resources closed on shutdown (HTTP client, stores, publisher)
        running: Flag for graceful shutdown
        messages_processed: Acknowledged messages
        messages_failed: Messages left for redelivery
        messages_skipped: Malformed messages committed without processing
    """

    def __init__(
        self,
        config: EnricherConfig,
        pipeline: EnrichmentPipeline,
        consumer: Optional[Any] = None,
        closeables: Iterable[Any] = (),
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.pipeline = pipeline
        self.closeables = list(closeables)
        self.logger = logger or logging.getLogger(__name__)

        self.messages_processed = 0
        self.messages_failed = 0
        self.messages_skipped = 0
        self.running = False
        self._closed = False

        self.consumer = consumer if consumer is not None else Consumer(config.get_kafka_config())
        self.consumer.subscribe([config.kafka_topic_requests])

        self.logger.info(
            "Series request consumer initialized",
            extra={
                "topic": config.kafka_topic_requests,
                "group_id": config.consumer_group_id,
                "announcement_topic": config.kafka_topic_announcements,
            },
        )

    def start(self) -> None:
        """
        Consume until stop() is called or a fatal Kafka error occurs.

        Always closes the consumer and the injected resources on exit.
        """
        self.running = True
        self.logger.info("Starting consumer loop...")

        try:
            while self.running:
                msg = self.consumer.poll(timeout=POLL_TIMEOUT_SECONDS)
                if msg is None:
                    continue
                if msg.error():
                    self._handle_kafka_error(msg.error())
                    continue
                self._process_message(msg)
        except Exception:
            self.logger.error("Fatal error in consumer loop", exc_info=True)
            raise
        finally:
            self.close()

    def process_messages(self, max_messages: int, timeout: float = 10.0) -> List[ProcessingResult]:
        """
        Handle up to ``max_messages`` messages or until ``timeout`` seconds pass.

        Redelivered messages count again, so a failing message uses up one
        slot per delivery. The consumer stays open; call close() when done.

        Returns:
            One ProcessingResult per handled delivery, in order
        """
        results: List[ProcessingResult] = []
        deadline = time.monotonic() + timeout

        while len(results) < max_messages and time.monotonic() < deadline:
            msg = self.consumer.poll(timeout=POLL_TIMEOUT_SECONDS)
            if msg is None:
                continue
            if msg.error():
                self._handle_kafka_error(msg.error())
                continue
            results.append(self._process_message(msg))

        return results

    def _process_message(self, msg: Message) -> ProcessingResult:
        result = self.pipeline.process(msg.value(), acknowledge=lambda: self._commit(msg))

        if result.acknowledged:
            self.messages_processed += 1
        elif result.malformed:
            self.messages_skipped += 1
            self.logger.warning(
                "Skipping malformed message",
                extra={
                    "partition": msg.partition(),
                    "offset": msg.offset(),
                    "error": str(result.error),
                },
            )
            self._commit(msg)
        else:
            self.messages_failed += 1
            self._redeliver(msg)

        return result

    def _commit(self, msg: Message) -> None:
        """Acknowledge ``msg``: synchronously commit the offset after it."""
        self.consumer.commit(message=msg, asynchronous=False)

    def _redeliver(self, msg: Message) -> None:
        """Rewind to ``msg`` so the next poll() returns it again."""
        partition = TopicPartition(msg.topic(), msg.partition(), msg.offset())
        try:
            self.consumer.seek(partition)
        except KafkaException as exc:
            # Partition revoked meanwhile; its new owner resumes from the
            # last committed offset, which is still before msg
            self.logger.warning(
                "Could not rewind to unacknowledged message",
                extra={
                    "partition": msg.partition(),
                    "offset": msg.offset(),
                    "error": str(exc),
                },
            )
            return

        self.logger.debug(
            "Message left unacknowledged for redelivery",
            extra={"partition": msg.partition(), "offset": msg.offset()},
        )

    def _handle_kafka_error(self, error: KafkaError) -> None:
        if error.code() == KafkaError._PARTITION_EOF:
            self.logger.debug("Reached end of partition")
            return

        self.logger.error(
            f"Kafka error: {error.str()}",
            extra={"error_code": error.code(), "error_name": error.name()},
        )

        if error.code() in FATAL_KAFKA_ERRORS:
            self.logger.critical("Fatal Kafka error, shutting down")
            self.stop()

    def stop(self) -> None:
        """Finish the current message, then leave the loop."""
        self.logger.info("Stopping consumer...")
        self.running = False

    def close(self) -> None:
        """Close the Kafka consumer and every injected resource (idempotent)."""
        if self._closed:
            return
        self._closed = True

        self.logger.info(
            "Consumer shutting down",
            extra={
                "messages_processed": self.messages_processed,
                "messages_failed": self.messages_failed,
                "messages_skipped": self.messages_skipped,
            },
        )

        try:
            self.consumer.close()
        except KafkaException:
            self.logger.error("Error closing Kafka consumer", exc_info=True)

        for resource in self.closeables:
            try:
                resource.close()
            except Exception:
                self.logger.error(
                    "Error closing resource",
                    exc_info=True,
                    extra={"resource": type(resource).__name__},
                )

        self.logger.info("Consumer shutdown complete")
