"""
Durable Kafka Publisher

Publishes JSON message values to one Kafka topic and blocks until the broker
has confirmed the delivery. Used for:

- the enricher's chained announcement ({"title": ...} after a series is saved)
- the requester CLI ({"name": ...} onto the request topic)

DURABLE DELIVERY:
- enable.idempotence=True: broker de-duplicates producer retries
- acks=all: every in-sync replica must have the message before it counts
- publish() flushes and inspects the delivery report, so a returning call
  means the message is durably stored; anything else raises PublishError

The enricher acknowledges its inbound message only after publish() returns,
so a failed announcement leaves the request on the topic for redelivery.
"""

import logging
from typing import Any, Dict, List, Optional

from confluent_kafka import KafkaError, KafkaException, Producer

from src.shared.errors import PublishError


class DurablePublisher:
    """
    Synchronous, confirmation-checked publisher for a single topic.

    Attributes:
        topic: Destination topic
        producer: confluent_kafka.Producer (injectable for tests)
        flush_timeout: Seconds to wait for the delivery report
        messages_published: Counter of confirmed deliveries
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        client_id: str = "series-publisher",
        flush_timeout: float = 30.0,
        producer: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.topic = topic
        self.flush_timeout = flush_timeout
        self.logger = logger or logging.getLogger(__name__)
        self.messages_published = 0

        if producer is None:
            producer = Producer(self.build_producer_config(bootstrap_servers, client_id))
        self.producer = producer

        self.logger.info(
            "Durable publisher initialized",
            extra={"topic": topic, "client_id": client_id},
        )

    @staticmethod
    def build_producer_config(bootstrap_servers: str, client_id: str) -> Dict[str, Any]:
        """Producer settings for durable, de-duplicated delivery."""
        return {
            "bootstrap.servers": bootstrap_servers,
            "client.id": client_id,
            "enable.idempotence": True,
            "acks": "all",
            "retry.backoff.ms": 100,
            "request.timeout.ms": 30000,
        }

    def publish(self, value: bytes, key: Optional[str] = None) -> None:
        """
        Publish one message and wait for the broker's confirmation.

        Args:
            value: Encoded message value (UTF-8 JSON)
            key: Optional partition key

        Raises:
            PublishError: buffer full, client error, delivery failure, or no
                confirmation within ``flush_timeout``
        """
        delivery_errors: List[KafkaError] = []

        def on_delivery(err: Optional[KafkaError], msg) -> None:
            if err is not None:
                delivery_errors.append(err)

        try:
            self.producer.produce(
                topic=self.topic,
                key=key.encode("utf-8") if key is not None else None,
                value=value,
                on_delivery=on_delivery,
            )
        except (BufferError, KafkaException) as exc:
            raise PublishError(f"Could not enqueue message: {exc}", self.topic) from exc

        remaining = self.producer.flush(timeout=self.flush_timeout)

        if delivery_errors:
            raise PublishError(f"Delivery failed: {delivery_errors[0]}", self.topic)

        if remaining > 0:
            raise PublishError(
                f"Delivery not confirmed within {self.flush_timeout}s", self.topic
            )

        self.messages_published += 1
        self.logger.debug(
            "Message delivered",
            extra={"topic": self.topic, "key": key, "messages_published": self.messages_published},
        )

    def close(self, timeout: float = 10.0) -> None:
        """Flush anything still buffered before shutdown."""
        remaining = self.producer.flush(timeout=timeout)
        if remaining > 0:
            self.logger.error(
                f"Publisher closed with {remaining} messages undelivered",
                extra={"topic": self.topic, "remaining_messages": remaining},
            )
        else:
            self.logger.info("Publisher closed", extra={"topic": self.topic})
