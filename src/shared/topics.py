"""
Topic Provisioning

Ensures the request (and announcement) topics exist before the services
start. Check-then-create: existing topics are left untouched, and a
concurrent creation by another instance is not an error.
"""

import logging
from typing import Any, Iterable, List, Optional

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.admin import AdminClient, NewTopic


def create_admin_client(bootstrap_servers: str) -> AdminClient:
    return AdminClient({"bootstrap.servers": bootstrap_servers})


def ensure_topics(
    admin: Any,
    topics: Iterable[str],
    num_partitions: int = 1,
    replication_factor: int = 1,
    timeout: float = 10.0,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Create whichever of ``topics`` do not exist yet.

    Args:
        admin: confluent_kafka AdminClient (or compatible test double)
        topics: Topic names to ensure
        num_partitions: Partition count for new topics
        replication_factor: Replica count for new topics
        timeout: Seconds to wait for metadata and creation
        logger: Injected service logger

    Returns:
        Names of the topics that were created by this call

    Raises:
        KafkaException: metadata or creation failed for a reason other than
            the topic already existing
    """
    logger = logger or logging.getLogger(__name__)
    wanted = [topic for topic in dict.fromkeys(topics) if topic]

    metadata = admin.list_topics(timeout=timeout)
    missing = [topic for topic in wanted if topic not in metadata.topics]

    if not missing:
        logger.debug("All topics present", extra={"topics": wanted})
        return []

    futures = admin.create_topics(
        [
            NewTopic(topic, num_partitions=num_partitions, replication_factor=replication_factor)
            for topic in missing
        ],
        operation_timeout=timeout,
    )

    created = []
    for topic, future in futures.items():
        try:
            future.result()
        except KafkaException as exc:
            error = exc.args[0] if exc.args else None
            if isinstance(error, KafkaError) and error.code() == KafkaError.TOPIC_ALREADY_EXISTS:
                logger.debug("Topic created concurrently", extra={"topic": topic})
                continue
            raise
        created.append(topic)
        logger.info(
            "Topic created",
            extra={
                "topic": topic,
                "partitions": num_partitions,
                "replication_factor": replication_factor,
            },
        )

    return created
