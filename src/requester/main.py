"""
Series Requester - Main Entry Point

USAGE:
    python -m src.requester.main "Supernatural" "Breaking Bad"
    python -m src.requester.main --bootstrap-servers kafka:9092 "Lost"
    python -m src.requester.main --no-ensure-topic "Dark"

Each name is published as {"name": "<name>"} and confirmed by the broker
before the next one is sent. Exit code 1 if any request was not delivered.
"""

import argparse
import logging
import sys
from typing import Iterable, List, Optional

from pydantic import ValidationError

from src.requester.config import load_config
from src.shared.errors import PublishError
from src.shared.logger import setup_logger
from src.shared.messages import SeriesRequest
from src.shared.publisher import DurablePublisher
from src.shared.topics import create_admin_client, ensure_topics


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish TV series enrichment requests")
    parser.add_argument("names", nargs="+", metavar="NAME", help="Series name to request")
    parser.add_argument(
        "--bootstrap-servers",
        type=str,
        help="Kafka broker addresses (overrides KAFKA_BOOTSTRAP_SERVERS)",
    )
    parser.add_argument(
        "--topic",
        type=str,
        help="Request topic (overrides KAFKA_TOPIC_REQUESTS)",
    )
    parser.add_argument(
        "--no-ensure-topic",
        action="store_true",
        help="Do not create the request topic when it is missing",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument("--log-format", type=str, choices=["json", "text"])
    return parser.parse_args(argv)


def publish_requests(
    publisher: DurablePublisher, names: Iterable[str], logger: logging.Logger
) -> int:
    """
    Publish one request per name.

    Returns:
        Number of requests that could not be published
    """
    failures = 0
    for name in names:
        try:
            request = SeriesRequest(name=name)
        except ValidationError as e:
            failures += 1
            logger.error("Invalid series name", extra={"series_name": name, "error": str(e)})
            continue

        try:
            publisher.publish(request.to_message(), key=request.name)
        except PublishError as e:
            failures += 1
            logger.error(
                "Series request not delivered",
                extra={"correlation_id": request.name, "topic": e.topic, "error": str(e)},
            )
            continue

        logger.info("Series request published", extra={"correlation_id": request.name})

    return failures


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config()
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.bootstrap_servers:
        config.kafka_bootstrap_servers = args.bootstrap_servers
    if args.topic:
        config.kafka_topic_requests = args.topic
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    logger = setup_logger(
        name="src.requester",
        service_name="series-requester",
        log_level=config.log_level,
        log_format=config.log_format,
    )

    try:
        if not args.no_ensure_topic:
            ensure_topics(
                create_admin_client(config.kafka_bootstrap_servers),
                [config.kafka_topic_requests],
                num_partitions=config.topic_partitions,
                replication_factor=config.topic_replication_factor,
                logger=logger,
            )
        publisher = DurablePublisher(
            config.kafka_bootstrap_servers,
            config.kafka_topic_requests,
            client_id=config.requester_client_id,
            flush_timeout=config.publish_timeout_seconds,
            logger=logger,
        )
    except Exception:
        logger.error("Failed to connect to Kafka", exc_info=True)
        return 1

    try:
        failures = publish_requests(publisher, args.names, logger)
    finally:
        publisher.close()

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
