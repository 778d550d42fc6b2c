"""
Series Enricher Service - Main Entry Point

USAGE:
    python -m src.enricher.main [--log-level LEVEL] [--log-format json|text]

STARTUP SEQUENCE (every step is check-then-create, safe to repeat):
1. Load configuration, set up logging
2. Ensure the request (and announcement) topics exist
3. Connect MongoDB, ensure the unique seriesId index
4. Connect PostgreSQL, ensure the episodes table (only with FETCH_EPISODES)
5. Build lookup client, announcer, pipeline and consumer
6. Register SIGINT/SIGTERM for graceful shutdown and start consuming

All connections are opened here once and reused for every message.
"""

import argparse
import logging
import signal
import sys
from typing import Any, List, Optional

import httpx
from pymongo import MongoClient

from src.enricher.config import EnricherConfig, load_config
from src.enricher.consumer import SeriesRequestConsumer
from src.enricher.database import init_database
from src.enricher.documents import SeriesDocumentStore
from src.enricher.lookup import SeriesLookupClient
from src.enricher.pipeline import EnrichmentPipeline
from src.shared.logger import child_logger, setup_logger
from src.shared.publisher import DurablePublisher
from src.shared.topics import create_admin_client, ensure_topics


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="TV series enrichment worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  KAFKA_BOOTSTRAP_SERVERS     Kafka broker addresses (default: localhost:9092)
  KAFKA_TOPIC_REQUESTS        Request topic (default: popcorn-planner.tvserie-retrieve)
  KAFKA_TOPIC_ANNOUNCEMENTS   Announcement topic (default: unset, no chaining)
  MONGODB_CONN_STRING         MongoDB connection string
  POSTGRES_HOST / POSTGRES_PORT / POSTGRES_DB / POSTGRES_USER / POSTGRES_PASSWORD
  FETCH_EPISODES              Fetch seasons and write episode rows (default: true)
  EPISODE_WRITE_MODE          replace or append (default: replace)
  IMDB8_API_KEY               RapidAPI key for the IMDb provider
  LOG_LEVEL / LOG_FORMAT      Logging (default: INFO / json)

Signals:
  SIGINT, SIGTERM             Finish the current message, then shut down
        """,
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL env var)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Log output format (overrides LOG_FORMAT env var)",
    )
    return parser.parse_args(argv)


def build_consumer(
    config: EnricherConfig,
    logger: logging.Logger,
    http_client: Optional[httpx.Client] = None,
    kafka_consumer: Optional[Any] = None,
) -> SeriesRequestConsumer:
    """
    Connect every collaborator and wire the consumer.

    Anything opened before a failure is closed again before re-raising.
    """
    closeables: List[Any] = []

    try:
        ensure_topics(
            create_admin_client(config.kafka_bootstrap_servers),
            config.topics_to_ensure(),
            num_partitions=config.topic_partitions,
            replication_factor=config.topic_replication_factor,
            logger=child_logger(logger, "topics"),
        )

        mongo_client: MongoClient = MongoClient(config.mongodb_conn_string)
        closeables.append(mongo_client)
        database = mongo_client.get_default_database(default=config.mongodb_database)
        documents = SeriesDocumentStore(
            database[config.mongodb_collection], logger=child_logger(logger, "documents")
        )
        documents.ensure_indexes()

        episodes = None
        if config.fetch_episodes:
            episodes = init_database(
                config.get_database_url(),
                pool_size=config.db_pool_size,
                write_mode=config.episode_write_mode,
                logger=child_logger(logger, "episodes"),
            )
            closeables.append(episodes.db_manager)

        lookup = SeriesLookupClient(
            api_key=config.imdb8_api_key,
            host=config.imdb8_host,
            base_url=config.get_provider_base_url(),
            fetch_episodes=config.fetch_episodes,
            timeout=config.lookup_timeout_seconds,
            client=http_client,
            logger=child_logger(logger, "lookup"),
        )
        closeables.append(lookup)

        announcer = None
        if config.kafka_topic_announcements:
            announcer = DurablePublisher(
                config.kafka_bootstrap_servers,
                config.kafka_topic_announcements,
                client_id=f"{config.consumer_client_id}-announcer",
                flush_timeout=config.publish_timeout_seconds,
                logger=child_logger(logger, "announcer"),
            )
            closeables.append(announcer)

        pipeline = EnrichmentPipeline(
            lookup,
            documents,
            episodes=episodes,
            announcer=announcer,
            logger=child_logger(logger, "pipeline"),
        )

        return SeriesRequestConsumer(
            config,
            pipeline,
            consumer=kafka_consumer,
            closeables=closeables,
            logger=child_logger(logger, "consumer"),
        )
    except Exception:
        for resource in reversed(closeables):
            resource.close()
        raise


def install_signal_handlers(consumer: SeriesRequestConsumer, logger: logging.Logger) -> None:
    def handle(signum: int, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, initiating graceful shutdown...")
        consumer.stop()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the enricher until stopped.

    Returns:
        Exit code (0 = clean shutdown, 1 = startup or fatal error)
    """
    args = parse_args(argv)

    try:
        config = load_config()
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    logger = setup_logger(
        name="src.enricher",
        service_name="series-enricher",
        log_level=config.log_level,
        log_format=config.log_format,
    )

    logger.info(
        "Starting series enricher",
        extra={
            "kafka_bootstrap_servers": config.kafka_bootstrap_servers,
            "request_topic": config.kafka_topic_requests,
            "announcement_topic": config.kafka_topic_announcements,
            "consumer_group": config.consumer_group_id,
            "fetch_episodes": config.fetch_episodes,
            "episode_write_mode": config.episode_write_mode,
        },
    )

    try:
        consumer = build_consumer(config, logger)
    except Exception:
        logger.error("Failed to start series enricher", exc_info=True)
        return 1

    install_signal_handlers(consumer, logger)

    try:
        consumer.start()
    except Exception:
        logger.error("Fatal error in series enricher", exc_info=True)
        return 1

    logger.info("Series enricher stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
