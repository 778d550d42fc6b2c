"""
Requester Configuration Module

Settings for the request CLI, which publishes {"name": ...} messages onto
the enricher's request topic. Loaded from environment variables and .env.
"""

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file if present (local development)
load_dotenv()


class RequesterConfig(BaseSettings):
    """
    Requester configuration with validation.

    Example:
        >>> config = RequesterConfig()
        >>> config.kafka_topic_requests
        'popcorn-planner.tvserie-retrieve'
    """

    # === KAFKA CONNECTION ===
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Kafka broker addresses (comma-separated for multiple brokers)",
    )

    kafka_topic_requests: str = Field(
        default="popcorn-planner.tvserie-retrieve",
        description="Topic the enricher consumes series requests from",
    )

    requester_client_id: str = Field(
        default="series-requester",
        description="Producer client identifier (visible in broker logs)",
    )

    topic_partitions: int = Field(default=1, ge=1, le=64)

    topic_replication_factor: int = Field(default=1, ge=1, le=5)

    publish_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for each delivery confirmation",
    )

    # === LOGGING ===
    log_level: str = Field(default="INFO", description="Logging level")

    log_format: str = Field(default="text", description="Log output format (json or text)")

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


def load_config() -> RequesterConfig:
    """Load and validate requester configuration."""
    return RequesterConfig()
