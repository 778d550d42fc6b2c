"""
Enricher Configuration Module

Settings for the series enrichment worker: Kafka consumer and announcement
topic, MongoDB document store, PostgreSQL episode sink, and the IMDb
provider. Loaded from environment variables (and a local .env file) with
Pydantic validation.
"""

from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file if present (local development)
load_dotenv()


class EnricherConfig(BaseSettings):
    """
    Enricher service configuration with validation.

    Example:
        >>> config = EnricherConfig(kafka_topic_announcements="popcorn-planner.tvserie-saved")
        >>> config.get_kafka_config()["enable.auto.commit"]
        False
    """

    # === KAFKA ===
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Kafka broker addresses",
    )

    kafka_topic_requests: str = Field(
        default="popcorn-planner.tvserie-retrieve",
        description="Topic carrying {\"name\": ...} series requests",
    )

    kafka_topic_announcements: Optional[str] = Field(
        default=None,
        description="Topic for {\"title\": ...} announcements; unset disables chaining",
    )

    consumer_group_id: str = Field(
        default="popcorn-planner.tvserie-enrichers",
        description="Consumer group ID",
    )

    consumer_client_id: str = Field(
        default="series-enricher",
        description="Consumer client identifier",
    )

    consumer_auto_offset_reset: Literal["earliest", "latest"] = Field(
        default="earliest",
        description="Where to start consuming when the group has no offset",
    )

    topic_partitions: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Partition count used when creating missing topics",
    )

    topic_replication_factor: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Replication factor used when creating missing topics",
    )

    publish_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for an announcement delivery confirmation",
    )

    # === DOCUMENT STORE (MongoDB) ===
    mongodb_conn_string: str = Field(
        default="mongodb://127.0.0.1:27017/popcorn_planner",
        description="MongoDB connection string",
    )

    mongodb_database: str = Field(
        default="popcorn_planner",
        description="Database used when the connection string names none",
    )

    mongodb_collection: str = Field(
        default="tvseries",
        description="Collection holding one document per series",
    )

    # === RELATIONAL SINK (PostgreSQL) ===
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")

    postgres_port: int = Field(default=5432, description="PostgreSQL port")

    postgres_db: str = Field(default="popcorn_planner", description="PostgreSQL database name")

    postgres_user: str = Field(default="postgres", description="PostgreSQL username")

    postgres_password: str = Field(default="postgres", description="PostgreSQL password")

    db_pool_size: int = Field(
        default=2,
        ge=1,
        le=20,
        description="SQLAlchemy connection pool size",
    )

    # === PROCESSING ===
    fetch_episodes: bool = Field(
        default=True,
        description="Fetch season detail and write episode rows",
    )

    episode_write_mode: Literal["replace", "append"] = Field(
        default="replace",
        description=(
            "replace: delete then insert a series' rows in one transaction; "
            "append: plain insert, reprocessing fails on the unique constraint"
        ),
    )

    # === PROVIDER (IMDb via RapidAPI) ===
    imdb8_api_key: str = Field(
        default="",
        description="RapidAPI key sent as x-rapidapi-key",
    )

    imdb8_host: str = Field(
        default="imdb8.p.rapidapi.com",
        description="RapidAPI host for the IMDb API",
    )

    lookup_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for each provider HTTP request",
    )

    # === LOGGING ===
    log_level: str = Field(default="INFO", description="Logging level")

    log_format: str = Field(default="json", description="Log output format (json or text)")

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def get_kafka_config(self) -> dict:
        """Get Kafka consumer configuration dictionary."""
        return {
            "bootstrap.servers": self.kafka_bootstrap_servers,
            "group.id": self.consumer_group_id,
            "client.id": self.consumer_client_id,
            "auto.offset.reset": self.consumer_auto_offset_reset,
            # Offsets are committed per message, only after success
            "enable.auto.commit": False,
        }

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def get_provider_base_url(self) -> str:
        return f"https://{self.imdb8_host}"

    def topics_to_ensure(self) -> list:
        """Request topic plus the announcement topic when chaining is on."""
        topics = [self.kafka_topic_requests]
        if self.kafka_topic_announcements:
            topics.append(self.kafka_topic_announcements)
        return topics


def load_config() -> EnricherConfig:
    """Load and validate enricher configuration."""
    return EnricherConfig()
