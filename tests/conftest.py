"""
Pytest Configuration and Shared Fixtures

UNIT FIXTURES (no external services):
- provider payloads shaped like the IMDb (imdb8) find/get-seasons responses
- httpx.MockTransport-backed lookup clients
- mongomock collection for the document store
- file-backed SQLite database for the episode sink
- in-memory Kafka consumer/producer doubles honouring commit, seek and flush

INTEGRATION FIXTURES (testcontainers):
- Kafka, PostgreSQL and MongoDB containers, started once per session
- skipped automatically when no Docker daemon is reachable
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generator, List, Optional

import httpx
import mongomock
import pytest
from confluent_kafka import KafkaError

from src.enricher.database import DatabaseManager, EpisodeSink
from src.enricher.documents import SeriesDocumentStore
from src.enricher.lookup import SeriesLookupClient

REQUEST_TOPIC = "popcorn-planner.tvserie-retrieve"

# Supernatural: 15 seasons, 327 episodes
SUPERNATURAL_SEASONS = [22, 22, 16, 22, 22, 22, 23, 23, 23, 23, 23, 23, 23, 20, 20]


# ==============================================================================
# PROVIDER PAYLOADS
# ==============================================================================


@pytest.fixture
def find_payload() -> dict:
    """/title/find?q=Supernatural response (trimmed)."""
    return {
        "@meta": {"operation": "Search", "requestId": "b7c4d1f2"},
        "@type": "imdb.api.find.response",
        "query": "Supernatural",
        "results": [
            {
                "id": "/title/tt0460681/",
                "title": "Supernatural",
                "titleType": "tvSeries",
                "numberOfEpisodes": 327,
                "seriesStartYear": 2005,
                "seriesEndYear": 2020,
                "year": 2005,
            },
            {
                "id": "/title/tt0118494/",
                "title": "Supernatural",
                "titleType": "movie",
                "year": 1933,
            },
        ],
    }


@pytest.fixture
def seasons_payload() -> list:
    """/title/get-seasons?tconst=tt0460681 response with 327 episodes."""
    seasons = []
    for season_number, length in enumerate(SUPERNATURAL_SEASONS, start=1):
        seasons.append(
            {
                "id": "/title/tt0460681/",
                "season": season_number,
                "episodes": [
                    {
                        "id": f"/title/tt{season_number:02d}{episode:05d}/",
                        "season": season_number,
                        "episode": episode,
                        "title": f"Episode #{season_number}.{episode}",
                        "type": "tvEpisode",
                    }
                    for episode in range(1, length + 1)
                ],
            }
        )
    return seasons


# ==============================================================================
# LOOKUP CLIENT (httpx.MockTransport)
# ==============================================================================


@pytest.fixture
def provider_requests() -> List[httpx.Request]:
    """Every request the mocked provider received, in order."""
    return []


@pytest.fixture
def make_lookup(find_payload, seasons_payload, provider_requests) -> Callable[..., SeriesLookupClient]:
    """
    Factory for lookup clients talking to a mocked provider.

    Keyword args override the find/seasons responses: pass a payload, an
    httpx.Response, or an exception instance to raise.
    """
    clients: List[httpx.Client] = []

    def factory(find=None, seasons=None, fetch_episodes: bool = True) -> SeriesLookupClient:
        responses = {
            "/title/find": find if find is not None else find_payload,
            "/title/get-seasons": seasons if seasons is not None else seasons_payload,
        }

        def handler(request: httpx.Request) -> httpx.Response:
            provider_requests.append(request)
            response = responses.get(request.url.path)
            if response is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if isinstance(response, Exception):
                raise response
            if isinstance(response, httpx.Response):
                return response
            return httpx.Response(200, json=response)

        client = httpx.Client(
            base_url="https://imdb8.p.rapidapi.com", transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return SeriesLookupClient(
            api_key="imdb8-api-key", fetch_episodes=fetch_episodes, client=client
        )

    yield factory

    for client in clients:
        client.close()


# ==============================================================================
# STORES
# ==============================================================================


class StepClock:
    """Deterministic clock: each call returns a time one second later."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2025, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.current + timedelta(seconds=self.calls)
        self.calls += 1
        return value


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def mongo_collection():
    client = mongomock.MongoClient()
    yield client["popcorn_planner"]["tvseries"]
    client.close()


@pytest.fixture
def document_store(mongo_collection, clock) -> SeriesDocumentStore:
    store = SeriesDocumentStore(mongo_collection, clock=clock)
    store.ensure_indexes()
    return store


@pytest.fixture
def db_manager(tmp_path) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'episodes.db'}")
    yield manager
    manager.close()


@pytest.fixture
def make_sink(db_manager) -> Callable[..., EpisodeSink]:
    def factory(write_mode: str = "replace") -> EpisodeSink:
        sink = EpisodeSink(db_manager, write_mode=write_mode)
        sink.ensure_schema()
        return sink

    return factory


@pytest.fixture
def episode_sink(make_sink) -> EpisodeSink:
    return make_sink("replace")


# ==============================================================================
# KAFKA TEST DOUBLES
# ==============================================================================


class FakeMessage:
    """Stand-in for confluent_kafka.Message."""

    def __init__(
        self,
        value: Optional[bytes],
        topic: str = REQUEST_TOPIC,
        partition: int = 0,
        offset: int = 0,
        error: Optional[KafkaError] = None,
        key: Optional[bytes] = None,
    ):
        self._value = value
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._error = error
        self._key = key

    def value(self):
        return self._value

    def key(self):
        return self._key

    def topic(self):
        return self._topic

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def error(self):
        return self._error


class FakeKafkaConsumer:
    """
    Single-partition log with a read position.

    poll() returns the message at the position and advances it; seek()
    moves the position back; commit() records the committed offset.
    """

    def __init__(self, values: List[Optional[bytes]], topic: str = REQUEST_TOPIC):
        self.log = [FakeMessage(value, topic, 0, offset) for offset, value in enumerate(values)]
        self.injected: List[FakeMessage] = []
        self.position = 0
        self.committed: Optional[int] = None
        self.commits: List[int] = []
        self.seeks: List[int] = []
        self.subscriptions: List[str] = []
        self.closed = False
        self.on_exhausted: Optional[Callable[[], None]] = None

    def subscribe(self, topics):
        self.subscriptions.extend(topics)

    def poll(self, timeout=None):
        if self.injected:
            return self.injected.pop(0)
        if self.position >= len(self.log):
            if self.on_exhausted is not None:
                self.on_exhausted()
            return None
        msg = self.log[self.position]
        self.position += 1
        return msg

    def commit(self, message=None, asynchronous=True):
        assert asynchronous is False, "offsets must be committed synchronously"
        self.committed = message.offset() + 1
        self.commits.append(message.offset())

    def seek(self, partition):
        self.seeks.append(partition.offset)
        self.position = partition.offset

    def close(self):
        self.closed = True


class FakeProducer:
    """
    Stand-in for confluent_kafka.Producer.

    flush() delivers everything pending: successfully, with
    ``delivery_error``, or not at all when ``stalled``.
    """

    def __init__(self, delivery_error: Optional[KafkaError] = None, stalled: bool = False):
        self.delivery_error = delivery_error
        self.stalled = stalled
        self.pending: List[tuple] = []
        self.delivered: List[Dict] = []
        self.flush_calls = 0

    def produce(self, topic, key=None, value=None, on_delivery=None):
        self.pending.append((topic, key, value, on_delivery))

    def flush(self, timeout=None):
        self.flush_calls += 1
        if self.stalled:
            return len(self.pending)
        pending, self.pending = self.pending, []
        for topic, key, value, on_delivery in pending:
            if self.delivery_error is not None:
                on_delivery(self.delivery_error, None)
                continue
            self.delivered.append({"topic": topic, "key": key, "value": value})
            on_delivery(None, FakeMessage(value, topic, 0, len(self.delivered) - 1, key=key))
        return 0

    def messages(self) -> List[dict]:
        return [json.loads(item["value"]) for item in self.delivered]


@pytest.fixture
def make_kafka_consumer() -> Callable[..., FakeKafkaConsumer]:
    return FakeKafkaConsumer


@pytest.fixture
def make_message() -> Callable[..., FakeMessage]:
    return FakeMessage


@pytest.fixture
def make_producer() -> Callable[..., FakeProducer]:
    return FakeProducer


@pytest.fixture
def request_payload() -> bytes:
    return json.dumps({"name": "Supernatural"}).encode("utf-8")


# ==============================================================================
# INTEGRATION FIXTURES (testcontainers)
# ==============================================================================


def _docker_available() -> bool:
    try:
        import docker

        docker.from_env().ping()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def kafka_container():
    from testcontainers.kafka import KafkaContainer

    with KafkaContainer() as kafka:
        kafka.get_bootstrap_server()
        yield kafka


@pytest.fixture(scope="session")
def postgres_container():
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:15") as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture(scope="session")
def mongo_container():
    from testcontainers.mongodb import MongoDbContainer

    with MongoDbContainer("mongo:7") as mongo:
        mongo.get_connection_url()
        yield mongo


# ==============================================================================
# TEST ENVIRONMENT CONFIGURATION
# ==============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires containers)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 5 seconds)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests when Docker is not reachable."""
    if not any("integration" in item.keywords for item in items):
        return
    if _docker_available():
        return
    skip_integration = pytest.mark.skip(reason="Docker is not available for testcontainers")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
