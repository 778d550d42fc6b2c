"""
Unit Tests for the Series Request Consumer

The Kafka consumer is a FakeKafkaConsumer: a single-partition log whose
read position honours seek(), so redelivery can be observed directly.
"""

import json

import pytest
from confluent_kafka import KafkaError

from src.enricher.config import EnricherConfig
from src.enricher.consumer import SeriesRequestConsumer
from src.enricher.pipeline import EnrichmentPipeline, MessageState, ProcessingResult
from src.shared.errors import MalformedMessageError, StoreWriteError
from src.shared.messages import SeriesRequest


def encode(name):
    return json.dumps({"name": name}).encode("utf-8")


class ScriptedPipeline:
    """Pipeline double: fails the first ``failures`` deliveries of each name."""

    def __init__(self, failures=0):
        self.failures = failures
        self.seen = []

    def process(self, payload, acknowledge):
        try:
            request = SeriesRequest.from_message(payload)
        except MalformedMessageError as exc:
            return ProcessingResult(MessageState.FAILED, MessageState.RECEIVED, error=exc)

        self.seen.append(request.name)
        if self.seen.count(request.name) <= self.failures:
            error = StoreWriteError("primary stepped down", "mongodb", "tt0460681")
            return ProcessingResult(MessageState.FAILED, MessageState.PERSISTING, request, error=error)

        acknowledge()
        return ProcessingResult(MessageState.ACKNOWLEDGED, request=request)


class Closeable:
    def __init__(self, error=None):
        self.closed = 0
        self.error = error

    def close(self):
        self.closed += 1
        if self.error is not None:
            raise self.error


@pytest.fixture
def config():
    return EnricherConfig(kafka_topic_requests="popcorn-planner.tvserie-retrieve")


@pytest.fixture
def make_consumer(config, make_kafka_consumer):
    def factory(values, pipeline=None, closeables=()):
        kafka = make_kafka_consumer(values)
        consumer = SeriesRequestConsumer(
            config, pipeline or ScriptedPipeline(), consumer=kafka, closeables=closeables
        )
        return consumer, kafka

    return factory


# ==============================================================================
# SUBSCRIPTION
# ==============================================================================


@pytest.mark.unit
def test_subscribes_to_request_topic(make_consumer):
    _, kafka = make_consumer([])

    assert kafka.subscriptions == ["popcorn-planner.tvserie-retrieve"]


@pytest.mark.unit
def test_kafka_config_disables_auto_commit(config):
    kafka_config = config.get_kafka_config()

    assert kafka_config["enable.auto.commit"] is False
    assert kafka_config["group.id"] == "popcorn-planner.tvserie-enrichers"


# ==============================================================================
# ACKNOWLEDGMENT
# ==============================================================================


@pytest.mark.unit
def test_success_commits_offset(make_consumer):
    consumer, kafka = make_consumer([encode("Supernatural")])

    results = consumer.process_messages(1, timeout=1)

    assert [r.state for r in results] == [MessageState.ACKNOWLEDGED]
    assert kafka.commits == [0]
    assert kafka.committed == 1
    assert kafka.seeks == []
    assert consumer.messages_processed == 1


@pytest.mark.unit
def test_messages_processed_one_at_a_time(make_consumer):
    consumer, kafka = make_consumer([encode("Supernatural"), encode("Lost")])

    results = consumer.process_messages(2, timeout=1)

    assert [r.request.name for r in results] == ["Supernatural", "Lost"]
    assert kafka.commits == [0, 1]


@pytest.mark.unit
def test_failure_rewinds_for_redelivery(make_consumer):
    pipeline = ScriptedPipeline(failures=1)
    consumer, kafka = make_consumer([encode("Supernatural"), encode("Lost")], pipeline=pipeline)

    results = consumer.process_messages(3, timeout=1)

    assert [r.state for r in results] == [
        MessageState.FAILED,
        MessageState.ACKNOWLEDGED,
        MessageState.FAILED,
    ]
    # offset 0 is delivered twice and only committed the second time
    assert pipeline.seen == ["Supernatural", "Supernatural", "Lost"]
    assert kafka.seeks == [0, 1]
    assert kafka.commits == [0]
    assert consumer.messages_failed == 2
    assert consumer.messages_processed == 1


@pytest.mark.unit
def test_redelivered_message_is_eventually_acknowledged(make_consumer):
    consumer, kafka = make_consumer([encode("Supernatural")], pipeline=ScriptedPipeline(failures=2))

    results = consumer.process_messages(3, timeout=1)

    assert [r.acknowledged for r in results] == [False, False, True]
    assert kafka.commits == [0]
    assert kafka.committed == 1


@pytest.mark.unit
def test_malformed_message_committed_and_skipped(make_consumer):
    pipeline = ScriptedPipeline()
    consumer, kafka = make_consumer([b"{not json", encode("Supernatural")], pipeline=pipeline)

    results = consumer.process_messages(2, timeout=1)

    assert results[0].malformed
    assert results[1].acknowledged
    assert kafka.commits == [0, 1]
    assert kafka.seeks == []
    assert consumer.messages_skipped == 1
    assert pipeline.seen == ["Supernatural"]


@pytest.mark.unit
def test_with_real_pipeline(make_consumer, make_lookup, document_store, episode_sink):
    pipeline = EnrichmentPipeline(make_lookup(), document_store, episode_sink)
    consumer, kafka = make_consumer([encode("Supernatural")], pipeline=pipeline)

    results = consumer.process_messages(1, timeout=1)

    assert results[0].acknowledged
    assert kafka.commits == [0]
    assert episode_sink.count_episodes("tt0460681") == 327


# ==============================================================================
# KAFKA ERRORS
# ==============================================================================


@pytest.mark.unit
def test_partition_eof_is_ignored(make_consumer, make_message):
    consumer, kafka = make_consumer([encode("Supernatural")])
    kafka.injected.append(make_message(None, error=KafkaError(KafkaError._PARTITION_EOF)))

    results = consumer.process_messages(1, timeout=1)

    assert len(results) == 1
    assert kafka.commits == [0]


@pytest.mark.unit
def test_fatal_error_stops_loop(make_consumer, make_message):
    consumer, kafka = make_consumer([encode("Supernatural")])
    kafka.injected.append(make_message(None, error=KafkaError(KafkaError._ALL_BROKERS_DOWN)))

    consumer.start()

    assert consumer.running is False
    assert kafka.commits == []
    assert kafka.closed is True


# ==============================================================================
# LIFECYCLE
# ==============================================================================


@pytest.mark.unit
def test_start_runs_until_stopped(make_consumer):
    consumer, kafka = make_consumer([encode("Supernatural"), encode("Lost")])
    kafka.on_exhausted = consumer.stop

    consumer.start()

    assert kafka.commits == [0, 1]
    assert consumer.messages_processed == 2
    assert kafka.closed is True


@pytest.mark.unit
def test_close_is_idempotent_and_closes_resources(make_consumer):
    http_client, publisher = Closeable(), Closeable()
    consumer, kafka = make_consumer([], closeables=[http_client, publisher])

    consumer.close()
    consumer.close()

    assert kafka.closed is True
    assert http_client.closed == 1
    assert publisher.closed == 1


@pytest.mark.unit
def test_close_continues_after_resource_error(make_consumer):
    broken, publisher = Closeable(error=RuntimeError("already closed")), Closeable()
    consumer, _ = make_consumer([], closeables=[broken, publisher])

    consumer.close()

    assert publisher.closed == 1
