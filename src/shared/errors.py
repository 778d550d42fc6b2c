"""
Error Taxonomy for the Series Enrichment Pipeline

Every failure the pipeline can hit surfaces as one of these exceptions. The
pipeline never retries locally: its only recovery action is to leave the
inbound message unacknowledged so the transport redelivers it.

    EnrichmentError
    ├── MalformedMessageError      inbound body is not a valid SeriesRequest
    ├── ProviderLookupError
    │   ├── NotFoundError          provider returned no candidate
    │   ├── MalformedIdentifierError  provider id does not match /title/<id>/
    │   └── LookupTransportError   network failure, non-2xx, unreadable body
    ├── StoreWriteError            document upsert or episode insert failed
    └── PublishError               downstream announcement not delivered

Library exceptions (httpx, pymongo, SQLAlchemy, confluent-kafka) are chained
with ``raise ... from exc`` so the original cause stays in the traceback.
"""

from typing import Optional


class EnrichmentError(Exception):
    """Base class for every pipeline failure."""


class MalformedMessageError(EnrichmentError, ValueError):
    """The inbound message body could not be parsed into a SeriesRequest."""


class ProviderLookupError(EnrichmentError):
    """Resolving a series against the metadata provider failed."""

    def __init__(self, message: str, series_name: Optional[str] = None):
        super().__init__(message)
        self.series_name = series_name


class NotFoundError(ProviderLookupError):
    """The provider's find endpoint returned an empty result set."""


class MalformedIdentifierError(ProviderLookupError):
    """The provider identifier did not match the ``/title/<token>/`` shape."""

    def __init__(self, identifier: object, series_name: Optional[str] = None):
        super().__init__(f"Malformed provider identifier: {identifier!r}", series_name)
        self.identifier = identifier


class LookupTransportError(ProviderLookupError):
    """HTTP transport failure (timeout, connection error, non-2xx, bad JSON)."""

    def __init__(
        self,
        message: str,
        series_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, series_name)
        self.status_code = status_code


class StoreWriteError(EnrichmentError):
    """Persisting to the document store or the relational sink failed."""

    def __init__(self, message: str, store: str, series_id: Optional[str] = None):
        super().__init__(message)
        self.store = store
        self.series_id = series_id


class PublishError(EnrichmentError):
    """A message could not be delivered to its Kafka topic."""

    def __init__(self, message: str, topic: str):
        super().__init__(message)
        self.topic = topic
