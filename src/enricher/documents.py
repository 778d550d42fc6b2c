"""
Series Document Store (MongoDB)

One document per series in the ``tvseries`` collection:

    {
      "seriesId": "tt0460681",
      "title": "Supernatural",
      "numberOfEpisodes": 327,      # only when the provider reported it
      "createdAt": <first write>,
      "updatedAt": <latest write>
    }

IDEMPOTENCY:
- Writes are upserts matched on seriesId, never plain inserts
- createdAt goes through $setOnInsert, so redelivered messages keep it
- A unique index on seriesId backs the one-document-per-series invariant
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pymongo import ASCENDING
from pymongo.errors import PyMongoError
from pymongo.results import UpdateResult

from src.shared.errors import StoreWriteError
from src.shared.messages import CanonicalSeriesRecord

SERIES_ID_FIELD = "seriesId"
SERIES_ID_INDEX_NAME = "seriesId_unique"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SeriesDocumentStore:
    """
    Upserts canonical series records into a MongoDB collection.

    Attributes:
        collection: pymongo Collection (mongomock in unit tests)
        clock: Returns the timestamp written to createdAt/updatedAt
    """

    def __init__(
        self,
        collection: Any,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.collection = collection
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def ensure_indexes(self) -> bool:
        """
        Create the unique seriesId index unless one already exists.

        Returns:
            True when the index was created by this call
        """
        for name, info in self.collection.index_information().items():
            if [field for field, _ in info.get("key", [])] == [SERIES_ID_FIELD]:
                self.logger.debug("seriesId index present", extra={"index": name})
                return False

        self.collection.create_index(
            [(SERIES_ID_FIELD, ASCENDING)], unique=True, name=SERIES_ID_INDEX_NAME
        )
        self.logger.info(
            "Created unique index",
            extra={"collection": self.collection.name, "index": SERIES_ID_INDEX_NAME},
        )
        return True

    def upsert_series(self, record: CanonicalSeriesRecord) -> UpdateResult:
        """
        Insert or update the document for ``record.series_id``.

        Raises:
            StoreWriteError: any MongoDB failure, chained to the driver error
        """
        now = self.clock()
        fields: Dict[str, Any] = {"title": record.title, "updatedAt": now}
        if record.number_of_episodes is not None:
            fields["numberOfEpisodes"] = record.number_of_episodes

        try:
            result = self.collection.update_one(
                {SERIES_ID_FIELD: record.series_id},
                {
                    "$set": fields,
                    "$setOnInsert": {"createdAt": now},
                },
                upsert=True,
            )
        except PyMongoError as exc:
            raise StoreWriteError(
                f"Series upsert failed: {exc}", store="mongodb", series_id=record.series_id
            ) from exc

        self.logger.debug(
            "Series document upserted",
            extra={
                "series_id": record.series_id,
                "inserted": result.upserted_id is not None,
                "matched": result.matched_count,
            },
        )
        return result

    def find_series(self, series_id: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({SERIES_ID_FIELD: series_id})
