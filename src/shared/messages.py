"""
Message and Record Models

Pydantic models for everything that crosses a process boundary:

- SeriesRequest: inbound request body   {"name": "Supernatural"}
- OutboundAnnouncement: chained message {"title": "Supernatural"}
- CanonicalSeriesRecord: the provider lookup result handed to the stores

Kafka message values are UTF-8 encoded JSON documents.
"""

import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.shared.errors import MalformedMessageError


def _decode_json_object(payload: Optional[bytes]) -> dict:
    if payload is None:
        raise MalformedMessageError("Message has no value")
    try:
        data = json.loads(payload.decode("utf-8"))
    except ValueError as exc:
        # UnicodeDecodeError and JSONDecodeError are both ValueErrors
        raise MalformedMessageError(f"Message value is not UTF-8 JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError(
            f"Message value must be a JSON object, got {type(data).__name__}"
        )
    return data


class SeriesRequest(BaseModel):
    """A request to resolve and persist one television series by name."""

    name: str = Field(description="Free-text series name sent to the provider")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @classmethod
    def from_message(cls, payload: Optional[bytes]) -> "SeriesRequest":
        """
        Parse a Kafka message value.

        Raises:
            MalformedMessageError: not JSON, not an object, or no usable name
        """
        data = _decode_json_object(payload)
        try:
            return cls.model_validate(data)
        except ValueError as exc:
            raise MalformedMessageError(f"Invalid series request: {exc}") from exc

    def to_message(self) -> bytes:
        return json.dumps({"name": self.name}).encode("utf-8")


class Episode(BaseModel):
    """One (season, episode) pair as listed by the provider."""

    model_config = ConfigDict(frozen=True)

    season: int
    episode: int


class CanonicalSeriesRecord(BaseModel):
    """
    A series resolved against the provider.

    Attributes:
        series_id: Provider id extracted from "/title/<id>/" (e.g. "tt0460681")
        title: Provider title
        episodes: Flattened episode list in provider order; empty when
            season detail was not fetched
        number_of_episodes: Legacy episode count reported by the find
            endpoint, when the provider sent one
    """

    series_id: str
    title: str
    episodes: List[Episode] = Field(default_factory=list)
    number_of_episodes: Optional[int] = None


class OutboundAnnouncement(BaseModel):
    """Published after a series was saved, for downstream consumers."""

    title: str

    @classmethod
    def from_message(cls, payload: Optional[bytes]) -> "OutboundAnnouncement":
        data = _decode_json_object(payload)
        try:
            return cls.model_validate(data)
        except ValueError as exc:
            raise MalformedMessageError(f"Invalid announcement: {exc}") from exc

    def to_message(self) -> bytes:
        return json.dumps({"title": self.title}).encode("utf-8")
