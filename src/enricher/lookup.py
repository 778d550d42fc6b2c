"""
IMDb Series Lookup Client

Resolves a free-text series name against the IMDb API (RapidAPI imdb8 host)
in two sequential requests:

    1. GET /title/find?q=<name>          -> first result: id, title
    2. GET /title/get-seasons?tconst=<id> -> seasons with their episodes

The second request needs the id extracted from the first response, so the
two calls always run in order. Step 2 is skipped when episode fetching is
disabled; the record then carries no episodes.

No retries: every failure propagates to the pipeline, which leaves the
message unacknowledged for redelivery.
"""

import logging
import re
from typing import Any, List, Optional

import httpx

from src.shared.errors import LookupTransportError, MalformedIdentifierError, NotFoundError
from src.shared.messages import CanonicalSeriesRecord, Episode

# Provider ids look like "/title/tt0460681/"
TITLE_ID_PATTERN = re.compile(r"/title/(\w+)/")


def extract_series_id(identifier: Any) -> str:
    """
    Extract the stable series id from a provider path.

    >>> extract_series_id("/title/tt0460681/")
    'tt0460681'

    Raises:
        MalformedIdentifierError: not a string, or not ``/title/<token>/``
    """
    if not isinstance(identifier, str):
        raise MalformedIdentifierError(identifier)
    match = TITLE_ID_PATTERN.fullmatch(identifier)
    if match is None:
        raise MalformedIdentifierError(identifier)
    return match.group(1)


def flatten_seasons(seasons: Any) -> List[Episode]:
    """
    Flatten the get-seasons payload into one episode list.

    Provider order is kept as-is (season blocks, then episodes within each
    block); nothing is sorted or de-duplicated. An episode without its own
    ``season`` inherits the enclosing block's.
    """
    if not isinstance(seasons, list):
        raise ValueError(f"Expected a list of seasons, got {type(seasons).__name__}")

    episodes: List[Episode] = []
    for block in seasons:
        block_season = block.get("season")
        for item in block.get("episodes") or []:
            episodes.append(
                Episode(
                    season=item.get("season", block_season),
                    episode=item["episode"],
                )
            )
    return episodes


class SeriesLookupClient:
    """
    Client for the provider's find and get-seasons endpoints.

    The httpx.Client is created once and reused for every message; pass your
    own (e.g. with an httpx.MockTransport) to control the transport.

    Attributes:
        api_key: Static RapidAPI key
        host: RapidAPI host header value
        base_url: Provider origin; defaults to https://<host>
        fetch_episodes: Whether resolve() performs the get-seasons call
    """

    def __init__(
        self,
        api_key: str,
        host: str = "imdb8.p.rapidapi.com",
        base_url: Optional[str] = None,
        fetch_episodes: bool = True,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.api_key = api_key
        self.host = host
        self.fetch_episodes = fetch_episodes
        self.logger = logger or logging.getLogger(__name__)
        self._owns_client = client is None
        self.client = client or httpx.Client(
            base_url=base_url or f"https://{host}", timeout=timeout
        )

    def _get(self, path: str, params: dict, series_name: str) -> Any:
        headers = {"x-rapidapi-host": self.host, "x-rapidapi-key": self.api_key}
        try:
            response = self.client.get(path, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LookupTransportError(
                f"Provider returned HTTP {exc.response.status_code} for {path}",
                series_name=series_name,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise LookupTransportError(
                f"Provider request to {path} failed: {exc}", series_name=series_name
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise LookupTransportError(
                f"Provider response from {path} is not JSON",
                series_name=series_name,
                status_code=response.status_code,
            ) from exc

    def find_first(self, name: str) -> dict:
        """Return the first find result for ``name``; no ranking is applied."""
        data = self._get("/title/find", {"q": name}, name)
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise NotFoundError(f"No provider result for {name!r}", series_name=name)
        return results[0]

    def get_episodes(self, series_id: str, series_name: str) -> List[Episode]:
        data = self._get("/title/get-seasons", {"tconst": series_id}, series_name)
        try:
            return flatten_seasons(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise LookupTransportError(
                f"Unexpected get-seasons payload for {series_id}: {exc}",
                series_name=series_name,
            ) from exc

    def resolve(self, name: str) -> CanonicalSeriesRecord:
        """
        Resolve a series name to its canonical record.

        Raises:
            NotFoundError: empty find result
            MalformedIdentifierError: first result's id is not /title/<id>/
            LookupTransportError: HTTP failure or unreadable payload
        """
        first = self.find_first(name)
        if not isinstance(first, dict):
            raise MalformedIdentifierError(first, series_name=name)
        try:
            series_id = extract_series_id(first.get("id"))
        except MalformedIdentifierError as exc:
            exc.series_name = name
            raise

        episodes: List[Episode] = []
        if self.fetch_episodes:
            episodes = self.get_episodes(series_id, name)

        record = CanonicalSeriesRecord(
            series_id=series_id,
            title=first.get("title") or "",
            episodes=episodes,
            number_of_episodes=first.get("numberOfEpisodes"),
        )

        self.logger.debug(
            "Series resolved",
            extra={
                "correlation_id": name,
                "series_id": series_id,
                "title": record.title,
                "episodes": len(episodes),
            },
        )
        return record

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
