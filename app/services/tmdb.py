"""Client for The Movie Database (TMDB), the external title catalog."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import TitleData

logger = logging.getLogger(__name__)

MediaKind = Literal["movie", "tv"]

POSTER_SIZE = "w500"
BACKDROP_SIZE = "w1280"
MAX_RESULTS = 20
SIMILAR_RESULTS = 10
CAST_LIMIT = 10
CREW_JOBS = frozenset({"Director", "Writer", "Creator"})
# TMDB votes run 0-10; stored ratings use a 0-5 scale.
RATING_DIVISOR = 2


class CatalogUnavailableError(RuntimeError):
    """Raised when TMDB cannot be reached or answers with an error."""


@dataclass(slots=True)
class Credits:
    """Top-billed cast and key crew for a single title."""

    cast: list[str] = field(default_factory=list)
    crew: list[str] = field(default_factory=list)


class TMDBClient:
    """Searches TMDB and converts its records into :class:`TitleData`.

    Without an API key every lookup is a no-op that returns an empty result.
    Genre names are resolved through a per-client cache filled once by
    :meth:`load_genres`.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._api_key = settings.tmdb_api_key
        self._image_base_url = str(settings.tmdb_image_url).rstrip("/")
        self._genres: dict[int, str] = {}
        self._genres_loaded = False

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def load_genres(self) -> None:
        """Populate the genre id → name cache from the movie and TV lists."""

        if not self.is_configured or self._genres_loaded:
            return
        try:
            movie_genres, tv_genres = await asyncio.gather(
                self._request("/genre/movie/list"),
                self._request("/genre/tv/list"),
            )
        except CatalogUnavailableError as exc:
            logger.warning("Unable to load TMDB genres: %s", exc)
            return

        for payload in (movie_genres, tv_genres):
            for genre in payload.get("genres") or []:
                if isinstance(genre, dict) and "id" in genre and genre.get("name"):
                    self._genres[int(genre["id"])] = str(genre["name"])
        self._genres_loaded = True
        logger.info("Loaded %d TMDB genres", len(self._genres))

    def genre_names(self, genre_ids: list[Any]) -> list[str]:
        names: list[str] = []
        for genre_id in genre_ids or []:
            try:
                name = self._genres.get(int(genre_id))
            except (TypeError, ValueError):
                continue
            if name:
                names.append(name)
        return names

    async def search_titles(self, query: str) -> list[TitleData]:
        """Multi-search movies and series, best-ranked first."""

        if not self.is_configured or not query.strip():
            return []
        payload = await self._request("/search/multi", {"query": query.strip()})
        candidates = [
            (result, result.get("media_type"))
            for result in payload.get("results") or []
            if isinstance(result, dict) and result.get("media_type") in {"movie", "tv"}
        ]
        return await self._convert_many(candidates[:MAX_RESULTS])

    async def get_trending(
        self, time_window: Literal["day", "week"] = "day"
    ) -> list[TitleData]:
        if not self.is_configured:
            return []
        payload = await self._request(f"/trending/all/{time_window}")
        candidates = [
            (result, "tv" if result.get("media_type") == "tv" else "movie")
            for result in payload.get("results") or []
            if isinstance(result, dict) and result.get("media_type") != "person"
        ]
        return await self._convert_many(candidates[:MAX_RESULTS])

    async def get_popular(self, kind: MediaKind) -> list[TitleData]:
        return await self._list_endpoint(f"/{kind}/popular", kind, MAX_RESULTS)

    async def get_top_rated(self, kind: MediaKind) -> list[TitleData]:
        return await self._list_endpoint(f"/{kind}/top_rated", kind, MAX_RESULTS)

    async def get_similar(self, external_id: str | int, kind: MediaKind) -> list[TitleData]:
        return await self._list_endpoint(
            f"/{kind}/{external_id}/similar", kind, SIMILAR_RESULTS
        )

    async def get_title(self, external_id: str | int, kind: MediaKind) -> TitleData | None:
        """Fetch full details for one title, or ``None`` when unavailable."""

        if not self.is_configured:
            return None
        try:
            details, credits = await asyncio.gather(
                self._request(f"/{kind}/{external_id}"),
                self._fetch_credits(external_id, kind),
            )
        except CatalogUnavailableError as exc:
            logger.warning("TMDB title %s (%s) unavailable: %s", external_id, kind, exc)
            return None
        return self.convert_title(details, kind, credits)

    async def _list_endpoint(
        self, endpoint: str, kind: MediaKind, limit: int
    ) -> list[TitleData]:
        if not self.is_configured:
            return []
        payload = await self._request(endpoint)
        candidates = [
            (result, kind)
            for result in payload.get("results") or []
            if isinstance(result, dict)
        ]
        return await self._convert_many(candidates[:limit])

    async def _convert_many(
        self, candidates: list[tuple[dict[str, Any], MediaKind]]
    ) -> list[TitleData]:
        candidates = [
            (result, kind) for result, kind in candidates if result.get("id") is not None
        ]
        credits = await asyncio.gather(
            *(self._fetch_credits(result["id"], kind) for result, kind in candidates)
        )
        titles: list[TitleData] = []
        for (result, kind), title_credits in zip(candidates, credits):
            title = self.convert_title(result, kind, title_credits)
            if title is not None:
                titles.append(title)
        return titles

    async def _fetch_credits(self, external_id: str | int, kind: MediaKind) -> Credits:
        """Return cast and crew; failures degrade to empty credits."""

        try:
            payload = await self._request(f"/{kind}/{external_id}/credits")
        except CatalogUnavailableError as exc:
            logger.debug("TMDB credits unavailable for %s: %s", external_id, exc)
            return Credits()

        cast_entries = [
            entry for entry in payload.get("cast") or [] if isinstance(entry, dict)
        ]
        cast_entries.sort(key=lambda entry: entry.get("order", 1_000))
        cast = [str(entry["name"]) for entry in cast_entries if entry.get("name")]
        crew = [
            str(entry["name"])
            for entry in payload.get("crew") or []
            if isinstance(entry, dict)
            and entry.get("job") in CREW_JOBS
            and entry.get("name")
        ]
        return Credits(cast=cast[:CAST_LIMIT], crew=crew)

    def convert_title(
        self,
        result: dict[str, Any],
        kind: MediaKind,
        credits: Credits | None = None,
    ) -> TitleData | None:
        """Map a TMDB movie/tv record onto the internal title shape."""

        external_id = result.get("id")
        name = result.get("title") or result.get("name")
        if external_id is None or not name:
            return None

        if kind == "movie":
            runtime = result.get("runtime")
        else:
            episode_runtimes = result.get("episode_run_time") or []
            runtime = episode_runtimes[0] if episode_runtimes else None

        genre_ids = result.get("genre_ids")
        if genre_ids is None:
            # Detail endpoints embed genre objects instead of ids.
            genres = [
                str(genre["name"])
                for genre in result.get("genres") or []
                if isinstance(genre, dict) and genre.get("name")
            ]
        else:
            genres = self.genre_names(genre_ids)

        vote_average = result.get("vote_average")
        credits = credits or Credits()
        try:
            return TitleData(
                external_id=str(external_id),
                name=str(name),
                type="series" if kind == "tv" else "movie",
                year=self._extract_year(result),
                genres=genres,
                synopsis=result.get("overview") or None,
                poster_url=self._build_image_url(result.get("poster_path"), POSTER_SIZE),
                backdrop_url=self._build_image_url(
                    result.get("backdrop_path"), BACKDROP_SIZE
                ),
                runtime=runtime if isinstance(runtime, int) else None,
                cast=list(credits.cast),
                crew=list(credits.crew),
                rating=(
                    round(float(vote_average) / RATING_DIVISOR, 1)
                    if isinstance(vote_average, (int, float))
                    else None
                ),
            )
        except ValidationError as exc:
            logger.warning("Skipping malformed TMDB record %s: %s", external_id, exc)
            return None

    async def _request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        query = {"api_key": self._api_key, **(params or {})}
        try:
            response = await self._client.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            raise CatalogUnavailableError(f"TMDB request to {endpoint} failed: {exc}") from exc
        if response.status_code >= 400:
            raise CatalogUnavailableError(
                f"TMDB API error {response.status_code} for {endpoint}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise CatalogUnavailableError(f"TMDB returned invalid JSON for {endpoint}") from exc
        if not isinstance(data, dict):
            raise CatalogUnavailableError(f"Unexpected TMDB payload for {endpoint}")
        return data

    @staticmethod
    def _extract_year(result: dict[str, Any]) -> int | None:
        date_value = result.get("release_date") or result.get("first_air_date")
        if not isinstance(date_value, str) or len(date_value) < 4:
            return None
        try:
            return int(date_value[:4])
        except ValueError:
            return None

    def _build_image_url(self, path: str | None, size: str) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{self._image_base_url}/{size}{path}"
