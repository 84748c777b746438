"""Tests for the TMDB catalog client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.services.tmdb import CatalogUnavailableError, TMDBClient


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base = {"TMDB_API_KEY": "tmdb-key"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def tmdb_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/genre/movie/list"):
        return httpx.Response(200, json={"genres": [{"id": 878, "name": "Science Fiction"}]})
    if path.endswith("/genre/tv/list"):
        return httpx.Response(200, json={"genres": [{"id": 18, "name": "Drama"}]})
    if path.endswith("/search/multi"):
        return httpx.Response(
            200,
            json={
                "results": [
                    {"media_type": "person", "id": 1, "name": "Denis Villeneuve"},
                    {
                        "media_type": "movie",
                        "id": 438631,
                        "title": "Dune",
                        "release_date": "2021-09-15",
                        "genre_ids": [878, 999],
                        "poster_path": "/dune.jpg",
                        "vote_average": 7.789,
                        "overview": "Spice must flow.",
                    },
                    {
                        "media_type": "tv",
                        "id": 90228,
                        "name": "Dune: Prophecy",
                        "first_air_date": "2024-11-17",
                        "genre_ids": [18],
                    },
                ]
            },
        )
    if path.endswith("/movie/438631/credits"):
        return httpx.Response(
            200,
            json={
                "cast": [
                    {"name": "Rebecca Ferguson", "order": 1},
                    {"name": "Timothée Chalamet", "order": 0},
                ],
                "crew": [
                    {"name": "Denis Villeneuve", "job": "Director"},
                    {"name": "Hans Zimmer", "job": "Original Music Composer"},
                ],
            },
        )
    if path.endswith("/credits"):
        return httpx.Response(404, json={"status_message": "missing"})
    return httpx.Response(404, json={})


@pytest.mark.anyio("asyncio")
async def test_search_converts_movies_and_series() -> None:
    """Multi-search results should map onto titles with resolved genres."""

    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return tmdb_handler(request)

    settings = build_settings()
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://tmdb.test/3"
    ) as http_client:
        client = TMDBClient(settings, http_client)
        await client.load_genres()
        titles = await client.search_titles("dune")

    assert [title.name for title in titles] == ["Dune", "Dune: Prophecy"]
    dune, prophecy = titles
    assert dune.external_id == "438631"
    assert dune.type == "movie"
    assert dune.year == 2021
    assert dune.genres == ["Science Fiction"]
    assert dune.rating == 3.9
    assert dune.poster_url == "https://image.tmdb.org/t/p/w500/dune.jpg"
    assert dune.cast == ["Timothée Chalamet", "Rebecca Ferguson"]
    assert dune.crew == ["Denis Villeneuve"]
    assert prophecy.type == "series"
    assert prophecy.genres == ["Drama"]
    assert prophecy.cast == []
    assert all(request.url.params["api_key"] == "tmdb-key" for request in requests)


@pytest.mark.anyio("asyncio")
async def test_genres_are_loaded_once() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return tmdb_handler(request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://tmdb.test/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        await client.load_genres()
        await client.load_genres()

    assert len(calls) == 2
    assert client.genre_names([878, "18", None]) == ["Science Fiction", "Drama"]


@pytest.mark.anyio("asyncio")
async def test_upstream_errors_raise_catalog_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"status_message": "boom"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://tmdb.test/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(CatalogUnavailableError):
            await client.search_titles("dune")
        assert await client.get_title("438631", "movie") is None


@pytest.mark.anyio("asyncio")
async def test_timeouts_raise_catalog_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://tmdb.test/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(CatalogUnavailableError):
            await client.get_trending()


@pytest.mark.anyio("asyncio")
async def test_missing_key_skips_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - guard
        raise AssertionError("Network access should not be triggered without a key")

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://tmdb.test/3"
    ) as http_client:
        client = TMDBClient(build_settings(TMDB_API_KEY=""), http_client)
        await client.load_genres()
        assert await client.search_titles("dune") == []
        assert await client.get_trending() == []
        assert await client.get_title("438631", "movie") is None


def test_convert_title_reads_detail_payloads() -> None:
    client = TMDBClient(build_settings(), httpx.AsyncClient())
    title = client.convert_title(
        {
            "id": 136315,
            "name": "The Bear",
            "first_air_date": "2022-06-23",
            "episode_run_time": [30, 34],
            "genres": [{"id": 35, "name": "Comedy"}],
            "backdrop_path": "/bear.jpg",
        },
        "tv",
    )

    assert title is not None
    assert title.type == "series"
    assert title.runtime == 30
    assert title.genres == ["Comedy"]
    assert title.backdrop_url == "https://image.tmdb.org/t/p/w1280/bear.jpg"
    assert client.convert_title({"id": 1}, "movie") is None


@pytest.mark.anyio("asyncio")
async def test_list_endpoints_use_the_requested_kind() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.endswith("/credits"):
            return httpx.Response(200, json={"cast": [], "crew": []})
        results = [{"id": index, "name": f"Show {index}"} for index in range(15)]
        return httpx.Response(200, json={"results": results})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://tmdb.test/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        popular = await client.get_popular("tv")
        top_rated = await client.get_top_rated("tv")
        similar = await client.get_similar("136315", "tv")

    assert len(popular) == 15
    assert len(top_rated) == 15
    assert len(similar) == 10
    assert all(title.type == "series" for title in popular + similar)
    assert "/3/tv/popular" in paths
    assert "/3/tv/top_rated" in paths
    assert "/3/tv/136315/similar" in paths


def test_convert_title_halves_votes_and_skips_invalid_records() -> None:
    client = TMDBClient(build_settings(), httpx.AsyncClient())

    heat = client.convert_title({"id": 949, "title": "Heat", "vote_average": 8.0}, "movie")
    assert heat is not None
    assert heat.rating == 4.0

    assert client.convert_title({"id": 3, "title": "Bad", "vote_average": -1}, "movie") is None
