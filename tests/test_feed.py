"""Tests for timeline assembly."""

from __future__ import annotations

import pytest

from app.models import PostCreate, TitleData, UserUpsert
from app.services.feed import FeedAssembler
from app.storage import MemoryStorage


async def _setup() -> tuple[MemoryStorage, str]:
    storage = MemoryStorage()
    for user_id in ("alice", "bob", "carol"):
        await storage.upsert_user(UserUpsert(id=user_id, username=user_id))
    title = await storage.create_title(TitleData(name="Past Lives", genres=["Romance"]))
    return storage, title.id


@pytest.mark.anyio("asyncio")
async def test_followed_author_posts_are_enriched() -> None:
    storage, title_id = await _setup()
    await storage.create_follow("alice", "bob")
    post = await storage.create_post("bob", PostCreate(title_id=title_id, caption="Wow"))
    await storage.create_post("carol", PostCreate(title_id=title_id))
    await storage.create_interaction("alice", post.id, "like")

    feed = await FeedAssembler(storage).get_feed("alice", 10, 0)

    assert [item.id for item in feed] == [post.id]
    [item] = feed
    assert item.author is not None and item.author.id == "bob"
    assert item.title is not None and item.title.name == "Past Lives"
    assert item.is_liked is True
    assert item.is_saved is False
    assert item.likes_count == 1


@pytest.mark.anyio("asyncio")
async def test_pages_follow_newest_first_order() -> None:
    storage, title_id = await _setup()
    for index in range(3):
        await storage.create_post("alice", PostCreate(title_id=title_id, caption=str(index)))
    assembler = FeedAssembler(storage)

    everything = await assembler.get_feed("alice", 10, 0)
    first = await assembler.get_feed("alice", 2, 0)
    rest = await assembler.get_feed("alice", 2, 2)

    assert [item.id for item in first + rest] == [item.id for item in everything]
    assert await assembler.get_feed("alice", 2, 10) == []


@pytest.mark.anyio("asyncio")
async def test_dangling_references_do_not_break_the_page() -> None:
    storage, title_id = await _setup()
    post = await storage.create_post("bob", PostCreate(title_id=title_id))
    storage._titles.pop(title_id)

    class _FlakyStorage(MemoryStorage):
        async def get_user(self, user_id: str):
            raise RuntimeError("lookup failed")

    flaky = _FlakyStorage()
    flaky._titles = storage._titles
    flaky._posts = storage._posts

    [item] = await FeedAssembler(flaky).enrich_posts([post])

    assert item.id == post.id
    assert item.title is None
    assert item.author is None
    assert item.is_liked is False
