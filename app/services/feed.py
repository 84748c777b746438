"""Assemble timeline pages from posts, authors, titles and interactions."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Sequence, TypeVar

from ..models import EnrichedPost, InteractionType, Post
from ..storage import Storage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FeedAssembler:
    """Builds enriched post pages for a viewer."""

    def __init__(self, storage: Storage):
        self._storage = storage

    async def get_feed(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[EnrichedPost]:
        """Posts by the user and everyone they follow, newest first."""

        posts = await self._storage.get_feed_posts(user_id, limit, offset)
        return await self.enrich_posts(posts, viewer_id=user_id)

    async def enrich_posts(
        self, posts: Sequence[Post], viewer_id: str | None = None
    ) -> list[EnrichedPost]:
        if not posts:
            return []
        return list(
            await asyncio.gather(*(self._enrich(post, viewer_id) for post in posts))
        )

    async def _enrich(self, post: Post, viewer_id: str | None) -> EnrichedPost:
        storage = self._storage
        author, title, liked, saved = await asyncio.gather(
            self._guard(storage.get_user(post.author_id), None, "author", post.id),
            self._guard(storage.get_title(post.title_id), None, "title", post.id),
            self._has_interaction(viewer_id, post.id, "like"),
            self._has_interaction(viewer_id, post.id, "save"),
        )
        return EnrichedPost(
            **post.model_dump(),
            author=author,
            title=title,
            is_liked=liked,
            is_saved=saved,
        )

    async def _has_interaction(
        self, viewer_id: str | None, post_id: str, kind: InteractionType
    ) -> bool:
        if viewer_id is None:
            return False
        found = await self._guard(
            self._storage.get_user_interaction(viewer_id, post_id, kind),
            None,
            kind,
            post_id,
        )
        return found is not None

    @staticmethod
    async def _guard(awaitable: Awaitable[T], default: T, what: str, post_id: str) -> T:
        # A dangling reference must not sink the whole page.
        try:
            return await awaitable
        except Exception as exc:
            logger.warning("Failed to load %s for post %s: %s", what, post_id, exc)
            return default
