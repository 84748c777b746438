"""Storage interface shared by the in-memory and relational backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import (
    FAVORITES_NAME,
    WATCHLIST_NAME,
    Follow,
    Interaction,
    InteractionType,
    ListCreate,
    ListUpdate,
    Post,
    PostCreate,
    Recommendation,
    RecommendationCreate,
    Report,
    ReportCreate,
    ReportStatus,
    Title,
    TitleData,
    User,
    UserList,
    UserUpsert,
)

SYSTEM_LISTS: tuple[tuple[str, str], ...] = (
    (WATCHLIST_NAME, "Movies and TV shows I want to watch"),
    (FAVORITES_NAME, "My favorite movies and TV shows"),
)


class StorageError(Exception):
    """Base class for storage failures surfaced to route handlers."""


class NotFoundError(StorageError, KeyError):
    """Raised when a referenced entity does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Not found"


class ConflictError(StorageError, ValueError):
    """Raised when a write would violate a uniqueness rule."""


class Storage(ABC):
    """CRUD operations over users, titles, posts and their relations.

    Writes that touch a post counter (likes, comments, reposts, saves) adjust
    it in the same unit of work as the interaction itself; callers never set
    counters directly.
    """

    persistent: bool = False

    async def close(self) -> None:
        """Release backend resources."""

    # Users

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def upsert_user(self, data: UserUpsert) -> User:
        """Create or update a user and make sure its system lists exist."""

    @abstractmethod
    async def get_suggested_users(self, user_id: str, limit: int = 10) -> list[User]: ...

    # Titles

    @abstractmethod
    async def get_title(self, title_id: str) -> Title | None: ...

    @abstractmethod
    async def get_title_by_external_id(self, external_id: str) -> Title | None: ...

    @abstractmethod
    async def create_title(self, data: TitleData) -> Title: ...

    async def ensure_title(self, data: TitleData) -> Title:
        """Return the stored title for ``data.external_id`` or create it."""

        if data.external_id:
            existing = await self.get_title_by_external_id(data.external_id)
            if existing is not None:
                return existing
        try:
            return await self.create_title(data)
        except ConflictError:
            # Another request stored the same catalog record first.
            existing = await self.get_title_by_external_id(data.external_id or "")
            if existing is None:
                raise
            return existing

    @abstractmethod
    async def search_titles(self, query: str, limit: int = 20) -> list[Title]:
        """Case-insensitive substring match on the title name."""

    @abstractmethod
    async def get_trending_titles(self, limit: int = 10) -> list[Title]: ...

    @abstractmethod
    async def get_related_titles(self, title_id: str, limit: int = 5) -> list[Title]: ...

    # Posts

    @abstractmethod
    async def get_post(self, post_id: str) -> Post | None: ...

    @abstractmethod
    async def create_post(self, author_id: str, data: PostCreate) -> Post: ...

    @abstractmethod
    async def get_feed_posts(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[Post]:
        """Visible posts by the user or anyone they follow, newest first."""

    @abstractmethod
    async def get_posts_by_title(self, title_id: str, limit: int = 20) -> list[Post]: ...

    @abstractmethod
    async def get_posts_by_user(self, user_id: str, limit: int = 20) -> list[Post]: ...

    # Interactions

    @abstractmethod
    async def create_interaction(
        self,
        user_id: str,
        post_id: str,
        type: InteractionType,
        content: str | None = None,
    ) -> Interaction: ...

    @abstractmethod
    async def get_user_interaction(
        self, user_id: str, post_id: str, type: InteractionType
    ) -> Interaction | None: ...

    @abstractmethod
    async def delete_interaction(self, interaction_id: str) -> None: ...

    @abstractmethod
    async def get_post_comments(self, post_id: str, limit: int = 20) -> list[Interaction]: ...

    # Follows

    @abstractmethod
    async def create_follow(self, follower_id: str, following_id: str) -> Follow:
        """Follow a user; repeating an existing follow returns the same edge."""

    @abstractmethod
    async def delete_follow(self, follower_id: str, following_id: str) -> None: ...

    @abstractmethod
    async def get_user_follows(self, user_id: str) -> list[Follow]: ...

    @abstractmethod
    async def get_user_followers(self, user_id: str) -> list[Follow]: ...

    @abstractmethod
    async def is_following(self, follower_id: str, following_id: str) -> bool: ...

    # Lists

    @abstractmethod
    async def create_list(
        self, owner_id: str, data: ListCreate, *, is_system: bool = False
    ) -> UserList: ...

    @abstractmethod
    async def get_user_lists(self, user_id: str) -> list[UserList]: ...

    @abstractmethod
    async def get_list(self, list_id: str) -> UserList | None: ...

    @abstractmethod
    async def update_list(self, list_id: str, updates: ListUpdate) -> UserList: ...

    @abstractmethod
    async def delete_list(self, list_id: str) -> None: ...

    @abstractmethod
    async def add_to_list(self, list_id: str, title_id: str) -> UserList: ...

    @abstractmethod
    async def remove_from_list(self, list_id: str, title_id: str) -> UserList: ...

    @abstractmethod
    async def get_system_list(self, user_id: str, name: str) -> UserList | None: ...

    async def get_user_watchlist(self, user_id: str) -> UserList | None:
        return await self.get_system_list(user_id, WATCHLIST_NAME)

    async def get_user_favorites(self, user_id: str) -> UserList | None:
        return await self.get_system_list(user_id, FAVORITES_NAME)

    # Recommendations

    @abstractmethod
    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation: ...

    @abstractmethod
    async def get_user_recommendations(
        self, user_id: str, limit: int = 10
    ) -> list[Recommendation]: ...

    @abstractmethod
    async def mark_recommendation_shown(self, recommendation_id: str) -> None: ...

    # Reports

    @abstractmethod
    async def create_report(
        self,
        reporter_id: str,
        data: ReportCreate,
        *,
        post_id: str | None = None,
        user_id: str | None = None,
    ) -> Report: ...

    @abstractmethod
    async def get_reports(self, status: ReportStatus | None = None) -> list[Report]: ...

    @abstractmethod
    async def update_report_status(self, report_id: str, status: ReportStatus) -> Report: ...
