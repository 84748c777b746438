"""Dictionary-backed storage used when no database is configured."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable

from ..models import (
    COUNTED_INTERACTIONS,
    UNIQUE_INTERACTIONS,
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
from ..utils import matches_name, name_match_rank
from .base import SYSTEM_LISTS, ConflictError, NotFoundError, Storage

SAMPLE_TITLES: tuple[TitleData, ...] = (
    TitleData(
        external_id="438631",
        name="Dune",
        type="movie",
        year=2021,
        genres=["Science Fiction", "Adventure", "Drama"],
        synopsis=(
            "Paul Atreides, a brilliant and gifted young man born into a great "
            "destiny beyond his understanding, must travel to the most dangerous "
            "planet in the universe to ensure the future of his family and his people."
        ),
        runtime=155,
        cast=["Timothée Chalamet", "Rebecca Ferguson", "Oscar Isaac", "Josh Brolin"],
        crew=["Denis Villeneuve"],
        rating=4.2,
    ),
    TitleData(
        external_id="136315",
        name="The Bear",
        type="series",
        year=2022,
        genres=["Comedy", "Drama"],
        synopsis=(
            "A young chef from the fine dining world comes home to Chicago "
            "to run his family sandwich shop."
        ),
        runtime=30,
        cast=["Jeremy Allen White", "Ebon Moss-Bachrach", "Ayo Edebiri"],
        crew=["Christopher Storer"],
        rating=4.7,
    ),
    TitleData(
        external_id="335984",
        name="Blade Runner 2049",
        type="movie",
        year=2017,
        genres=["Science Fiction", "Thriller"],
        synopsis=(
            "Young Blade Runner K's discovery of a long-buried secret leads him "
            "to track down former Blade Runner Rick Deckard."
        ),
        runtime=164,
        cast=["Ryan Gosling", "Harrison Ford", "Ana de Armas"],
        crew=["Denis Villeneuve"],
        rating=4.4,
    ),
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _newest_first(posts: Iterable[Post]) -> list[Post]:
    return sorted(posts, key=lambda post: (post.created_at, post.id), reverse=True)


class MemoryStorage(Storage):
    """Keeps every entity in per-type dictionaries keyed by id.

    Methods never await between reading and writing a record, so a single
    event loop needs no locking.
    """

    persistent = False

    def __init__(self, *, seed_titles: Iterable[TitleData] = ()) -> None:
        self._users: dict[str, User] = {}
        self._titles: dict[str, Title] = {}
        self._posts: dict[str, Post] = {}
        self._interactions: dict[str, Interaction] = {}
        self._follows: dict[str, Follow] = {}
        self._lists: dict[str, UserList] = {}
        self._recommendations: dict[str, Recommendation] = {}
        self._reports: dict[str, Report] = {}
        for title in seed_titles:
            self._insert_title(title)

    # Users

    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    async def upsert_user(self, data: UserUpsert) -> User:
        now = datetime.utcnow()
        existing = self._users.get(data.id)
        if existing is not None:
            user = existing.model_copy(
                update={**data.model_dump(exclude_unset=True), "updated_at": now}
            )
        else:
            user = User(**data.model_dump(), created_at=now, updated_at=now)
        self._users[user.id] = user

        for name, description in SYSTEM_LISTS:
            if self._find_system_list(user.id, name) is None:
                self._insert_list(
                    user.id,
                    ListCreate(name=name, description=description),
                    is_system=True,
                )
        return user

    async def get_suggested_users(self, user_id: str, limit: int = 10) -> list[User]:
        excluded = {
            follow.following_id
            for follow in self._follows.values()
            if follow.follower_id == user_id
        }
        excluded.add(user_id)
        suggestions = [user for user in self._users.values() if user.id not in excluded]
        return suggestions[:limit]

    # Titles

    async def get_title(self, title_id: str) -> Title | None:
        return self._titles.get(title_id)

    async def get_title_by_external_id(self, external_id: str) -> Title | None:
        for title in self._titles.values():
            if title.external_id == external_id:
                return title
        return None

    async def create_title(self, data: TitleData) -> Title:
        return self._insert_title(data)

    def _insert_title(self, data: TitleData) -> Title:
        if data.external_id and any(
            title.external_id == data.external_id for title in self._titles.values()
        ):
            raise ConflictError(f"Title {data.external_id} already exists")
        title = Title(**data.model_dump(), id=_new_id(), created_at=datetime.utcnow())
        self._titles[title.id] = title
        return title

    async def search_titles(self, query: str, limit: int = 20) -> list[Title]:
        matches = [
            title for title in self._titles.values() if matches_name(title.name, query)
        ]
        matches.sort(key=lambda title: name_match_rank(title.name, query))
        return matches[:limit]

    async def get_trending_titles(self, limit: int = 10) -> list[Title]:
        ranked = sorted(
            self._titles.values(),
            key=lambda title: title.rating or 0,
            reverse=True,
        )
        return ranked[:limit]

    async def get_related_titles(self, title_id: str, limit: int = 5) -> list[Title]:
        title = self._titles.get(title_id)
        if title is None or not title.genres:
            return []
        genres = set(title.genres)
        related = [
            candidate
            for candidate in await self.get_trending_titles(len(self._titles))
            if candidate.id != title_id and genres.intersection(candidate.genres)
        ]
        return related[:limit]

    # Posts

    async def get_post(self, post_id: str) -> Post | None:
        return self._posts.get(post_id)

    async def create_post(self, author_id: str, data: PostCreate) -> Post:
        if data.title_id not in self._titles:
            raise NotFoundError(f"Title {data.title_id} not found")
        post = Post(
            **data.model_dump(),
            id=_new_id(),
            author_id=author_id,
            created_at=datetime.utcnow(),
        )
        self._posts[post.id] = post
        return post

    async def get_feed_posts(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[Post]:
        authors = {
            follow.following_id
            for follow in self._follows.values()
            if follow.follower_id == user_id
        }
        authors.add(user_id)
        visible = (
            post
            for post in self._posts.values()
            if post.author_id in authors and not post.is_hidden
        )
        return _newest_first(visible)[offset : offset + limit]

    async def get_posts_by_title(self, title_id: str, limit: int = 20) -> list[Post]:
        visible = (
            post
            for post in self._posts.values()
            if post.title_id == title_id and not post.is_hidden
        )
        return _newest_first(visible)[:limit]

    async def get_posts_by_user(self, user_id: str, limit: int = 20) -> list[Post]:
        visible = (
            post
            for post in self._posts.values()
            if post.author_id == user_id and not post.is_hidden
        )
        return _newest_first(visible)[:limit]

    def _adjust_counter(self, post_id: str, type: str, delta: int) -> None:
        post = self._posts.get(post_id)
        field = COUNTED_INTERACTIONS.get(type)
        if post is None or field is None:
            return
        value = max(0, getattr(post, field) + delta)
        self._posts[post_id] = post.model_copy(update={field: value})

    # Interactions

    async def create_interaction(
        self,
        user_id: str,
        post_id: str,
        type: InteractionType,
        content: str | None = None,
    ) -> Interaction:
        if post_id not in self._posts:
            raise NotFoundError(f"Post {post_id} not found")
        if type in UNIQUE_INTERACTIONS and self._find_interaction(user_id, post_id, type):
            raise ConflictError(f"Post already has a {type} from this user")
        interaction = Interaction(
            id=_new_id(),
            user_id=user_id,
            post_id=post_id,
            type=type,
            content=content,
            created_at=datetime.utcnow(),
        )
        self._interactions[interaction.id] = interaction
        self._adjust_counter(post_id, type, 1)
        return interaction

    def _find_interaction(
        self, user_id: str, post_id: str, type: str
    ) -> Interaction | None:
        for interaction in self._interactions.values():
            if (
                interaction.user_id == user_id
                and interaction.post_id == post_id
                and interaction.type == type
            ):
                return interaction
        return None

    async def get_user_interaction(
        self, user_id: str, post_id: str, type: InteractionType
    ) -> Interaction | None:
        return self._find_interaction(user_id, post_id, type)

    async def delete_interaction(self, interaction_id: str) -> None:
        interaction = self._interactions.pop(interaction_id, None)
        if interaction is None:
            return
        self._adjust_counter(interaction.post_id, interaction.type, -1)

    async def get_post_comments(self, post_id: str, limit: int = 20) -> list[Interaction]:
        comments = [
            interaction
            for interaction in self._interactions.values()
            if interaction.post_id == post_id and interaction.type == "comment"
        ]
        comments.sort(key=lambda comment: comment.created_at, reverse=True)
        return comments[:limit]

    # Follows

    async def create_follow(self, follower_id: str, following_id: str) -> Follow:
        if follower_id == following_id:
            raise ValueError("Users cannot follow themselves")
        for follow in self._follows.values():
            if follow.follower_id == follower_id and follow.following_id == following_id:
                return follow
        follow = Follow(
            id=_new_id(),
            follower_id=follower_id,
            following_id=following_id,
            created_at=datetime.utcnow(),
        )
        self._follows[follow.id] = follow
        return follow

    async def delete_follow(self, follower_id: str, following_id: str) -> None:
        for follow_id, follow in list(self._follows.items()):
            if follow.follower_id == follower_id and follow.following_id == following_id:
                del self._follows[follow_id]

    async def get_user_follows(self, user_id: str) -> list[Follow]:
        return [f for f in self._follows.values() if f.follower_id == user_id]

    async def get_user_followers(self, user_id: str) -> list[Follow]:
        return [f for f in self._follows.values() if f.following_id == user_id]

    async def is_following(self, follower_id: str, following_id: str) -> bool:
        return any(
            f.follower_id == follower_id and f.following_id == following_id
            for f in self._follows.values()
        )

    # Lists

    async def create_list(
        self, owner_id: str, data: ListCreate, *, is_system: bool = False
    ) -> UserList:
        return self._insert_list(owner_id, data, is_system=is_system)

    def _insert_list(
        self, owner_id: str, data: ListCreate, *, is_system: bool
    ) -> UserList:
        now = datetime.utcnow()
        payload = data.model_dump()
        payload["title_ids"] = list(dict.fromkeys(payload["title_ids"]))
        user_list = UserList(
            **payload,
            id=_new_id(),
            owner_id=owner_id,
            is_system=is_system,
            created_at=now,
            updated_at=now,
        )
        self._lists[user_list.id] = user_list
        return user_list

    async def get_user_lists(self, user_id: str) -> list[UserList]:
        return [lst for lst in self._lists.values() if lst.owner_id == user_id]

    async def get_list(self, list_id: str) -> UserList | None:
        return self._lists.get(list_id)

    def _require_list(self, list_id: str) -> UserList:
        user_list = self._lists.get(list_id)
        if user_list is None:
            raise NotFoundError(f"List {list_id} not found")
        return user_list

    def _replace_list(self, user_list: UserList, **changes: object) -> UserList:
        updated = user_list.model_copy(
            update={**changes, "updated_at": datetime.utcnow()}
        )
        self._lists[updated.id] = updated
        return updated

    async def update_list(self, list_id: str, updates: ListUpdate) -> UserList:
        user_list = self._require_list(list_id)
        return self._replace_list(user_list, **updates.model_dump(exclude_unset=True))

    async def delete_list(self, list_id: str) -> None:
        self._lists.pop(list_id, None)

    async def add_to_list(self, list_id: str, title_id: str) -> UserList:
        user_list = self._require_list(list_id)
        if title_id in user_list.title_ids:
            return user_list
        return self._replace_list(user_list, title_ids=[*user_list.title_ids, title_id])

    async def remove_from_list(self, list_id: str, title_id: str) -> UserList:
        user_list = self._require_list(list_id)
        remaining = [existing for existing in user_list.title_ids if existing != title_id]
        return self._replace_list(user_list, title_ids=remaining)

    def _find_system_list(self, user_id: str, name: str) -> UserList | None:
        for user_list in self._lists.values():
            if user_list.owner_id == user_id and user_list.is_system and user_list.name == name:
                return user_list
        return None

    async def get_system_list(self, user_id: str, name: str) -> UserList | None:
        return self._find_system_list(user_id, name)

    # Recommendations

    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        recommendation = Recommendation(
            **data.model_dump(), id=_new_id(), created_at=datetime.utcnow()
        )
        self._recommendations[recommendation.id] = recommendation
        return recommendation

    async def get_user_recommendations(
        self, user_id: str, limit: int = 10
    ) -> list[Recommendation]:
        pending = [
            rec
            for rec in self._recommendations.values()
            if rec.user_id == user_id and not rec.is_shown
        ]
        pending.sort(key=lambda rec: rec.score or 0, reverse=True)
        return pending[:limit]

    async def mark_recommendation_shown(self, recommendation_id: str) -> None:
        recommendation = self._recommendations.get(recommendation_id)
        if recommendation is None:
            raise NotFoundError(f"Recommendation {recommendation_id} not found")
        self._recommendations[recommendation_id] = recommendation.model_copy(
            update={"is_shown": True}
        )

    # Reports

    async def create_report(
        self,
        reporter_id: str,
        data: ReportCreate,
        *,
        post_id: str | None = None,
        user_id: str | None = None,
    ) -> Report:
        report = Report(
            **data.model_dump(),
            id=_new_id(),
            reporter_id=reporter_id,
            post_id=post_id,
            user_id=user_id,
            created_at=datetime.utcnow(),
        )
        self._reports[report.id] = report
        if post_id and post_id in self._posts:
            self._posts[post_id] = self._posts[post_id].model_copy(
                update={"is_reported": True}
            )
        return report

    async def get_reports(self, status: ReportStatus | None = None) -> list[Report]:
        reports = list(self._reports.values())
        if status is not None:
            reports = [report for report in reports if report.status == status]
        return reports

    async def update_report_status(self, report_id: str, status: ReportStatus) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        updated = report.model_copy(update={"status": status})
        self._reports[report_id] = updated
        return updated
