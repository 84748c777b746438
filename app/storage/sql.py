"""Relational storage built on the SQLAlchemy async ORM."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import Database
from ..db_models import (
    FollowRecord,
    InteractionRecord,
    ListRecord,
    PostRecord,
    RecommendationRecord,
    ReportRecord,
    TitleRecord,
    UserRecord,
)
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
from ..utils import escape_like
from .base import SYSTEM_LISTS, ConflictError, NotFoundError, Storage

RELATED_CANDIDATE_LIMIT = 500


class SqlStorage(Storage):
    """Storage backed by a relational database.

    Each public method runs in its own session; writes that span several rows
    (interaction + counter, user + system lists) commit once.
    """

    persistent = True

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        database: Database | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._database = database

    async def close(self) -> None:
        if self._database is not None:
            await self._database.dispose()

    # Users

    async def get_user(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            record = await session.get(UserRecord, user_id)
            return User.model_validate(record) if record else None

    async def get_user_by_username(self, username: str) -> User | None:
        async with self._session_factory() as session:
            stmt = select(UserRecord).where(UserRecord.username == username).limit(1)
            record = (await session.execute(stmt)).scalar_one_or_none()
            return User.model_validate(record) if record else None

    async def upsert_user(self, data: UserUpsert) -> User:
        async with self._session_factory() as session:
            record = await session.get(UserRecord, data.id)
            if record is None:
                record = UserRecord(**data.model_dump())
                session.add(record)
            else:
                for key, value in data.model_dump(exclude_unset=True).items():
                    setattr(record, key, value)
                record.updated_at = datetime.utcnow()

            for name, description in SYSTEM_LISTS:
                existing = await self._system_list_record(session, data.id, name)
                if existing is None:
                    session.add(
                        ListRecord(
                            owner_id=data.id,
                            name=name,
                            description=description,
                            is_public=False,
                            is_system=True,
                            title_ids=[],
                        )
                    )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("Username or email already in use") from exc
            await session.refresh(record)
            return User.model_validate(record)

    async def get_suggested_users(self, user_id: str, limit: int = 10) -> list[User]:
        async with self._session_factory() as session:
            followed = select(FollowRecord.following_id).where(
                FollowRecord.follower_id == user_id
            )
            stmt = (
                select(UserRecord)
                .where(UserRecord.id != user_id, UserRecord.id.not_in(followed))
                .order_by(UserRecord.created_at)
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [User.model_validate(record) for record in records]

    # Titles

    async def get_title(self, title_id: str) -> Title | None:
        async with self._session_factory() as session:
            record = await session.get(TitleRecord, title_id)
            return Title.model_validate(record) if record else None

    async def get_title_by_external_id(self, external_id: str) -> Title | None:
        async with self._session_factory() as session:
            stmt = select(TitleRecord).where(TitleRecord.external_id == external_id)
            record = (await session.execute(stmt)).scalar_one_or_none()
            return Title.model_validate(record) if record else None

    async def create_title(self, data: TitleData) -> Title:
        async with self._session_factory() as session:
            record = TitleRecord(**data.model_dump())
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Title {data.external_id} already exists") from exc
            await session.refresh(record)
            return Title.model_validate(record)

    async def search_titles(self, query: str, limit: int = 20) -> list[Title]:
        needle = query.lower()
        pattern = f"%{escape_like(needle)}%"
        prefix = f"{escape_like(needle)}%"
        name = func.lower(TitleRecord.name)
        async with self._session_factory() as session:
            stmt = (
                select(TitleRecord)
                .where(name.like(pattern, escape="\\"))
                .order_by(
                    case(
                        (name == needle, 0),
                        (name.like(prefix, escape="\\"), 1),
                        else_=2,
                    ),
                    name,
                )
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [Title.model_validate(record) for record in records]

    async def get_trending_titles(self, limit: int = 10) -> list[Title]:
        async with self._session_factory() as session:
            stmt = (
                select(TitleRecord)
                .order_by(TitleRecord.rating.desc().nulls_last())
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [Title.model_validate(record) for record in records]

    async def get_related_titles(self, title_id: str, limit: int = 5) -> list[Title]:
        async with self._session_factory() as session:
            source = await session.get(TitleRecord, title_id)
            if source is None or not source.genres:
                return []
            genres = set(source.genres)
            # Genres live in a JSON column, so overlap is checked in Python.
            stmt = (
                select(TitleRecord)
                .where(TitleRecord.id != title_id)
                .order_by(TitleRecord.rating.desc().nulls_last())
                .limit(RELATED_CANDIDATE_LIMIT)
            )
            records = (await session.execute(stmt)).scalars().all()
            related = [
                Title.model_validate(record)
                for record in records
                if genres.intersection(record.genres or [])
            ]
            return related[:limit]

    # Posts

    async def get_post(self, post_id: str) -> Post | None:
        async with self._session_factory() as session:
            record = await session.get(PostRecord, post_id)
            return Post.model_validate(record) if record else None

    async def create_post(self, author_id: str, data: PostCreate) -> Post:
        async with self._session_factory() as session:
            if await session.get(TitleRecord, data.title_id) is None:
                raise NotFoundError(f"Title {data.title_id} not found")
            record = PostRecord(**data.model_dump(), author_id=author_id)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Post.model_validate(record)

    async def get_feed_posts(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[Post]:
        async with self._session_factory() as session:
            followed = select(FollowRecord.following_id).where(
                FollowRecord.follower_id == user_id
            )
            stmt = (
                select(PostRecord)
                .where(
                    PostRecord.is_hidden.is_(False),
                    (PostRecord.author_id == user_id)
                    | PostRecord.author_id.in_(followed),
                )
                .order_by(PostRecord.created_at.desc(), PostRecord.id.desc())
                .offset(offset)
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [Post.model_validate(record) for record in records]

    async def _visible_posts(self, *criteria, limit: int) -> list[Post]:
        async with self._session_factory() as session:
            stmt = (
                select(PostRecord)
                .where(PostRecord.is_hidden.is_(False), *criteria)
                .order_by(PostRecord.created_at.desc(), PostRecord.id.desc())
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [Post.model_validate(record) for record in records]

    async def get_posts_by_title(self, title_id: str, limit: int = 20) -> list[Post]:
        return await self._visible_posts(PostRecord.title_id == title_id, limit=limit)

    async def get_posts_by_user(self, user_id: str, limit: int = 20) -> list[Post]:
        return await self._visible_posts(PostRecord.author_id == user_id, limit=limit)

    @staticmethod
    async def _adjust_counter(
        session: AsyncSession, post_id: str, type: str, delta: int
    ) -> None:
        field = COUNTED_INTERACTIONS.get(type)
        if field is None:
            return
        column = getattr(PostRecord, field)
        adjusted = column + delta
        stmt = (
            update(PostRecord)
            .where(PostRecord.id == post_id)
            .values({field: case((adjusted < 0, 0), else_=adjusted)})
        )
        await session.execute(stmt)

    # Interactions

    async def create_interaction(
        self,
        user_id: str,
        post_id: str,
        type: InteractionType,
        content: str | None = None,
    ) -> Interaction:
        async with self._session_factory() as session:
            if await session.get(PostRecord, post_id) is None:
                raise NotFoundError(f"Post {post_id} not found")
            if type in UNIQUE_INTERACTIONS:
                existing = await self._find_interaction(session, user_id, post_id, type)
                if existing is not None:
                    raise ConflictError(f"Post already has a {type} from this user")
            record = InteractionRecord(
                user_id=user_id, post_id=post_id, type=type, content=content
            )
            session.add(record)
            try:
                await self._adjust_counter(session, post_id, type, 1)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Post already has a {type} from this user") from exc
            await session.refresh(record)
            return Interaction.model_validate(record)

    @staticmethod
    async def _find_interaction(
        session: AsyncSession, user_id: str, post_id: str, type: str
    ) -> InteractionRecord | None:
        stmt = (
            select(InteractionRecord)
            .where(
                InteractionRecord.user_id == user_id,
                InteractionRecord.post_id == post_id,
                InteractionRecord.type == type,
            )
            .limit(1)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def get_user_interaction(
        self, user_id: str, post_id: str, type: InteractionType
    ) -> Interaction | None:
        async with self._session_factory() as session:
            record = await self._find_interaction(session, user_id, post_id, type)
            return Interaction.model_validate(record) if record else None

    async def delete_interaction(self, interaction_id: str) -> None:
        async with self._session_factory() as session:
            record = await session.get(InteractionRecord, interaction_id)
            if record is None:
                return
            await session.delete(record)
            await self._adjust_counter(session, record.post_id, record.type, -1)
            await session.commit()

    async def get_post_comments(self, post_id: str, limit: int = 20) -> list[Interaction]:
        async with self._session_factory() as session:
            stmt = (
                select(InteractionRecord)
                .where(
                    InteractionRecord.post_id == post_id,
                    InteractionRecord.type == "comment",
                )
                .order_by(InteractionRecord.created_at.desc())
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [Interaction.model_validate(record) for record in records]

    # Follows

    @staticmethod
    def _follow_clause(follower_id: str, following_id: str):
        return and_(
            FollowRecord.follower_id == follower_id,
            FollowRecord.following_id == following_id,
        )

    async def create_follow(self, follower_id: str, following_id: str) -> Follow:
        if follower_id == following_id:
            raise ValueError("Users cannot follow themselves")
        clause = self._follow_clause(follower_id, following_id)
        async with self._session_factory() as session:
            existing = (
                await session.execute(select(FollowRecord).where(clause))
            ).scalar_one_or_none()
            if existing is not None:
                return Follow.model_validate(existing)
            record = FollowRecord(follower_id=follower_id, following_id=following_id)
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                # Raced with an identical follow; the stored edge wins.
                await session.rollback()
                existing = (
                    await session.execute(select(FollowRecord).where(clause))
                ).scalar_one()
                return Follow.model_validate(existing)
            await session.refresh(record)
            return Follow.model_validate(record)

    async def delete_follow(self, follower_id: str, following_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(FollowRecord).where(self._follow_clause(follower_id, following_id))
            )
            await session.commit()

    async def _follows_where(self, *criteria) -> list[Follow]:
        async with self._session_factory() as session:
            stmt = select(FollowRecord).where(*criteria).order_by(FollowRecord.created_at)
            records = (await session.execute(stmt)).scalars().all()
            return [Follow.model_validate(record) for record in records]

    async def get_user_follows(self, user_id: str) -> list[Follow]:
        return await self._follows_where(FollowRecord.follower_id == user_id)

    async def get_user_followers(self, user_id: str) -> list[Follow]:
        return await self._follows_where(FollowRecord.following_id == user_id)

    async def is_following(self, follower_id: str, following_id: str) -> bool:
        async with self._session_factory() as session:
            stmt = (
                select(FollowRecord.id)
                .where(self._follow_clause(follower_id, following_id))
                .limit(1)
            )
            return (await session.execute(stmt)).scalar_one_or_none() is not None

    # Lists

    async def create_list(
        self, owner_id: str, data: ListCreate, *, is_system: bool = False
    ) -> UserList:
        payload = data.model_dump()
        payload["title_ids"] = list(dict.fromkeys(payload["title_ids"]))
        async with self._session_factory() as session:
            record = ListRecord(**payload, owner_id=owner_id, is_system=is_system)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return UserList.model_validate(record)

    async def get_user_lists(self, user_id: str) -> list[UserList]:
        async with self._session_factory() as session:
            stmt = (
                select(ListRecord)
                .where(ListRecord.owner_id == user_id)
                .order_by(ListRecord.created_at)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [UserList.model_validate(record) for record in records]

    async def get_list(self, list_id: str) -> UserList | None:
        async with self._session_factory() as session:
            record = await session.get(ListRecord, list_id)
            return UserList.model_validate(record) if record else None

    async def _modify_list(self, list_id: str, **changes: object) -> UserList:
        async with self._session_factory() as session:
            record = await session.get(ListRecord, list_id)
            if record is None:
                raise NotFoundError(f"List {list_id} not found")
            title_ids = changes.pop("title_ids", None)
            if callable(title_ids):
                # JSON columns need a fresh list for change detection.
                record.title_ids = title_ids(list(record.title_ids or []))
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(record)
            return UserList.model_validate(record)

    async def update_list(self, list_id: str, updates: ListUpdate) -> UserList:
        return await self._modify_list(list_id, **updates.model_dump(exclude_unset=True))

    async def delete_list(self, list_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(ListRecord).where(ListRecord.id == list_id))
            await session.commit()

    async def add_to_list(self, list_id: str, title_id: str) -> UserList:
        def _append(title_ids: list[str]) -> list[str]:
            return title_ids if title_id in title_ids else [*title_ids, title_id]

        return await self._modify_list(list_id, title_ids=_append)

    async def remove_from_list(self, list_id: str, title_id: str) -> UserList:
        def _remove(title_ids: list[str]) -> list[str]:
            return [existing for existing in title_ids if existing != title_id]

        return await self._modify_list(list_id, title_ids=_remove)

    @staticmethod
    async def _system_list_record(
        session: AsyncSession, user_id: str, name: str
    ) -> ListRecord | None:
        stmt = (
            select(ListRecord)
            .where(
                ListRecord.owner_id == user_id,
                ListRecord.name == name,
                ListRecord.is_system.is_(True),
            )
            .limit(1)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def get_system_list(self, user_id: str, name: str) -> UserList | None:
        async with self._session_factory() as session:
            record = await self._system_list_record(session, user_id, name)
            return UserList.model_validate(record) if record else None

    # Recommendations

    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        async with self._session_factory() as session:
            record = RecommendationRecord(**data.model_dump())
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Recommendation.model_validate(record)

    async def get_user_recommendations(
        self, user_id: str, limit: int = 10
    ) -> list[Recommendation]:
        async with self._session_factory() as session:
            stmt = (
                select(RecommendationRecord)
                .where(
                    RecommendationRecord.user_id == user_id,
                    RecommendationRecord.is_shown.is_(False),
                )
                .order_by(RecommendationRecord.score.desc().nulls_last())
                .limit(limit)
            )
            records = (await session.execute(stmt)).scalars().all()
            return [Recommendation.model_validate(record) for record in records]

    async def mark_recommendation_shown(self, recommendation_id: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                update(RecommendationRecord)
                .where(RecommendationRecord.id == recommendation_id)
                .values(is_shown=True)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Recommendation {recommendation_id} not found")
            await session.commit()

    # Reports

    async def create_report(
        self,
        reporter_id: str,
        data: ReportCreate,
        *,
        post_id: str | None = None,
        user_id: str | None = None,
    ) -> Report:
        async with self._session_factory() as session:
            record = ReportRecord(
                **data.model_dump(),
                reporter_id=reporter_id,
                post_id=post_id,
                user_id=user_id,
            )
            session.add(record)
            if post_id is not None:
                await session.execute(
                    update(PostRecord)
                    .where(PostRecord.id == post_id)
                    .values(is_reported=True)
                )
            await session.commit()
            await session.refresh(record)
            return Report.model_validate(record)

    async def get_reports(self, status: ReportStatus | None = None) -> list[Report]:
        async with self._session_factory() as session:
            stmt = select(ReportRecord).order_by(ReportRecord.created_at)
            if status is not None:
                stmt = stmt.where(ReportRecord.status == status)
            records = (await session.execute(stmt)).scalars().all()
            return [Report.model_validate(record) for record in records]

    async def update_report_status(self, report_id: str, status: ReportStatus) -> Report:
        async with self._session_factory() as session:
            record = await session.get(ReportRecord, report_id)
            if record is None:
                raise NotFoundError(f"Report {report_id} not found")
            record.status = status
            await session.commit()
            await session.refresh(record)
            return Report.model_validate(record)
