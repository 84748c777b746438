"""Pydantic models describing API payloads and stored entities."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

TitleType = Literal["movie", "series"]
SuggestionType = Literal["movie", "tv"]
InteractionType = Literal["like", "comment", "repost", "save"]
ReportStatus = Literal["pending", "reviewed", "resolved"]

COUNTED_INTERACTIONS: dict[str, str] = {
    "like": "likes_count",
    "comment": "comments_count",
    "repost": "reposts_count",
    "save": "saves_count",
}
"""Maps each interaction type to the post counter it drives."""

UNIQUE_INTERACTIONS = frozenset({"like", "repost", "save"})

WATCHLIST_NAME = "Watchlist"
FAVORITES_NAME = "Favorites"


class ApiModel(BaseModel):
    """Base model serialising to camelCase for the web client."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserBase(ApiModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    profile_image_url: str | None = None
    username: str | None = None
    bio: str | None = None


class UserUpsert(UserBase):
    id: str


class User(UserBase):
    id: str
    created_at: datetime
    updated_at: datetime


class TitleData(ApiModel):
    """Title fields shared by catalog records and stored titles."""

    external_id: str | None = None
    name: str
    type: TitleType = "movie"
    year: int | None = None
    genres: list[str] = Field(default_factory=list)
    synopsis: str | None = None
    poster_url: str | None = None
    backdrop_url: str | None = None
    runtime: int | None = None
    cast: list[str] = Field(default_factory=list)
    crew: list[str] = Field(default_factory=list)
    rating: float | None = Field(default=None, ge=0, le=5)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: object) -> object:
        if isinstance(value, str) and value.lower() in {"tv", "show", "series"}:
            return "series"
        return value

    @field_validator("rating")
    @classmethod
    def _round_rating(cls, value: float | None) -> float | None:
        if value is None:
            return None
        return round(value, 1)


class Title(TitleData):
    id: str
    created_at: datetime


class PostCreate(ApiModel):
    """Body accepted when a user publishes a post."""

    title_id: str = Field(min_length=1)
    caption: str | None = Field(default=None, max_length=2_000)
    media_url: str | None = None
    media_type: Literal["image", "video"] | None = None
    user_rating: float | None = Field(default=None, ge=1, le=5)
    mood_tags: list[str] = Field(default_factory=list)


class Post(ApiModel):
    id: str
    author_id: str
    title_id: str
    caption: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    user_rating: float | None = None
    mood_tags: list[str] = Field(default_factory=list)
    likes_count: int = 0
    comments_count: int = 0
    reposts_count: int = 0
    saves_count: int = 0
    is_reported: bool = False
    is_hidden: bool = False
    created_at: datetime

    @field_validator("mood_tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: object) -> object:
        return value or []


class EnrichedPost(Post):
    """A post with its author, title and the viewer's interaction state."""

    author: User | None = None
    title: Title | None = None
    is_liked: bool = False
    is_saved: bool = False


class Interaction(ApiModel):
    id: str
    user_id: str
    post_id: str
    type: InteractionType
    content: str | None = None
    created_at: datetime


class CommentCreate(ApiModel):
    content: str = Field(min_length=1, max_length=2_000)


class Follow(ApiModel):
    id: str
    follower_id: str
    following_id: str
    created_at: datetime


class ListCreate(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    is_public: bool = False
    title_ids: list[str] = Field(default_factory=list)


class ListUpdate(ApiModel):
    """Partial list update; unset fields are left untouched."""

    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = None
    is_public: bool | None = None

    @field_validator("name", "is_public")
    @classmethod
    def _reject_null(cls, value: object) -> object:
        if value is None:
            raise ValueError("must not be null")
        return value


class UserList(ApiModel):
    id: str
    owner_id: str
    name: str
    description: str | None = None
    is_public: bool = False
    is_system: bool = False
    title_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class RecommendationCreate(ApiModel):
    user_id: str
    title_id: str
    reason: str | None = None
    badges: list[str] = Field(default_factory=list)
    score: float | None = None


class Recommendation(RecommendationCreate):
    id: str
    is_shown: bool = False
    created_at: datetime


class ReportCreate(ApiModel):
    reason: str = Field(min_length=1, max_length=255)
    description: str | None = None


class Report(ApiModel):
    id: str
    reporter_id: str
    post_id: str | None = None
    user_id: str | None = None
    reason: str
    description: str | None = None
    status: ReportStatus = "pending"
    created_at: datetime


class ReportStatusUpdate(ApiModel):
    status: ReportStatus


class SuggestionStub(ApiModel):
    """Free-text suggestion produced by the language model."""

    title: str = Field(
        min_length=1, validation_alias=AliasChoices("title", "name")
    )
    year: int | None = None
    genre: str | None = None
    reason: str = ""
    type: SuggestionType = "movie"

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("year", mode="before")
    @classmethod
    def _parse_year(cls, value: object) -> object:
        if isinstance(value, str):
            digits = value.strip()[:4]
            return int(digits) if digits.isdigit() else None
        return value

    @field_validator("genre", "reason", mode="before")
    @classmethod
    def _coerce_text(cls, value: object, info: ValidationInfo) -> object:
        if value is None:
            return "" if info.field_name == "reason" else None
        if isinstance(value, list):
            return ", ".join(str(part) for part in value if part)
        return str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: object) -> object:
        if not isinstance(value, str):
            return "movie"
        lowered = value.strip().lower()
        if lowered in {"tv", "series", "show", "tv show", "tv series"}:
            return "tv"
        return "movie"

    def badges(self) -> list[str]:
        """Return the genre and kind hints that are present, in that order."""

        return [badge for badge in (self.genre, self.type) if badge]


class ResolvedRecommendation(TitleData):
    """A stub matched against storage or the catalog."""

    id: str | None = None
    created_at: datetime | None = None
    reason: str = ""
    badges: list[str] = Field(default_factory=list)
    resolved: Literal[True] = True


class UnresolvedRecommendation(ApiModel):
    """A stub that matched nothing; echoes the model's own description."""

    name: str
    year: int | None = None
    type: SuggestionType = "movie"
    genres: list[str] = Field(default_factory=list)
    reason: str = ""
    badges: list[str] = Field(default_factory=list)
    resolved: Literal[False] = False


EnrichedRecommendation = Union[ResolvedRecommendation, UnresolvedRecommendation]


class ChatTurn(ApiModel):
    role: Literal["user", "assistant"]
    content: str


class ChatReply(ApiModel):
    """Normalised reply from the conversational recommender."""

    message: str
    recommendations: list[SuggestionStub] = Field(default_factory=list)
    conversation_continues: bool = True


class ChatRequest(ApiModel):
    message: str = Field(min_length=1)
    session_id: str | None = None
    conversation_history: list[ChatTurn] = Field(default_factory=list)


class AISearchRequest(ApiModel):
    query: str = Field(min_length=1)
    context: str | None = None
