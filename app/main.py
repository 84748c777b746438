"""Entry point for the CineLoop FastAPI service."""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Iterable, TypeVar

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from . import __version__
from .config import Settings, settings
from .models import (
    FAVORITES_NAME,
    WATCHLIST_NAME,
    AISearchRequest,
    ApiModel,
    ChatReply,
    ChatRequest,
    CommentCreate,
    InteractionType,
    ListCreate,
    ListUpdate,
    Post,
    PostCreate,
    ReportCreate,
    ReportStatus,
    ReportStatusUpdate,
    Title,
    User,
    UserList,
    UserUpsert,
)
from .services.enrichment import RecommendationResolver
from .services.feed import FeedAssembler
from .services.openai import (
    UNAVAILABLE_CHAT_MESSAGE,
    OpenAIClient,
    RecommendationUnavailableError,
)
from .services.tmdb import CatalogUnavailableError, TMDBClient
from .storage import ConflictError, NotFoundError, Storage, create_storage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEV_TOKEN = "DEV"
SYSTEM_LIST_NAMES = frozenset({WATCHLIST_NAME, FAVORITES_NAME})

INTERACTION_MESSAGES: dict[str, tuple[str, str, str, str]] = {
    # kind -> (created, removed, already present, not present)
    "like": ("Post liked", "Post unliked", "Post already liked", "Post not liked"),
    "save": ("Post saved", "Post unsaved", "Post already saved", "Post not saved"),
    "repost": (
        "Post reposted",
        "Repost removed",
        "Post already reposted",
        "Post not reposted",
    ),
}


def create_app(
    app_settings: Settings | None = None,
    *,
    catalog_transport: httpx.AsyncBaseTransport | None = None,
    chat_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    config = app_settings or settings

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        exit_stack = AsyncExitStack()
        tmdb_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(config.tmdb_api_url).rstrip("/"),
                timeout=httpx.Timeout(config.catalog_timeout_seconds, connect=5.0),
                transport=catalog_transport,
            )
        )
        openai_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(config.openai_api_url).rstrip("/"),
                timeout=httpx.Timeout(config.chat_timeout_seconds, connect=10.0),
                transport=chat_transport,
            )
        )
        storage = await create_storage(config)
        catalog = TMDBClient(config, tmdb_http)
        await catalog.load_genres()
        resolver = RecommendationResolver(
            storage if storage.persistent else None, catalog
        )

        fastapi_app.state.storage = storage
        fastapi_app.state.catalog = catalog
        fastapi_app.state.recommender = OpenAIClient(config, openai_http)
        fastapi_app.state.resolver = resolver
        fastapi_app.state.feed = FeedAssembler(storage)

        logger.info(
            "%s started (storage=%s, catalog=%s, recommendations=%s)",
            config.app_name,
            "database" if storage.persistent else "memory",
            "on" if config.has_catalog else "off",
            "on" if config.has_recommendations else "off",
        )
        try:
            yield
        finally:  # pragma: no cover - teardown path exercised at runtime
            await resolver.drain()
            await storage.close()
            await exit_stack.aclose()

    fastapi_app = FastAPI(
        title=config.app_name,
        description="Social movie and TV feed with AI-assisted discovery",
        version=__version__,
        lifespan=lifespan,
    )
    fastapi_app.state.settings = config

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": _json_safe(exc.errors())},
        )

    @fastapi_app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    register_routes(fastapi_app)
    return fastapi_app


def get_storage(app: FastAPI) -> Storage:
    storage = getattr(app.state, "storage", None)
    if not isinstance(storage, Storage):
        raise RuntimeError("Storage not initialised")
    return storage


async def current_user(request: Request) -> User:
    """Resolve the caller from the trusted identity headers."""

    app_settings: Settings = request.app.state.settings
    user_id = (request.headers.get(app_settings.identity_header) or "").strip()
    username = (request.headers.get(app_settings.identity_name_header) or "").strip()

    if not user_id:
        authorization = request.headers.get("Authorization", "")
        if (
            authorization == f"Bearer {DEV_TOKEN}"
            or app_settings.environment != "production"
        ):
            user_id = app_settings.dev_user_id
            username = username or app_settings.dev_username
        else:
            raise HTTPException(status_code=401, detail="Unauthorized")

    storage = get_storage(request.app)
    user = await storage.get_user(user_id)
    if user is not None:
        return user
    try:
        return await storage.upsert_user(UserUpsert(id=user_id, username=username or None))
    except ConflictError:
        logger.info("Username %s already taken; creating %s without one", username, user_id)
        return await storage.upsert_user(UserUpsert(id=user_id))


def register_routes(fastapi_app: FastAPI) -> None:
    def _storage() -> Storage:
        return get_storage(fastapi_app)

    def _feed() -> FeedAssembler:
        return fastapi_app.state.feed

    async def _read_body(request: Request, model: type[ModelT]) -> ModelT:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=_json_safe(exc.errors())) from exc

    async def _require_post(post_id: str) -> Post:
        post = await _storage().get_post(post_id)
        if post is None:
            raise HTTPException(status_code=404, detail="Post not found")
        return post

    async def _require_title(title_id: str) -> Title:
        title = await _storage().get_title(title_id)
        if title is None:
            raise HTTPException(status_code=404, detail="Title not found")
        return title

    async def _require_user(user_id: str) -> User:
        user = await _storage().get_user(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    async def _require_system_list(user_id: str, name: str) -> UserList:
        user_list = await _storage().get_system_list(user_id, name)
        if user_list is None:
            raise HTTPException(status_code=404, detail=f"{name} not found")
        return user_list

    async def _require_owned_list(list_id: str, user: User) -> UserList:
        user_list = await _storage().get_list(list_id)
        if user_list is None:
            raise HTTPException(status_code=404, detail="List not found")
        if user_list.owner_id != user.id:
            raise HTTPException(status_code=403, detail="Not the owner of this list")
        return user_list

    # Health and identity

    @fastapi_app.get("/api/health")
    async def healthcheck() -> dict[str, Any]:
        config: Settings = fastapi_app.state.settings
        storage = getattr(fastapi_app.state, "storage", None)
        return {
            "status": "ok",
            "environment": config.environment,
            "storage": "database" if getattr(storage, "persistent", False) else "memory",
            "catalog": config.has_catalog,
            "recommendations": config.has_recommendations,
        }

    @fastapi_app.get("/api/auth/user")
    async def auth_user(user: User = Depends(current_user)) -> dict[str, Any]:
        return _dump(user)

    # Feed and posts

    @fastapi_app.get("/api/feed")
    async def feed(
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        user: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        return _dump_all(await _feed().get_feed(user.id, limit, offset))

    @fastapi_app.post("/api/posts")
    async def create_post(
        request: Request, user: User = Depends(current_user)
    ) -> JSONResponse:
        data = await _read_body(request, PostCreate)
        if await _storage().get_title(data.title_id) is None:
            raise HTTPException(status_code=400, detail="Unknown title")
        post = await _storage().create_post(user.id, data)
        logger.info("User %s posted %s about title %s", user.id, post.id, post.title_id)
        return JSONResponse(status_code=201, content=_dump(post))

    @fastapi_app.get("/api/posts/{post_id}")
    async def get_post(
        post_id: str, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        post = await _require_post(post_id)
        enriched = await _feed().enrich_posts([post], viewer_id=user.id)
        return _dump(enriched[0])

    async def _add_interaction(
        post_id: str, user: User, kind: InteractionType
    ) -> dict[str, str]:
        created, _, already, _ = INTERACTION_MESSAGES[kind]
        await _require_post(post_id)
        storage = _storage()
        if await storage.get_user_interaction(user.id, post_id, kind) is not None:
            raise HTTPException(status_code=400, detail=already)
        try:
            await storage.create_interaction(user.id, post_id, kind)
        except ConflictError as exc:
            raise HTTPException(status_code=400, detail=already) from exc
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"message": created}

    async def _remove_interaction(
        post_id: str, user: User, kind: InteractionType
    ) -> dict[str, str]:
        _, removed, _, missing = INTERACTION_MESSAGES[kind]
        await _require_post(post_id)
        storage = _storage()
        interaction = await storage.get_user_interaction(user.id, post_id, kind)
        if interaction is None:
            raise HTTPException(status_code=400, detail=missing)
        try:
            await storage.delete_interaction(interaction.id)
        except NotFoundError as exc:
            raise HTTPException(status_code=400, detail=missing) from exc
        return {"message": removed}

    @fastapi_app.post("/api/posts/{post_id}/like")
    async def like_post(post_id: str, user: User = Depends(current_user)):
        return await _add_interaction(post_id, user, "like")

    @fastapi_app.delete("/api/posts/{post_id}/like")
    async def unlike_post(post_id: str, user: User = Depends(current_user)):
        return await _remove_interaction(post_id, user, "like")

    @fastapi_app.post("/api/posts/{post_id}/save")
    async def save_post(post_id: str, user: User = Depends(current_user)):
        return await _add_interaction(post_id, user, "save")

    @fastapi_app.delete("/api/posts/{post_id}/save")
    async def unsave_post(post_id: str, user: User = Depends(current_user)):
        return await _remove_interaction(post_id, user, "save")

    @fastapi_app.post("/api/posts/{post_id}/repost")
    async def repost_post(post_id: str, user: User = Depends(current_user)):
        return await _add_interaction(post_id, user, "repost")

    @fastapi_app.delete("/api/posts/{post_id}/repost")
    async def unrepost_post(post_id: str, user: User = Depends(current_user)):
        return await _remove_interaction(post_id, user, "repost")

    @fastapi_app.get("/api/posts/{post_id}/comments")
    async def list_comments(
        post_id: str,
        limit: int = Query(20, ge=1, le=100),
        _: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        await _require_post(post_id)
        return _dump_all(await _storage().get_post_comments(post_id, limit))

    @fastapi_app.post("/api/posts/{post_id}/comments")
    async def add_comment(
        post_id: str, request: Request, user: User = Depends(current_user)
    ) -> JSONResponse:
        data = await _read_body(request, CommentCreate)
        await _require_post(post_id)
        try:
            comment = await _storage().create_interaction(
                user.id, post_id, "comment", data.content
            )
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JSONResponse(status_code=201, content=_dump(comment))

    # Moderation

    @fastapi_app.post("/api/posts/{post_id}/report")
    async def report_post(
        post_id: str, request: Request, user: User = Depends(current_user)
    ) -> JSONResponse:
        data = await _read_body(request, ReportCreate)
        post = await _require_post(post_id)
        report = await _storage().create_report(
            user.id, data, post_id=post.id, user_id=post.author_id
        )
        logger.info("Post %s reported by %s: %s", post.id, user.id, data.reason)
        return JSONResponse(status_code=201, content=_dump(report))

    @fastapi_app.get("/api/reports")
    async def list_reports(
        status: ReportStatus | None = Query(None),
        _: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        return _dump_all(await _storage().get_reports(status))

    @fastapi_app.patch("/api/reports/{report_id}")
    async def update_report(
        report_id: str, request: Request, _: User = Depends(current_user)
    ) -> dict[str, Any]:
        data = await _read_body(request, ReportStatusUpdate)
        try:
            report = await _storage().update_report_status(report_id, data.status)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _dump(report)

    # Titles and search

    @fastapi_app.get("/api/titles/trending")
    async def trending_titles(
        limit: int = Query(10, ge=1, le=50),
        _: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        storage = _storage()
        titles = await storage.get_trending_titles(limit)
        if titles:
            return _dump_all(titles)

        catalog: TMDBClient = fastapi_app.state.catalog
        try:
            found = await catalog.get_trending()
        except CatalogUnavailableError as exc:
            logger.warning("Catalog trending unavailable: %s", exc)
            return []
        for data in found:
            try:
                await storage.ensure_title(data)
            except ConflictError as exc:
                logger.debug("Skipping trending title %s: %s", data.name, exc)
        return _dump_all(await storage.get_trending_titles(limit))

    @fastapi_app.get("/api/titles/{title_id}")
    async def get_title(
        title_id: str, _: User = Depends(current_user)
    ) -> dict[str, Any]:
        return _dump(await _require_title(title_id))

    @fastapi_app.get("/api/titles/{title_id}/posts")
    async def title_posts(
        title_id: str,
        limit: int = Query(20, ge=1, le=100),
        user: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        posts = await _storage().get_posts_by_title(title_id, limit)
        return _dump_all(await _feed().enrich_posts(posts, viewer_id=user.id))

    @fastapi_app.get("/api/titles/{title_id}/related")
    async def related_titles(
        title_id: str,
        limit: int = Query(5, ge=1, le=50),
        _: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        return _dump_all(await _storage().get_related_titles(title_id, limit))

    @fastapi_app.get("/api/search")
    async def search(
        q: str | None = Query(None),
        limit: int = Query(20, ge=1, le=50),
        _: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        query = (q or "").strip()
        if not query:
            raise HTTPException(status_code=400, detail="Query parameter 'q' is required")

        storage = _storage()
        catalog: TMDBClient = fastapi_app.state.catalog
        if not catalog.is_configured:
            return _dump_all(await storage.search_titles(query, limit))

        try:
            found = await catalog.search_titles(query)
        except CatalogUnavailableError as exc:
            logger.warning("Catalog search failed, using local titles: %s", exc)
            return _dump_all(await storage.search_titles(query, limit))

        results: list[ApiModel] = []
        for data in found[:limit]:
            try:
                results.append(await storage.ensure_title(data))
            except ConflictError as exc:
                logger.debug("Could not store search result %s: %s", data.name, exc)
                results.append(data)
        return _dump_all(results)

    # AI discovery

    def _recommender() -> OpenAIClient:
        recommender: OpenAIClient = fastapi_app.state.recommender
        if not recommender.is_configured:
            raise HTTPException(
                status_code=503, detail="AI recommendations are not configured"
            )
        return recommender

    @fastapi_app.post("/api/ai/chat")
    async def ai_chat(
        request: Request, _: User = Depends(current_user)
    ) -> dict[str, Any]:
        recommender = _recommender()
        data = await _read_body(request, ChatRequest)
        try:
            reply = await recommender.get_recommendations(
                data.message, data.conversation_history
            )
        except RecommendationUnavailableError as exc:
            logger.warning("Chat recommendations unavailable: %s", exc)
            reply = ChatReply(message=UNAVAILABLE_CHAT_MESSAGE)

        resolver: RecommendationResolver = fastapi_app.state.resolver
        enriched = await resolver.enrich(reply.recommendations)
        return {
            "message": reply.message,
            "recommendations": _dump_all(enriched),
            "conversationContinues": reply.conversation_continues,
            "sessionId": data.session_id or f"session_{int(time.time() * 1000)}",
        }

    @fastapi_app.post("/api/ai/search")
    async def ai_search(
        request: Request, _: User = Depends(current_user)
    ) -> dict[str, Any]:
        recommender = _recommender()
        data = await _read_body(request, AISearchRequest)
        try:
            stubs = await recommender.search_with_context(data.query, data.context)
        except RecommendationUnavailableError as exc:
            logger.warning("AI search unavailable: %s", exc)
            stubs = []

        resolver: RecommendationResolver = fastapi_app.state.resolver
        return {"results": _dump_all(await resolver.enrich(stubs))}

    @fastapi_app.get("/api/recommendations")
    async def list_recommendations(
        limit: int = Query(10, ge=1, le=50),
        user: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        storage = _storage()
        payload: list[dict[str, Any]] = []
        for recommendation in await storage.get_user_recommendations(user.id, limit):
            title = await storage.get_title(recommendation.title_id)
            payload.append(
                {**_dump(recommendation), "title": _dump(title) if title else None}
            )
        return payload

    @fastapi_app.post("/api/recommendations/{recommendation_id}/shown")
    async def recommendation_shown(
        recommendation_id: str, _: User = Depends(current_user)
    ) -> dict[str, str]:
        try:
            await _storage().mark_recommendation_shown(recommendation_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"message": "Recommendation marked as shown"}

    # Watchlist and favorites

    def _register_system_list_routes(prefix: str, name: str, flag: str) -> None:
        async def contains(
            title_id: str, user: User = Depends(current_user)
        ) -> dict[str, Any]:
            user_list = await _require_system_list(user.id, name)
            return {"titleId": title_id, flag: title_id in user_list.title_ids}

        async def add(
            title_id: str, user: User = Depends(current_user)
        ) -> dict[str, Any]:
            await _require_title(title_id)
            user_list = await _require_system_list(user.id, name)
            return _dump(await _storage().add_to_list(user_list.id, title_id))

        async def remove(
            title_id: str, user: User = Depends(current_user)
        ) -> dict[str, Any]:
            user_list = await _require_system_list(user.id, name)
            return _dump(await _storage().remove_from_list(user_list.id, title_id))

        async def for_user(
            user_id: str, _: User = Depends(current_user)
        ) -> dict[str, Any]:
            return _dump(await _require_system_list(user_id, name))

        path = f"/api/{prefix}/{{title_id}}"
        fastapi_app.add_api_route(path, contains, methods=["GET"])
        fastapi_app.add_api_route(path, add, methods=["POST"])
        fastapi_app.add_api_route(path, remove, methods=["DELETE"])
        fastapi_app.add_api_route(
            f"/api/users/{{user_id}}/{prefix}", for_user, methods=["GET"]
        )

    # Users and follows

    @fastapi_app.get("/api/users/profile")
    async def own_profile(user: User = Depends(current_user)) -> dict[str, Any]:
        return _dump(user)

    @fastapi_app.get("/api/users/profile/{username}")
    async def profile_by_username(
        username: str, _: User = Depends(current_user)
    ) -> dict[str, Any]:
        profile = await _storage().get_user_by_username(username)
        if profile is None:
            raise HTTPException(status_code=404, detail="User not found")
        return _dump(profile)

    @fastapi_app.get("/api/users/suggested")
    async def suggested_users(
        limit: int = Query(10, ge=1, le=50),
        user: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        return _dump_all(await _storage().get_suggested_users(user.id, limit))

    @fastapi_app.get("/api/users/{user_id}/posts")
    async def user_posts(
        user_id: str,
        limit: int = Query(20, ge=1, le=100),
        user: User = Depends(current_user),
    ) -> list[dict[str, Any]]:
        posts = await _storage().get_posts_by_user(user_id, limit)
        return _dump_all(await _feed().enrich_posts(posts, viewer_id=user.id))

    @fastapi_app.get("/api/users/{user_id}/lists")
    async def user_lists(
        user_id: str, user: User = Depends(current_user)
    ) -> list[dict[str, Any]]:
        lists = await _storage().get_user_lists(user_id)
        if user_id != user.id:
            lists = [user_list for user_list in lists if user_list.is_public]
        return _dump_all(lists)

    @fastapi_app.get("/api/users/{user_id}/follow-stats")
    async def follow_stats(
        user_id: str, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        storage = _storage()
        followers = await storage.get_user_followers(user_id)
        following = await storage.get_user_follows(user_id)
        return {
            "followers": len(followers),
            "following": len(following),
            "isFollowing": await storage.is_following(user.id, user_id),
        }

    @fastapi_app.post("/api/users/{user_id}/follow")
    async def follow_user(
        user_id: str, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        if user_id == user.id:
            raise HTTPException(status_code=400, detail="You cannot follow yourself")
        await _require_user(user_id)
        try:
            follow = await _storage().create_follow(user.id, user_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _dump(follow)

    @fastapi_app.delete("/api/users/{user_id}/follow")
    async def unfollow_user(
        user_id: str, user: User = Depends(current_user)
    ) -> dict[str, str]:
        await _storage().delete_follow(user.id, user_id)
        return {"message": "Unfollowed"}

    _register_system_list_routes("watchlist", WATCHLIST_NAME, "inWatchlist")
    _register_system_list_routes("favorites", FAVORITES_NAME, "inFavorites")

    # Custom lists

    @fastapi_app.post("/api/lists")
    async def create_list(
        request: Request, user: User = Depends(current_user)
    ) -> JSONResponse:
        data = await _read_body(request, ListCreate)
        if data.name in SYSTEM_LIST_NAMES:
            raise HTTPException(status_code=400, detail=f"'{data.name}' is reserved")
        user_list = await _storage().create_list(user.id, data)
        return JSONResponse(status_code=201, content=_dump(user_list))

    @fastapi_app.patch("/api/lists/{list_id}")
    async def update_list(
        list_id: str, request: Request, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        data = await _read_body(request, ListUpdate)
        user_list = await _require_owned_list(list_id, user)
        if "name" in data.model_fields_set and data.name != user_list.name:
            if user_list.is_system:
                raise HTTPException(status_code=400, detail="System lists cannot be renamed")
            if data.name in SYSTEM_LIST_NAMES:
                raise HTTPException(status_code=400, detail=f"'{data.name}' is reserved")
        try:
            updated = await _storage().update_list(list_id, data)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _dump(updated)

    @fastapi_app.delete("/api/lists/{list_id}")
    async def delete_list(
        list_id: str, user: User = Depends(current_user)
    ) -> dict[str, str]:
        user_list = await _require_owned_list(list_id, user)
        if user_list.is_system:
            raise HTTPException(status_code=400, detail="System lists cannot be deleted")
        await _storage().delete_list(list_id)
        return {"message": "List deleted"}

    @fastapi_app.post("/api/lists/{list_id}/titles/{title_id}")
    async def add_list_title(
        list_id: str, title_id: str, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        await _require_owned_list(list_id, user)
        await _require_title(title_id)
        return _dump(await _storage().add_to_list(list_id, title_id))

    @fastapi_app.delete("/api/lists/{list_id}/titles/{title_id}")
    async def remove_list_title(
        list_id: str, title_id: str, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        await _require_owned_list(list_id, user)
        return _dump(await _storage().remove_from_list(list_id, title_id))


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _dump_all(models: Iterable[BaseModel]) -> list[dict[str, Any]]:
    return [_dump(model) for model in models]


def _json_safe(errors: list[Any]) -> list[dict[str, Any]]:
    safe: list[dict[str, Any]] = []
    for error in errors:
        entry = {key: error[key] for key in ("type", "loc", "msg") if key in error}
        entry["loc"] = [str(part) for part in entry.get("loc", ())]
        safe.append(entry)
    return safe


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
