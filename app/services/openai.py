"""Integration helpers for an OpenAI-compatible chat completion API.

The client turns conversational requests into :class:`SuggestionStub` lists.
Model replies are untrusted: every field is defaulted and malformed entries
are dropped rather than raised.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import ChatReply, ChatTurn, SuggestionStub
from ..utils import extract_json_object

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MESSAGE = "I'd be happy to help you find some great movies!"
UNAVAILABLE_CHAT_MESSAGE = (
    "I'm having trouble reaching my movie brain right now. "
    "Please try again in a moment!"
)

SYSTEM_PROMPT = """You are a knowledgeable movie and TV show enthusiast who helps people discover content they'll love. You have extensive knowledge of movies and TV shows from all eras, genres, and regions.

Your goals:
1. Act like a friendly, enthusiastic friend who loves talking about movies
2. Provide a wide variety of movie/TV suggestions based on what the user describes
3. Think creatively about what they might enjoy based on their preferences
4. Give personalized reasons why each recommendation fits their request
5. Keep the conversation going by asking follow-up questions or offering alternatives

Guidelines:
- Suggest 3-6 diverse recommendations per response
- Include a mix of popular titles and hidden gems
- Consider different decades, genres, and styles
- Explain WHY each recommendation fits their request
- Be conversational and friendly, not robotic
- Ask follow-up questions to refine suggestions

Respond with a single JSON object:
{"message": "your conversational reply",
 "recommendations": [{"title": "", "year": 2024, "genre": "", "reason": "", "type": "movie" or "tv"}],
 "conversationContinues": true}"""

SEARCH_SYSTEM_PROMPT = (
    "You are a movie expert who finds diverse, creative recommendations. "
    "Always respond with valid JSON containing an array named recommendations."
)

SEARCH_REQUEST_TEMPLATE = """Find movies and TV shows that match this search: "{query}"
{context_line}
Think broadly and creatively. Consider:
- Direct matches to the title or theme
- Movies with similar vibes, moods, or feelings
- Different interpretations of what they might mean
- Hidden gems and popular classics
- Various genres and time periods

Provide 5-8 diverse recommendations as JSON:
{{"recommendations": [{{"title": "", "year": 2024, "genre": "", "reason": "", "type": "movie"}}]}}"""


class RecommendationUnavailableError(RuntimeError):
    """Raised when the chat completion endpoint cannot produce a reply."""


class OpenAIClient:
    """Client responsible for talking to the /chat/completions endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.openai_api_key)

    async def get_recommendations(
        self,
        message: str,
        conversation_history: Sequence[ChatTurn] = (),
    ) -> ChatReply:
        """Continue a discovery conversation and return suggestion stubs."""

        messages: list[dict[str, str]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(
            {"role": turn.role, "content": turn.content} for turn in conversation_history
        )
        messages.append({"role": "user", "content": message})

        parsed = await self._complete(messages, temperature=0.8, max_tokens=1_500)
        return self.parse_chat_reply(parsed)

    async def search_with_context(
        self, query: str, context: str | None = None
    ) -> list[SuggestionStub]:
        """Interpret a free-text search and return suggestion stubs."""

        prompt = SEARCH_REQUEST_TEMPLATE.format(
            query=query,
            context_line=f"Additional context: {context}\n" if context else "",
        )
        messages = [
            {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        parsed = await self._complete(messages, temperature=0.9, max_tokens=1_500)
        return self.parse_suggestions(parsed.get("recommendations"))

    @classmethod
    def parse_chat_reply(cls, data: dict[str, Any]) -> ChatReply:
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            message = DEFAULT_CHAT_MESSAGE
        continues = data.get("conversationContinues")
        if continues is None:
            continues = data.get("conversation_continues")
        return ChatReply(
            message=message,
            recommendations=cls.parse_suggestions(data.get("recommendations")),
            conversation_continues=continues is not False,
        )

    @staticmethod
    def parse_suggestions(raw: object) -> list[SuggestionStub]:
        if not isinstance(raw, list):
            return []
        suggestions: list[SuggestionStub] = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            try:
                suggestions.append(SuggestionStub.model_validate(entry))
            except ValidationError:
                logger.debug("Dropping malformed suggestion: %s", entry)
                continue
        return suggestions

    async def _complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise RuntimeError("OpenAI API key is required to request recommendations")

        payload = {
            "model": self._settings.openai_model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
            "messages": messages,
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(
                "/chat/completions", json=payload, headers=headers
            )
        except httpx.HTTPError as exc:
            raise RecommendationUnavailableError(f"Chat request failed: {exc}") from exc
        if response.status_code >= 400:
            raise RecommendationUnavailableError(
                f"Chat API error {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RecommendationUnavailableError("Chat API returned invalid JSON") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return {}
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            return {}
        try:
            return extract_json_object(content)
        except ValueError as exc:
            logger.warning("Model reply was not valid JSON: %s", exc)
            return {}
