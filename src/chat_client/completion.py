"""Async client for an OpenAI-compatible chat completions endpoint."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .conversation import Message

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"


# -----------------------------
# Errors
# -----------------------------
class ChatClientError(Exception):
    """Base class for errors raised by the chat client."""


class CompletionError(ChatClientError):
    """The completion service could not be reached or answered with an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# -----------------------------
# Wire models
# -----------------------------
class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str
    content: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    message: Optional[ChatMessage] = None
    finish_reason: Optional[str] = None


class ChatCompletion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: List[Choice] = Field(default_factory=list)

    def first_content(self) -> str:
        if not self.choices:
            return ""
        message = self.choices[0].message
        if message is None:
            return ""
        return message.content or ""


MessageLike = Union[Message, Mapping[str, Any]]


def _to_wire(message: MessageLike) -> ChatMessage:
    if isinstance(message, Message):
        return ChatMessage(role=message.role.value, content=message.content)
    return ChatMessage(role=str(message["role"]), content=str(message.get("content") or ""))


# -----------------------------
# Client
# -----------------------------
class CompletionClient:
    """Sends a message list to ``/chat/completions`` and returns the first reply.

    A fresh :class:`httpx.AsyncClient` is opened per request. There is no
    retry policy; ``timeout=None`` means the request never times out.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def build_request(
        self,
        messages: Sequence[MessageLike],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Return the JSON body for a completion request."""
        request = ChatCompletionRequest(
            model=model or self.model,
            messages=[_to_wire(m) for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return request.model_dump(exclude_none=True)

    async def complete(
        self,
        messages: Sequence[MessageLike],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        payload = self.build_request(
            messages, model=model, temperature=temperature, max_tokens=max_tokens
        )
        logger.debug("Conversation log for API request: %s", payload["messages"])

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            ) as client:
                resp = await client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise CompletionError(f"API request failed: {e}") from e

        logger.debug("Response status: %s", resp.status_code)

        if not resp.is_success:
            raise CompletionError(f"API call failed: {resp.text}", status_code=resp.status_code)

        try:
            completion = ChatCompletion.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            # ValueError covers invalid JSON and bodies that are not UTF-8.
            raise CompletionError(f"Malformed completion response: {e}", status_code=resp.status_code) from e

        return completion.first_content()
