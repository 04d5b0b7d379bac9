"""
Async Streaming Chat Module

Language-model collaborator for the conversation front-end:
- ChatService: the contract the core consumes (prior-turn aware, chunked reply)
- AzureChatSession: Azure OpenAI chat completions over server-sent events
- UnavailableChatService: stand-in used after an initialization failure

The core treats chunk order as delivery order. A stream either runs to
natural completion or raises; the caller decides what to show on failure.
"""

import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from victor.config import settings
from victor.logger import get_logger

logger = get_logger(__name__)


PERSONA_SYSTEM_PROMPT = (
    "You are {assistant}, a sophisticated and helpful AI assistant. "
    "Your user's name is {user}. Always address him as {user}. "
    "Respond with a blend of professionalism, wit, and a slightly futuristic tone. "
    "Keep your answers concise and to the point. Format your responses with markdown."
)


def build_system_prompt(assistant: Optional[str] = None, user: Optional[str] = None) -> str:
    """Fill the persona prompt from settings unless names are given."""
    return PERSONA_SYSTEM_PROMPT.format(
        assistant=assistant or settings.persona.assistant_name,
        user=user or settings.persona.user_name,
    )


class ChatTransportError(RuntimeError):
    """The streaming reply could not be completed."""


class ChatUnavailableError(RuntimeError):
    """The chat session never initialized; every submission fails."""


@dataclass
class Message:
    """Chat message for the LLM."""
    role: str  # system, user, assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class GenerationConfig:
    """Configuration for LLM generation."""
    temperature: float = 0.7
    max_tokens: int = 800
    top_p: float = 0.95
    connect_timeout_s: float = 10.0
    read_timeout_s: float = 60.0
    max_history_messages: int = 40


class ChatService(ABC):
    """
    Prior-turn-aware chat session.

    Implementations remember earlier exchanges so each new message is answered
    in context.
    """

    @abstractmethod
    def send_message_stream(self, text: str) -> AsyncIterator[str]:
        """
        Send a user message and stream the reply.

        Yields:
            Incremental text chunks, in delivery order

        Raises:
            RuntimeError: on any transport failure
        """

    async def close(self) -> None:
        """Release transport resources."""


class UnavailableChatService(ChatService):
    """Chat stand-in that fails every submission at the transport layer."""

    def __init__(self, reason: str = ""):
        self._reason = reason

    async def send_message_stream(self, text: str) -> AsyncIterator[str]:
        raise ChatUnavailableError(self._reason or "Chat service is not initialized")
        yield ""  # pragma: no cover - marks this as an async generator


class AzureChatSession(ChatService):
    """
    Streaming chat session against Azure OpenAI.

    Keeps the system prompt plus the running history; a turn is committed to
    the history only when its reply finished streaming.

    Usage:
        chat = AzureChatSession()
        async for chunk in chat.send_message_stream("Hello"):
            print(chunk, end="", flush=True)
    """

    def __init__(
        self,
        system_prompt: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ):
        settings.azure.validate()

        self._config = config or GenerationConfig(
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
            connect_timeout_s=settings.llm.connect_timeout_s,
            read_timeout_s=settings.llm.read_timeout_s,
        )
        self._system = Message(role="system", content=system_prompt or build_system_prompt())
        self._history: List[Message] = []

        self._url = settings.azure.chat_url
        self._api_key = settings.azure.api_key
        self._session: Optional[aiohttp.ClientSession] = None

        # Metrics
        self._total_chunks = 0
        self._exchange_count = 0

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "api-key": self._api_key,
            "Content-Type": "application/json",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self._config.read_timeout_s,
                connect=self._config.connect_timeout_s,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _build_messages(self, text: str) -> List[Message]:
        history = self._history[-self._config.max_history_messages:]
        return [self._system, *history, Message(role="user", content=text)]

    async def send_message_stream(self, text: str) -> AsyncIterator[str]:
        """
        Stream the reply to `text`.

        Retries once, but only when the failure happened before the first
        chunk was delivered; a partially delivered reply is never replayed.
        """
        messages = self._build_messages(text)
        delivered: List[str] = []

        for attempt in range(2):
            try:
                async for chunk in self._stream_impl(messages):
                    delivered.append(chunk)
                    yield chunk
                break
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ChatTransportError) as e:
                if attempt == 0 and not delivered:
                    logger.warning(f"Chat stream error (attempt 1/2): {e}, retrying...")
                    await asyncio.sleep(0.3)
                    continue
                logger.error(f"Chat stream failed: {e}")
                raise ChatTransportError(str(e)) from e

        self._history.append(Message(role="user", content=text))
        self._history.append(Message(role="assistant", content="".join(delivered)))
        self._exchange_count += 1
        self._total_chunks += len(delivered)

    async def _stream_impl(self, messages: List[Message]) -> AsyncIterator[str]:
        """Internal streaming implementation (server-sent events)."""
        generation_id = f"gen_{uuid.uuid4().hex[:8]}"
        body = {
            "messages": [m.to_dict() for m in messages],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "top_p": self._config.top_p,
            "stream": True,
        }

        start_time = time.time()
        chunk_count = 0

        try:
            session = self._get_session()
            async with session.post(self._url, headers=self._headers, json=body) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise ChatTransportError(f"HTTP {response.status}: {detail[:200]}")

                async for raw_line in response.content:
                    line = raw_line.decode("utf-8").strip()
                    if not line or not line.startswith("data: "):
                        continue

                    data_str = line[6:]
                    if data_str == "[DONE]":
                        break

                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue

                    choices = data.get("choices", [])
                    if not choices:
                        continue
                    content = choices[0].get("delta", {}).get("content", "")
                    if content:
                        chunk_count += 1
                        yield content
        finally:
            logger.debug(
                f"{generation_id}: {chunk_count} chunks in "
                f"{(time.time() - start_time) * 1000:.0f}ms"
            )

    def reset(self) -> None:
        """Forget prior turns."""
        self._history.clear()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def history(self) -> List[Message]:
        return list(self._history)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "total_chunks": self._total_chunks,
            "exchange_count": self._exchange_count,
        }
