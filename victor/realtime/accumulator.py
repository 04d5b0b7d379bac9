"""
Streaming Reply Accumulator

Folds a chunked language-model reply into the Timeline Store:

1. Append an empty, streaming assistant entry right away (pending indicator).
2. Append each received chunk to that entry through tail-only mutation.
3. On exhaustion, freeze the entry and hand the full text to voice output.
4. On any transport failure, replace the entry with the apology text.
   Partial output is discarded rather than left truncated.

Only one accumulation runs at a time; the Turn Arbiter's SENDING mode
guarantees that, not this class.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from victor.core.timeline import Speaker, TimelineStore
from victor.logger import get_logger
from victor.messages import msg

from .llm_stream import ChatService
from .voice import VoiceIOController

logger = get_logger(__name__)


@dataclass
class ReplyResult:
    """Outcome of one accumulation."""
    entry_id: str
    text: str
    failed: bool = False
    chunk_count: int = 0


class StreamingReplyAccumulator:
    """
    Runs one streamed reply into the timeline.

    Usage:
        accumulator = StreamingReplyAccumulator(store, chat, voice)
        result = await accumulator.run("Hello")
    """

    def __init__(
        self,
        store: TimelineStore,
        chat: ChatService,
        voice: Optional[VoiceIOController] = None,
    ):
        self._store = store
        self._chat = chat
        self._voice = voice

    @property
    def chat(self) -> ChatService:
        return self._chat

    @chat.setter
    def chat(self, chat: ChatService) -> None:
        self._chat = chat

    async def run(self, user_text: str) -> ReplyResult:
        """Stream the reply to `user_text` into a new assistant entry."""
        entry_id = self._store.append(Speaker.ASSISTANT, text="", streaming=True)
        accumulated = ""
        chunk_count = 0
        stale = False

        try:
            async for chunk in self._chat.send_message_stream(user_text):
                if not chunk:
                    continue
                chunk_count += 1
                accumulated += chunk
                if stale:
                    continue
                applied = self._store.mutate_last(
                    entry_id,
                    lambda entry, piece=chunk: entry.with_text((entry.text or "") + piece),
                )
                if not applied:
                    stale = True
                    logger.debug(f"Reply entry {entry_id} is no longer the tail; dropping chunks")
        except asyncio.CancelledError:
            self._store.freeze(entry_id)
            raise
        except Exception as e:
            logger.error(f"Reply stream failed after {chunk_count} chunks: {e}")
            apology = msg("chat.apology")
            self._store.replace(entry_id, text=apology)
            await self._speak(apology)
            return ReplyResult(entry_id=entry_id, text=apology, failed=True, chunk_count=chunk_count)

        self._store.freeze(entry_id)
        final = self._store.get(entry_id)
        text = final.text if final and final.text else ""
        await self._speak(text)
        return ReplyResult(entry_id=entry_id, text=text, chunk_count=chunk_count)

    async def _speak(self, text: str) -> None:
        if self._voice and text:
            await self._voice.speak(text)
