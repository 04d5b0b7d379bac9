"""
Tests for the Streaming Reply Accumulator.
"""

import asyncio
import pytest

from victor.core.timeline import Speaker
from victor.messages import msg
from victor.realtime.accumulator import StreamingReplyAccumulator
from victor.realtime.llm_stream import UnavailableChatService
from victor.realtime.voice import VoiceIOController

from tests.conftest import FakeChat, FakePlayback


class TestAccumulation:
    """Tests for folding chunks into the timeline."""

    @pytest.mark.asyncio
    async def test_chunks_concatenate_exactly(self, store):
        accumulator = StreamingReplyAccumulator(store, FakeChat(["Hello", ", Srabon."]))

        result = await accumulator.run("Hi")

        entry = store.get(result.entry_id)
        assert entry.text == "Hello, Srabon."
        assert entry.streaming is False
        assert entry.speaker == Speaker.ASSISTANT
        assert result.failed is False
        assert result.chunk_count == 2

    @pytest.mark.asyncio
    async def test_pending_entry_appended_before_first_chunk(self, store):
        chat = FakeChat(["late"])
        chat.gate = asyncio.Event()
        accumulator = StreamingReplyAccumulator(store, chat)

        task = asyncio.create_task(accumulator.run("Hi"))
        await asyncio.sleep(0)

        pending = store.last
        assert pending.text == ""
        assert pending.streaming is True

        chat.gate.set()
        result = await task
        assert store.get(result.entry_id).text == "late"

    @pytest.mark.asyncio
    async def test_stale_stream_does_not_touch_newer_entry(self, store):
        chat = FakeChat(["one ", "two ", "three"])
        chat.gate = asyncio.Event()
        accumulator = StreamingReplyAccumulator(store, chat)

        task = asyncio.create_task(accumulator.run("Hi"))
        await asyncio.sleep(0)
        reply_id = store.last.id
        newer_id = store.append(Speaker.USER, text="interrupting")

        chat.gate.set()
        await task

        assert store.get(newer_id).text == "interrupting"
        assert store.get(reply_id).text == ""
        assert [e.id for e in store.entries] == [reply_id, newer_id]
        assert all("three" not in (e.text or "") for e in store.entries)


class TestFailures:
    """Tests for transport failure substitution."""

    @pytest.mark.asyncio
    async def test_midstream_failure_replaced_with_apology(self, store):
        accumulator = StreamingReplyAccumulator(store, FakeChat(["Half a sen", "tence"], fail_after=1))

        result = await accumulator.run("Hi")

        entry = store.get(result.entry_id)
        assert result.failed is True
        assert entry.text == msg("chat.apology")
        assert entry.streaming is False
        assert "Half" not in entry.text

    @pytest.mark.asyncio
    async def test_unavailable_chat_apologizes(self, store):
        accumulator = StreamingReplyAccumulator(store, UnavailableChatService("no key"))

        result = await accumulator.run("Hi")

        assert result.failed is True
        assert store.last.text == "Apologies, Srabon. I seem to be having some trouble connecting to the network."

    @pytest.mark.asyncio
    async def test_cancellation_freezes_entry(self, store):
        chat = FakeChat(["never"])
        chat.gate = asyncio.Event()
        accumulator = StreamingReplyAccumulator(store, chat)

        task = asyncio.create_task(accumulator.run("Hi"))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.last.streaming is False


class TestPlaybackHandoff:
    """Tests for speaking finished replies."""

    @pytest.mark.asyncio
    async def test_full_text_spoken(self, store, arbiter):
        playback = FakePlayback(hold=False)
        voice = VoiceIOController(arbiter, playback=playback)
        accumulator = StreamingReplyAccumulator(store, FakeChat(["Hello", ", Srabon."]), voice)

        await accumulator.run("Hi")
        await asyncio.sleep(0.01)

        assert playback.spoken == ["Hello, Srabon."]

    @pytest.mark.asyncio
    async def test_apology_spoken(self, store, arbiter):
        playback = FakePlayback(hold=False)
        voice = VoiceIOController(arbiter, playback=playback)
        accumulator = StreamingReplyAccumulator(store, FakeChat(["x"], fail_after=0), voice)

        await accumulator.run("Hi")
        await asyncio.sleep(0.01)

        assert playback.spoken == [msg("chat.apology")]

    @pytest.mark.asyncio
    async def test_muted_output_not_spoken(self, store, arbiter):
        playback = FakePlayback(hold=False)
        voice = VoiceIOController(arbiter, playback=playback, output_enabled=False)
        accumulator = StreamingReplyAccumulator(store, FakeChat(), voice)

        await accumulator.run("Hi")
        await asyncio.sleep(0.01)

        assert playback.spoken == []
