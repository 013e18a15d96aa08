"""
Tests for server/core/ChatService.py
SSE framing, retrieval switch and upstream cleanup on client disconnect.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from server.core.ChatService import ChatService, format_sse
from server.models.requests import ChatRequest
from services.retrieval.RetrievalAugmentor import RetrievalOutcome, RetrievalStatus
from shared.models.chat import ChatMessage
from shared.models.errors import CollaboratorError


class FakeLLMClient:
    chat_model = "default-model"

    def __init__(self, tokens=("a", "b", "c"), fail_after: int | None = None):
        self.tokens = list(tokens)
        self.fail_after = fail_after
        self.closed = False
        self.received: list[ChatMessage] | None = None
        self.model: str | None = None

    async def do_chat_stream(self, messages, model=None):
        self.received = messages
        self.model = model
        try:
            for index, token in enumerate(self.tokens):
                if self.fail_after is not None and index == self.fail_after:
                    raise CollaboratorError("upstream exploded", backend="fake")
                yield token
        finally:
            self.closed = True


class FakeRequest:
    def __init__(self, disconnect_after: int | None = None):
        self.disconnect_after = disconnect_after
        self.checks = 0

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.disconnect_after is not None and self.checks > self.disconnect_after


@pytest.fixture
def augmentor():
    augmentor = Mock()
    augmentor.augment = AsyncMock(side_effect=lambda messages, key: RetrievalOutcome(status=RetrievalStatus.EMPTY, messages=messages))
    return augmentor


def parse_events(frames: list[str]) -> list[tuple[str, str]]:
    events = []
    for frame in frames:
        lines = frame.strip("\n").split("\n")
        event = lines[0][len("event: "):]
        data = "\n".join(line[len("data: "):] for line in lines[1:])
        events.append((event, data))
    return events


def chat_request(**kwargs) -> ChatRequest:
    return ChatRequest(messages=[ChatMessage(role="user", content="Hi")], **kwargs)


class TestFormatSse:
    def test_single_line(self):
        assert format_sse("message", "Hello") == "event: message\ndata: Hello\n\n"

    def test_multi_line_data_is_split(self):
        assert format_sse("message", "a\nb") == "event: message\ndata: a\ndata: b\n\n"


class TestStreamEvents:
    async def test_tokens_then_done(self, helper_config, augmentor):
        llm = FakeLLMClient()
        service = ChatService(helper_config, llm, augmentor)

        frames = [frame async for frame in service.stream_events(FakeRequest(), chat_request(model="m1"), None)]

        assert parse_events(frames) == [("message", "a"), ("message", "b"), ("message", "c"), ("done", "[DONE]")]
        assert llm.model == "m1"
        augmentor.augment.assert_not_awaited()

    async def test_default_model_is_used(self, helper_config, augmentor):
        llm = FakeLLMClient()
        service = ChatService(helper_config, llm, augmentor)

        [frame async for frame in service.stream_events(FakeRequest(), chat_request(), None)]

        assert llm.model == "default-model"

    async def test_backend_failure_becomes_error_event(self, helper_config, augmentor):
        llm = FakeLLMClient(fail_after=1)
        service = ChatService(helper_config, llm, augmentor)

        frames = [frame async for frame in service.stream_events(FakeRequest(), chat_request(), None)]

        events = parse_events(frames)
        assert events[0] == ("message", "a")
        assert events[-1][0] == "error"
        assert json.loads(events[-1][1]) == {"error": "upstream exploded"}

    async def test_disconnect_closes_upstream_stream(self, helper_config, augmentor):
        llm = FakeLLMClient(tokens=[str(i) for i in range(100)])
        service = ChatService(helper_config, llm, augmentor)

        frames = [frame async for frame in service.stream_events(FakeRequest(disconnect_after=2), chat_request(), None)]

        assert len(frames) == 2
        assert all(event == "message" for event, _ in parse_events(frames))
        assert llm.closed

    async def test_rag_enabled_uses_augmented_messages(self, helper_config, augmentor):
        context = ChatMessage(role="system", content="Context: ...")
        augmentor.augment.side_effect = lambda messages, key: RetrievalOutcome(status=RetrievalStatus.FOUND, messages=[context, *messages])
        llm = FakeLLMClient()
        service = ChatService(helper_config, llm, augmentor)

        [frame async for frame in service.stream_events(FakeRequest(), chat_request(ragEnabled=True), "k1")]

        augmentor.augment.assert_awaited_once()
        assert llm.received[0] == context
