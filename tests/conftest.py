"""Shared fixtures for aicat tests."""

import json
from typing import Any, Dict, List, Optional

import pytest

from aicat.confirmation import OperationConfirmationTracker
from aicat.models import ChatResponse
from aicat.permissions import CallerContext


class FakeInvoker:
    """In-memory HostActionInvoker.

    ``responses`` maps an action to a value, an exception instance, or a
    callable(params) returning either. Unknown actions answer an OK payload.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: List[tuple] = []

    async def call(self, action: str, params: Dict[str, Any]) -> Any:
        self.calls.append((action, dict(params or {})))
        response = self.responses.get(action, {"status": "ok", "retcode": 0, "data": None})
        if callable(response) and not isinstance(response, BaseException):
            response = response(params)
        if isinstance(response, BaseException):
            raise response
        return response

    def actions(self) -> List[str]:
        return [a for a, _ in self.calls]


class FakeTransport:
    """Scripted CompletionTransport: pops one item per call (response or exception)."""

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.models: List[str] = []
        self.requests: List[list] = []

    async def complete(self, model, messages, tools=None):
        self.models.append(model)
        self.requests.append(list(messages))
        if not self.script:
            raise AssertionError("transport called more times than scripted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class RecordingChannel:
    def __init__(self):
        self.sent: List[str] = []
        self.long: List[str] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def send_long(self, text: str) -> None:
        self.long.append(text)

    @property
    def all(self) -> List[str]:
        return self.sent + self.long


def answer(content: str) -> ChatResponse:
    return ChatResponse.model_validate(
        {"choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}]}
    )


def tool_calls(*calls) -> ChatResponse:
    """Build a response requesting tool calls; each call is (name, args) with args a dict or raw str."""
    wire = []
    for index, (name, args) in enumerate(calls):
        raw = args if isinstance(args, str) else json.dumps(args)
        wire.append({"id": f"call_{index}", "type": "function", "function": {"name": name, "arguments": raw}})
    return ChatResponse.model_validate(
        {"choices": [{"message": {"role": "assistant", "content": None, "tool_calls": wire}, "finish_reason": "tool_calls"}]}
    )


@pytest.fixture
def invoker():
    return FakeInvoker()


@pytest.fixture
def tracker():
    return OperationConfirmationTracker(early_event_seconds=2.0)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def member():
    return CallerContext(caller_id="42", scope_id="100", nickname="kitty", role="member")


@pytest.fixture
def group_admin():
    return CallerContext(caller_id="42", scope_id="100", is_admin=True, nickname="kitty", role="admin")


@pytest.fixture
def owner():
    return CallerContext(caller_id="1", scope_id="100", is_admin=True, is_privileged_owner=True, role="owner")


@pytest.fixture
def direct_member():
    return CallerContext(caller_id="42", scope_id=None, nickname="kitty")
