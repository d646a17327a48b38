"""Tests for the chat transport error classification."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from aicat.errors import TransportError, TransportErrorKind
from aicat.models import ChatMessage
from aicat.transport import ChatTransport, classify_error_body


def _response(status=200, json_body=None, text=""):
    response = MagicMock(spec=httpx.Response)
    response.status_code = status
    response.text = text
    if json_body is not None:
        response.json.return_value = json_body
    else:
        response.json.side_effect = ValueError("not json")
    return response


def _client(post):
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = post
    return mock_client


MESSAGES = [ChatMessage(role="user", content="hi")]
TOOLS = [{"type": "function", "function": {"name": "web_search", "description": "d", "parameters": {}}}]


async def _complete(post, **kwargs):
    with patch("aicat.transport.httpx.AsyncClient", return_value=_client(post)):
        return await ChatTransport("http://llm/v1/chat/completions", **kwargs).complete("gpt-5", MESSAGES, TOOLS)


@pytest.mark.asyncio
async def test_request_payload_and_parsed_response():
    body = {
        "model": "gpt-5",
        "choices": [{
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "web_search", "arguments": {"query": "x"}}}],
            },
            "finish_reason": "tool_calls",
        }],
    }
    post = AsyncMock(return_value=_response(json_body=body))
    response = await _complete(post, api_key="k")

    payload = post.call_args.kwargs["json"]
    assert payload["model"] == "gpt-5"
    assert payload["tool_choice"] == "auto"
    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer k"

    call = response.choices[0].message.tool_calls[0]
    assert call.name == "web_search"
    assert call.raw_arguments == '{"query": "x"}'


@pytest.mark.asyncio
async def test_no_auth_header_without_key():
    post = AsyncMock(return_value=_response(json_body={"choices": []}))
    await _complete(post)
    assert "Authorization" not in post.call_args.kwargs["headers"]


@pytest.mark.asyncio
async def test_timeout():
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(side_effect=httpx.ReadTimeout("slow")))
    assert info.value.kind == TransportErrorKind.TIMEOUT
    assert info.value.message == "Request timed out"


@pytest.mark.asyncio
async def test_network_error():
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(side_effect=httpx.ConnectError("refused")))
    assert info.value.kind == TransportErrorKind.NETWORK


@pytest.mark.asyncio
@pytest.mark.parametrize("status, text, kind", [
    (502, "bad gateway", TransportErrorKind.HTTP_SERVER),
    (429, "slow down", TransportErrorKind.HTTP_CLIENT),
    (404, "The model `gpt-9` does not exist", TransportErrorKind.MODEL_UNAVAILABLE),
])
async def test_http_status(status, text, kind):
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(return_value=_response(status=status, text=text)))
    assert info.value.kind == kind
    assert info.value.status_code == status
    assert info.value.message == f"HTTP error: {status}"


@pytest.mark.asyncio
async def test_non_json_body():
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(return_value=_response(text="<html>")))
    assert info.value.kind == TransportErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_error_body_model_unavailable():
    body = {"error": {"message": "model gpt-5 is currently unavailable"}}
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(return_value=_response(json_body=body)))
    assert info.value.kind == TransportErrorKind.MODEL_UNAVAILABLE


@pytest.mark.asyncio
async def test_error_body_other():
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(return_value=_response(json_body={"error": "quota exceeded"})))
    assert info.value.kind == TransportErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_malformed_shape():
    with pytest.raises(TransportError) as info:
        await _complete(AsyncMock(return_value=_response(json_body={"choices": "nope"})))
    assert info.value.kind == TransportErrorKind.INVALID_RESPONSE


@pytest.mark.parametrize("text, kind", [
    ("Invalid model: foo", TransportErrorKind.MODEL_UNAVAILABLE),
    ("model not found", TransportErrorKind.MODEL_UNAVAILABLE),
    ("internal error", TransportErrorKind.INVALID_RESPONSE),
])
def test_classify_error_body(text, kind):
    assert classify_error_body(text) == kind
