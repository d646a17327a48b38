"""
Chat transport: OpenAI-compatible chat completions over httpx.

Every failure leaves this module as a TransportError carrying a
TransportErrorKind, so the failover policy never has to read error text.
"""

import re
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from aicat.errors import TransportError, TransportErrorKind
from aicat.models import ChatMessage, ChatResponse
from aicat.utils import get_logger

logger = get_logger("AICat.Transport")

DETAIL_LIMIT = 500

_MODEL_UNAVAILABLE = re.compile(
    r"model[^.]*?(unavailable|not found|not exist|does not exist|invalid|not supported|no available)"
    r"|(unknown|invalid|unsupported) model"
    r"|no available (channel|distributor)",
    re.IGNORECASE,
)


class CompletionTransport(Protocol):
    async def complete(
        self, model: str, messages: List[ChatMessage], tools: List[Dict[str, Any]]
    ) -> ChatResponse:
        ...


def classify_error_body(text: str) -> TransportErrorKind:
    """Kind for an error payload returned by the completion API."""
    if _MODEL_UNAVAILABLE.search(text or ""):
        return TransportErrorKind.MODEL_UNAVAILABLE
    return TransportErrorKind.INVALID_RESPONSE


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or error)
    return str(error)


class ChatTransport:
    """
    POSTs {model, messages, tools, tool_choice} to a chat completions URL.

    Args:
        url: Full completions endpoint.
        api_key: Optional bearer token.
        timeout: Hard timeout per request, in seconds.
    """

    def __init__(self, url: str, api_key: str = "", timeout: float = 60.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def complete(
        self,
        model: str,
        messages: List[ChatMessage],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [m.to_wire() for m in messages],
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise TransportError(TransportErrorKind.TIMEOUT, "Request timed out", str(exc)) from exc
        except httpx.HTTPError as exc:
            raise TransportError(TransportErrorKind.NETWORK, f"Network error: {type(exc).__name__}", str(exc)) from exc

        if response.status_code >= 400:
            detail = response.text[:DETAIL_LIMIT]
            if _MODEL_UNAVAILABLE.search(detail):
                kind = TransportErrorKind.MODEL_UNAVAILABLE
            elif response.status_code >= 500:
                kind = TransportErrorKind.HTTP_SERVER
            else:
                kind = TransportErrorKind.HTTP_CLIENT
            raise TransportError(kind, f"HTTP error: {response.status_code}", detail, response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(
                TransportErrorKind.INVALID_RESPONSE, "Response is not JSON", response.text[:DETAIL_LIMIT]
            ) from exc

        if isinstance(body, dict) and body.get("error"):
            text = _error_text(body["error"])
            detail = str(body.get("detail") or text)[:DETAIL_LIMIT]
            raise TransportError(classify_error_body(text + " " + detail), text, detail)

        try:
            return ChatResponse.model_validate(body)
        except ValidationError as exc:
            raise TransportError(
                TransportErrorKind.INVALID_RESPONSE, "Malformed completion response", str(exc)[:DETAIL_LIMIT]
            ) from exc
