"""
OneBot host boundary.

HostActionInvoker is the narrow interface every component uses to reach the
chat host. OneBotHttpInvoker implements it over the OneBot-11 HTTP API, and
resolve_caller_context turns a message sender into a CallerContext.
"""

from typing import Any, Dict, Optional, Protocol

import httpx

from aicat.errors import HostActionError, HostNoDataError
from aicat.permissions import CallerContext
from aicat.utils import get_logger
from aicat.utils.resilience import async_retry

logger = get_logger("AICat.Host")

# OneBot-11: retcode 1 means the request was accepted and runs asynchronously
RETCODE_ASYNC = 1

ADMIN_ROLES = frozenset({"owner", "admin"})


class HostActionInvoker(Protocol):
    """Calls a named host action. Returns the raw result or raises HostActionError."""

    async def call(self, action: str, params: Dict[str, Any]) -> Any:
        ...


class OneBotHttpInvoker:
    """
    Host action invoker over the OneBot-11 HTTP API.

    Each call POSTs ``params`` as JSON to ``{base_url}/{action}``. A response
    carrying a non-zero retcode is returned unchanged so the caller can treat
    it as a logical failure. An empty body or an async-accepted response
    raises HostNoDataError: the outcome is only known from a later notice.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str = "",
        timeout: float = 15.0,
        max_attempts: int = 2,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.max_attempts = max_attempts

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def call(self, action: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/{action}"

        async def _do_post() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(url, json=params or {}, headers=self._headers())

        try:
            response = await async_retry(
                _do_post,
                max_attempts=self.max_attempts,
                retryable_exceptions=(httpx.ConnectError,),
            )
        except httpx.TimeoutException as exc:
            raise HostActionError(action, f"{action} timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise HostActionError(action, f"{action} request failed: {exc}") from exc

        if response.status_code >= 400:
            raise HostActionError(action, f"HTTP {response.status_code}: {response.text[:200]}")

        if not response.content or not response.content.strip():
            raise HostNoDataError(action)

        try:
            payload = response.json()
        except ValueError as exc:
            raise HostActionError(action, f"{action} returned a non-JSON body") from exc

        if isinstance(payload, dict) and (
            payload.get("retcode") == RETCODE_ASYNC or payload.get("status") == "async"
        ):
            raise HostNoDataError(action)

        return payload


def unwrap_data(result: Any) -> Any:
    """Return the ``data`` member of an OneBot response, or the result itself."""
    if isinstance(result, dict) and "data" in result and "retcode" in result:
        return result["data"]
    return result


async def resolve_caller_context(
    invoker: HostActionInvoker,
    user_id,
    group_id=None,
    owner_ids=(),
    nickname: str = "",
    sender_role: Optional[str] = None,
) -> CallerContext:
    """
    Build the caller's permissions for one instruction.

    In a group the role comes from the event's sender block when present,
    otherwise from get_group_member_info. Owners always count as admins.
    """
    user_id = str(user_id)
    scope_id = str(group_id) if group_id else None
    is_owner = user_id in {str(o) for o in owner_ids}
    role = "member"

    if scope_id:
        role = sender_role or ""
        if not role:
            try:
                info = unwrap_data(await invoker.call(
                    "get_group_member_info",
                    {"group_id": scope_id, "user_id": user_id, "no_cache": False},
                ))
                role = (info or {}).get("role") or "member"
                nickname = nickname or (info or {}).get("card") or (info or {}).get("nickname") or ""
            except HostActionError as exc:
                logger.warning(f"Role lookup failed for {user_id} in {scope_id}: {exc.message}")
                role = "member"
    elif is_owner:
        role = "owner"

    return CallerContext(
        caller_id=user_id,
        scope_id=scope_id,
        is_admin=is_owner or role in ADMIN_ROLES,
        is_privileged_owner=is_owner,
        nickname=nickname,
        role=role,
    )
