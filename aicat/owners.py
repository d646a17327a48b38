"""
Owner registry.

Owners come from two places: the configured ``owner_ids`` (initial owners,
never removable at runtime) and dynamic owners added through a verification
code flow. A caller asks to become an owner, the one-time code is written to
the operator log, and the caller proves access to that log by sending the
code back before it expires.
"""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Tuple

from aicat.models import ToolResult
from aicat.tools.store import JsonStore
from aicat.utils import get_logger

logger = get_logger("AICat.Owners")


@dataclass
class DynamicOwner:
    added_at: str = ""


class OwnerStore(JsonStore[DynamicOwner]):
    filename = "owners.json"
    record_type = DynamicOwner

    def __init__(
        self,
        data_dir="data",
        config_owners: Iterable = (),
        code_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(data_dir)
        self.config_owners: List[str] = [str(o) for o in config_owners]
        self.code_ttl_seconds = code_ttl_seconds
        self._clock = clock
        # user id -> (code, expires at)
        self._pending: Dict[str, Tuple[str, float]] = {}

    @property
    def owner_ids(self) -> List[str]:
        """Initial owners first, then dynamic ones."""
        with self._lock:
            dynamic = [uid for uid in self._records if uid not in self.config_owners]
        return self.config_owners + dynamic

    def is_owner(self, user_id) -> bool:
        return str(user_id) in self.config_owners or str(user_id) in self

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [uid for uid, (_, expires) in self._pending.items() if expires <= now]
        for uid in expired:
            del self._pending[uid]
        return len(expired)

    def request_verification(self, user_id) -> ToolResult:
        user_id = str(user_id)
        if self.is_owner(user_id):
            return ToolResult.fail("You are already an owner, nya~")
        self.cleanup_expired()
        code = f"{secrets.randbelow(10 ** 6):06d}"
        self._pending[user_id] = (code, self._clock() + self.code_ttl_seconds)
        logger.warning(f"Owner verification code for {user_id}: {code}")
        minutes = max(1, int(self.code_ttl_seconds // 60))
        return ToolResult.ok(
            f"Verification code issued. Read it from the bot console and send it back "
            f"within {minutes} minute(s), nya~"
        )

    def verify(self, user_id, code: str) -> ToolResult:
        user_id = str(user_id)
        self.cleanup_expired()
        pending = self._pending.get(user_id)
        if pending is None:
            return ToolResult.fail("No pending verification, or the code has expired")
        if not secrets.compare_digest(pending[0], str(code).strip()):
            logger.warning(f"Wrong owner verification code from {user_id}")
            return ToolResult.fail("Wrong verification code")

        del self._pending[user_id]
        with self._lock:
            self._records[user_id] = DynamicOwner(added_at=datetime.now(timezone.utc).isoformat())
            self._save()
        logger.info(f"Added dynamic owner {user_id}")
        return ToolResult.ok(f"Verified! {user_id} is now an owner, nya~")

    def remove(self, requester_id, target_id) -> ToolResult:
        requester_id, target_id = str(requester_id), str(target_id)
        if requester_id not in self.config_owners:
            return ToolResult.fail("Only initial owners can remove owners")
        if target_id in self.config_owners:
            return ToolResult.fail(f"{target_id} is an initial owner and cannot be removed")
        with self._lock:
            if target_id not in self._records:
                return ToolResult.fail(f"{target_id} is not a dynamic owner")
            del self._records[target_id]
            self._save()
        logger.info(f"Owner {target_id} removed by {requester_id}")
        return ToolResult.ok(f"Removed owner {target_id}")

    def list(self) -> ToolResult:
        with self._lock:
            dynamic = sorted(uid for uid in self._records if uid not in self.config_owners)
        data = {"default": list(self.config_owners), "dynamic": dynamic}
        return ToolResult.ok(data=data, count=len(data["default"]) + len(dynamic))
