"""
Confirmation of fire-and-forget host operations.

Some OneBot actions (mute, kick, admin grant/revoke, recall) return nothing
useful; the host reports the real outcome later as a notice event. The
tracker correlates the two: each pending operation owns one future, and a
matching notice or the deadline resolves it through a single resolver,
whichever comes first. A timeout is an assumed success, never a failure.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from aicat.models import NotificationEvent, OperationKind
from aicat.utils import get_logger

logger = get_logger("AICat.Confirmation")

OperationKey = Tuple[OperationKind, str, str]


@dataclass(frozen=True)
class Confirmation:
    """Outcome of a fire-and-forget operation."""
    confirmed: bool
    assumed: bool
    message: str
    effect: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        # Both a confirmed and an assumed outcome count as success
        return self.confirmed or self.assumed


@dataclass
class PendingOperation:
    kind: OperationKind
    scope_id: str
    subject_id: str
    expected_effect: Dict[str, Any]
    deadline: float
    future: asyncio.Future

    @property
    def key(self) -> OperationKey:
        return (self.kind, self.scope_id, self.subject_id)


def describe_effect(kind: OperationKind, scope_id: str, subject_id: str, effect: Dict[str, Any]) -> str:
    """Human-readable sentence for an operation's effect."""
    if kind == OperationKind.BAN:
        duration = int(effect.get("duration") or 0)
        minutes = duration // 60
        if minutes >= 1:
            span = f"{minutes} minute{'s' if minutes != 1 else ''}"
        else:
            span = f"{duration} second{'s' if duration != 1 else ''}"
        return f"Muted user {subject_id} for {span}"
    if kind == OperationKind.UNBAN:
        return f"Unmuted user {subject_id}"
    if kind == OperationKind.KICK:
        return f"Removed user {subject_id} from group {scope_id}"
    if kind == OperationKind.ADMIN_GRANT:
        return f"Made user {subject_id} an admin of group {scope_id}"
    if kind == OperationKind.ADMIN_REVOKE:
        return f"Revoked admin of user {subject_id} in group {scope_id}"
    if kind == OperationKind.RECALL:
        return f"Recalled message {subject_id}"
    return f"{kind.value} applied to {subject_id}"


class OperationConfirmationTracker:
    """
    Correlates pending operations with inbound notification events.

    Pending operations live in a keyed map of (kind, scope_id, subject_id).
    Notices that match nothing are kept for ``early_event_seconds`` so that a
    notice overtaking the host call's return is still matched when the
    operation registers a moment later. Keys resolved within the last
    ``late_notice_seconds`` are remembered instead: a notice for them arrived
    late (a duplicate, or after the deadline) and is dropped.
    """

    def __init__(
        self,
        early_event_seconds: float = 2.0,
        late_notice_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.early_event_seconds = early_event_seconds
        self.late_notice_seconds = late_notice_seconds
        self._clock = clock
        self._pending: Dict[OperationKey, List[PendingOperation]] = {}
        self._early: List[Tuple[float, NotificationEvent]] = []
        self._resolved: Dict[OperationKey, float] = {}

    @property
    def pending_count(self) -> int:
        return sum(len(v) for v in self._pending.values())

    async def await_confirmation(
        self,
        kind: OperationKind,
        scope_id,
        subject_id,
        expected_effect: Optional[Dict[str, Any]] = None,
        timeout: float = 3.0,
    ) -> Confirmation:
        """Wait for a matching notice, or assume success after ``timeout`` seconds."""
        kind = OperationKind(kind)
        scope_id, subject_id = str(scope_id), str(subject_id)
        expected = dict(expected_effect or {})
        key = (kind, scope_id, subject_id)

        early = self._take_early(key)
        if early is not None:
            logger.debug(f"Matched buffered notice for {key}")
            self._resolved[key] = self._clock()
            return self._confirmed(kind, scope_id, subject_id, expected, early)

        loop = asyncio.get_running_loop()
        pending = PendingOperation(
            kind=kind,
            scope_id=scope_id,
            subject_id=subject_id,
            expected_effect=expected,
            deadline=self._clock() + timeout,
            future=loop.create_future(),
        )
        self._pending.setdefault(key, []).append(pending)
        timer = loop.call_later(timeout, self._expire, pending)
        try:
            return await pending.future
        finally:
            timer.cancel()
            self._discard(pending)

    def notify(self, event: NotificationEvent) -> bool:
        """Deliver a notice. Returns True when it resolved a pending operation."""
        for pending in self._pending.get(event.key, []):
            if pending.future.done():
                continue
            confirmation = self._confirmed(
                pending.kind, pending.scope_id, pending.subject_id, pending.expected_effect, event
            )
            if self._resolve(pending, confirmation):
                logger.info(f"Confirmed {event.kind.value} for {event.subject_id} in {event.scope_id}")
                return True

        if self._recently_resolved(event.key):
            logger.debug(f"Dropped late notice {event.kind.value} for {event.subject_id} in {event.scope_id}")
            return False

        self._prune_early()
        self._early.append((self._clock(), event))
        return False

    def _resolve(self, pending: PendingOperation, confirmation: Confirmation) -> bool:
        # Single resolver: whichever of notice or deadline arrives first wins
        if pending.future.done():
            return False
        pending.future.set_result(confirmation)
        self._resolved[pending.key] = self._clock()
        return True

    def _expire(self, pending: PendingOperation) -> None:
        text = describe_effect(pending.kind, pending.scope_id, pending.subject_id, pending.expected_effect)
        confirmation = Confirmation(
            confirmed=False,
            assumed=True,
            message=f"{text} (no confirmation from the host yet, assumed successful)",
            effect=dict(pending.expected_effect),
        )
        if self._resolve(pending, confirmation):
            logger.warning(
                f"No notice for {pending.kind.value} on {pending.subject_id} in {pending.scope_id}; assuming success"
            )

    def _confirmed(
        self,
        kind: OperationKind,
        scope_id: str,
        subject_id: str,
        expected: Dict[str, Any],
        event: NotificationEvent,
    ) -> Confirmation:
        effect = {**expected, **event.effect}
        return Confirmation(
            confirmed=True,
            assumed=False,
            message=f"{describe_effect(kind, scope_id, subject_id, effect)} (confirmed by the host)",
            effect=effect,
        )

    def _discard(self, pending: PendingOperation) -> None:
        waiters = self._pending.get(pending.key)
        if not waiters:
            return
        if pending in waiters:
            waiters.remove(pending)
        if not waiters:
            del self._pending[pending.key]

    def _recently_resolved(self, key: OperationKey) -> bool:
        horizon = self._clock() - self.late_notice_seconds
        self._resolved = {k: t for k, t in self._resolved.items() if t >= horizon}
        return key in self._resolved

    def _prune_early(self) -> None:
        horizon = self._clock() - self.early_event_seconds
        self._early = [(t, e) for t, e in self._early if t >= horizon]

    def _take_early(self, key: OperationKey) -> Optional[NotificationEvent]:
        self._prune_early()
        for index, (_, event) in enumerate(self._early):
            if event.key == key:
                del self._early[index]
                return event
        return None
