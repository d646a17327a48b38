"""
Model failover.

The policy is a pure, cyclic walk over the configured model list; the state
object tracks one orchestration run's current model and retry budget.
ActiveModel holds the process-wide selection that persists between runs.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

from aicat.errors import TransportError, TransportErrorKind

RETRYABLE_KINDS = frozenset({
    TransportErrorKind.TIMEOUT,
    TransportErrorKind.HTTP_CLIENT,
    TransportErrorKind.HTTP_SERVER,
    TransportErrorKind.MODEL_UNAVAILABLE,
})


class ModelFailoverPolicy:
    """Cyclic selection over primary models followed by backups."""

    def __init__(self, models: Iterable[str]):
        ordered: List[str] = []
        for model in models:
            if model and model not in ordered:
                ordered.append(model)
        if not ordered:
            raise ValueError("ModelFailoverPolicy needs at least one model")
        self.models = ordered

    def next_model(self, current: str) -> str:
        """Model after ``current``; an unknown current restarts at the head."""
        if current not in self.models:
            return self.models[0]
        index = self.models.index(current)
        return self.models[(index + 1) % len(self.models)]

    @staticmethod
    def is_retryable(error: TransportError) -> bool:
        return error.kind in RETRYABLE_KINDS

    def start(self, current_model: str, max_retries: int) -> "ModelFailoverState":
        return ModelFailoverState(
            current_model=current_model,
            ordered_models=list(self.models),
            max_retries=max_retries,
        )


@dataclass
class ModelFailoverState:
    """Failover bookkeeping for a single orchestration run."""
    current_model: str
    ordered_models: List[str] = field(default_factory=list)
    max_retries: int = 2
    attempt_count: int = 0

    @property
    def can_retry(self) -> bool:
        return self.attempt_count < self.max_retries

    def advance(self, policy: ModelFailoverPolicy) -> str:
        self.attempt_count += 1
        self.current_model = policy.next_model(self.current_model)
        return self.current_model


class ActiveModel:
    """Process-wide model selection shared by every orchestration run."""

    def __init__(self, model: str):
        self.name = model

    def set(self, model: str) -> None:
        self.name = model

    def __str__(self) -> str:
        return self.name
