"""Narrative generation results.

A generation either produced model output (``Ok``) or fell back to the documented
defaults for its kind (``Degraded``). Callers branch on the variant; a degraded
result is structurally valid but its fields are not model output.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    latency_ms: int
    generated_at: str = field(default_factory=_now_iso)

    @property
    def error(self) -> Optional[str]:
        return None

    def as_payload(self) -> dict:
        """Wire form: output fields plus ``ms`` and ``generatedAt``."""
        return {**self.value.to_wire(), "ms": self.latency_ms, "generatedAt": self.generated_at}


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    error: str
    latency_ms: int
    generated_at: str = field(default_factory=_now_iso)

    def as_payload(self) -> dict:
        """Wire form: fallback fields plus ``ms``, ``generatedAt`` and ``error``."""
        return {
            **self.value.to_wire(),
            "ms": self.latency_ms,
            "generatedAt": self.generated_at,
            "error": self.error,
        }


NarrativeResult = Union[Ok[T], Degraded[T]]
