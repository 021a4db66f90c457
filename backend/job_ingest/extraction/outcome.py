"""Value-with-degradation result used by every LLM-backed stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a clean value or a fallback value plus the reason it was used."""

    value: T
    degraded_reason: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def degraded(cls, value: T, reason: str) -> "Outcome[T]":
        return cls(value=value, degraded_reason=reason)

    @property
    def is_degraded(self) -> bool:
        return self.degraded_reason is not None
