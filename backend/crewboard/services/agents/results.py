"""Success/failure result types used at pipeline boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__
