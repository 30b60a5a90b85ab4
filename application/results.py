from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from domain.order import OrderError

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: OrderError

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> str:
        return type(self.error).__name__


Result = Union[Success[T], Failure]
