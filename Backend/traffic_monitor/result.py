"""
Explicit success/failure values passed between pipeline stages
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Type, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


async def capture(action: Callable[[], Awaitable[T]], *errors: Type[BaseException]) -> "Result[T, BaseException]":
    """Await ``action`` and return its value as Ok, or one of ``errors`` as Err"""
    try:
        return Ok(await action())
    except errors as e:
        return Err(e)
