"""Interfaces for things that take observations."""

from __future__ import annotations

from typing import Callable, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class Observer(Protocol):
    """Anything that accepts observed values."""

    def observe(self, value: float) -> None:
        ...


class ObserverFunc:
    """Adapts a plain callable taking one float to the Observer interface."""

    __slots__ = ("_func",)

    def __init__(self, func: Callable[[float], object]) -> None:
        if not callable(func):
            raise TypeError(f"{func!r} is not callable")
        self._func = func

    def observe(self, value: float) -> None:
        self._func(value)

    def __call__(self, value: float) -> None:
        self.observe(value)


@runtime_checkable
class ExemplarObserver(Protocol):
    """An observer that can also record an exemplar with an observation.

    With ``labels`` of None the current exemplar is left in place.
    """

    def observe_with_exemplar(self, value: float, labels: Optional[Mapping[str, str]]) -> None:
        ...