"""Loading strategies and their registry."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Protocol

from ..conditions import Criteria
from ..errors import StrategyAlreadyRegistered, UnknownStrategy
from .eager import EagerLoading

if TYPE_CHECKING:
    from ..model import Model

EAGER = "eager"


class Strategy(Protocol):
    """Executes the SQL of one model operation, relations included."""

    def first(self, model: "Model", criteria: Criteria, *, write: bool = False) -> None: ...

    def all(self, model: "Model", result: list, criteria: Criteria) -> None: ...

    def create(self, model: "Model") -> None: ...

    def update(self, model: "Model", criteria: Criteria) -> None: ...

    def delete(self, model: "Model", criteria: Criteria) -> None: ...


StrategyFactory = Callable[[], Strategy]


class StrategyRegistry:
    """Name to strategy factory map, written at setup and read per operation."""

    def __init__(self) -> None:
        self._factories: dict[str, StrategyFactory] = {}
        self._lock = threading.Lock()

    @classmethod
    def with_defaults(cls) -> "StrategyRegistry":
        registry = cls()
        registry.register(EAGER, EagerLoading)
        return registry

    def register(self, name: str, factory: StrategyFactory) -> None:
        """Register `factory` under `name`.

        Raises:
            ValueError: If `name` is empty.
            StrategyAlreadyRegistered: If `name` is taken.
        """

        if not name:
            raise ValueError("strategy name must be a non-empty string.")
        with self._lock:
            if name in self._factories:
                raise StrategyAlreadyRegistered(name)
            self._factories[name] = factory

    def get(self, name: str) -> Strategy:
        factory = self._factories.get(name)
        if factory is None:
            raise UnknownStrategy(name)
        return factory()

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories


__all__ = ["EAGER", "EagerLoading", "Strategy", "StrategyFactory", "StrategyRegistry"]
