"""Engine: the object owning everything models share."""

from __future__ import annotations

from typing import Any, Optional

import structlog

from .builder import Builder
from .cache import MemoryCache
from .config import EngineConfig
from .contracts import CachePort, DatabasePort
from .descriptors import ModelDescriptor
from .introspector import Introspector
from .model import Model
from .strategies import StrategyRegistry


class Engine:
    """Statement builder, descriptor cache and strategy registry of one database."""

    def __init__(
        self,
        db: Optional[DatabasePort],
        config: Optional[EngineConfig] = None,
        cache: Optional[CachePort] = None,
        strategies: Optional[StrategyRegistry] = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        """Create an engine.

        Args:
            db: Database adapter; `None` leaves the engine without a builder,
                so every descriptor build fails with `NoBuilder`.
            config: Engine settings.
            cache: Descriptor cache; defaults to a fresh `MemoryCache`.
            strategies: Strategy registry; defaults to one holding `eager`.
            logger: Structured logger; defaults to the module logger.
        """

        self.config = config or EngineConfig()
        self.logger = logger or structlog.get_logger(__name__)
        self.builder = (
            Builder(db, database=self.config.database, logger=self.logger)
            if db is not None
            else None
        )
        self.cache = cache if cache is not None else MemoryCache()
        self.strategies = strategies if strategies is not None else StrategyRegistry.with_defaults()
        self.introspector = self._introspector(self.cache, self.config.cache_ttl)

    def descriptor(
        self,
        entity_type: type,
        *,
        cache: Optional[CachePort] = None,
        cache_ttl: Optional[float] = None,
    ) -> ModelDescriptor:
        """Return the descriptor of `entity_type`, built on first use.

        Args:
            entity_type: An `Entity` dataclass.
            cache: Cache to read and store the descriptor in instead of the engine's.
            cache_ttl: Lifetime of descriptors stored in `cache`.
        """

        if cache is None or cache is self.cache:
            return self.introspector.descriptor(entity_type)
        ttl = cache_ttl if cache_ttl is not None else self.config.cache_ttl
        return self._introspector(cache, ttl).descriptor(entity_type)

    def model(self, entity: Any) -> Model:
        """Bind `entity` to a new, uninitialised model."""

        return Model(self, entity)

    def init(self, entity: Any) -> Model:
        return self.model(entity).init()

    def _introspector(self, cache: CachePort, ttl: Optional[float]) -> Introspector:
        return Introspector(
            self.builder,
            cache,
            strategy=self.config.strategy,
            cache_ttl=ttl,
            logger=self.logger,
        )
