"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class EngineConfig:
    """Settings shared by every model of one `Engine`.

    Attributes:
        database: Default database (or schema) name used to qualify tables.
        strategy: Loading strategy used when an entity declares none.
        cache_ttl: Lifetime of cached descriptors in seconds; `None` keeps them forever.
        auto_transaction: Wrap each top-level write in its own transaction.
    """

    database: Optional[str] = None
    strategy: str = "eager"
    cache_ttl: Optional[float] = None
    auto_transaction: bool = True

    def __post_init__(self) -> None:
        if not self.strategy:
            raise ValueError("strategy must be a non-empty string.")
        if self.cache_ttl is not None and self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive or None.")

    @classmethod
    def from_env(
        cls,
        prefix: str = "RELORM_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "EngineConfig":
        """Build a config from `<prefix>DATABASE`, `<prefix>STRATEGY`,
        `<prefix>CACHE_TTL` and `<prefix>AUTO_TRANSACTION`.

        Unset variables keep the defaults.

        Raises:
            ValueError: If a variable holds an unparsable value.
        """

        env = os.environ if environ is None else environ
        defaults = cls()

        cache_ttl = defaults.cache_ttl
        raw_ttl = env.get(f"{prefix}CACHE_TTL", "").strip()
        if raw_ttl:
            try:
                cache_ttl = float(raw_ttl)
            except ValueError as exc:
                raise ValueError(f"{prefix}CACHE_TTL must be a number, got {raw_ttl!r}.") from exc

        auto_transaction = defaults.auto_transaction
        raw_auto = env.get(f"{prefix}AUTO_TRANSACTION", "").strip().lower()
        if raw_auto:
            if raw_auto in _TRUE:
                auto_transaction = True
            elif raw_auto in _FALSE:
                auto_transaction = False
            else:
                raise ValueError(
                    f"{prefix}AUTO_TRANSACTION must be a boolean, got {raw_auto!r}."
                )

        return cls(
            database=env.get(f"{prefix}DATABASE") or defaults.database,
            strategy=env.get(f"{prefix}STRATEGY") or defaults.strategy,
            cache_ttl=cache_ttl,
            auto_transaction=auto_transaction,
        )
