"""TTL memoization in front of any ``PropertyHandler``.

``CachingHandler`` reads its own defaults from the handler it wraps the first
time it is initialized:

  - ``core.property.cache.ttl``       default time-to-live (number)
  - ``core.property.cache.unit``      unit of the default (``seconds`` ...)
  - ``core.property.cache.overrides`` JSON list of per-key overrides,
    ``[{"key": "db.password", "ttl": 0, "unit": "seconds"}, ...]``

A TTL of ``0`` disables caching for that key: the entry is always expired and
every read goes to the wrapped handler.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from typing import Any

from faas_lifecycle.config.handlers import EnvironmentHandler, PropertyHandler
from faas_lifecycle.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

CACHE_TTL = "core.property.cache.ttl"
CACHE_UNIT = "core.property.cache.unit"
CACHE_OVERRIDES = "core.property.cache.overrides"

DEFAULT_TTL = 300
DEFAULT_UNIT = "seconds"

_UNITS: dict[str, str] = {
    "ms": "milliseconds",
    "millisecond": "milliseconds",
    "milliseconds": "milliseconds",
    "s": "seconds",
    "second": "seconds",
    "seconds": "seconds",
    "m": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
}


def to_timedelta(ttl: float, unit: str) -> datetime.timedelta:
    """Convert ``(ttl, unit)`` to a ``timedelta``; unknown units are rejected."""
    normalized = _UNITS.get(str(unit).strip().lower())
    if normalized is None:
        raise ValidationError(f"Invalid cache unit '{unit}'.", tag="cache.unit")
    return datetime.timedelta(**{normalized: ttl})


class CachedProperty:
    """A cached value with an absolute expiry.

    Setting ``value`` stamps ``last_updated`` and moves ``expires_at`` one TTL
    into the future.  A TTL of zero, or a ``None`` value, leaves
    ``expires_at`` unset so the entry reads as expired.
    """

    def __init__(self, value: Any = None, ttl: float = DEFAULT_TTL, unit: str = DEFAULT_UNIT) -> None:
        self._ttl = ttl
        self._unit = unit
        self._lifetime = to_timedelta(ttl, unit)
        self._value: Any = None
        self._expires_at: datetime.datetime | None = None
        self._last_updated: datetime.datetime | None = None
        if value is not None:
            self.value = value

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def unit(self) -> str:
        return self._unit

    @property
    def expires_at(self) -> datetime.datetime | None:
        return self._expires_at

    @property
    def last_updated(self) -> datetime.datetime | None:
        return self._last_updated

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        now = datetime.datetime.now(datetime.UTC)
        self._value = value
        self._last_updated = now
        if self._ttl == 0 or value is None:
            self._expires_at = None
        else:
            self._expires_at = now + self._lifetime

    @property
    def is_expired(self) -> bool:
        if self._expires_at is None:
            return True
        return datetime.datetime.now(datetime.UTC) >= self._expires_at

    def clear(self) -> None:
        self._value = None
        self._expires_at = None


@dataclasses.dataclass(frozen=True)
class CacheOverride:
    key: str
    ttl: float
    unit: str = DEFAULT_UNIT

    @classmethod
    def from_dict(cls, source: Any) -> CacheOverride:
        if not isinstance(source, dict):
            raise ValidationError("Invalid cache override, expected an object.", tag=CACHE_OVERRIDES)
        key = source.get("key")
        ttl = source.get("ttl")
        unit = source.get("unit", DEFAULT_UNIT)
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Invalid cache override, key required.", tag="cache.key")
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise ValidationError("Invalid cache override, ttl must be a number.", tag="cache.ttl")
        if not isinstance(unit, str) or not unit.strip():
            raise ValidationError("Invalid cache override, unit required.", tag="cache.unit")
        to_timedelta(ttl, unit)
        return cls(key=key, ttl=ttl, unit=unit)


class CachingHandler(PropertyHandler):
    """Memoizes another handler's values per key with a TTL."""

    def __init__(
        self,
        handler: PropertyHandler | None = None,
        ttl: float = DEFAULT_TTL,
        unit: str = DEFAULT_UNIT,
    ) -> None:
        super().__init__()
        self._handler = handler if handler is not None else EnvironmentHandler()
        to_timedelta(ttl, unit)
        self._ttl = ttl
        self._unit = unit
        self._overrides: dict[str, CacheOverride] = {}
        self._cache: dict[str, CachedProperty] = {}

    @property
    def name(self) -> str:
        return f"CachingHandler({self._handler.name})"

    @property
    def handler(self) -> PropertyHandler:
        return self._handler

    @property
    def initialized(self) -> bool:
        return self._initialized and self._handler.initialized

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def unit(self) -> str:
        return self._unit

    @property
    def overrides(self) -> dict[str, CacheOverride]:
        return dict(self._overrides)

    async def initialize(self, platform_context: Any = None, force: bool = False) -> bool:
        await self._handler.initialize(platform_context, force)
        if self._initialized and not force:
            return False
        await self._configure()
        self._initialized = True
        logger.info(
            "%s initialized: ttl=%s %s, overrides=%s",
            self.name, self._ttl, self._unit, sorted(self._overrides),
        )
        return True

    async def _configure(self) -> None:
        ttl = await self._handler.get_number(CACHE_TTL, self._ttl)
        unit = await self._handler.get_property(CACHE_UNIT, self._unit)
        to_timedelta(ttl, unit)
        self._ttl, self._unit = ttl, unit

        overrides = await self._handler.get_object(CACHE_OVERRIDES, None)
        if overrides is None:
            return
        if not isinstance(overrides, list):
            raise ConfigurationError(f"Invalid {CACHE_OVERRIDES}, expected a JSON array.")
        self._overrides = {o.key: o for o in map(CacheOverride.from_dict, overrides)}

    def _new_entry(self, key: str) -> CachedProperty:
        override = self._overrides.get(key)
        if override is not None:
            return CachedProperty(ttl=override.ttl, unit=override.unit)
        return CachedProperty(ttl=self._ttl, unit=self._unit)

    async def _get_property(self, key: str) -> Any:
        return await self._handler.get_property(key, None)

    async def get_property(self, key: str, default: Any = None) -> Any:
        entry = self._cache.get(key)
        if entry is not None and not entry.is_expired:
            return entry.value

        value = await self._handler.get_property(key, None)
        if value is None:
            return default
        if entry is None:
            entry = self._new_entry(key)
            self._cache[key] = entry
        entry.value = value
        return value

    def cache_info(self, key: str) -> CachedProperty | None:
        return self._cache.get(key)

    def clear(self) -> None:
        """Expire every cached entry; the next read goes to the wrapped handler."""
        for entry in self._cache.values():
            entry.clear()
        logger.debug("%s cleared %d entries", self.name, len(self._cache))
