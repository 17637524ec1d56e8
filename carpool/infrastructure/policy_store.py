"""
Policy store -- booking/cancellation windows and commission rate.

Values live in a single Redis hash (``settings.policy_key``) so operators
can change them without a deploy.  Missing or unparsable keys fall back
to the defaults from ``Settings``; an unreachable Redis is an upstream
failure, never a silent fallback.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from carpool.config import Settings, settings as default_settings
from carpool.domain.errors import UpstreamDependencyError
from carpool.domain.policy import Policy

logger = logging.getLogger(__name__)


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# key -> parser
POLICY_FIELDS: dict[str, Callable[[str], Any]] = {
    "commission_rate": float,
    "booking_lead_time_minutes": float,
    "rider_cancellation_cutoff_hours": float,
    "driver_cancellation_cutoff_hours": float,
    "booking_enabled": _parse_bool,
}


def default_policy(cfg: Settings = default_settings) -> Policy:
    return Policy(**{key: getattr(cfg, key) for key in POLICY_FIELDS})


class RedisPolicyStore:
    def __init__(self, client: aioredis.Redis, cfg: Settings = default_settings):
        self.redis = client
        self.key = cfg.policy_key
        self.defaults = default_policy(cfg)

    async def load(self) -> Policy:
        """Return the effective policy: stored values merged over defaults."""
        try:
            stored = await self.redis.hgetall(self.key)
        except (RedisError, OSError) as exc:
            raise UpstreamDependencyError("Policy store is unavailable.") from exc

        values: dict[str, Any] = {}
        for key, parse in POLICY_FIELDS.items():
            raw = stored.get(key) if stored else None
            if raw is None:
                continue
            try:
                values[key] = parse(raw)
            except ValueError:
                logger.warning("Ignoring unparsable policy value %s=%r", key, raw)
        policy = replace(self.defaults, **values)
        if not 0 <= policy.commission_rate < 1:
            raise UpstreamDependencyError(
                f"Policy store returned an unusable commission rate: {policy.commission_rate}"
            )
        return policy

    async def save(self, **values: Any) -> None:
        """Write policy keys (used by the seed script and operators)."""
        unknown = set(values) - set(POLICY_FIELDS)
        if unknown:
            raise ValueError(f"Unknown policy keys: {sorted(unknown)}")
        await self.redis.hset(
            self.key, mapping={k: str(v).lower() if isinstance(v, bool) else str(v)
                               for k, v in values.items()}
        )
