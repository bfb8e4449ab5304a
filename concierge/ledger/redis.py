"""Redis implementation of LedgerStore.

Key structure:
- {prefix}:ledger:{tenant_id}:{day} - hash of daily counters
- {prefix}:pattern:{digest} - hash of one pattern's sightings
- {prefix}:pattern_confidence - sorted set, max confidence per pattern digest
- {prefix}:patterns:{template_id} - set of pattern digests per template
- {prefix}:promoted - set of promoted pattern digests
- {prefix}:warmup_disabled - hash tenant_id -> reason
"""

import hashlib
import json
from datetime import date, datetime, timedelta

import redis.asyncio as redis

from concierge.config.models.storage import StorageConfig
from concierge.errors import ConnectionError
from concierge.ledger.models import (
    LearnedPattern,
    LedgerDelta,
    LedgerEntry,
    PatternKey,
    PatternObservation,
)
from concierge.ledger.store import LedgerStore
from concierge.observability.logging import get_logger
from concierge.utils.clock import utc_now

logger = get_logger(__name__)

LEDGER_TTL_SECONDS = 90 * 24 * 3600

# KEYS[1] ledger hash; ARGV amount, budget, tenant_id, day, updated_at, ttl
RESERVE_SCRIPT = """
local cost = tonumber(redis.call("HGET", KEYS[1], "total_cost_usd") or "0")
local held = tonumber(redis.call("HGET", KEYS[1], "reserved_usd") or "0")
local amount = tonumber(ARGV[1])
local remaining = tonumber(ARGV[2]) - cost - math.max(held, 0)
if remaining <= 0 or amount > remaining then
  return {0, tostring(remaining)}
end
redis.call("HINCRBYFLOAT", KEYS[1], "reserved_usd", ARGV[1])
redis.call("HSETNX", KEYS[1], "tenant_id", ARGV[3])
redis.call("HSETNX", KEYS[1], "day", ARGV[4])
redis.call("HSET", KEYS[1], "updated_at", ARGV[5])
redis.call("EXPIRE", KEYS[1], ARGV[6])
return {1, tostring(remaining - amount)}
"""


def _digest(key: PatternKey) -> str:
    raw = "\x1f".join(key)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class RedisLedgerStore(LedgerStore):
    """Ledger store on redis.asyncio.

    Counter deltas use HINCRBY/HINCRBYFLOAT inside MULTI and budget holds
    run as one Lua script, so processes sharing the instance never lose
    each other's counts or overspend. Pattern counts use HINCRBY and
    promotion uses SADD so that concurrent processes agree on a single
    first promoter.
    """

    def __init__(self, client: redis.Redis, config: StorageConfig | None = None) -> None:
        """Initialize Redis ledger store.

        Args:
            client: Redis client instance (decode_responses=True expected)
            config: Storage configuration (uses defaults if not provided)
        """
        self._client = client
        self._config = config or StorageConfig()
        self._prefix = self._config.key_prefix

    def _ledger_key(self, tenant_id: str, day: date) -> str:
        return f"{self._prefix}:ledger:{tenant_id}:{day.isoformat()}"

    def _pattern_key(self, digest: str) -> str:
        return f"{self._prefix}:pattern:{digest}"

    def _template_patterns_key(self, template_id: str) -> str:
        return f"{self._prefix}:patterns:{template_id}"

    @property
    def _confidence_key(self) -> str:
        return f"{self._prefix}:pattern_confidence"

    @property
    def _promoted_key(self) -> str:
        return f"{self._prefix}:promoted"

    @property
    def _disabled_key(self) -> str:
        return f"{self._prefix}:warmup_disabled"

    @staticmethod
    def _entry_from_hash(data: dict[str, str]) -> LedgerEntry:
        return LedgerEntry(
            tenant_id=data["tenant_id"],
            day=date.fromisoformat(data["day"]),
            triggered_count=int(data.get("triggered_count", 0)),
            used_count=int(data.get("used_count", 0)),
            cancelled_count=int(data.get("cancelled_count", 0)),
            failed_count=int(data.get("failed_count", 0)),
            tier3_calls=int(data.get("tier3_calls", 0)),
            total_cost_usd=max(0.0, float(data.get("total_cost_usd", 0.0))),
            reserved_usd=max(0.0, float(data.get("reserved_usd", 0.0))),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    async def save_ledger_entry(self, entry: LedgerEntry) -> None:
        key = self._ledger_key(entry.tenant_id, entry.day)
        mapping = {
            "tenant_id": entry.tenant_id,
            "day": entry.day.isoformat(),
            "triggered_count": entry.triggered_count,
            "used_count": entry.used_count,
            "cancelled_count": entry.cancelled_count,
            "failed_count": entry.failed_count,
            "tier3_calls": entry.tier3_calls,
            "total_cost_usd": repr(entry.total_cost_usd),
            "reserved_usd": repr(entry.reserved_usd),
            "updated_at": entry.updated_at.isoformat(),
        }
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=mapping)
                pipe.expire(key, LEDGER_TTL_SECONDS)
                await pipe.execute()
        except redis.RedisError as e:
            logger.error("redis_ledger_save_error", tenant_id=entry.tenant_id, error=str(e))
            raise ConnectionError(f"Failed to save ledger entry: {e}", cause=e) from e

    async def apply_ledger_delta(self, delta: LedgerDelta) -> LedgerEntry:
        key = self._ledger_key(delta.tenant_id, delta.day)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hsetnx(key, "tenant_id", delta.tenant_id)
                pipe.hsetnx(key, "day", delta.day.isoformat())
                for name in LedgerDelta.COUNTERS:
                    if getattr(delta, name):
                        pipe.hincrby(key, name, getattr(delta, name))
                for name in LedgerDelta.AMOUNTS:
                    if getattr(delta, name):
                        pipe.hincrbyfloat(key, name, getattr(delta, name))
                pipe.hset(key, "updated_at", utc_now().isoformat())
                pipe.expire(key, LEDGER_TTL_SECONDS)
                pipe.hgetall(key)
                results = await pipe.execute()
        except redis.RedisError as e:
            logger.error("redis_ledger_delta_error", tenant_id=delta.tenant_id, error=str(e))
            raise ConnectionError(f"Failed to apply ledger delta: {e}", cause=e) from e
        return self._entry_from_hash(results[-1])

    async def reserve_budget(
        self,
        tenant_id: str,
        day: date,
        amount_usd: float,
        budget_usd: float,
    ) -> float | None:
        try:
            granted, remaining = await self._client.eval(
                RESERVE_SCRIPT,
                1,
                self._ledger_key(tenant_id, day),
                repr(amount_usd),
                repr(budget_usd),
                tenant_id,
                day.isoformat(),
                utc_now().isoformat(),
                LEDGER_TTL_SECONDS,
            )
        except redis.RedisError as e:
            logger.error("redis_budget_reserve_error", tenant_id=tenant_id, error=str(e))
            raise ConnectionError(f"Failed to reserve budget: {e}", cause=e) from e
        return float(remaining) if int(granted) == 1 else None

    async def get_ledger_entry(self, tenant_id: str, day: date) -> LedgerEntry | None:
        try:
            data = await self._client.hgetall(self._ledger_key(tenant_id, day))
        except redis.RedisError as e:
            raise ConnectionError(f"Failed to get ledger entry: {e}", cause=e) from e
        return self._entry_from_hash(data) if data else None

    async def list_ledger_entries(
        self,
        tenant_id: str,
        start: date,
        end: date,
    ) -> list[LedgerEntry]:
        days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
        if not days:
            return []
        try:
            async with self._client.pipeline(transaction=False) as pipe:
                for day in days:
                    pipe.hgetall(self._ledger_key(tenant_id, day))
                results = await pipe.execute()
        except redis.RedisError as e:
            raise ConnectionError(f"Failed to list ledger entries: {e}", cause=e) from e
        return [self._entry_from_hash(data) for data in results if data]

    async def record_observation(self, pattern: LearnedPattern) -> PatternObservation:
        key = pattern.key
        digest = _digest(key)
        pattern_key = self._pattern_key(digest)
        now = utc_now().isoformat()
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hincrby(pattern_key, "count", 1)
                pipe.hsetnx(pattern_key, "first_seen", now)
                pipe.hset(
                    pattern_key,
                    mapping={
                        "key": json.dumps(list(key)),
                        "last_seen": now,
                        "pattern": pattern.model_dump_json(),
                    },
                )
                pipe.zadd(self._confidence_key, {digest: pattern.confidence}, gt=True)
                pipe.sadd(self._template_patterns_key(key.template_id), digest)
                await pipe.execute()
            return await self._load_observation(digest)
        except redis.RedisError as e:
            logger.error("redis_pattern_observe_error", error=str(e))
            raise ConnectionError(f"Failed to record pattern: {e}", cause=e) from e

    async def _load_observation(self, digest: str) -> PatternObservation:
        async with self._client.pipeline(transaction=False) as pipe:
            pipe.hgetall(self._pattern_key(digest))
            pipe.zscore(self._confidence_key, digest)
            pipe.sismember(self._promoted_key, digest)
            data, confidence, promoted = await pipe.execute()
        return PatternObservation(
            key=PatternKey(*json.loads(data["key"])),
            count=int(data.get("count", 0)),
            max_confidence=float(confidence or 0.0),
            first_seen=datetime.fromisoformat(data["first_seen"]),
            last_seen=datetime.fromisoformat(data["last_seen"]),
            promoted=bool(promoted),
            pattern=LearnedPattern.model_validate_json(data["pattern"]),
        )

    async def list_observations(
        self,
        template_id: str | None = None,
        promoted: bool | None = None,
    ) -> list[PatternObservation]:
        try:
            if template_id is not None:
                digests = await self._client.smembers(self._template_patterns_key(template_id))
            else:
                digests = await self._client.zrange(self._confidence_key, 0, -1)
            observations = [await self._load_observation(d) for d in sorted(digests)]
        except redis.RedisError as e:
            raise ConnectionError(f"Failed to list patterns: {e}", cause=e) from e
        return [o for o in observations if promoted is None or o.promoted == promoted]

    async def promote_pattern(self, pattern: LearnedPattern) -> bool:
        try:
            added = await self._client.sadd(self._promoted_key, _digest(pattern.key))
        except redis.RedisError as e:
            raise ConnectionError(f"Failed to promote pattern: {e}", cause=e) from e
        return added == 1

    async def set_warmup_disabled(
        self,
        tenant_id: str,
        disabled: bool,
        reason: str | None = None,
    ) -> None:
        try:
            if disabled:
                await self._client.hset(self._disabled_key, tenant_id, reason or "")
            else:
                await self._client.hdel(self._disabled_key, tenant_id)
        except redis.RedisError as e:
            raise ConnectionError(f"Failed to update warmup state: {e}", cause=e) from e

    async def get_warmup_disabled(self, tenant_id: str) -> bool:
        try:
            return bool(await self._client.hexists(self._disabled_key, tenant_id))
        except redis.RedisError as e:
            raise ConnectionError(f"Failed to read warmup state: {e}", cause=e) from e
