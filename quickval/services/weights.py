"""
Scoring weight configurations.

Each configuration is stored as its own record; exactly one is active. The
active one is what the scoring engine reads for new jobs.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List

from pydantic import BaseModel, Field

from ..core.errors import ActiveWeightsDeletion, WeightsNotFound
from ..core.store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "scoring_weights:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoringWeights(BaseModel):
    """Every coefficient and band threshold used by the scoring engine."""
    base_score: float = 100

    bedroom_penalty: float = 10        # per bedroom of difference
    bathroom_penalty: float = 5        # per bathroom of difference
    density_house_unit_penalty: float = 25
    density_house_townhouse_penalty: float = 10

    # distance bands (km, upper bounds exclusive) and their adjustments
    distance_ultra_close_km: float = 0.2
    distance_ultra_close_bonus: float = 15
    distance_very_close_km: float = 0.35
    distance_very_close_bonus: float = 10
    distance_close_km: float = 0.5
    distance_close_bonus: float = 5
    distance_moderate_km: float = 1.0
    distance_moderate_adjustment: float = 0
    distance_far_km: float = 2.0
    distance_far_adjustment: float = -5
    distance_distant_adjustment: float = -10     # between far and very far
    distance_very_far_km: float = 5.0
    distance_very_far_adjustment: float = -15    # beyond very far

    # recency bands (months, upper bounds inclusive) and their adjustments
    recency_very_recent_months: float = 3
    recency_very_recent_bonus: float = 10
    recency_recent_months: float = 6
    recency_recent_bonus: float = 5
    recency_getting_old_months: float = 12
    recency_getting_old_adjustment: float = 0
    recency_old_months: float = 24
    recency_old_adjustment: float = -5
    recency_very_old_adjustment: float = -10

    land_area_weight: float = 0        # inactive unless configured


class WeightConfiguration(ScoringWeights):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "default"
    description: str | None = "Default comparable scoring weights"
    version: int = 1
    is_active: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class WeightConfigurationStore:
    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    async def _save(self, config: WeightConfiguration) -> None:
        await self.store.set(KEY_PREFIX + config.id, config.model_dump_json())

    async def _load(self, config_id: str) -> WeightConfiguration:
        raw = await self.store.get(KEY_PREFIX + config_id)
        if not raw:
            raise WeightsNotFound(f"Weights configuration {config_id} not found")
        return WeightConfiguration.model_validate_json(raw)

    async def list_all(self) -> List[WeightConfiguration]:
        rows = [WeightConfiguration.model_validate(json.loads(raw))
                for raw in (await self.store.list_prefix(KEY_PREFIX)).values()]
        rows.sort(key=lambda c: c.created_at, reverse=True)
        return rows

    async def _make_only_active(self, config: WeightConfiguration) -> WeightConfiguration:
        for other in await self.list_all():
            if other.id != config.id and other.is_active:
                other.is_active = False
                other.updated_at = self.clock()
                await self._save(other)
        config.is_active = True
        await self._save(config)
        return config

    async def get_active(self) -> WeightConfiguration:
        """Active configuration; a default one is created on first access."""
        configs = await self.list_all()
        for config in configs:
            if config.is_active:
                return config
        if configs:
            # records exist but nothing is active: promote the newest
            return await self._make_only_active(configs[0])
        now = self.clock()
        config = WeightConfiguration(created_at=now, updated_at=now)
        logger.info("Created default scoring weights %s", config.id)
        return await self._make_only_active(config)

    async def create(self, data: dict) -> WeightConfiguration:
        """New configuration over the defaults; becomes the active one."""
        now = self.clock()
        existing = await self.list_all()
        fields = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at", "is_active", "version")}
        config = WeightConfiguration(
            **fields,
            version=max((c.version for c in existing), default=0) + 1,
            created_at=now,
            updated_at=now,
        )
        logger.info("Created scoring weights %s (%s)", config.name, config.id)
        return await self._make_only_active(config)

    async def update(self, config_id: str, data: dict) -> WeightConfiguration:
        current = await self._load(config_id)
        changes = {k: v for k, v in data.items()
                   if v is not None and k not in ("id", "created_at", "updated_at", "is_active", "version")}
        updated = WeightConfiguration.model_validate({
            **current.model_dump(),
            **changes,
            "version": current.version + 1,
            "updated_at": self.clock(),
        })
        await self._save(updated)
        logger.info("Updated scoring weights %s to version %d", config_id, updated.version)
        return updated

    async def activate(self, config_id: str) -> WeightConfiguration:
        config = await self._load(config_id)
        config.updated_at = self.clock()
        logger.info("Activated scoring weights %s", config_id)
        return await self._make_only_active(config)

    async def reset(self) -> WeightConfiguration:
        now = self.clock()
        return await self.create({
            "name": f"default_reset_{now.date().isoformat()}",
            "description": "Reset to default weights",
        })

    async def delete(self, config_id: str) -> None:
        config = await self._load(config_id)
        if config.is_active:
            raise ActiveWeightsDeletion("Cannot delete the active weights configuration")
        await self.store.delete(KEY_PREFIX + config_id)
        logger.info("Deleted scoring weights %s", config_id)
