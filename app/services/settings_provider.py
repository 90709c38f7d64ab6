"""
Cost configuration provider.

Loads the admin-editable ``app_settings`` row into an immutable snapshot and
caches it for a bounded time. The provider is handed to request handlers
through a dependency, so tests can inject fixed costs.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from app.models.account import MemberTier
from app.models.gift import AppSettings, Gift
from core.cache import TTLCache

logger = logging.getLogger(__name__)

SETTINGS_CACHE_KEY = "app_settings:costs"
GIFT_CATALOG_CACHE_KEY = "gifts:active"

# Primary key of the single settings row
SETTINGS_ROW_ID = 1


@dataclass(frozen=True)
class CostSettings:
    message_costs: Dict[str, int] = field(default_factory=dict)
    hi_message_cost: int = config.DEFAULT_HI_MESSAGE_COST
    image_message_cost: int = config.DEFAULT_IMAGE_MESSAGE_COST
    default_gift_cost: int = config.DEFAULT_GIFT_COST

    def get_message_cost(self, tier: Optional[str]) -> int:
        basic = self.message_costs.get(MemberTier.BASIC.value, config.DEFAULT_MESSAGE_COSTS["basic"])
        return self.message_costs.get(tier or MemberTier.BASIC.value, basic)

    def get_hi_message_cost(self) -> int:
        return self.hi_message_cost

    def get_image_message_cost(self) -> int:
        return self.image_message_cost

    @classmethod
    def from_row(cls, row: AppSettings) -> "CostSettings":
        return cls(
            message_costs={
                MemberTier.BASIC.value: row.message_cost_basic,
                MemberTier.SILVER.value: row.message_cost_silver,
                MemberTier.GOLD.value: row.message_cost_gold,
                MemberTier.PLATINUM.value: row.message_cost_platinum,
            },
            hi_message_cost=row.hi_message_cost,
            image_message_cost=row.image_message_cost,
            default_gift_cost=row.default_gift_cost,
        )


def default_settings_row() -> AppSettings:
    return AppSettings(
        id=SETTINGS_ROW_ID,
        message_cost_basic=config.DEFAULT_MESSAGE_COSTS["basic"],
        message_cost_silver=config.DEFAULT_MESSAGE_COSTS["silver"],
        message_cost_gold=config.DEFAULT_MESSAGE_COSTS["gold"],
        message_cost_platinum=config.DEFAULT_MESSAGE_COSTS["platinum"],
        hi_message_cost=config.DEFAULT_HI_MESSAGE_COST,
        image_message_cost=config.DEFAULT_IMAGE_MESSAGE_COST,
        default_gift_cost=config.DEFAULT_GIFT_COST,
    )


@dataclass(frozen=True)
class GiftSnapshot:
    id: int
    name: str
    cost: int
    image_url: Optional[str]
    category: Optional[str]


class AppSettingsProvider:
    def __init__(
        self,
        *,
        ttl_seconds: float = config.APP_SETTINGS_CACHE_SECONDS,
        gift_ttl_seconds: float = config.GIFT_CATALOG_CACHE_SECONDS,
        cache: Optional[TTLCache] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.gift_ttl_seconds = gift_ttl_seconds
        self._cache = cache or TTLCache(max_keys=16)
        self._load_lock = asyncio.Lock()

    async def get(self, db: AsyncSession) -> CostSettings:
        hit = self._cache.get(SETTINGS_CACHE_KEY)
        if hit is not None:
            return hit
        async with self._load_lock:
            return await self._cache.get_or_load(
                SETTINGS_CACHE_KEY,
                ttl_seconds=self.ttl_seconds,
                loader=lambda: self._load(db),
            )

    async def refresh(self, db: AsyncSession) -> CostSettings:
        self._cache.invalidate(SETTINGS_CACHE_KEY)
        return await self.get(db)

    def invalidate(self) -> None:
        self._cache.clear()

    async def _select_row(self, db: AsyncSession) -> Optional[AppSettings]:
        result = await db.execute(select(AppSettings).order_by(AppSettings.id).limit(1))
        return result.scalar_one_or_none()

    async def _load(self, db: AsyncSession) -> CostSettings:
        row = await self._select_row(db)
        if row is None:
            row = default_settings_row()
            db.add(row)
            try:
                await db.commit()
                logger.info("Created default app settings row")
            except IntegrityError:
                # Another process seeded the singleton row first
                await db.rollback()
                row = await self._select_row(db)
                if row is None:
                    raise
        return CostSettings.from_row(row)

    async def get_active_gifts(self, db: AsyncSession) -> List[GiftSnapshot]:
        async def _load_gifts():
            result = await db.execute(
                select(Gift)
                .where(Gift.is_active.is_(True))
                .order_by(Gift.display_order, Gift.id)
            )
            return [
                GiftSnapshot(
                    id=g.id, name=g.name, cost=g.cost, image_url=g.image_url, category=g.category
                )
                for g in result.scalars().all()
            ]

        return await self._cache.get_or_load(
            GIFT_CATALOG_CACHE_KEY, ttl_seconds=self.gift_ttl_seconds, loader=_load_gifts
        )

    async def get_gift_costs(self, db: AsyncSession, gift_ids: Iterable[int]) -> Dict[int, int]:
        """Costs of the requested gifts that are active; unknown ids are omitted."""
        wanted = set(gift_ids)
        return {g.id: g.cost for g in await self.get_active_gifts(db) if g.id in wanted}

    async def get_gifts(self, db: AsyncSession, gift_ids: Iterable[int]) -> List[GiftSnapshot]:
        """Active gifts in request order, duplicates collapsed."""
        by_id = {g.id: g for g in await self.get_active_gifts(db)}
        seen = set()
        gifts = []
        for gift_id in gift_ids:
            if gift_id in by_id and gift_id not in seen:
                seen.add(gift_id)
                gifts.append(by_id[gift_id])
        return gifts


default_settings_provider = AppSettingsProvider()
