"""Immutable reward configuration snapshot read once per ledger operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.settings import Settings, settings as default_settings
from rewards_api.models.app_settings import APP_SETTINGS_ROW_ID, AppSettings
from rewards_api.models.withdrawal import WithdrawalMethod


@dataclass(frozen=True)
class SettingsSnapshot:
    """Consistent view of the reward settings; version 0 means configuration defaults."""

    daily_reward_points: int
    ad_reward_points: int
    referral_reward_points: int
    ad_cooldown_seconds: int
    min_withdraw_by_method: Mapping[WithdrawalMethod, int] = field(default_factory=dict)
    ad_block_id: str | None = None
    version: int = 0

    def min_withdraw_for(self, method: WithdrawalMethod) -> int:
        return int(self.min_withdraw_by_method.get(method, 0))

    @classmethod
    def from_record(cls, record: AppSettings) -> "SettingsSnapshot":
        return cls(
            daily_reward_points=int(record.daily_reward_points),
            ad_reward_points=int(record.ad_reward_points),
            referral_reward_points=int(record.referral_reward_points),
            ad_cooldown_seconds=int(record.ad_cooldown_seconds),
            min_withdraw_by_method=MappingProxyType(
                {
                    WithdrawalMethod.TON: int(record.min_withdraw_ton),
                    WithdrawalMethod.STARS: int(record.min_withdraw_stars),
                }
            ),
            ad_block_id=record.ad_block_id,
            version=int(record.version or 0),
        )

    @classmethod
    def from_config(cls, config: Settings) -> "SettingsSnapshot":
        return cls(
            daily_reward_points=config.default_daily_reward_points,
            ad_reward_points=config.default_ad_reward_points,
            referral_reward_points=config.default_referral_reward_points,
            ad_cooldown_seconds=config.default_ad_cooldown_seconds,
            min_withdraw_by_method=MappingProxyType(
                {
                    WithdrawalMethod.TON: config.default_min_withdraw_ton,
                    WithdrawalMethod.STARS: config.default_min_withdraw_stars,
                }
            ),
            ad_block_id=config.default_ad_block_id,
            version=0,
        )


async def load_settings_snapshot(
    session: AsyncSession,
    *,
    config: Settings | None = None,
) -> SettingsSnapshot:
    """Read the singleton settings row, falling back to configured defaults."""

    result = await session.execute(select(AppSettings).where(AppSettings.id == APP_SETTINGS_ROW_ID))
    record = result.scalar_one_or_none()
    if record is None:
        return SettingsSnapshot.from_config(config or default_settings)
    return SettingsSnapshot.from_record(record)


async def ensure_app_settings(session: AsyncSession, *, config: Settings | None = None) -> AppSettings:
    """Persist the configured defaults when the settings row does not exist yet."""

    result = await session.execute(select(AppSettings).where(AppSettings.id == APP_SETTINGS_ROW_ID))
    record = result.scalar_one_or_none()
    if record is not None:
        return record

    config = config or default_settings
    record = AppSettings(
        id=APP_SETTINGS_ROW_ID,
        daily_reward_points=config.default_daily_reward_points,
        ad_reward_points=config.default_ad_reward_points,
        referral_reward_points=config.default_referral_reward_points,
        min_withdraw_ton=config.default_min_withdraw_ton,
        min_withdraw_stars=config.default_min_withdraw_stars,
        ad_cooldown_seconds=config.default_ad_cooldown_seconds,
        ad_block_id=config.default_ad_block_id,
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning("Detected race when seeding app settings")
        result = await session.execute(select(AppSettings).where(AppSettings.id == APP_SETTINGS_ROW_ID))
        return result.scalar_one()
    logger.info("Seeded app settings from configuration defaults", version=record.version)
    return record


__all__ = ["SettingsSnapshot", "ensure_app_settings", "load_settings_snapshot"]
