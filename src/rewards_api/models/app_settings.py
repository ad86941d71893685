"""Singleton reward configuration row."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, func

from rewards_api.db.base import Base


APP_SETTINGS_ROW_ID = 1


class AppSettings(Base):
    """Reward amounts, withdrawal minimums and cooldowns, versioned on every edit."""

    __tablename__ = "app_settings"
    __table_args__ = (
        CheckConstraint("id = 1", name="ck_app_settings_singleton"),
    )

    id = Column(Integer, primary_key=True, default=APP_SETTINGS_ROW_ID)
    daily_reward_points = Column(Integer, nullable=False)
    ad_reward_points = Column(Integer, nullable=False)
    referral_reward_points = Column(Integer, nullable=False)
    min_withdraw_ton = Column(Integer, nullable=False)
    min_withdraw_stars = Column(Integer, nullable=False)
    ad_cooldown_seconds = Column(Integer, nullable=False)
    ad_block_id = Column(String, nullable=True)
    version = Column(Integer, nullable=False, server_default="1")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
