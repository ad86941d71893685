"""Row builders shared by the ledger tests."""

from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.models import Account, AppSettings, Task
from rewards_api.models.app_settings import APP_SETTINGS_ROW_ID


async def seed_app_settings(session: AsyncSession, **overrides) -> AppSettings:
    values = {
        "daily_reward_points": 10,
        "ad_reward_points": 5,
        "referral_reward_points": 50,
        "min_withdraw_ton": 100,
        "min_withdraw_stars": 20,
        "ad_cooldown_seconds": 60,
        "ad_block_id": "block-1",
    }
    values.update(overrides)
    record = AppSettings(id=APP_SETTINGS_ROW_ID, **values)
    session.add(record)
    await session.commit()
    return record


async def create_account(
    session: AsyncSession,
    external_id: int,
    *,
    balance: int = 0,
    referral_code: str | None = None,
    banned: bool = False,
) -> Account:
    account = Account(
        external_id=external_id,
        username=f"user{external_id}",
        balance=balance,
        referral_code=referral_code or f"CODE{external_id}",
        banned=banned,
    )
    session.add(account)
    await session.commit()
    return account


async def create_task(
    session: AsyncSession,
    *,
    title: str = "Join channel",
    reward_points: int = 30,
    is_active: bool = True,
) -> Task:
    task = Task(title=title, reward_points=reward_points, is_active=is_active)
    session.add(task)
    await session.commit()
    return task
