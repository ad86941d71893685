from fastapi import APIRouter

from .endpoints import (
    accounts,
    admin,
    health,
    observability,
    rewards,
    withdrawals,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(accounts.router)
router.include_router(rewards.router)
router.include_router(withdrawals.router)
router.include_router(admin.router)
router.include_router(observability.router)
