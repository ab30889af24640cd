"""
Payout retry task.

Completes commission payouts and milestone rewards whose wallet credit
failed when they were first granted.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

import dramatiq
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from jobs.async_runner import create_local_session, run_async
from referral_ledger.config.reward_plan import RewardPlan, load_reward_plan
from referral_ledger.config.settings import settings
from referral_ledger.services.referral import (
    CommissionDistributor,
    MilestoneRewardEngine,
    RetrySummary,
)


@dataclass
class SweepSummary:
    """Outcome of one retry sweep."""

    commissions: RetrySummary
    milestones: RetrySummary

    @property
    def still_failed(self) -> int:
        """Payouts left for the next sweep."""
        return self.commissions.still_failed + self.milestones.still_failed


@dramatiq.actor(max_retries=3, time_limit=300_000)  # 5 min timeout
def retry_failed_payouts() -> None:
    """Retry sweep for failed commission and milestone credits."""
    logger.info("Starting payout retry sweep...")

    try:
        summary = run_async(retry_failed_payouts_async())
        logger.info(
            f"Payout retry sweep complete: "
            f"{summary.commissions.completed}/{summary.commissions.retried} "
            f"commissions, "
            f"{summary.milestones.completed}/{summary.milestones.retried} "
            f"milestones, {summary.still_failed} still failed"
        )
    except Exception as e:
        logger.exception(f"Payout retry sweep failed: {e}")
        raise


async def retry_failed_payouts_async(
    session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = create_local_session,
    plan: RewardPlan | None = None,
    batch_size: int | None = None,
) -> SweepSummary:
    """
    Async implementation of the retry sweep.

    Args:
        session_factory: Context manager factory yielding a session
        plan: Reward plan (loaded from settings when None)
        batch_size: Entries per sweep and kind (settings when None)

    Returns:
        SweepSummary
    """
    plan = plan or load_reward_plan(settings.reward_plan_path)
    batch_size = batch_size or settings.retry_sweep_batch_size

    async with session_factory() as session:
        commissions = await CommissionDistributor(session, plan).retry_failed(
            batch_size
        )
        milestones = await MilestoneRewardEngine(session, plan).retry_failed(
            batch_size
        )

    return SweepSummary(commissions=commissions, milestones=milestones)
