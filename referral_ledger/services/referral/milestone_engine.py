"""
Milestone reward engine.

Grants one-time rewards when a participant's team at a given level
reaches a configured size. A reward whose credit fails is kept as a
`failed` claim, so the threshold stays reserved and the retry sweep
pays it later.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.reward_plan import MilestoneTier, RewardPlan
from referral_ledger.models.enums import PayoutStatus
from referral_ledger.models.milestone_claim import MilestoneClaim
from referral_ledger.repositories.ancestor_edge_repository import (
    AncestorEdgeRepository,
)
from referral_ledger.repositories.milestone_claim_repository import (
    MilestoneClaimRepository,
)
from referral_ledger.services.referral.commission_distributor import RetrySummary
from referral_ledger.services.wallet_ledger import SqlWalletLedger, WalletLedger
from referral_ledger.utils.exceptions import LedgerCreditFailed


@dataclass
class MilestoneFailure:
    """Milestone whose reward credit was rejected."""

    level: int
    threshold: int
    reward: Decimal
    reason: str


@dataclass
class MilestoneResult:
    """Result of evaluating one participant."""

    participant_id: int
    claims: list[MilestoneClaim] = field(default_factory=list)
    failed: list[MilestoneFailure] = field(default_factory=list)

    @property
    def total_rewarded(self) -> Decimal:
        """Sum of rewards granted in this evaluation."""
        return sum(
            (claim.reward_amount for claim in self.claims), Decimal("0")
        )


class MilestoneRewardEngine:
    """Evaluates team-size milestones and pays newly reached ones."""

    def __init__(
        self,
        session: AsyncSession,
        plan: RewardPlan,
        ledger: WalletLedger | None = None,
    ) -> None:
        """
        Initialize engine.

        Args:
            session: Async database session
            plan: Reward plan (milestone tiers)
            ledger: Wallet ledger sharing `session`'s transaction
        """
        self.session = session
        self.plan = plan
        self.ledger = ledger or SqlWalletLedger(session)
        self.edge_repo = AncestorEdgeRepository(session)
        self.claim_repo = MilestoneClaimRepository(session)

    async def evaluate_and_reward(self, participant_id: int) -> MilestoneResult:
        """
        Pay every reached and unclaimed milestone of a participant.

        Tiers are walked in ascending order, so a team that jumps past
        several thresholds at once collects all of them in one pass.

        Args:
            participant_id: Participant to evaluate

        Returns:
            MilestoneResult with claims granted by this call
        """
        result = MilestoneResult(participant_id=participant_id)

        for level in self.plan.tracked_levels:
            tiers = self.plan.tiers_for(level)
            team_size = await self.edge_repo.count_at_level(participant_id, level)

            if not tiers or team_size < tiers[0].teams:
                continue

            claimed = await self.claim_repo.get_claimed_thresholds(
                participant_id, level
            )

            for tier in tiers:
                if tier.teams > team_size:
                    break
                if tier.teams in claimed:
                    continue
                await self._grant(participant_id, level, tier, result)

        if result.claims or result.failed:
            logger.info(
                "Milestones evaluated",
                extra={
                    "participant_id": participant_id,
                    "granted": len(result.claims),
                    "failed": len(result.failed),
                    "total_rewarded": str(result.total_rewarded),
                },
            )

        return result

    async def evaluate_many(
        self, participant_ids: list[int]
    ) -> list[MilestoneResult]:
        """
        Evaluate several participants, each at most once.

        Args:
            participant_ids: Participants to evaluate (duplicates ignored)

        Returns:
            One MilestoneResult per distinct participant, in input order
        """
        results = []
        for participant_id in dict.fromkeys(participant_ids):
            results.append(await self.evaluate_and_reward(participant_id))
        return results

    async def _grant(
        self,
        participant_id: int,
        level: int,
        tier: MilestoneTier,
        result: MilestoneResult,
    ) -> None:
        """Record and credit one milestone in its own transaction."""
        try:
            # Concurrent evaluations of the same participant race here
            if await self.claim_repo.claim_exists(participant_id, level, tier.teams):
                return

            claim = await self.claim_repo.create(
                beneficiary_id=participant_id,
                level=level,
                threshold=tier.teams,
                reward_amount=tier.reward,
                title=tier.title or None,
                status=PayoutStatus.COMPLETED,
            )
            await self.ledger.credit(participant_id, tier.reward)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                "Milestone already claimed by a concurrent evaluation",
                extra={
                    "participant_id": participant_id,
                    "level": level,
                    "threshold": tier.teams,
                },
            )
            return
        except LedgerCreditFailed as e:
            await self.session.rollback()
            logger.error(
                "Milestone credit failed, queued for retry",
                extra={
                    "participant_id": participant_id,
                    "level": level,
                    "threshold": tier.teams,
                    "reward": str(tier.reward),
                    "reason": e.reason,
                },
            )
            result.failed.append(
                MilestoneFailure(
                    level=level,
                    threshold=tier.teams,
                    reward=tier.reward,
                    reason=e.reason,
                )
            )
            await self._record_failure(participant_id, level, tier, e.reason)
            return

        self.session.expunge(claim)
        result.claims.append(claim)

        logger.info(
            "Milestone reward granted",
            extra={
                "participant_id": participant_id,
                "level": level,
                "threshold": tier.teams,
                "title": tier.title,
                "reward": str(tier.reward),
            },
        )

    async def _record_failure(
        self,
        participant_id: int,
        level: int,
        tier: MilestoneTier,
        reason: str,
    ) -> None:
        """Persist a failed milestone for the retry sweep."""
        try:
            await self.claim_repo.create(
                beneficiary_id=participant_id,
                level=level,
                threshold=tier.teams,
                reward_amount=tier.reward,
                title=tier.title or None,
                status=PayoutStatus.FAILED,
                last_error=reason,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            # Without a row the next evaluation retries this milestone
            await self.session.rollback()
            logger.error(
                "Could not record failed milestone",
                extra={
                    "participant_id": participant_id,
                    "level": level,
                    "threshold": tier.teams,
                    "error": str(e),
                },
            )

    async def retry_failed(self, limit: int = 100) -> RetrySummary:
        """
        Retry sweep for failed milestone rewards.

        Same protocol as the commission sweep: the guarded status flip
        and the credit share one transaction.

        Args:
            limit: Max claims per sweep

        Returns:
            RetrySummary
        """
        failed = await self.claim_repo.get_failed(limit)
        pending = [
            (claim.id, claim.beneficiary_id, claim.reward_amount)
            for claim in failed
        ]
        summary = RetrySummary()

        for claim_id, beneficiary_id, reward in pending:
            summary.retried += 1
            try:
                if not await self.claim_repo.mark_completed_if_failed(claim_id):
                    await self.session.rollback()
                    continue
                await self.ledger.credit(beneficiary_id, reward)
                await self.session.commit()
            except LedgerCreditFailed as e:
                await self.session.rollback()
                await self.claim_repo.record_retry_failure(claim_id, e.reason)
                await self.session.commit()
                summary.still_failed += 1
                logger.error(
                    "Milestone retry failed",
                    extra={
                        "claim_id": claim_id,
                        "beneficiary_id": beneficiary_id,
                        "reason": e.reason,
                    },
                )
                continue

            summary.completed += 1
            summary.beneficiary_ids.append(beneficiary_id)
            logger.info(
                "Failed milestone completed by retry sweep",
                extra={
                    "claim_id": claim_id,
                    "beneficiary_id": beneficiary_id,
                    "reward": str(reward),
                },
            )

        return summary
