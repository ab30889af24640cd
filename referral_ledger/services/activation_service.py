"""
Activation service.

Runs one activation event through the reward pipeline:
activation flag and welcome bonus, ancestor chain, upline commissions,
milestone rewards. Every stage is idempotent, so redelivering the same
event replays nothing that already happened.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.reward_plan import RewardPlan
from referral_ledger.repositories.ancestor_edge_repository import (
    AncestorEdgeRepository,
)
from referral_ledger.repositories.participant_repository import (
    ParticipantRepository,
)
from referral_ledger.services.referral import (
    CommissionDistributor,
    DistributionResult,
    MilestoneResult,
    MilestoneRewardEngine,
    ReferralTreeBuilder,
)
from referral_ledger.services.wallet_ledger import SqlWalletLedger, WalletLedger
from referral_ledger.utils.exceptions import (
    InvalidSponsor,
    ParticipantNotFound,
    TreeAlreadyBuilt,
)


@dataclass(frozen=True)
class ActivationEvent:
    """Successful activation payment, delivered at least once."""

    new_participant_id: int
    sponsor_id: int | None
    payment_id: str
    fee_amount: Decimal


@dataclass
class ActivationResult:
    """Outcome of processing one activation event."""

    participant_id: int
    payment_id: str
    newly_activated: bool = False
    welcome_bonus: Decimal = Decimal("0")
    edges_written: int = 0
    tree_already_built: bool = False
    distribution: DistributionResult | None = None
    milestones: list[MilestoneResult] = field(default_factory=list)

    @property
    def pending_retry(self) -> bool:
        """Whether some credit failed and awaits the retry sweep."""
        commission_failed = bool(self.distribution and self.distribution.failed)
        milestone_failed = any(result.failed for result in self.milestones)
        return commission_failed or milestone_failed


class ActivationService:
    """Orchestrates the activation reward pipeline."""

    def __init__(
        self,
        session: AsyncSession,
        plan: RewardPlan,
        ledger: WalletLedger | None = None,
    ) -> None:
        """
        Initialize activation service.

        Args:
            session: Async database session
            plan: Reward plan
            ledger: Wallet ledger sharing `session`'s transaction
        """
        self.session = session
        self.plan = plan
        self.ledger = ledger or SqlWalletLedger(session)
        self.participant_repo = ParticipantRepository(session)
        self.edge_repo = AncestorEdgeRepository(session)
        self.tree_builder = ReferralTreeBuilder(session, plan)
        self.distributor = CommissionDistributor(session, plan, self.ledger)
        self.milestone_engine = MilestoneRewardEngine(session, plan, self.ledger)

    async def process(self, event: ActivationEvent) -> ActivationResult:
        """
        Process an activation event.

        Args:
            event: Activation event

        Returns:
            ActivationResult; per-ancestor credit failures are reported
            here and never raised

        Raises:
            ParticipantNotFound: Unknown participant
            InvalidSponsor: Sponsor invalid or different from the registered one
            TreeNotBuilt: Sponsor's own activation has not finished yet
        """
        participant_id = event.new_participant_id
        result = ActivationResult(
            participant_id=participant_id, payment_id=event.payment_id
        )

        state = await self.participant_repo.get_sponsorship_state(participant_id)
        if state is None:
            raise ParticipantNotFound(participant_id)

        registered_sponsor_id, _ = state
        if event.sponsor_id != registered_sponsor_id:
            raise InvalidSponsor(
                event.sponsor_id,
                f"does not match registered sponsor {registered_sponsor_id}",
            )

        await self._activate(participant_id, result)

        if registered_sponsor_id is None:
            logger.info(
                "Root participant activated, no upline to reward",
                extra={"participant_id": participant_id},
            )
            return result

        try:
            result.edges_written = await self.tree_builder.extend_tree(
                participant_id, registered_sponsor_id
            )
        except TreeAlreadyBuilt:
            result.tree_already_built = True

        result.distribution = await self.distributor.distribute(
            participant_id, event.payment_id, event.fee_amount
        )

        upline = await self.edge_repo.get_chain(participant_id)
        result.milestones = await self.milestone_engine.evaluate_many(
            [edge.ancestor_id for edge in upline]
        )

        logger.info(
            "Activation processed",
            extra={
                "participant_id": participant_id,
                "payment_id": event.payment_id,
                "newly_activated": result.newly_activated,
                "edges_written": result.edges_written,
                "commissions": len(result.distribution.entries),
                "milestones_granted": sum(len(m.claims) for m in result.milestones),
                "pending_retry": result.pending_retry,
            },
        )

        return result

    async def _activate(
        self, participant_id: int, result: ActivationResult
    ) -> None:
        """Flip the activation flag and credit the welcome bonus once."""
        try:
            flipped = await self.participant_repo.mark_active(participant_id)
            if flipped and self.plan.welcome_bonus > 0:
                await self.ledger.credit(participant_id, self.plan.welcome_bonus)
            await self.session.commit()
        except Exception:
            # Flag and bonus stay together; the redelivered event retries both
            await self.session.rollback()
            raise

        result.newly_activated = flipped
        if flipped:
            result.welcome_bonus = self.plan.welcome_bonus
            logger.info(
                "Participant activated",
                extra={
                    "participant_id": participant_id,
                    "welcome_bonus": str(self.plan.welcome_bonus),
                },
            )
