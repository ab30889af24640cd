"""
Referral query management module.

Read-only views over the ancestor closure, commissions and milestones.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.reward_plan import RewardPlan
from referral_ledger.models.ancestor_edge import AncestorEdge
from referral_ledger.models.enums import PayoutStatus
from referral_ledger.models.milestone_claim import MilestoneClaim
from referral_ledger.repositories.ancestor_edge_repository import (
    AncestorEdgeRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.milestone_claim_repository import (
    MilestoneClaimRepository,
)


@dataclass(frozen=True)
class TeamMember:
    """Downline member as seen from an ancestor."""

    participant_id: int
    level: int
    is_active: bool


@dataclass(frozen=True)
class EarningRecord:
    """Commission or milestone reward credited to a participant."""

    kind: str
    amount: Decimal
    level: int
    description: str
    created_at: datetime
    source_participant_id: int | None = None


@dataclass(frozen=True)
class MilestoneProgress:
    """Progress towards one configured milestone."""

    level: int
    threshold: int
    reward: Decimal
    title: str
    team_size: int
    claimed: bool


class ReferralQueryManager:
    """Handles referral queries."""

    def __init__(self, session: AsyncSession, plan: RewardPlan) -> None:
        """Initialize query manager."""
        self.session = session
        self.plan = plan
        self.edge_repo = AncestorEdgeRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.claim_repo = MilestoneClaimRepository(session)

    async def get_team_counts(self, participant_id: int) -> dict[int, int]:
        """Team size per level, 1..max_depth, zero-filled."""
        return await self.edge_repo.get_level_counts(
            participant_id, self.plan.max_depth
        )

    async def get_team(
        self, participant_id: int, level: int | None = None
    ) -> list[TeamMember]:
        """
        Get downline members.

        Args:
            participant_id: Ancestor
            level: Restrict to one level

        Returns:
            Team members ordered by level
        """
        rows = await self.edge_repo.get_team(participant_id, level)
        return [
            TeamMember(participant_id=descendant_id, level=lvl, is_active=active)
            for descendant_id, lvl, active in rows
        ]

    async def get_upline(self, participant_id: int) -> list[AncestorEdge]:
        """Ancestor chain, nearest sponsor first."""
        return await self.edge_repo.get_chain(participant_id)

    async def get_claimed_milestones(
        self, participant_id: int
    ) -> list[MilestoneClaim]:
        """Milestones already paid to a participant."""
        return await self.claim_repo.get_for_beneficiary(
            participant_id, status=PayoutStatus.COMPLETED
        )

    async def get_milestone_progress(
        self, participant_id: int
    ) -> list[MilestoneProgress]:
        """
        Progress towards every configured milestone.

        Args:
            participant_id: Participant ID

        Returns:
            One entry per configured tier, ordered by level and threshold
        """
        counts = await self.get_team_counts(participant_id)
        claims = await self.get_claimed_milestones(participant_id)
        claimed = {(claim.level, claim.threshold) for claim in claims}

        progress = []
        for level in self.plan.tracked_levels:
            for tier in self.plan.tiers_for(level):
                progress.append(
                    MilestoneProgress(
                        level=level,
                        threshold=tier.teams,
                        reward=tier.reward,
                        title=tier.title,
                        team_size=counts.get(level, 0),
                        claimed=(level, tier.teams) in claimed,
                    )
                )
        return progress

    async def get_earnings(self, participant_id: int) -> list[EarningRecord]:
        """
        Credited commissions and milestone rewards, newest first.

        Failed commissions and milestones are excluded until the retry
        sweep completes them.

        Args:
            participant_id: Participant ID

        Returns:
            Earning records
        """
        commissions = await self.commission_repo.get_for_beneficiary(
            participant_id, status=PayoutStatus.COMPLETED
        )
        claims = await self.get_claimed_milestones(participant_id)

        records = [
            EarningRecord(
                kind="commission",
                amount=entry.amount,
                level=entry.level,
                description=f"Level {entry.level} Commission",
                created_at=entry.created_at,
                source_participant_id=entry.source_descendant_id,
            )
            for entry in commissions
        ]
        records.extend(
            EarningRecord(
                kind="milestone",
                amount=claim.reward_amount,
                level=claim.level,
                description=claim.title or f"Level {claim.level}: {claim.threshold} teams",
                created_at=claim.created_at,
            )
            for claim in claims
        )

        records.sort(key=lambda record: record.created_at, reverse=True)
        return records
