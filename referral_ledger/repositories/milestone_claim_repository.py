"""
MilestoneClaim repository.

Data access layer for MilestoneClaim model.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import PayoutStatus
from referral_ledger.models.milestone_claim import MilestoneClaim
from referral_ledger.repositories.base import BaseRepository


class MilestoneClaimRepository(BaseRepository[MilestoneClaim]):
    """Repository for milestone claim operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(MilestoneClaim, session)

    async def get_claimed_thresholds(
        self, beneficiary_id: int, level: int
    ) -> set[int]:
        """
        Get thresholds already claimed on a level, failed claims included.

        Args:
            beneficiary_id: Participant ID
            level: Team level

        Returns:
            Set of claimed thresholds
        """
        stmt = select(MilestoneClaim.threshold).where(
            MilestoneClaim.beneficiary_id == beneficiary_id,
            MilestoneClaim.level == level,
        )
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}

    async def claim_exists(
        self, beneficiary_id: int, level: int, threshold: int
    ) -> bool:
        """Check the (beneficiary, level, threshold) guard."""
        return await self.exists(
            beneficiary_id=beneficiary_id, level=level, threshold=threshold
        )

    async def get_for_beneficiary(
        self, beneficiary_id: int, status: PayoutStatus | None = None
    ) -> list[MilestoneClaim]:
        """
        Get claims of a participant ordered by level and threshold.

        Args:
            beneficiary_id: Participant ID
            status: Restrict to one status

        Returns:
            Milestone claims
        """
        stmt = select(MilestoneClaim).where(
            MilestoneClaim.beneficiary_id == beneficiary_id
        )
        if status is not None:
            stmt = stmt.where(MilestoneClaim.status == status)
        stmt = stmt.order_by(
            MilestoneClaim.level.asc(), MilestoneClaim.threshold.asc()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_failed(self, limit: int = 100) -> list[MilestoneClaim]:
        """
        Get failed claims awaiting the retry sweep, oldest first.

        Args:
            limit: Max claims to return

        Returns:
            Failed milestone claims
        """
        stmt = (
            select(MilestoneClaim)
            .where(MilestoneClaim.status == PayoutStatus.FAILED)
            .order_by(MilestoneClaim.id.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_completed_if_failed(self, claim_id: int) -> bool:
        """
        Flip a failed claim to completed, at most once.

        Args:
            claim_id: Claim ID

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(MilestoneClaim)
            .where(
                MilestoneClaim.id == claim_id,
                MilestoneClaim.status == PayoutStatus.FAILED,
            )
            .values(
                status=PayoutStatus.COMPLETED,
                attempts=MilestoneClaim.attempts + 1,
                last_error=None,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def record_retry_failure(self, claim_id: int, error: str) -> None:
        """Bump attempt counter of a failed claim."""
        stmt = (
            update(MilestoneClaim)
            .where(MilestoneClaim.id == claim_id)
            .values(
                attempts=MilestoneClaim.attempts + 1,
                last_error=error,
            )
        )
        await self.session.execute(stmt)
