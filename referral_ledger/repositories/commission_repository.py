"""
Commission repository.

Data access layer for CommissionEntry model.
"""

from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.commission_entry import CommissionEntry
from referral_ledger.models.enums import PayoutStatus
from referral_ledger.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[CommissionEntry]):
    """Repository for commission entry operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(CommissionEntry, session)

    async def get_for_payment(
        self, source_descendant_id: int, payment_id: str
    ) -> list[CommissionEntry]:
        """
        Get all entries produced by one payment.

        Args:
            source_descendant_id: Participant who paid the fee
            payment_id: Payment identifier

        Returns:
            Entries ordered by level
        """
        stmt = (
            select(CommissionEntry)
            .where(
                CommissionEntry.source_descendant_id == source_descendant_id,
                CommissionEntry.payment_id == payment_id,
            )
            .order_by(CommissionEntry.level.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_processed_beneficiaries(
        self, source_descendant_id: int, payment_id: str
    ) -> set[int]:
        """
        Get beneficiaries that already have an entry for a payment.

        Args:
            source_descendant_id: Participant who paid the fee
            payment_id: Payment identifier

        Returns:
            Set of beneficiary IDs
        """
        stmt = select(CommissionEntry.beneficiary_id).where(
            CommissionEntry.source_descendant_id == source_descendant_id,
            CommissionEntry.payment_id == payment_id,
        )
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}

    async def entry_exists(
        self,
        source_descendant_id: int,
        payment_id: str,
        beneficiary_id: int,
    ) -> bool:
        """Check the (source, payment, beneficiary) guard."""
        return await self.exists(
            source_descendant_id=source_descendant_id,
            payment_id=payment_id,
            beneficiary_id=beneficiary_id,
        )

    async def get_failed(self, limit: int = 100) -> list[CommissionEntry]:
        """
        Get failed entries awaiting the retry sweep, oldest first.

        Args:
            limit: Max entries to return

        Returns:
            Failed commission entries
        """
        stmt = (
            select(CommissionEntry)
            .where(CommissionEntry.status == PayoutStatus.FAILED)
            .order_by(CommissionEntry.id.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_completed_if_failed(self, entry_id: int) -> bool:
        """
        Flip a failed entry to completed.

        Guarded on the current status so that concurrent sweeps complete
        an entry at most once.

        Args:
            entry_id: Entry ID

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(CommissionEntry)
            .where(
                CommissionEntry.id == entry_id,
                CommissionEntry.status == PayoutStatus.FAILED,
            )
            .values(
                status=PayoutStatus.COMPLETED,
                attempts=CommissionEntry.attempts + 1,
                last_error=None,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def record_retry_failure(self, entry_id: int, error: str) -> None:
        """
        Bump attempt counter of a failed entry.

        Args:
            entry_id: Entry ID
            error: Failure reason
        """
        stmt = (
            update(CommissionEntry)
            .where(CommissionEntry.id == entry_id)
            .values(
                attempts=CommissionEntry.attempts + 1,
                last_error=error,
            )
        )
        await self.session.execute(stmt)

    async def get_for_beneficiary(
        self, beneficiary_id: int, status: PayoutStatus | None = None
    ) -> list[CommissionEntry]:
        """
        Get entries paid to a participant, newest first.

        Args:
            beneficiary_id: Participant ID
            status: Restrict to one status

        Returns:
            Commission entries
        """
        stmt = select(CommissionEntry).where(
            CommissionEntry.beneficiary_id == beneficiary_id
        )
        if status is not None:
            stmt = stmt.where(CommissionEntry.status == status)
        stmt = stmt.order_by(
            CommissionEntry.created_at.desc(), CommissionEntry.id.desc()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def total_for_payment(
        self, source_descendant_id: int, payment_id: str
    ) -> Decimal:
        """
        Sum of amounts recorded for one payment (any status).

        Args:
            source_descendant_id: Participant who paid the fee
            payment_id: Payment identifier

        Returns:
            Total amount
        """
        stmt = select(
            func.coalesce(func.sum(CommissionEntry.amount), 0)
        ).where(
            CommissionEntry.source_descendant_id == source_descendant_id,
            CommissionEntry.payment_id == payment_id,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
