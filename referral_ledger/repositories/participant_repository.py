"""
Participant repository.

Data access layer for Participant model.
"""

from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.participant import Participant
from referral_ledger.repositories.base import BaseRepository


class ParticipantRepository(BaseRepository[Participant]):
    """Repository for participant operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Participant, session)

    async def mark_active(self, participant_id: int) -> bool:
        """
        Flip the activation flag from false to true.

        The WHERE clause makes the flip happen at most once even when two
        activations for the same participant race.

        Args:
            participant_id: Participant ID

        Returns:
            True if this call performed the flip
        """
        stmt = (
            update(Participant)
            .where(
                Participant.id == participant_id,
                Participant.is_active == False,  # noqa: E712
            )
            .values(is_active=True, activated_at=datetime.now(UTC))
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_active_ids(self, participant_ids: list[int]) -> set[int]:
        """
        Get IDs of currently active participants among the given ones.

        Args:
            participant_ids: Candidate IDs

        Returns:
            Set of active IDs
        """
        if not participant_ids:
            return set()

        stmt = select(Participant.id).where(
            Participant.id.in_(participant_ids),
            Participant.is_active == True,  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}

    async def get_sponsorship_state(
        self, participant_id: int
    ) -> tuple[int | None, bool] | None:
        """
        Read sponsor reference and activation flag straight from the table.

        Args:
            participant_id: Participant ID

        Returns:
            (sponsor_id, is_active), or None if the participant is unknown
        """
        stmt = select(Participant.sponsor_id, Participant.is_active).where(
            Participant.id == participant_id
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return row.sponsor_id, row.is_active
