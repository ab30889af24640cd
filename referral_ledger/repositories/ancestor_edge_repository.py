"""
AncestorEdge repository.

Data access layer for the materialized ancestor closure.
"""

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.ancestor_edge import AncestorEdge
from referral_ledger.models.participant import Participant
from referral_ledger.repositories.base import BaseRepository


class AncestorEdgeRepository(BaseRepository[AncestorEdge]):
    """Repository for ancestor edge operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(AncestorEdge, session)

    async def get_chain(
        self, descendant_id: int, max_level: int | None = None
    ) -> list[AncestorEdge]:
        """
        Get ancestor chain of a participant.

        Args:
            descendant_id: Participant whose upline is requested
            max_level: Deepest level to include (all when None)

        Returns:
            Edges ordered by level, nearest sponsor first
        """
        stmt = select(AncestorEdge).where(
            AncestorEdge.descendant_id == descendant_id
        )
        if max_level is not None:
            stmt = stmt.where(AncestorEdge.level <= max_level)
        stmt = stmt.order_by(AncestorEdge.level.asc())

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_chain(self, descendant_id: int) -> int:
        """
        Count edges stored for a participant.

        Args:
            descendant_id: Participant ID

        Returns:
            Number of ancestor edges
        """
        return await self.count(descendant_id=descendant_id)

    async def add_chain(
        self, descendant_id: int, ancestors: list[tuple[int, int]]
    ) -> int:
        """
        Insert the whole chain of a participant in one statement.

        Args:
            descendant_id: New participant ID
            ancestors: (ancestor_id, level) pairs

        Returns:
            Number of edges written
        """
        if not ancestors:
            return 0

        rows = [
            {
                "descendant_id": descendant_id,
                "ancestor_id": ancestor_id,
                "level": level,
            }
            for ancestor_id, level in ancestors
        ]
        await self.session.execute(insert(AncestorEdge), rows)
        return len(rows)

    async def count_at_level(self, ancestor_id: int, level: int) -> int:
        """
        Count descendants exactly `level` hops below a participant.

        Args:
            ancestor_id: Participant ID
            level: Level to count

        Returns:
            Team size at that level
        """
        return await self.count(ancestor_id=ancestor_id, level=level)

    async def get_level_counts(
        self, ancestor_id: int, max_level: int
    ) -> dict[int, int]:
        """
        Get team counts for all levels in a single query.

        Args:
            ancestor_id: Participant ID
            max_level: Deepest level to report

        Returns:
            Dict mapping level to count, zero-filled for 1..max_level
        """
        stmt = (
            select(
                AncestorEdge.level,
                func.count(AncestorEdge.id).label("team_size"),
            )
            .where(
                AncestorEdge.ancestor_id == ancestor_id,
                AncestorEdge.level <= max_level,
            )
            .group_by(AncestorEdge.level)
        )

        result = await self.session.execute(stmt)

        level_counts = {level: 0 for level in range(1, max_level + 1)}
        for row in result.all():
            level_counts[row.level] = row.team_size

        return level_counts

    async def get_team(
        self, ancestor_id: int, level: int | None = None
    ) -> list[tuple[int, int, bool]]:
        """
        Get downline members of a participant.

        Args:
            ancestor_id: Participant ID
            level: Restrict to one level (all levels when None)

        Returns:
            (descendant_id, level, is_active) tuples ordered by level
        """
        stmt = (
            select(
                AncestorEdge.descendant_id,
                AncestorEdge.level,
                Participant.is_active,
            )
            .join(Participant, Participant.id == AncestorEdge.descendant_id)
            .where(AncestorEdge.ancestor_id == ancestor_id)
        )
        if level is not None:
            stmt = stmt.where(AncestorEdge.level == level)
        stmt = stmt.order_by(
            AncestorEdge.level.asc(), AncestorEdge.descendant_id.asc()
        )

        result = await self.session.execute(stmt)
        return [
            (row.descendant_id, row.level, row.is_active)
            for row in result.all()
        ]
