"""
Referral tree builder.

Extends the materialized ancestor closure by one leaf per activation.
The new participant's chain is the sponsor at level 1 followed by the
sponsor's own chain shifted down one level, so building a chain costs a
single read and a single bulk insert regardless of depth.
"""

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.reward_plan import RewardPlan
from referral_ledger.repositories.ancestor_edge_repository import (
    AncestorEdgeRepository,
)
from referral_ledger.repositories.participant_repository import (
    ParticipantRepository,
)
from referral_ledger.utils.exceptions import (
    InvalidSponsor,
    TreeAlreadyBuilt,
    TreeNotBuilt,
)


class ReferralTreeBuilder:
    """Builds ancestor chains for newly activated participants."""

    def __init__(self, session: AsyncSession, plan: RewardPlan) -> None:
        """
        Initialize tree builder.

        Args:
            session: Async database session
            plan: Reward plan (provides max_depth)
        """
        self.session = session
        self.plan = plan
        self.edge_repo = AncestorEdgeRepository(session)
        self.participant_repo = ParticipantRepository(session)

    async def extend_tree(
        self, new_participant_id: int, sponsor_id: int
    ) -> int:
        """
        Materialize the ancestor chain of a new participant.

        Args:
            new_participant_id: Participant being activated
            sponsor_id: Direct sponsor

        Returns:
            Number of edges written

        Raises:
            InvalidSponsor: Sponsor missing, inactive, self or in a cycle
            TreeAlreadyBuilt: Chain already exists (treat as success)
            TreeNotBuilt: Sponsor's own chain is still being built
        """
        if new_participant_id == sponsor_id:
            raise InvalidSponsor(
                sponsor_id, "participant cannot sponsor themselves"
            )

        existing = await self.edge_repo.count_chain(new_participant_id)
        if existing:
            logger.warning(
                "Ancestor chain already built, skipping",
                extra={
                    "participant_id": new_participant_id,
                    "edge_count": existing,
                },
            )
            raise TreeAlreadyBuilt(new_participant_id, existing)

        state = await self.participant_repo.get_sponsorship_state(sponsor_id)
        if state is None:
            raise InvalidSponsor(sponsor_id, "sponsor not found")

        sponsor_parent_id, sponsor_active = state
        if not sponsor_active:
            raise InvalidSponsor(sponsor_id, "sponsor is not active")

        sponsor_chain = await self.edge_repo.get_chain(
            sponsor_id, max_level=self.plan.max_depth - 1
        )

        if sponsor_parent_id is not None and not sponsor_chain:
            await self._check_sponsor_chain_pending(
                sponsor_id, sponsor_parent_id
            )

        ancestors = [(sponsor_id, 1)]
        ancestors.extend(
            (edge.ancestor_id, edge.level + 1) for edge in sponsor_chain
        )

        if any(ancestor_id == new_participant_id for ancestor_id, _ in ancestors):
            logger.warning(
                "Referral loop detected",
                extra={
                    "new_participant_id": new_participant_id,
                    "sponsor_id": sponsor_id,
                    "chain_ids": [ancestor_id for ancestor_id, _ in ancestors],
                },
            )
            raise InvalidSponsor(sponsor_id, "sponsorship would form a cycle")

        try:
            written = await self.edge_repo.add_chain(
                new_participant_id, ancestors
            )
            await self.session.commit()
        except IntegrityError:
            # Concurrent build of the same chain won the race
            await self.session.rollback()
            existing = await self.edge_repo.count_chain(new_participant_id)
            raise TreeAlreadyBuilt(new_participant_id, existing) from None

        logger.info(
            "Ancestor chain created",
            extra={
                "participant_id": new_participant_id,
                "sponsor_id": sponsor_id,
                "levels_created": written,
            },
        )

        return written

    async def _check_sponsor_chain_pending(
        self, sponsor_id: int, sponsor_parent_id: int
    ) -> None:
        """
        Decide whether a sponsor without a chain blocks the build.

        While the sponsor's own sponsor is active, the sponsor's chain is
        still coming (its activation is in flight or will be redelivered),
        and copying now would freeze a truncated chain. Otherwise the
        sponsor's chain can never be built, and the new chain stops at
        the sponsor.

        Raises:
            TreeNotBuilt: Sponsor's chain is still pending
        """
        parent_state = await self.participant_repo.get_sponsorship_state(
            sponsor_parent_id
        )
        if parent_state is not None and parent_state[1]:
            raise TreeNotBuilt(sponsor_id)

        logger.warning(
            "Sponsor has no ancestor chain, building from sponsor only",
            extra={
                "sponsor_id": sponsor_id,
                "sponsor_parent_id": sponsor_parent_id,
            },
        )
