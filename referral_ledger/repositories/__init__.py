"""
Repositories.

Async data access for the referral ledger tables.
"""

from referral_ledger.repositories.ancestor_edge_repository import (
    AncestorEdgeRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.milestone_claim_repository import (
    MilestoneClaimRepository,
)
from referral_ledger.repositories.participant_repository import (
    ParticipantRepository,
)


__all__ = [
    "AncestorEdgeRepository",
    "CommissionRepository",
    "MilestoneClaimRepository",
    "ParticipantRepository",
]
