"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from referral_ledger.models.ancestor_edge import AncestorEdge
from referral_ledger.models.base import Base
from referral_ledger.models.commission_entry import CommissionEntry
from referral_ledger.models.enums import PayoutStatus
from referral_ledger.models.milestone_claim import MilestoneClaim
from referral_ledger.models.participant import Participant


__all__ = [
    "AncestorEdge",
    "Base",
    "CommissionEntry",
    "MilestoneClaim",
    "Participant",
    "PayoutStatus",
]
