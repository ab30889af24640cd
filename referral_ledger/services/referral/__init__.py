"""
Referral services package.

Contains the activation-time reward stages and read queries:
- tree_builder: extends the ancestor closure
- commission_distributor: pays the upline, retry sweep
- milestone_engine: team-size milestone rewards
- query_manager: team, upline and earnings queries
"""

from referral_ledger.services.referral.commission_distributor import (
    CommissionDistributor,
    DistributionResult,
    PayoutFailure,
    RetrySummary,
)
from referral_ledger.services.referral.milestone_engine import (
    MilestoneFailure,
    MilestoneResult,
    MilestoneRewardEngine,
)
from referral_ledger.services.referral.query_manager import (
    EarningRecord,
    MilestoneProgress,
    ReferralQueryManager,
    TeamMember,
)
from referral_ledger.services.referral.tree_builder import ReferralTreeBuilder


__all__ = [
    # Stages
    "ReferralTreeBuilder",
    "CommissionDistributor",
    "MilestoneRewardEngine",
    # Queries
    "ReferralQueryManager",
    # Results
    "DistributionResult",
    "PayoutFailure",
    "RetrySummary",
    "MilestoneResult",
    "MilestoneFailure",
    "TeamMember",
    "EarningRecord",
    "MilestoneProgress",
]
