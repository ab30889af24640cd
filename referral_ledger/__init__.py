"""
referral-ledger.

Multi-level referral reward ledger: ancestor closure maintenance,
per-activation commission payouts and team-size milestone rewards.
"""

__version__ = "1.0.0"
