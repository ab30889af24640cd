"""
Exception types.

Structural errors abort a pipeline stage and reach the caller.
Per-item credit errors are caught by the stage that issued the credit.
"""


class ReferralLedgerError(Exception):
    """Base class for all referral ledger errors."""
    pass


class RewardPlanError(ReferralLedgerError):
    """Raised when the reward plan is malformed or violates the payout bound."""
    pass


class ParticipantNotFound(ReferralLedgerError):
    """Raised when an activation references an unknown participant."""

    def __init__(self, participant_id: int) -> None:
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} not found")


class InvalidSponsor(ReferralLedgerError):
    """Raised when the sponsor is missing, inactive or would form a cycle."""

    def __init__(self, sponsor_id: int | None, reason: str) -> None:
        self.sponsor_id = sponsor_id
        self.reason = reason
        super().__init__(f"Invalid sponsor {sponsor_id}: {reason}")


class TreeAlreadyBuilt(ReferralLedgerError):
    """Raised when a chain already exists for the participant."""

    def __init__(self, participant_id: int, edge_count: int) -> None:
        self.participant_id = participant_id
        self.edge_count = edge_count
        super().__init__(
            f"Ancestor chain already built for participant {participant_id} "
            f"({edge_count} edges)"
        )


class TreeNotBuilt(ReferralLedgerError):
    """Raised when commissions are requested for a participant without a chain."""

    def __init__(self, participant_id: int) -> None:
        self.participant_id = participant_id
        super().__init__(
            f"No ancestor chain for participant {participant_id}"
        )


class LedgerCreditFailed(ReferralLedgerError):
    """Raised when the wallet ledger rejects a credit. Retryable."""

    def __init__(self, participant_id: int, reason: str) -> None:
        self.participant_id = participant_id
        self.reason = reason
        super().__init__(
            f"Wallet credit failed for participant {participant_id}: {reason}"
        )


class InsufficientBalance(ReferralLedgerError):
    """Raised when a debit would take the wallet below zero."""

    def __init__(self, participant_id: int) -> None:
        self.participant_id = participant_id
        super().__init__(
            f"Insufficient balance for participant {participant_id}"
        )
