"""
Wallet ledger.

The contract this package consumes from the account subsystem, and the
SQL adapter that fulfils it against the participants table. Every
mutation is a single UPDATE with the arithmetic inside the statement;
no code path reads a balance and writes back a computed value.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.participant import Participant
from referral_ledger.utils.exceptions import (
    InsufficientBalance,
    LedgerCreditFailed,
    ParticipantNotFound,
)


@dataclass(frozen=True)
class WalletSnapshot:
    """Point-in-time wallet state."""

    participant_id: int
    balance: Decimal
    lifetime_earned: Decimal
    lifetime_withdrawn: Decimal


class WalletLedger(Protocol):
    """
    Atomic wallet operations.

    Implementations join the caller's transaction and never commit, so a
    credit and the record that justifies it become durable together.
    """

    async def credit(self, participant_id: int, amount: Decimal) -> None:
        """Add amount to balance and lifetime earnings."""
        ...

    async def debit(self, participant_id: int, amount: Decimal) -> None:
        """Remove amount from balance and add it to lifetime withdrawals."""
        ...

    async def get_balance(self, participant_id: int) -> WalletSnapshot:
        """Read current wallet state."""
        ...


class SqlWalletLedger:
    """WalletLedger backed by the participants table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger."""
        self.session = session

    async def credit(self, participant_id: int, amount: Decimal) -> None:
        """
        Atomically credit a wallet.

        Args:
            participant_id: Wallet owner
            amount: Positive amount

        Raises:
            ValueError: Non-positive amount
            LedgerCreditFailed: Unknown participant or database error
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        stmt = (
            update(Participant)
            .where(Participant.id == participant_id)
            .values(
                wallet_balance=Participant.wallet_balance + amount,
                lifetime_earned=Participant.lifetime_earned + amount,
            )
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise LedgerCreditFailed(participant_id, str(e)) from e

        if result.rowcount == 0:
            raise LedgerCreditFailed(participant_id, "wallet not found")

        logger.debug(
            "Wallet credited",
            extra={"participant_id": participant_id, "amount": str(amount)},
        )

    async def debit(self, participant_id: int, amount: Decimal) -> None:
        """
        Atomically debit a wallet.

        The balance guard lives in the WHERE clause, so two concurrent
        debits can never overdraw the wallet.

        Args:
            participant_id: Wallet owner
            amount: Positive amount

        Raises:
            ValueError: Non-positive amount
            ParticipantNotFound: Unknown participant
            InsufficientBalance: Balance lower than amount
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")

        stmt = (
            update(Participant)
            .where(
                Participant.id == participant_id,
                Participant.wallet_balance >= amount,
            )
            .values(
                wallet_balance=Participant.wallet_balance - amount,
                lifetime_withdrawn=Participant.lifetime_withdrawn + amount,
            )
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            exists = await self.session.scalar(
                select(Participant.id).where(Participant.id == participant_id)
            )
            if exists is None:
                raise ParticipantNotFound(participant_id)
            raise InsufficientBalance(participant_id)

        logger.debug(
            "Wallet debited",
            extra={"participant_id": participant_id, "amount": str(amount)},
        )

    async def get_balance(self, participant_id: int) -> WalletSnapshot:
        """
        Read wallet state.

        Args:
            participant_id: Wallet owner

        Returns:
            WalletSnapshot

        Raises:
            ParticipantNotFound: Unknown participant
        """
        stmt = select(
            Participant.wallet_balance,
            Participant.lifetime_earned,
            Participant.lifetime_withdrawn,
        ).where(Participant.id == participant_id)
        result = await self.session.execute(stmt)
        row = result.one_or_none()

        if row is None:
            raise ParticipantNotFound(participant_id)

        return WalletSnapshot(
            participant_id=participant_id,
            balance=Decimal(str(row.wallet_balance)),
            lifetime_earned=Decimal(str(row.lifetime_earned)),
            lifetime_withdrawn=Decimal(str(row.lifetime_withdrawn)),
        )
