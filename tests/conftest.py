"""Pytest configuration and shared fixtures for all tests."""

import os

# Minimal environment for settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", "logs/test_referral_ledger.log")

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from referral_ledger.config.database import create_session_maker
from referral_ledger.config.reward_plan import RewardPlan
from referral_ledger.models import Base, Participant
from referral_ledger.services.referral import ReferralTreeBuilder
from referral_ledger.services.wallet_ledger import SqlWalletLedger
from referral_ledger.utils.exceptions import LedgerCreditFailed


@pytest.fixture
def plan() -> RewardPlan:
    """Small reward plan: depth 5, three paid levels, milestones on 1 and 2."""
    return RewardPlan(
        activation_fee=Decimal("295"),
        welcome_bonus=Decimal("50"),
        max_depth=5,
        max_commission_level=3,
        level_rates={
            1: {"percentage": "10", "max_amount": "25"},
            2: {"percentage": "5", "max_amount": "10"},
            3: {"amount": "5"},
        },
        milestones={
            1: [
                {"teams": 5, "reward": "50", "title": "5 Direct Teams"},
                {"teams": 10, "reward": "100", "title": "10 Direct Teams"},
            ],
            2: [{"teams": 3, "reward": "20"}],
        },
        min_withdrawal_amount=Decimal("500"),
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    )
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session maker bound to the test database."""
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    """Async session for one test."""
    async with session_maker() as db_session:
        yield db_session


@pytest.fixture
def make_participant(session):
    """Factory inserting a participant and returning its ID."""

    async def _make(
        sponsor_id: int | None = None,
        is_active: bool = False,
        balance: Decimal = Decimal("0"),
    ) -> int:
        participant = Participant(
            sponsor_id=sponsor_id,
            is_active=is_active,
            wallet_balance=balance,
        )
        session.add(participant)
        await session.commit()
        return participant.id

    return _make


@pytest.fixture
def balance_of(session):
    """Read a wallet balance straight from the table."""
    ledger = SqlWalletLedger(session)

    async def _balance(participant_id: int) -> Decimal:
        snapshot = await ledger.get_balance(participant_id)
        return snapshot.balance

    return _balance


class FlakyLedger(SqlWalletLedger):
    """SqlWalletLedger that rejects credits for selected participants or credits."""

    def __init__(self, session, failing_ids=()) -> None:
        super().__init__(session)
        self.failing_ids = set(failing_ids)
        self.failing_credits = set()
        self.credit_calls = []
        self.reason = "wallet service unavailable"

    async def credit(self, participant_id: int, amount: Decimal) -> None:
        self.credit_calls.append((participant_id, amount))
        if (
            participant_id in self.failing_ids
            or (participant_id, amount) in self.failing_credits
        ):
            raise LedgerCreditFailed(participant_id, self.reason)
        await super().credit(participant_id, amount)


@pytest.fixture
def flaky_ledger(session):
    """Ledger whose failing participants are set by the test."""
    return FlakyLedger(session)


@pytest.fixture
def build_chain(session, plan, make_participant):
    """
    Factory building a linear sponsorship chain of active participants.

    Returns IDs root first; every member below the root has its ancestor
    chain materialized.
    """

    async def _build(length: int, sponsor_id: int | None = None) -> list[int]:
        builder = ReferralTreeBuilder(session, plan)
        ids = []
        if sponsor_id is None:
            ids.append(await make_participant(is_active=True))
        else:
            ids.append(sponsor_id)
        while len(ids) < length:
            child_id = await make_participant(sponsor_id=ids[-1], is_active=True)
            await builder.extend_tree(child_id, ids[-1])
            ids.append(child_id)
        return ids

    return _build


@pytest.fixture
def add_downline(session, plan, make_participant):
    """Factory adding `count` active direct referrals under a sponsor."""

    async def _add(sponsor_id: int, count: int) -> list[int]:
        builder = ReferralTreeBuilder(session, plan)
        ids = []
        for _ in range(count):
            child_id = await make_participant(sponsor_id=sponsor_id, is_active=True)
            await builder.extend_tree(child_id, sponsor_id)
            ids.append(child_id)
        return ids

    return _add
