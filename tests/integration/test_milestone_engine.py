"""
Integration tests for MilestoneRewardEngine.

Covers:
- Threshold crossing pays exactly once
- Jumping several thresholds in one pass
- Deeper levels
- Failed credits reserved for the retry sweep
- Titles and failure reasons are logged as data
"""

from decimal import Decimal

import pytest

from referral_ledger.config.reward_plan import RewardPlan
from referral_ledger.models import PayoutStatus
from referral_ledger.repositories import MilestoneClaimRepository
from referral_ledger.services.referral import MilestoneRewardEngine


class TestEvaluateAndReward:
    """Test milestone evaluation."""

    @pytest.mark.asyncio
    async def test_below_first_threshold(
        self, session, plan, make_participant, add_downline
    ):
        """Four direct referrals earn nothing."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 4)
        engine = MilestoneRewardEngine(session, plan)

        result = await engine.evaluate_and_reward(sponsor_id)

        assert result.claims == []
        assert result.failed == []

    @pytest.mark.asyncio
    async def test_fifth_referral_crosses_threshold_once(
        self, session, plan, make_participant, add_downline, balance_of
    ):
        """5th activation pays the 5-team reward, the 6th does not re-trigger."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 4)
        engine = MilestoneRewardEngine(session, plan)
        await engine.evaluate_and_reward(sponsor_id)

        await add_downline(sponsor_id, 1)
        fifth = await engine.evaluate_and_reward(sponsor_id)

        assert len(fifth.claims) == 1
        claim = fifth.claims[0]
        assert (claim.beneficiary_id, claim.level, claim.threshold) == (
            sponsor_id,
            1,
            5,
        )
        assert claim.reward_amount == Decimal("50")
        assert claim.title == "5 Direct Teams"

        await add_downline(sponsor_id, 1)
        sixth = await engine.evaluate_and_reward(sponsor_id)

        assert sixth.claims == []
        claims = await MilestoneClaimRepository(session).get_for_beneficiary(
            sponsor_id
        )
        assert len(claims) == 1
        assert await balance_of(sponsor_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_repeated_evaluation_pays_once(
        self, session, plan, make_participant, add_downline, balance_of
    ):
        """N evaluations after crossing pay a single reward."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 5)
        engine = MilestoneRewardEngine(session, plan)

        granted = 0
        for _ in range(4):
            result = await engine.evaluate_and_reward(sponsor_id)
            granted += len(result.claims)

        assert granted == 1
        assert await balance_of(sponsor_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_jump_over_several_thresholds(
        self, session, plan, make_participant, add_downline, balance_of
    ):
        """Going from 0 to 10 in one pass grants both tiers."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 10)
        engine = MilestoneRewardEngine(session, plan)

        result = await engine.evaluate_and_reward(sponsor_id)

        assert [claim.threshold for claim in result.claims] == [5, 10]
        assert result.total_rewarded == Decimal("150")
        assert await balance_of(sponsor_id) == Decimal("150")

    @pytest.mark.asyncio
    async def test_level_two_milestone(
        self, session, plan, build_chain, add_downline, balance_of
    ):
        """Team counted at level 2 triggers the level-2 tier."""
        root_id, direct_id = await build_chain(2)
        await add_downline(direct_id, 3)
        engine = MilestoneRewardEngine(session, plan)

        result = await engine.evaluate_and_reward(root_id)

        assert [(c.level, c.threshold) for c in result.claims] == [(2, 3)]
        assert result.claims[0].title is None
        assert await balance_of(root_id) == Decimal("20")

    @pytest.mark.asyncio
    async def test_failed_credit_reserved_for_sweep(
        self, session, plan, make_participant, add_downline, flaky_ledger, balance_of
    ):
        """Failed credit leaves a failed claim that only the sweep pays."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 5)
        flaky_ledger.failing_ids.add(sponsor_id)
        engine = MilestoneRewardEngine(session, plan, flaky_ledger)

        failed = await engine.evaluate_and_reward(sponsor_id)

        assert failed.claims == []
        assert [(f.level, f.threshold) for f in failed.failed] == [(1, 5)]
        claims = await MilestoneClaimRepository(session).get_for_beneficiary(
            sponsor_id
        )
        assert [(c.threshold, c.status) for c in claims] == [
            (5, PayoutStatus.FAILED)
        ]
        assert claims[0].last_error == "wallet service unavailable"
        assert await balance_of(sponsor_id) == Decimal("0")

        flaky_ledger.failing_ids.clear()
        again = await engine.evaluate_and_reward(sponsor_id)

        assert again.claims == []
        assert again.failed == []
        assert await balance_of(sponsor_id) == Decimal("0")

        summary = await engine.retry_failed()

        assert (summary.retried, summary.completed) == (1, 1)
        assert summary.beneficiary_ids == [sponsor_id]
        assert await balance_of(sponsor_id) == Decimal("50")
        session.expunge_all()
        claims = await MilestoneClaimRepository(session).get_for_beneficiary(
            sponsor_id
        )
        assert claims[0].status == PayoutStatus.COMPLETED
        assert claims[0].attempts == 2
        assert claims[0].last_error is None

    @pytest.mark.asyncio
    async def test_retry_sweep_keeps_failing_claim(
        self, session, plan, make_participant, add_downline, flaky_ledger, balance_of
    ):
        """Claim stays failed while the wallet keeps rejecting the credit."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 5)
        flaky_ledger.failing_ids.add(sponsor_id)
        engine = MilestoneRewardEngine(session, plan, flaky_ledger)
        await engine.evaluate_and_reward(sponsor_id)

        summary = await engine.retry_failed()

        assert (summary.retried, summary.completed, summary.still_failed) == (
            1,
            0,
            1,
        )
        session.expunge_all()
        failed = await MilestoneClaimRepository(session).get_failed()
        assert len(failed) == 1
        assert failed[0].attempts == 2
        assert await balance_of(sponsor_id) == Decimal("0")

        flaky_ledger.failing_ids.clear()
        await engine.retry_failed()
        await engine.retry_failed()

        assert await balance_of(sponsor_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_title_with_braces(
        self, session, make_participant, add_downline, balance_of
    ):
        """Titles are data, never format templates."""
        braced = RewardPlan(
            activation_fee=Decimal("295"),
            welcome_bonus=Decimal("50"),
            max_depth=5,
            max_commission_level=1,
            level_rates={1: {"percentage": "10", "max_amount": "25"}},
            milestones={1: [{"teams": 5, "reward": "50", "title": "{gold} club"}]},
        )
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 5)
        engine = MilestoneRewardEngine(session, braced)

        result = await engine.evaluate_and_reward(sponsor_id)

        assert [c.title for c in result.claims] == ["{gold} club"]
        assert await balance_of(sponsor_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_failure_reason_with_braces(
        self, session, plan, make_participant, add_downline, flaky_ledger
    ):
        """Failure reasons containing braces are recorded as given."""
        sponsor_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 5)
        flaky_ledger.failing_ids.add(sponsor_id)
        flaky_ledger.reason = "upstream {timeout}"
        engine = MilestoneRewardEngine(session, plan, flaky_ledger)

        result = await engine.evaluate_and_reward(sponsor_id)

        assert [f.reason for f in result.failed] == ["upstream {timeout}"]
        failed = await MilestoneClaimRepository(session).get_failed()
        assert failed[0].last_error == "upstream {timeout}"

    @pytest.mark.asyncio
    async def test_evaluate_many_deduplicates(
        self, session, plan, make_participant, add_downline
    ):
        """Each participant is evaluated once."""
        sponsor_id = await make_participant(is_active=True)
        other_id = await make_participant(is_active=True)
        await add_downline(sponsor_id, 5)
        engine = MilestoneRewardEngine(session, plan)

        results = await engine.evaluate_many([sponsor_id, other_id, sponsor_id])

        assert [r.participant_id for r in results] == [sponsor_id, other_id]
        assert len(results[0].claims) == 1
        assert results[1].claims == []
