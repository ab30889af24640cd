"""
Integration tests for the activation pipeline.

Covers:
- Root and sponsored activations
- Welcome bonus paid once
- Event redelivery
- Sponsor validation against the registered sponsor
- Sponsors stranded under an inactive sponsor
- Milestones reached through activations
"""

from decimal import Decimal

import pytest

from referral_ledger.services import ActivationEvent, ActivationService
from referral_ledger.utils.exceptions import InvalidSponsor, ParticipantNotFound

FEE = Decimal("295")


def _event(participant_id, sponsor_id, payment_id="pay_1"):
    return ActivationEvent(
        new_participant_id=participant_id,
        sponsor_id=sponsor_id,
        payment_id=payment_id,
        fee_amount=FEE,
    )


class TestActivationService:
    """Test activation event processing."""

    @pytest.mark.asyncio
    async def test_root_activation(self, session, plan, make_participant, balance_of):
        """Root participant gets the welcome bonus and no tree."""
        root_id = await make_participant()
        service = ActivationService(session, plan)

        result = await service.process(_event(root_id, None))

        assert result.newly_activated is True
        assert result.welcome_bonus == Decimal("50")
        assert result.distribution is None
        assert await balance_of(root_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_sponsored_activation(
        self, session, plan, make_participant, balance_of
    ):
        """Sponsor earns 25, the new participant gets the welcome bonus."""
        service = ActivationService(session, plan)
        sponsor_id = await make_participant()
        await service.process(_event(sponsor_id, None, "pay_root"))
        new_id = await make_participant(sponsor_id=sponsor_id)

        result = await service.process(_event(new_id, sponsor_id))

        assert result.newly_activated is True
        assert result.edges_written == 1
        assert len(result.distribution.entries) == 1
        assert result.pending_retry is False
        assert await balance_of(sponsor_id) == Decimal("75")
        assert await balance_of(new_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_redelivered_event_is_noop(
        self, session, plan, make_participant, balance_of
    ):
        """Processing the same event twice changes nothing the second time."""
        service = ActivationService(session, plan)
        sponsor_id = await make_participant()
        await service.process(_event(sponsor_id, None, "pay_root"))
        new_id = await make_participant(sponsor_id=sponsor_id)
        event = _event(new_id, sponsor_id)
        await service.process(event)

        again = await service.process(event)

        assert again.newly_activated is False
        assert again.welcome_bonus == Decimal("0")
        assert again.tree_already_built is True
        assert again.distribution.duplicate is True
        assert await balance_of(sponsor_id) == Decimal("75")
        assert await balance_of(new_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_unknown_participant(self, session, plan):
        """Unknown participant is rejected."""
        service = ActivationService(session, plan)

        with pytest.raises(ParticipantNotFound):
            await service.process(_event(9999, None))

    @pytest.mark.asyncio
    async def test_sponsor_mismatch(self, session, plan, make_participant, balance_of):
        """Event sponsor must match the registered sponsor."""
        sponsor_id = await make_participant(is_active=True)
        other_id = await make_participant(is_active=True)
        new_id = await make_participant(sponsor_id=sponsor_id)
        service = ActivationService(session, plan)

        with pytest.raises(InvalidSponsor):
            await service.process(_event(new_id, other_id))

        assert await balance_of(new_id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_inactive_sponsor_aborts(self, session, plan, make_participant):
        """Inactive sponsor stops the pipeline before any commission."""
        sponsor_id = await make_participant(is_active=False)
        new_id = await make_participant(sponsor_id=sponsor_id)
        service = ActivationService(session, plan)

        with pytest.raises(InvalidSponsor):
            await service.process(_event(new_id, sponsor_id))

    @pytest.mark.asyncio
    async def test_downline_of_stranded_sponsor_activates(
        self, session, plan, make_participant, balance_of
    ):
        """Sponsor activated under an inactive sponsor can still sponsor others."""
        service = ActivationService(session, plan)
        grand_id = await make_participant()
        sponsor_id = await make_participant(sponsor_id=grand_id)

        with pytest.raises(InvalidSponsor):
            await service.process(_event(sponsor_id, grand_id, "pay_sponsor"))

        assert await balance_of(sponsor_id) == Decimal("50")

        new_id = await make_participant(sponsor_id=sponsor_id)
        result = await service.process(_event(new_id, sponsor_id))

        assert result.edges_written == 1
        assert result.pending_retry is False
        assert await balance_of(sponsor_id) == Decimal("75")
        assert await balance_of(new_id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_fifth_activation_triggers_milestone(
        self, session, plan, make_participant, balance_of
    ):
        """Five direct activations pay 5 x 25 commission plus the 50 milestone."""
        service = ActivationService(session, plan)
        sponsor_id = await make_participant()
        await service.process(_event(sponsor_id, None, "pay_root"))

        results = []
        for index in range(5):
            child_id = await make_participant(sponsor_id=sponsor_id)
            results.append(
                await service.process(_event(child_id, sponsor_id, f"pay_{index}"))
            )

        granted = [
            claim
            for result in results
            for milestone in result.milestones
            for claim in milestone.claims
        ]
        assert [(c.beneficiary_id, c.threshold) for c in granted] == [
            (sponsor_id, 5)
        ]
        assert results[-1].milestones[0].claims == granted
        # 50 welcome + 5 * 25 commission + 50 milestone
        assert await balance_of(sponsor_id) == Decimal("225")

    @pytest.mark.asyncio
    async def test_failed_commission_pending_retry(
        self, session, plan, make_participant, flaky_ledger
    ):
        """Credit failure is reported, not raised."""
        service = ActivationService(session, plan, flaky_ledger)
        sponsor_id = await make_participant()
        await service.process(_event(sponsor_id, None, "pay_root"))
        new_id = await make_participant(sponsor_id=sponsor_id)
        flaky_ledger.failing_ids.add(sponsor_id)

        result = await service.process(_event(new_id, sponsor_id))

        assert result.newly_activated is True
        assert result.pending_retry is True
        assert [f.beneficiary_id for f in result.distribution.failed] == [sponsor_id]
