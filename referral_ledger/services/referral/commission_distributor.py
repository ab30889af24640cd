"""
Commission distributor.

Pays the upline of a newly activated participant. Each payout is its own
unit of work: the CommissionEntry row and the wallet credit commit
together, and the unique (source, payment, beneficiary) constraint makes
a second attempt for the same triple a no-op. A failed credit never
undoes credits already applied to other ancestors.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.reward_plan import RewardPlan
from referral_ledger.models.commission_entry import CommissionEntry
from referral_ledger.models.enums import PayoutStatus
from referral_ledger.repositories.ancestor_edge_repository import (
    AncestorEdgeRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.participant_repository import (
    ParticipantRepository,
)
from referral_ledger.services.wallet_ledger import SqlWalletLedger, WalletLedger
from referral_ledger.utils.exceptions import (
    LedgerCreditFailed,
    RewardPlanError,
    TreeNotBuilt,
)


@dataclass
class PayoutFailure:
    """Payout whose wallet credit was rejected."""

    beneficiary_id: int
    level: int
    amount: Decimal
    reason: str


@dataclass
class DistributionResult:
    """
    Result of one distribution run.

    `entries` holds every entry recorded for the payment, including
    entries written by earlier runs. `duplicate` is set when the run found
    nothing left to pay because a previous run had already paid it.
    """

    source_participant_id: int
    payment_id: str
    entries: list[CommissionEntry] = field(default_factory=list)
    failed: list[PayoutFailure] = field(default_factory=list)
    skipped_inactive: list[int] = field(default_factory=list)
    duplicate: bool = False

    @property
    def total_paid(self) -> Decimal:
        """Sum of completed payouts for the payment."""
        return sum(
            (entry.amount for entry in self.entries if entry.is_completed),
            Decimal("0"),
        )


@dataclass
class RetrySummary:
    """Result of one retry sweep."""

    retried: int = 0
    completed: int = 0
    still_failed: int = 0
    beneficiary_ids: list[int] = field(default_factory=list)


class CommissionDistributor:
    """Distributes activation-fee commissions to the upline."""

    def __init__(
        self,
        session: AsyncSession,
        plan: RewardPlan,
        ledger: WalletLedger | None = None,
    ) -> None:
        """
        Initialize distributor.

        Args:
            session: Async database session
            plan: Reward plan (commission table and depth)
            ledger: Wallet ledger sharing `session`'s transaction
        """
        self.session = session
        self.plan = plan
        self.ledger = ledger or SqlWalletLedger(session)
        self.edge_repo = AncestorEdgeRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.participant_repo = ParticipantRepository(session)

    async def distribute(
        self,
        source_participant_id: int,
        payment_id: str,
        fee_amount: Decimal,
    ) -> DistributionResult:
        """
        Pay commissions for one activation payment.

        Safe to call again for the same payment: ancestors that already
        have an entry are skipped, so a re-run only completes what an
        interrupted run left undone.

        Args:
            source_participant_id: Participant who paid the fee
            payment_id: Payment identifier
            fee_amount: Fee the commissions are taken from

        Returns:
            DistributionResult

        Raises:
            ValueError: Non-positive fee
            RewardPlanError: Plan would pay out more than the fee
            TreeNotBuilt: No ancestor chain for the participant
        """
        if fee_amount <= 0:
            raise ValueError(f"Fee amount must be positive, got {fee_amount}")

        max_total = self.plan.total_payout(fee_amount)
        if max_total > fee_amount:
            raise RewardPlanError(
                f"Commission plan pays {max_total} on fee {fee_amount}"
            )

        chain = await self.edge_repo.get_chain(
            source_participant_id, max_level=self.plan.max_commission_level
        )
        if not chain:
            raise TreeNotBuilt(source_participant_id)

        # Plain values: rollbacks below expire ORM instances
        upline = [(edge.ancestor_id, edge.level) for edge in chain]

        processed = await self.commission_repo.get_processed_beneficiaries(
            source_participant_id, payment_id
        )
        active_ids = await self.participant_repo.get_active_ids(
            [ancestor_id for ancestor_id, _ in upline]
        )

        result = DistributionResult(
            source_participant_id=source_participant_id,
            payment_id=payment_id,
        )
        attempted = 0

        for ancestor_id, level in upline:
            if ancestor_id in processed:
                continue

            if ancestor_id not in active_ids:
                result.skipped_inactive.append(ancestor_id)
                logger.debug(
                    "Skipping inactive ancestor",
                    extra={"ancestor_id": ancestor_id, "level": level},
                )
                continue

            amount = self.plan.payout_for(level, fee_amount)
            if amount <= 0:
                continue

            attempted += 1
            await self._pay(
                source_participant_id, payment_id, ancestor_id, level, amount, result
            )

        if attempted == 0 and processed:
            result.duplicate = True
            logger.warning(
                "Commissions already distributed for payment",
                extra={
                    "source_participant_id": source_participant_id,
                    "payment_id": payment_id,
                    "entries": len(processed),
                },
            )

        result.entries = await self.commission_repo.get_for_payment(
            source_participant_id, payment_id
        )
        for entry in result.entries:
            self.session.expunge(entry)

        logger.info(
            "Commission distribution finished",
            extra={
                "source_participant_id": source_participant_id,
                "payment_id": payment_id,
                "entries": len(result.entries),
                "failed": len(result.failed),
                "skipped_inactive": len(result.skipped_inactive),
                "total_paid": str(result.total_paid),
            },
        )

        return result

    async def _pay(
        self,
        source_participant_id: int,
        payment_id: str,
        beneficiary_id: int,
        level: int,
        amount: Decimal,
        result: DistributionResult,
    ) -> None:
        """Record and credit one payout in its own transaction."""
        try:
            if await self.commission_repo.entry_exists(
                source_participant_id, payment_id, beneficiary_id
            ):
                return

            await self.commission_repo.create(
                beneficiary_id=beneficiary_id,
                source_descendant_id=source_participant_id,
                level=level,
                amount=amount,
                payment_id=payment_id,
                status=PayoutStatus.COMPLETED,
            )
            await self.ledger.credit(beneficiary_id, amount)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                "Commission already recorded by a concurrent run",
                extra={
                    "beneficiary_id": beneficiary_id,
                    "payment_id": payment_id,
                    "level": level,
                },
            )
            return
        except LedgerCreditFailed as e:
            await self.session.rollback()
            logger.error(
                "Commission credit failed, queued for retry",
                extra={
                    "reason": e.reason,
                    "beneficiary_id": beneficiary_id,
                    "source_participant_id": source_participant_id,
                    "payment_id": payment_id,
                    "level": level,
                    "amount": str(amount),
                },
            )
            result.failed.append(
                PayoutFailure(
                    beneficiary_id=beneficiary_id,
                    level=level,
                    amount=amount,
                    reason=e.reason,
                )
            )
            await self._record_failure(
                source_participant_id, payment_id, beneficiary_id, level, amount, e.reason
            )
            return

        logger.info(
            "Referral commission paid",
            extra={
                "beneficiary_id": beneficiary_id,
                "source_participant_id": source_participant_id,
                "payment_id": payment_id,
                "level": level,
                "amount": str(amount),
            },
        )

    async def _record_failure(
        self,
        source_participant_id: int,
        payment_id: str,
        beneficiary_id: int,
        level: int,
        amount: Decimal,
        reason: str,
    ) -> None:
        """Persist a failed payout for the retry sweep."""
        try:
            await self.commission_repo.create(
                beneficiary_id=beneficiary_id,
                source_descendant_id=source_participant_id,
                level=level,
                amount=amount,
                payment_id=payment_id,
                status=PayoutStatus.FAILED,
                last_error=reason,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            # Without a row the next distribute() call retries this payout
            await self.session.rollback()
            logger.error(
                "Could not record failed commission",
                extra={
                    "error": str(e),
                    "beneficiary_id": beneficiary_id,
                    "payment_id": payment_id,
                },
            )

    async def retry_failed(self, limit: int = 100) -> RetrySummary:
        """
        Retry sweep for failed payouts.

        Each entry is flipped failed -> completed and credited in one
        transaction; the status guard keeps concurrent sweeps from paying
        the same entry twice.

        Args:
            limit: Max entries per sweep

        Returns:
            RetrySummary
        """
        failed = await self.commission_repo.get_failed(limit)
        pending = [
            (entry.id, entry.beneficiary_id, entry.amount) for entry in failed
        ]
        summary = RetrySummary()

        for entry_id, beneficiary_id, amount in pending:
            summary.retried += 1
            try:
                if not await self.commission_repo.mark_completed_if_failed(entry_id):
                    await self.session.rollback()
                    continue
                await self.ledger.credit(beneficiary_id, amount)
                await self.session.commit()
            except LedgerCreditFailed as e:
                await self.session.rollback()
                await self.commission_repo.record_retry_failure(entry_id, e.reason)
                await self.session.commit()
                summary.still_failed += 1
                logger.error(
                    "Commission retry failed",
                    extra={
                        "entry_id": entry_id,
                        "beneficiary_id": beneficiary_id,
                        "reason": e.reason,
                    },
                )
                continue

            summary.completed += 1
            summary.beneficiary_ids.append(beneficiary_id)
            logger.info(
                "Failed commission completed by retry sweep",
                extra={
                    "entry_id": entry_id,
                    "beneficiary_id": beneficiary_id,
                    "amount": str(amount),
                },
            )

        if summary.retried:
            logger.info(
                f"Retry sweep done: {summary.completed} completed, "
                f"{summary.still_failed} still failed"
            )

        return summary
