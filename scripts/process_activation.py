#!/usr/bin/env python3
"""
Process one activation payment by hand.

Used to replay an activation event the payment webhook failed to deliver.
Safe to run more than once for the same payment.

Usage:
    python scripts/process_activation.py 42 --sponsor 7 --payment pay_123
    python scripts/process_activation.py 1 --payment pay_root --fee 295
"""

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation

from loguru import logger

from referral_ledger.config.database import async_engine, async_session_maker
from referral_ledger.config.logging import setup_logging
from referral_ledger.config.reward_plan import load_reward_plan
from referral_ledger.config.settings import settings
from referral_ledger.services import ActivationEvent, ActivationService
from referral_ledger.utils.exceptions import ReferralLedgerError


def _parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"invalid amount: {value}") from e
    if amount <= 0:
        raise argparse.ArgumentTypeError("amount must be positive")
    return amount


def build_parser() -> argparse.ArgumentParser:
    """Build command line parser."""
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0].strip())
    parser.add_argument("participant_id", type=int, help="Activated participant")
    parser.add_argument(
        "--sponsor", type=int, default=None, help="Registered sponsor (omit for root)"
    )
    parser.add_argument("--payment", required=True, help="Payment identifier")
    parser.add_argument(
        "--fee",
        type=_parse_amount,
        default=None,
        help="Fee amount (defaults to the plan's activation fee)",
    )
    return parser


async def process_activation(args: argparse.Namespace) -> int:
    """Run the activation pipeline, return exit code."""
    plan = load_reward_plan(settings.reward_plan_path)
    event = ActivationEvent(
        new_participant_id=args.participant_id,
        sponsor_id=args.sponsor,
        payment_id=args.payment,
        fee_amount=args.fee or plan.activation_fee,
    )

    try:
        async with async_session_maker() as session:
            service = ActivationService(session, plan)
            result = await service.process(event)
    except ReferralLedgerError as e:
        logger.error(f"Activation rejected: {e}")
        return 1
    finally:
        await async_engine.dispose()

    paid = result.distribution.total_paid if result.distribution else Decimal("0")
    logger.success(
        f"Participant {result.participant_id}: "
        f"newly_activated={result.newly_activated}, "
        f"edges={result.edges_written}, commissions_paid={paid}"
    )
    if result.pending_retry:
        logger.warning("Some credits failed and are queued for the retry sweep")
    return 0


def main() -> None:
    args = build_parser().parse_args()
    setup_logging()
    sys.exit(asyncio.run(process_activation(args)))


if __name__ == "__main__":
    main()
