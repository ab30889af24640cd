"""
Reward plan configuration.

The commission table and milestone table are data: they are read from a
JSON document at process start, validated, and passed explicitly into
every component that pays money. Nothing in this package reads a global
rate table.
"""

from decimal import ROUND_DOWN, Decimal
from pathlib import Path

from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from referral_ledger.utils.exceptions import RewardPlanError


DEFAULT_PLAN_PATH = Path(__file__).with_name("reward_plan.json")

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Upper bound on max_depth. Each activation writes its whole ancestor
# chain in one bulk insert, so this caps rows per activation.
MAX_TREE_DEPTH = 50


def quantize_amount(value: Decimal) -> Decimal:
    """Round a money amount down to whole cents."""
    return value.quantize(CENT, rounding=ROUND_DOWN)


class LevelRate(BaseModel):
    """
    Commission rule for one level.

    Either a flat `amount`, or a `percentage` of the fee capped at
    `max_amount`.
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal | None = Field(default=None, gt=0)
    percentage: Decimal | None = Field(default=None, gt=0, le=100)
    max_amount: Decimal | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_shape(self) -> "LevelRate":
        """Exactly one rate shape per level."""
        if (self.amount is None) == (self.percentage is None):
            raise ValueError(
                "level rate needs exactly one of 'amount' or 'percentage'"
            )
        if self.percentage is not None and self.max_amount is None:
            raise ValueError("percentage rate requires 'max_amount'")
        if self.amount is not None and self.max_amount is not None:
            raise ValueError("flat rate does not take 'max_amount'")
        return self

    @property
    def is_flat(self) -> bool:
        """Whether this level pays a fixed amount."""
        return self.amount is not None

    def payout(self, fee: Decimal) -> Decimal:
        """
        Calculate payout for this level.

        Args:
            fee: Activation fee the commission is taken from

        Returns:
            Payout rounded down to cents
        """
        if self.amount is not None:
            return quantize_amount(self.amount)
        value = min(fee * self.percentage / HUNDRED, self.max_amount)
        return quantize_amount(value)


class MilestoneTier(BaseModel):
    """One team-size milestone."""

    model_config = ConfigDict(frozen=True)

    teams: int = Field(ge=1)
    reward: Decimal = Field(gt=0)
    title: str = ""


class RewardPlan(BaseModel):
    """
    Immutable reward configuration.

    Attributes:
        activation_fee: One-time fee that triggers the pipeline
        welcome_bonus: Credited once to the newly activated participant
        max_depth: Depth of the materialized ancestor chain, at most
            MAX_TREE_DEPTH
        max_commission_level: Deepest level that receives commission
        level_rates: Commission rule per level, 1..max_commission_level
        milestones: Ascending tiers per tracked level
        min_withdrawal_amount: Used by the withdrawal feature only
    """

    model_config = ConfigDict(frozen=True)

    activation_fee: Decimal = Field(gt=0)
    welcome_bonus: Decimal = Field(default=Decimal("0"), ge=0)
    max_depth: int = Field(ge=1, le=MAX_TREE_DEPTH)
    max_commission_level: int = Field(ge=1)
    level_rates: dict[int, LevelRate]
    milestones: dict[int, tuple[MilestoneTier, ...]] = Field(
        default_factory=dict
    )
    min_withdrawal_amount: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("milestones")
    @classmethod
    def sort_tiers(
        cls, v: dict[int, tuple[MilestoneTier, ...]]
    ) -> dict[int, tuple[MilestoneTier, ...]]:
        """Order tiers by threshold and reject duplicate thresholds."""
        ordered = {}
        for level, tiers in v.items():
            thresholds = [tier.teams for tier in tiers]
            if len(set(thresholds)) != len(thresholds):
                raise ValueError(
                    f"duplicate milestone threshold on level {level}"
                )
            ordered[level] = tuple(sorted(tiers, key=lambda t: t.teams))
        return ordered

    @model_validator(mode="after")
    def check_levels(self) -> "RewardPlan":
        """Validate level ranges and the payout bound."""
        if self.max_commission_level > self.max_depth:
            raise ValueError(
                f"max_commission_level ({self.max_commission_level}) "
                f"exceeds max_depth ({self.max_depth})"
            )

        expected = set(range(1, self.max_commission_level + 1))
        if set(self.level_rates) != expected:
            raise ValueError(
                f"level_rates must define levels 1..{self.max_commission_level} "
                f"without gaps, got {sorted(self.level_rates)}"
            )

        for level in self.milestones:
            if not 1 <= level <= self.max_depth:
                raise ValueError(
                    f"milestone level {level} outside 1..{self.max_depth}"
                )

        # Percentages alone must never exceed the fee, whatever the fee is
        rates = self.level_rates.values()
        if all(not rate.is_flat for rate in rates):
            total_percentage = sum(rate.percentage for rate in rates)
            if total_percentage > HUNDRED:
                raise ValueError(
                    f"commission percentages sum to {total_percentage}% (> 100%)"
                )

        total = self.total_payout(self.activation_fee)
        if total > self.activation_fee:
            raise ValueError(
                f"commissions for fee {self.activation_fee} total {total}, "
                f"which exceeds the fee"
            )
        return self

    def rate_for(self, level: int) -> LevelRate | None:
        """Commission rule for level (None beyond max_commission_level)."""
        return self.level_rates.get(level)

    def tiers_for(self, level: int) -> tuple[MilestoneTier, ...]:
        """Milestone tiers for level, ascending by threshold."""
        return self.milestones.get(level, ())

    @property
    def tracked_levels(self) -> list[int]:
        """Levels that carry milestone tiers."""
        return sorted(self.milestones)

    def total_payout(self, fee: Decimal) -> Decimal:
        """Sum of commissions for one payment if every ancestor is eligible."""
        return sum(
            (rate.payout(fee) for rate in self.level_rates.values()),
            Decimal("0"),
        )

    def payout_for(self, level: int, fee: Decimal) -> Decimal:
        """Commission for level, zero when the level is not paid."""
        rate = self.rate_for(level)
        if rate is None:
            return Decimal("0")
        return rate.payout(fee)


def load_reward_plan(path: str | Path | None = None) -> RewardPlan:
    """
    Load and validate reward plan from JSON.

    Args:
        path: JSON file; packaged default when None

    Returns:
        Validated RewardPlan

    Raises:
        RewardPlanError: File unreadable or plan invalid
    """
    plan_path = Path(path) if path else DEFAULT_PLAN_PATH

    try:
        raw = plan_path.read_text(encoding="utf-8")
    except OSError as e:
        raise RewardPlanError(
            f"Cannot read reward plan {plan_path}: {e}"
        ) from e

    try:
        plan = RewardPlan.model_validate_json(raw)
    except ValidationError as e:
        raise RewardPlanError(
            f"Invalid reward plan {plan_path}: {e}"
        ) from e

    logger.info(
        "Reward plan loaded",
        extra={
            "path": str(plan_path),
            "max_depth": plan.max_depth,
            "max_commission_level": plan.max_commission_level,
            "max_total_payout": str(plan.total_payout(plan.activation_fee)),
            "milestone_levels": plan.tracked_levels,
        },
    )
    return plan
