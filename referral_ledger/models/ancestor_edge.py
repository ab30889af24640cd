"""
AncestorEdge model.

Materialized transitive closure of the sponsorship forest. For a fixed
descendant the levels are 1..n without gaps, and the rows are written
once, at activation, and never changed afterwards.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base


class AncestorEdge(Base):
    """
    AncestorEdge entity.

    Attributes:
        id: Primary key
        descendant_id: Participant the chain belongs to
        ancestor_id: Participant `level` sponsorship hops above
        level: Distance in hops (1 = direct sponsor)
        created_at: When the chain was materialized
    """

    __tablename__ = "ancestor_edges"
    __table_args__ = (
        UniqueConstraint(
            "descendant_id", "level", name="uq_ancestor_edges_descendant_level"
        ),
        UniqueConstraint(
            "descendant_id",
            "ancestor_id",
            name="uq_ancestor_edges_descendant_ancestor",
        ),
        CheckConstraint("level >= 1", name="check_ancestor_edge_level_positive"),
        Index("idx_ancestor_edges_ancestor_level", "ancestor_id", "level"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    descendant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ancestor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<AncestorEdge(descendant_id={self.descendant_id}, "
            f"ancestor_id={self.ancestor_id}, level={self.level})>"
        )
