"""
SQLAlchemy ORM models (collaborator records + scoring tables)
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    String, Integer, Text, TIMESTAMP, Boolean, Numeric, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, func, false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bidscore.infrastructure.db.session import Base


# ============================================================================
# Collaborator records (identity, projects, proposals)
# ============================================================================


class User(Base):
    """
    User record. Authentication happens elsewhere; the engine only stores
    user ids as scored_by / revised_by and reads the role for authorization.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, server_default="client")  # client, bidding_lead, admin
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class ProjectModel(Base):
    """Project posted by a client"""
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="open")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    proposals: Mapped[list["ProposalModel"]] = relationship(back_populates="project")


class ProposalModel(Base):
    """Proposal submitted by a bidding team against a project"""
    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lead_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # draft, submitted, reviewing, accepted, approved, rejected
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="draft")
    submitted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    project: Mapped[ProjectModel] = relationship(back_populates="proposals")


# ============================================================================
# Scoring
# ============================================================================


class ScoringTemplateModel(Base):
    """Named set of weighted criteria; one per project"""
    __tablename__ = "scoring_templates"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    project: Mapped[ProjectModel] = relationship()
    criteria: Mapped[list["ScoringCriterionModel"]] = relationship(
        back_populates="template",
        order_by="ScoringCriterionModel.order_index",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("project_id", name="uq_scoring_templates_project"),
    )


class ScoringCriterionModel(Base):
    """Weighted evaluation dimension within a template"""
    __tablename__ = "scoring_criteria"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("scoring_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(precision=5, scale=2), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    template: Mapped[ScoringTemplateModel] = relationship(back_populates="criteria")

    __table_args__ = (
        UniqueConstraint("template_id", "order_index", name="uq_scoring_criteria_template_order"),
        CheckConstraint("weight >= 0 AND weight <= 100", name="ck_scoring_criteria_weight"),
        CheckConstraint("order_index >= 0", name="ck_scoring_criteria_order"),
    )


class ProposalScoreModel(Base):
    """
    Current score of one (proposal, criterion) cell.

    Revisions update this row in place and append a ProposalScoreHistoryModel.
    """
    __tablename__ = "proposal_scores"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("scoring_criteria.id", ondelete="CASCADE"), nullable=False, index=True
    )
    raw_score: Mapped[Decimal] = mapped_column(Numeric(precision=4, scale=2), nullable=False)
    weighted_score: Mapped[Decimal] = mapped_column(Numeric(precision=6, scale=2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    scored_by: Mapped[int] = mapped_column(Integer, nullable=False)
    scored_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    is_final: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())

    criterion: Mapped[ScoringCriterionModel] = relationship()

    __table_args__ = (
        UniqueConstraint("proposal_id", "criterion_id", name="uq_proposal_scores_cell"),
        CheckConstraint("raw_score >= 1 AND raw_score <= 10", name="ck_proposal_scores_range"),
    )


class ProposalScoreHistoryModel(Base):
    """Append-only audit trail of score revisions"""
    __tablename__ = "proposal_score_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    proposal_score_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposal_scores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    proposal_id: Mapped[int] = mapped_column(Integer, nullable=False)
    criterion_id: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_raw_score: Mapped[Decimal] = mapped_column(Numeric(precision=4, scale=2), nullable=False)
    new_raw_score: Mapped[Decimal] = mapped_column(Numeric(precision=4, scale=2), nullable=False)
    previous_weighted_score: Mapped[Decimal] = mapped_column(Numeric(precision=6, scale=2), nullable=False)
    new_weighted_score: Mapped[Decimal] = mapped_column(Numeric(precision=6, scale=2), nullable=False)
    previous_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    revised_by: Mapped[int] = mapped_column(Integer, nullable=False)
    revised_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_proposal_score_history_cell", "proposal_id", "criterion_id"),
    )
