"""create scoring tables

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-18 10:12:41.208113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(32), server_default="client", nullable=False),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), server_default="open", nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_client_id", "projects", ["client_id"])

    op.create_table(
        "proposals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lead_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), server_default="draft", nullable=False),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_proposals_project_id", "proposals", ["project_id"])

    # -- Scoring --
    op.create_table(
        "scoring_templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", name="uq_scoring_templates_project"),
    )

    op.create_table(
        "scoring_criteria",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "template_id", sa.Integer(),
            sa.ForeignKey("scoring_templates.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("weight", sa.Numeric(5, 2), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_id", "order_index", name="uq_scoring_criteria_template_order"),
        sa.CheckConstraint("weight >= 0 AND weight <= 100", name="ck_scoring_criteria_weight"),
        sa.CheckConstraint("order_index >= 0", name="ck_scoring_criteria_order"),
    )
    op.create_index("ix_scoring_criteria_template_id", "scoring_criteria", ["template_id"])

    op.create_table(
        "proposal_scores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("proposal_id", sa.Integer(), sa.ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "criterion_id", sa.Integer(),
            sa.ForeignKey("scoring_criteria.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("raw_score", sa.Numeric(4, 2), nullable=False),
        sa.Column("weighted_score", sa.Numeric(6, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("scored_by", sa.Integer(), nullable=False),
        sa.Column("scored_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("is_final", sa.Boolean(), server_default="false", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("proposal_id", "criterion_id", name="uq_proposal_scores_cell"),
        sa.CheckConstraint("raw_score >= 1 AND raw_score <= 10", name="ck_proposal_scores_range"),
    )
    op.create_index("ix_proposal_scores_proposal_id", "proposal_scores", ["proposal_id"])
    op.create_index("ix_proposal_scores_criterion_id", "proposal_scores", ["criterion_id"])

    op.create_table(
        "proposal_score_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "proposal_score_id", sa.Integer(),
            sa.ForeignKey("proposal_scores.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("proposal_id", sa.Integer(), nullable=False),
        sa.Column("criterion_id", sa.Integer(), nullable=False),
        sa.Column("previous_raw_score", sa.Numeric(4, 2), nullable=False),
        sa.Column("new_raw_score", sa.Numeric(4, 2), nullable=False),
        sa.Column("previous_weighted_score", sa.Numeric(6, 2), nullable=False),
        sa.Column("new_weighted_score", sa.Numeric(6, 2), nullable=False),
        sa.Column("previous_notes", sa.Text(), nullable=True),
        sa.Column("new_notes", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("revised_by", sa.Integer(), nullable=False),
        sa.Column("revised_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_proposal_score_history_proposal_score_id", "proposal_score_history", ["proposal_score_id"]
    )
    op.create_index(
        "ix_proposal_score_history_cell", "proposal_score_history", ["proposal_id", "criterion_id"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("proposal_score_history")
    op.drop_table("proposal_scores")
    op.drop_table("scoring_criteria")
    op.drop_table("scoring_templates")
    op.drop_table("proposals")
    op.drop_table("projects")
    op.drop_table("users")
