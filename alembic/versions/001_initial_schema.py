# @TASK P0-T0.5 - Initial PostgreSQL schema

"""Create projects, examples, training run and evaluation tables.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-16 08:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    """Apply schema migrations."""
    # Create projects table
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("system_prompt", sa.Text, nullable=True),
        sa.Column("provider", sa.String(50), nullable=False, server_default="together"),
        sa.Column("base_model", sa.String(255), nullable=False),
        sa.Column("provider_config", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("training_config", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("quality_threshold", sa.Integer, nullable=False, server_default="8"),
        sa.Column("created_by", sa.String(255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create examples table
    op.create_table(
        "examples",
        sa.Column("id", sa.Integer, nullable=False),
        sa.Column("project_id", sa.Integer, nullable=False),
        sa.Column("input", sa.Text, nullable=False),
        sa.Column("output", sa.Text, nullable=False),
        sa.Column("rewrite", sa.Text, nullable=True),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("rated_by", sa.String(255), nullable=True),
        sa.Column("split", sa.String(10), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("created_by", sa.String(255), nullable=True),
        _created_at(),
        sa.Column("rated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 10)", name="ck_examples_rating"),
        sa.CheckConstraint("split IS NULL OR split IN ('train', 'val')", name="ck_examples_split"),
    )
    op.create_index("ix_examples_project_id", "examples", ["project_id"])
    op.create_index("idx_examples_project_split", "examples", ["project_id", "split"])
    op.create_index("idx_examples_project_rating", "examples", ["project_id", "rating"])

    # Create training_runs table
    op.create_table(
        "training_runs",
        sa.Column("id", sa.Integer, nullable=False),
        sa.Column("project_id", sa.Integer, nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("provider_job_id", sa.String(255), nullable=True),
        sa.Column("model_id", sa.String(500), nullable=True),
        sa.Column("base_model", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("config", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("example_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("train_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("val_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending', 'uploading', 'queued', 'training', 'completed', 'failed', 'cancelled')",
            name="ck_training_runs_status",
        ),
    )
    op.create_index("ix_training_runs_project_id", "training_runs", ["project_id"])
    op.create_index("idx_training_runs_project_created", "training_runs", ["project_id", "created_at"])

    # Create evaluation_runs table
    op.create_table(
        "evaluation_runs",
        sa.Column("id", sa.Integer, nullable=False),
        sa.Column("project_id", sa.Integer, nullable=False),
        sa.Column("training_run_id", sa.Integer, nullable=True),
        sa.Column("model_ref", sa.String(500), nullable=False),
        sa.Column("baseline_ref", sa.String(500), nullable=False),
        sa.Column("system_prompt", sa.Text, nullable=True),
        sa.Column("side_salt", sa.String(100), nullable=False),
        sa.Column("item_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["training_run_id"], ["training_runs.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_evaluation_runs_project_id", "evaluation_runs", ["project_id"])
    op.create_index("ix_evaluation_runs_training_run_id", "evaluation_runs", ["training_run_id"])
    op.create_index("idx_evaluation_runs_project_created", "evaluation_runs", ["project_id", "created_at"])

    # Create evaluation_items table
    op.create_table(
        "evaluation_items",
        sa.Column("id", sa.Integer, nullable=False),
        sa.Column("evaluation_run_id", sa.Integer, nullable=False),
        sa.Column("example_id", sa.Integer, nullable=False),
        sa.Column("model_output", sa.Text, nullable=False, server_default=""),
        sa.Column("baseline_output", sa.Text, nullable=False, server_default=""),
        sa.Column("preferred", sa.String(10), nullable=True),
        sa.Column("model_score", sa.Integer, nullable=True),
        sa.Column("baseline_score", sa.Integer, nullable=True),
        sa.Column("scored_by", sa.String(255), nullable=True),
        sa.Column("scored_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["evaluation_run_id"], ["evaluation_runs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["example_id"], ["examples.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("evaluation_run_id", "example_id", name="uq_evaluation_items_run_example"),
        sa.CheckConstraint(
            "preferred IS NULL OR preferred IN ('model', 'baseline', 'tie')", name="ck_evaluation_items_preferred"
        ),
        sa.CheckConstraint(
            "model_score IS NULL OR (model_score >= 1 AND model_score <= 10)", name="ck_evaluation_items_model_score"
        ),
        sa.CheckConstraint(
            "baseline_score IS NULL OR (baseline_score >= 1 AND baseline_score <= 10)",
            name="ck_evaluation_items_baseline_score",
        ),
    )
    op.create_index("ix_evaluation_items_evaluation_run_id", "evaluation_items", ["evaluation_run_id"])
    op.create_index("ix_evaluation_items_example_id", "evaluation_items", ["example_id"])


def downgrade() -> None:
    """Revert schema migrations."""
    op.drop_table("evaluation_items")
    op.drop_table("evaluation_runs")
    op.drop_table("training_runs")
    op.drop_table("examples")
    op.drop_table("projects")
