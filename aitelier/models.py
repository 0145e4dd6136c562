# @TASK P0-T0.5 - PostgreSQL schema for projects, examples, training runs and evaluations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aitelier.database import Base

# User identifiers come from the external auth provider and are stored opaquely.
_USER_ID = String(255)


class Project(Base):
    """A fine-tuning project: base model, provider credentials and training defaults."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider: Mapped[str] = mapped_column(String(50), default="together", server_default="together")
    base_model: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_config: Mapped[dict] = mapped_column(JSONB, default=dict, server_default="{}")  # {"api_key": ...}
    training_config: Mapped[dict] = mapped_column(JSONB, default=dict, server_default="{}")
    quality_threshold: Mapped[int] = mapped_column(Integer, default=8, server_default="8")
    created_by: Mapped[str | None] = mapped_column(_USER_ID, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Example(Base):
    """A supervised input/output pair, rated by the team and placed in a split."""

    __tablename__ = "examples"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    input: Mapped[str] = mapped_column(Text, nullable=False)
    output: Mapped[str] = mapped_column(Text, nullable=False)
    rewrite: Mapped[str | None] = mapped_column(Text, nullable=True)  # Preferred over output when exporting
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rated_by: Mapped[str | None] = mapped_column(_USER_ID, nullable=True)
    split: Mapped[str | None] = mapped_column(String(10), nullable=True)  # "train" | "val" | None
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict, server_default="{}")
    created_by: Mapped[str | None] = mapped_column(_USER_ID, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    rated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 10)", name="ck_examples_rating"),
        CheckConstraint("split IS NULL OR split IN ('train', 'val')", name="ck_examples_split"),
        Index("idx_examples_project_split", "project_id", "split"),
        Index("idx_examples_project_rating", "project_id", "rating"),
    )


class TrainingRun(Base):
    """A fine-tune job launched at the provider; status is driven by polling."""

    __tablename__ = "training_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_job_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model_id: Mapped[str | None] = mapped_column(String(500), nullable=True)
    base_model: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default="pending")
    config: Mapped[dict] = mapped_column(JSONB, default=dict, server_default="{}")
    example_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    train_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    val_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(_USER_ID, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'uploading', 'queued', 'training', 'completed', 'failed', 'cancelled')",
            name="ck_training_runs_status",
        ),
        Index("idx_training_runs_project_created", "project_id", "created_at"),
    )


class EvaluationRun(Base):
    """One blind A/B comparison over a project's validation split."""

    __tablename__ = "evaluation_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    training_run_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("training_runs.id", ondelete="CASCADE"), nullable=True, index=True
    )
    model_ref: Mapped[str] = mapped_column(String(500), nullable=False)
    baseline_ref: Mapped[str] = mapped_column(String(500), nullable=False)
    system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    side_salt: Mapped[str] = mapped_column(String(100), nullable=False)  # Fixes left/right arrangement for the run
    item_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_by: Mapped[str | None] = mapped_column(_USER_ID, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    items: Mapped[list["EvaluationItem"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EvaluationItem.id",
    )

    __table_args__ = (Index("idx_evaluation_runs_project_created", "project_id", "created_at"),)


class EvaluationItem(Base):
    """Paired outputs for one validation example plus the rater's verdict.

    The left/right arrangement is derived at read time from ``id`` and the
    run's ``side_salt`` (see ``aitelier.services.evaluation.scorer.is_left_model``)
    and is not a column.
    """

    __tablename__ = "evaluation_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    evaluation_run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("evaluation_runs.id", ondelete="CASCADE"), index=True, nullable=False
    )
    example_id: Mapped[int] = mapped_column(Integer, ForeignKey("examples.id", ondelete="CASCADE"), index=True)
    model_output: Mapped[str] = mapped_column(Text, default="")
    baseline_output: Mapped[str] = mapped_column(Text, default="")
    preferred: Mapped[str | None] = mapped_column(String(10), nullable=True)
    model_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    baseline_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scored_by: Mapped[str | None] = mapped_column(_USER_ID, nullable=True)
    scored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    run: Mapped[EvaluationRun] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint(
            "preferred IS NULL OR preferred IN ('model', 'baseline', 'tie')", name="ck_evaluation_items_preferred"
        ),
        CheckConstraint(
            "model_score IS NULL OR (model_score >= 1 AND model_score <= 10)", name="ck_evaluation_items_model_score"
        ),
        CheckConstraint(
            "baseline_score IS NULL OR (baseline_score >= 1 AND baseline_score <= 10)",
            name="ck_evaluation_items_baseline_score",
        ),
        UniqueConstraint("evaluation_run_id", "example_id", name="uq_evaluation_items_run_example"),
    )
