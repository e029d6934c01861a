"""initial models

analyses, payments, analysis_requests (throttle) and analysis_jobs (queue).

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
import sqlmodel  # noqa: F401


revision: str = "0001_initial_models"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names (SQLModel default)
analysis_status = sa.Enum("PENDING", "PROCESSING", "COMPLETED", "FAILED", name="analysisstatus")
payment_status = sa.Enum("PENDING", "COMPLETED", "FAILED", "REFUNDED", name="paymentstatus")
job_status = sa.Enum("PENDING", "PROCESSING", "DONE", "FAILED", name="jobstatus")


def upgrade() -> None:
    op.create_table(
        "analyses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("github_username", sa.String(length=39), nullable=False),
        sa.Column("status", analysis_status, nullable=False),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("profile_score", sa.Integer(), nullable=True),
        sa.Column("projects_score", sa.Integer(), nullable=True),
        sa.Column("consistency_score", sa.Integer(), nullable=True),
        sa.Column("technical_score", sa.Integer(), nullable=True),
        sa.Column("community_score", sa.Integer(), nullable=True),
        sa.Column("github_data", sa.JSON(), nullable=True),
        sa.Column("ai_analysis", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analyses_uuid", "analyses", ["uuid"], unique=True)
    op.create_index("ix_analyses_github_username", "analyses", ["github_username"])
    op.create_index("ix_analyses_status", "analyses", ["status"])
    op.create_index("ix_analyses_is_paid", "analyses", ["is_paid"])
    op.create_index("ix_analyses_created_at", "analyses", ["created_at"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("analysis_id", sa.Integer(), sa.ForeignKey("analyses.id"), nullable=False),
        sa.Column("provider_transaction_id", sa.String(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_payments_analysis_id", "payments", ["analysis_id"])
    op.create_index("ix_payments_provider_transaction_id", "payments", ["provider_transaction_id"], unique=True)
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "analysis_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False),
        sa.Column("first_request_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_request_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analysis_requests_ip_address", "analysis_requests", ["ip_address"], unique=True)
    op.create_index("ix_analysis_requests_last_request_at", "analysis_requests", ["last_request_at"])

    op.create_table(
        "analysis_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("analysis_uuid", sa.String(length=36), nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_attempted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_analysis_jobs_analysis_uuid", "analysis_jobs", ["analysis_uuid"], unique=True)
    op.create_index("ix_analysis_jobs_status", "analysis_jobs", ["status"])
    op.create_index("ix_analysis_jobs_next_retry_at", "analysis_jobs", ["next_retry_at"])


def downgrade() -> None:
    op.drop_table("analysis_jobs")
    op.drop_table("analysis_requests")
    op.drop_table("payments")
    op.drop_table("analyses")
    bind = op.get_bind()
    for enum_type in (job_status, payment_status, analysis_status):
        enum_type.drop(bind, checkfirst=True)
