"""identity resolution schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

_NOW = sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "identities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("platform_user_id", sa.String(length=255), nullable=True),
        sa.Column("total_appearances", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("match_reason", sa.String(length=128), nullable=True),
        sa.Column("merged_into_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_NOW, nullable=False),
        sa.ForeignKeyConstraint(["merged_into_id"], ["identities.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform_user_id", name="uq_identities_platform_user_id"),
    )
    op.create_index("ix_identities_canonical_name", "identities", ["canonical_name"], unique=False)
    op.create_index("ix_identities_status", "identities", ["status"], unique=False)
    op.create_index("ix_identities_merged_into_id", "identities", ["merged_into_id"], unique=False)

    op.create_table(
        "identity_aliases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("identity_id", sa.Integer(), nullable=False),
        sa.Column("alias", sa.String(length=255), nullable=False),
        sa.Column("normalized_name", sa.String(length=255), nullable=False),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_NOW, nullable=False),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("alias", name="uq_identity_aliases_alias"),
    )
    op.create_index("ix_identity_aliases_identity_id", "identity_aliases", ["identity_id"], unique=False)
    op.create_index("ix_identity_aliases_normalized_name", "identity_aliases", ["normalized_name"], unique=False)

    op.create_table(
        "merge_log_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("operation", sa.String(length=16), nullable=False),
        sa.Column("source_identity_id", sa.Integer(), nullable=False),
        sa.Column("target_identity_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("aliases_moved_json", sa.JSON(), nullable=False),
        sa.Column("attendance_ids_moved_json", sa.JSON(), nullable=False),
        sa.Column("appearances_moved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("platform_user_id_moved", sa.String(length=255), nullable=True),
        sa.Column("reverts_entry_id", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_merge_log_entries_timestamp", "merge_log_entries", ["timestamp"], unique=False)
    op.create_index(
        "ix_merge_log_entries_source_identity_id",
        "merge_log_entries",
        ["source_identity_id"],
        unique=False,
    )
    op.create_index(
        "ix_merge_log_entries_target_identity_id",
        "merge_log_entries",
        ["target_identity_id"],
        unique=False,
    )

    op.create_table(
        "pending_review_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_instance_id", sa.String(length=255), nullable=False),
        sa.Column("raw_name", sa.String(length=255), nullable=False),
        sa.Column("normalized_name", sa.String(length=255), nullable=False),
        sa.Column("candidate_identity_ids_json", sa.JSON(), nullable=False),
        sa.Column("candidate_scores_json", sa.JSON(), nullable=False),
        sa.Column("top_score", sa.Float(), nullable=True),
        sa.Column("queue_reason", sa.String(length=64), nullable=False),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("platform_user_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("decision", sa.String(length=32), nullable=True),
        sa.Column("resolved_identity_id", sa.Integer(), nullable=True),
        sa.Column("resolution_note", sa.String(length=255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "meeting_instance_id",
            "raw_name",
            name="uq_pending_review_items_instance_raw_name",
        ),
    )
    op.create_index(
        "ix_pending_review_items_meeting_instance_id",
        "pending_review_items",
        ["meeting_instance_id"],
        unique=False,
    )
    op.create_index("ix_pending_review_items_observed_at", "pending_review_items", ["observed_at"], unique=False)
    op.create_index("ix_pending_review_items_status", "pending_review_items", ["status"], unique=False)

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_instance_id", sa.String(length=255), nullable=False),
        sa.Column("identity_id", sa.Integer(), nullable=False),
        sa.Column("raw_name_observed", sa.String(length=255), nullable=False),
        sa.Column("alias", sa.String(length=255), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("match_reason", sa.String(length=64), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_NOW, nullable=False),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "meeting_instance_id",
            "raw_name_observed",
            name="uq_attendance_records_instance_raw_name",
        ),
    )
    op.create_index(
        "ix_attendance_records_meeting_instance_id",
        "attendance_records",
        ["meeting_instance_id"],
        unique=False,
    )
    op.create_index("ix_attendance_records_identity_id", "attendance_records", ["identity_id"], unique=False)
    op.create_index("ix_attendance_records_alias", "attendance_records", ["alias"], unique=False)
    op.create_index("ix_attendance_records_joined_at", "attendance_records", ["joined_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_attendance_records_joined_at", table_name="attendance_records")
    op.drop_index("ix_attendance_records_alias", table_name="attendance_records")
    op.drop_index("ix_attendance_records_identity_id", table_name="attendance_records")
    op.drop_index("ix_attendance_records_meeting_instance_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_pending_review_items_status", table_name="pending_review_items")
    op.drop_index("ix_pending_review_items_observed_at", table_name="pending_review_items")
    op.drop_index("ix_pending_review_items_meeting_instance_id", table_name="pending_review_items")
    op.drop_table("pending_review_items")
    op.drop_index("ix_merge_log_entries_target_identity_id", table_name="merge_log_entries")
    op.drop_index("ix_merge_log_entries_source_identity_id", table_name="merge_log_entries")
    op.drop_index("ix_merge_log_entries_timestamp", table_name="merge_log_entries")
    op.drop_table("merge_log_entries")
    op.drop_index("ix_identity_aliases_normalized_name", table_name="identity_aliases")
    op.drop_index("ix_identity_aliases_identity_id", table_name="identity_aliases")
    op.drop_table("identity_aliases")
    op.drop_index("ix_identities_merged_into_id", table_name="identities")
    op.drop_index("ix_identities_status", table_name="identities")
    op.drop_index("ix_identities_canonical_name", table_name="identities")
    op.drop_table("identities")
