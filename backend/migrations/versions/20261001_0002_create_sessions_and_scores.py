from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "game_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tour_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tours.id"), nullable=False),
        sa.Column("operator_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("join_code", sa.String(length=12), nullable=False),
        sa.Column("variant", sa.String(length=32), nullable=False, server_default="wijktocht"),
        sa.Column("is_test_mode", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("geofence_polygon", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft','lobby','active','paused','completed','cancelled')",
            name="ck_game_session_status",
        ),
    )
    op.create_index("ix_game_sessions_tour_id", "game_sessions", ["tour_id"])
    op.create_index("ix_game_sessions_operator_id", "game_sessions", ["operator_id"])
    op.create_index("ix_game_sessions_join_code", "game_sessions", ["join_code"], unique=True)

    op.create_table(
        "teams",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("last_latitude", sa.Float(), nullable=True),
        sa.Column("last_longitude", sa.Float(), nullable=True),
        sa.Column("last_accuracy_m", sa.Float(), nullable=True),
        sa.Column("last_position_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("current_checkpoint_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_checkpoints", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("total_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_outside_geofence", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("session_id", "name", name="uq_team_session_name"),
        sa.CheckConstraint("current_checkpoint_index >= 0", name="ck_team_index_nonneg"),
        sa.CheckConstraint("total_score >= 0", name="ck_team_score_nonneg"),
    )
    op.create_index("ix_teams_session_id", "teams", ["session_id"])
    op.create_index("ix_teams_token", "teams", ["token"], unique=True)

    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("checkpoint_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("checkpoints.id"), nullable=False),
        sa.Column("answer", sa.Text(), nullable=True),
        sa.Column("photo_ref", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("oracle_score", sa.Integer(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("evaluation_json", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("gms_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("scheduled_delete_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("team_id", "checkpoint_id", name="uq_submission_one_per_checkpoint"),
        sa.CheckConstraint("status IN ('pending','approved','rejected')", name="ck_submission_status"),
    )
    op.create_index("ix_submissions_session_id", "submissions", ["session_id"])
    op.create_index("ix_submissions_team_id", "submissions", ["team_id"])
    op.create_index(
        "ix_submissions_scheduled_delete_at", "submissions", ["scheduled_delete_at"],
        postgresql_where=sa.text("scheduled_delete_at IS NOT NULL"),
    )

    op.create_table(
        "session_scores",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("connection", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("meaning", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("joy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("growth", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("checkpoints_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("checkpoint_scores", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("session_id", "team_id", name="uq_session_score_team"),
        sa.CheckConstraint(
            "connection >= 0 AND meaning >= 0 AND joy >= 0 AND growth >= 0 AND bonus >= 0",
            name="ck_session_score_nonneg",
        ),
    )
    op.create_index("ix_session_scores_session_id", "session_scores", ["session_id"])
    op.create_index("ix_session_scores_team_id", "session_scores", ["team_id"])

    op.create_table(
        "score_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("submission_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("gms_earned", sa.Integer(), nullable=False),
        sa.Column("bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("submission_id", name="uq_score_entry_submission"),
    )
    op.create_index("ix_score_entries_session_id", "score_entries", ["session_id"])
    op.create_index("ix_score_entries_team_id", "score_entries", ["team_id"])

def downgrade() -> None:
    op.drop_index("ix_score_entries_team_id", table_name="score_entries")
    op.drop_index("ix_score_entries_session_id", table_name="score_entries")
    op.drop_table("score_entries")
    op.drop_index("ix_session_scores_team_id", table_name="session_scores")
    op.drop_index("ix_session_scores_session_id", table_name="session_scores")
    op.drop_table("session_scores")
    op.drop_index("ix_submissions_scheduled_delete_at", table_name="submissions")
    op.drop_index("ix_submissions_team_id", table_name="submissions")
    op.drop_index("ix_submissions_session_id", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_teams_token", table_name="teams")
    op.drop_index("ix_teams_session_id", table_name="teams")
    op.drop_table("teams")
    op.drop_index("ix_game_sessions_join_code", table_name="game_sessions")
    op.drop_index("ix_game_sessions_operator_id", table_name="game_sessions")
    op.drop_index("ix_game_sessions_tour_id", table_name="game_sessions")
    op.drop_table("game_sessions")
