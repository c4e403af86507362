from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "tours",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("operator_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("variant", sa.String(length=32), nullable=False, server_default="wijktocht"),
        sa.Column("max_teams", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("max_teams > 0", name="ck_tour_max_teams_positive"),
    )
    op.create_index("ix_tours_operator_id", "tours", ["operator_id"])

    op.create_table(
        "checkpoints",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tour_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("unlock_radius_m", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("mission_title", sa.String(length=200), nullable=False),
        sa.Column("mission_description", sa.Text(), nullable=False),
        sa.Column("mission_type", sa.String(length=16), nullable=False, server_default="opdracht"),
        sa.Column("gms_connection", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gms_meaning", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gms_joy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gms_growth", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hint1", sa.Text(), nullable=True),
        sa.Column("hint2", sa.Text(), nullable=True),
        sa.Column("hint3", sa.Text(), nullable=True),
        sa.Column("time_limit_seconds", sa.Integer(), nullable=True),
        sa.Column("bonus_photo_points", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("tour_id", "order_index", name="uq_checkpoint_tour_order"),
        sa.CheckConstraint("order_index >= 0", name="ck_checkpoint_order_nonneg"),
        sa.CheckConstraint("unlock_radius_m > 0", name="ck_checkpoint_radius_positive"),
        sa.CheckConstraint(
            "gms_connection >= 0 AND gms_meaning >= 0 AND gms_joy >= 0 AND gms_growth >= 0",
            name="ck_checkpoint_caps_nonneg",
        ),
    )
    op.create_index("ix_checkpoints_tour_id", "checkpoints", ["tour_id"])

def downgrade() -> None:
    op.drop_index("ix_checkpoints_tour_id", table_name="checkpoints")
    op.drop_table("checkpoints")
    op.drop_index("ix_tours_operator_id", table_name="tours")
    op.drop_table("tours")
