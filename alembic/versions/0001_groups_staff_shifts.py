"""groups, staff, shifts, archived windows and group sessions

Revision ID: 0001_groups_staff_shifts
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_groups_staff_shifts"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "groups",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("access_key", sa.String(length=32), nullable=False),
        sa.Column("admin_key", sa.String(length=32), nullable=False),
        sa.Column("admin_password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("shift_start_date", sa.Date(), nullable=True),
        sa.Column("shift_day_count", sa.Integer(), nullable=True),
    )
    op.create_index("ix_groups_access_key", "groups", ["access_key"], unique=True)
    op.create_index("ix_groups_admin_key", "groups", ["admin_key"], unique=True)

    op.create_table(
        "staff",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("group_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_shift_confirmed", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role IN ('staff', 'manager')", name="ck_staff_role"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_staff_group_id", "staff", ["group_id"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("staff_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("is_working", sa.Boolean(), nullable=False),
        sa.Column("is_all_day", sa.Boolean(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("staff_id", "date", name="uq_shifts_staff_date"),
    )
    op.create_index("ix_shifts_staff_id", "shifts", ["staff_id"], unique=False)
    op.create_index("ix_shifts_date", "shifts", ["date"], unique=False)

    op.create_table(
        "scheduling_windows",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.String(length=36), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("day_count", sa.Integer(), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("day_count > 0", name="ck_scheduling_windows_day_count"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("group_id", "start_date", name="uq_scheduling_windows_group_start"),
    )
    op.create_index("ix_scheduling_windows_group_id", "scheduling_windows", ["group_id"], unique=False)

    op.create_table(
        "group_sessions",
        sa.Column("session_id", sa.String(length=128), primary_key=True),
        sa.Column("group_id", sa.String(length=36), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_group_sessions_group_id", "group_sessions", ["group_id"], unique=False)
    op.create_index("ix_group_sessions_expires_at", "group_sessions", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_group_sessions_expires_at", table_name="group_sessions")
    op.drop_index("ix_group_sessions_group_id", table_name="group_sessions")
    op.drop_table("group_sessions")

    op.drop_index("ix_scheduling_windows_group_id", table_name="scheduling_windows")
    op.drop_table("scheduling_windows")

    op.drop_index("ix_shifts_date", table_name="shifts")
    op.drop_index("ix_shifts_staff_id", table_name="shifts")
    op.drop_table("shifts")

    op.drop_index("ix_staff_group_id", table_name="staff")
    op.drop_table("staff")

    op.drop_index("ix_groups_admin_key", table_name="groups")
    op.drop_index("ix_groups_access_key", table_name="groups")
    op.drop_table("groups")
