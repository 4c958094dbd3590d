from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("accommodation_id", sa.String(36), nullable=False),
        sa.Column("guest_id", sa.String(36), nullable=False),
        sa.Column("host_id", sa.String(36), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_date > start_date", name="ck_reservations_date_order"),
        sa.CheckConstraint("guest_count >= 1", name="ck_reservations_guest_count"),
    )
    op.create_index("ix_reservations_accommodation_id", "reservations", ["accommodation_id"], unique=False)
    op.create_index("ix_reservations_guest_id", "reservations", ["guest_id"], unique=False)
    op.create_index("ix_reservations_host_id", "reservations", ["host_id"], unique=False)
    op.create_index(
        "ix_reservations_accommodation_status", "reservations", ["accommodation_id", "status"], unique=False
    )

    # Two live APPROVED rows of one accommodation may never share a night.
    # daterange '[)' matches the application check: checkout == next check-in is allowed.
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE reservations
        ADD CONSTRAINT no_approved_overlap
        EXCLUDE USING gist (
            accommodation_id WITH =,
            daterange(start_date, end_date, '[)') WITH &&
        )
        WHERE (status = 'APPROVED' AND NOT is_deleted)
        """
    )


def downgrade():
    op.execute("ALTER TABLE reservations DROP CONSTRAINT IF EXISTS no_approved_overlap")
    op.drop_index("ix_reservations_accommodation_status", table_name="reservations")
    op.drop_index("ix_reservations_host_id", table_name="reservations")
    op.drop_index("ix_reservations_guest_id", table_name="reservations")
    op.drop_index("ix_reservations_accommodation_id", table_name="reservations")
    op.drop_table("reservations")
