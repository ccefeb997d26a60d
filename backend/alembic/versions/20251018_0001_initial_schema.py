"""Create the clients and sessions tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20251018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _guid() -> sa.types.TypeEngine:
    return sa.String(length=36).with_variant(
        postgresql.UUID(as_uuid=True), "postgresql"
    )


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    payment_type_enum = sa.Enum(
        "self-employed",
        "ip",
        "cash",
        "platform",
        name="payment_type_enum",
        native_enum=False,
        length=32,
    )
    payment_method_enum = sa.Enum(
        "card",
        "cash",
        "transfer",
        "platform",
        name="payment_method_enum",
        native_enum=False,
        length=32,
    )
    client_status_enum = sa.Enum(
        "active",
        "paused",
        "completed",
        name="client_status_enum",
        native_enum=False,
        length=16,
    )
    session_status_enum = sa.Enum(
        "scheduled",
        "completed",
        "cancelled",
        name="session_status_enum",
        native_enum=False,
        length=16,
    )
    session_format_enum = sa.Enum(
        "online",
        "offline",
        name="session_format_enum",
        native_enum=False,
        length=16,
    )

    if not inspector.has_table("clients"):
        op.create_table(
            "clients",
            sa.Column("client_id", _guid(), primary_key=True),
            sa.Column("user_id", _guid(), nullable=False),
            sa.Column("client_code", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("source", sa.String(length=32), nullable=False, server_default="private"),
            sa.Column(
                "payment_type",
                payment_type_enum,
                nullable=False,
                server_default="self-employed",
            ),
            sa.Column("need_receipt", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("schedule", sa.String(length=32), nullable=True),
            sa.Column("session_price", sa.Integer(), nullable=True),
            sa.Column("status", client_status_enum, nullable=False, server_default="active"),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("telegram", sa.String(length=64), nullable=True),
            sa.Column("notes_encrypted", sa.Text(), nullable=True),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.CheckConstraint(
                "session_price IS NULL OR session_price >= 0",
                name="ck_clients_session_price_non_negative",
            ),
        )
        op.create_index("clients_user_idx", "clients", ["user_id"])
        op.create_index(
            "clients_user_code_idx", "clients", ["user_id", "client_code"], unique=True
        )

    if not inspector.has_table("sessions"):
        op.create_table(
            "sessions",
            sa.Column("session_id", _guid(), primary_key=True),
            sa.Column("user_id", _guid(), nullable=False),
            sa.Column(
                "client_id",
                _guid(),
                sa.ForeignKey("clients.client_id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("session_number", sa.Integer(), nullable=False),
            sa.Column("scheduled_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("duration", sa.Integer(), nullable=False, server_default="50"),
            sa.Column("status", session_status_enum, nullable=False, server_default="scheduled"),
            sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("payment_method", payment_method_enum, nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("receipt_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("receipt_sent_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("format", session_format_enum, nullable=False, server_default="offline"),
            sa.Column("meeting_link", sa.String(length=500), nullable=True),
            sa.Column("note_encrypted", sa.Text(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.CheckConstraint("price >= 0", name="ck_sessions_price_non_negative"),
            sa.CheckConstraint("duration > 0", name="ck_sessions_duration_positive"),
            sa.CheckConstraint(
                "(paid AND paid_at IS NOT NULL) OR (NOT paid AND paid_at IS NULL)",
                name="ck_sessions_paid_at_matches_paid",
            ),
            sa.CheckConstraint(
                "(receipt_sent AND receipt_sent_at IS NOT NULL)"
                " OR (NOT receipt_sent AND receipt_sent_at IS NULL)",
                name="ck_sessions_receipt_sent_at_matches_flag",
            ),
        )
        op.create_index(
            "sessions_user_scheduled_idx", "sessions", ["user_id", "scheduled_at"]
        )
        op.create_index("sessions_client_idx", "sessions", ["client_id"])
        op.create_index(
            "sessions_client_number_idx",
            "sessions",
            ["client_id", "session_number"],
            unique=True,
        )


def downgrade() -> None:
    op.drop_index("sessions_client_number_idx", table_name="sessions")
    op.drop_index("sessions_client_idx", table_name="sessions")
    op.drop_index("sessions_user_scheduled_idx", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("clients_user_code_idx", table_name="clients")
    op.drop_index("clients_user_idx", table_name="clients")
    op.drop_table("clients")
