"""manual policy edit grants

Revision ID: 7c2e4b9a1d35
Revises: 3a9f1c2d4b10
Create Date: 2026-10-25 09:15:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "7c2e4b9a1d35"
down_revision = "3a9f1c2d4b10"
branch_labels = None
depends_on = None


OLD_REVOKE_REASON_VALUES = ("RESUBMITTED", "SUPERSEDED", "EXPIRED")
NEW_REVOKE_REASON_VALUES = ("RESUBMITTED", "SUPERSEDED", "EXPIRED", "REVOKED")
GRANT_KIND_VALUES = ("REJECTION", "MANUAL")


def _expand_revoke_reason_enum() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text("ALTER TYPE grant_revoke_reason ADD VALUE IF NOT EXISTS 'REVOKED'"))
        return
    if bind.dialect.name == "sqlite":
        with op.batch_alter_table("edit_grant", schema=None) as batch_op:
            batch_op.alter_column(
                "revoke_reason",
                existing_type=sa.Enum(*OLD_REVOKE_REASON_VALUES, name="grant_revoke_reason"),
                type_=sa.Enum(*NEW_REVOKE_REASON_VALUES, name="grant_revoke_reason"),
                existing_nullable=True,
            )


def _shrink_revoke_reason_enum_sqlite() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        return
    with op.batch_alter_table("edit_grant", schema=None) as batch_op:
        batch_op.alter_column(
            "revoke_reason",
            existing_type=sa.Enum(*NEW_REVOKE_REASON_VALUES, name="grant_revoke_reason"),
            type_=sa.Enum(*OLD_REVOKE_REASON_VALUES, name="grant_revoke_reason"),
            existing_nullable=True,
        )


def upgrade():
    bind = op.get_bind()
    _expand_revoke_reason_enum()

    kind_type = sa.Enum(*GRANT_KIND_VALUES, name="edit_grant_kind")
    if bind.dialect.name == "postgresql":
        postgresql.ENUM(*GRANT_KIND_VALUES, name="edit_grant_kind").create(bind, checkfirst=True)
        kind_type = postgresql.ENUM(*GRANT_KIND_VALUES, name="edit_grant_kind", create_type=False)

    with op.batch_alter_table("edit_grant", schema=None) as batch_op:
        batch_op.add_column(sa.Column("kind", kind_type, nullable=False, server_default="REJECTION"))
        batch_op.add_column(sa.Column("revoked_by_user_id", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("note", sa.Text(), nullable=False, server_default=""))
        batch_op.create_foreign_key(
            "fk_edit_grant_revoked_by_user_id",
            "user_account",
            ["revoked_by_user_id"],
            ["id"],
        )


def downgrade():
    bind = op.get_bind()
    op.execute(sa.text("DELETE FROM edit_grant WHERE kind = 'MANUAL'"))
    op.execute(sa.text("UPDATE edit_grant SET revoke_reason = 'SUPERSEDED' WHERE revoke_reason = 'REVOKED'"))

    with op.batch_alter_table("edit_grant", schema=None) as batch_op:
        batch_op.drop_constraint("fk_edit_grant_revoked_by_user_id", type_="foreignkey")
        batch_op.drop_column("note")
        batch_op.drop_column("revoked_by_user_id")
        batch_op.drop_column("kind")

    if bind.dialect.name == "postgresql":
        postgresql.ENUM(name="edit_grant_kind").drop(bind, checkfirst=True)
    _shrink_revoke_reason_enum_sqlite()
