"""create options table

Revision ID: 4c1f2a9e7b10
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4c1f2a9e7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: named JSON options (tokens, module settings, active modules)."""
    conn = op.get_bind()
    insp = sa.inspect(conn)

    # Idempotent for databases bootstrapped with init_db().
    if "options" in insp.get_table_names():
        return

    op.create_table(
        "options",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index("ix_options_id", "options", ["id"], unique=False)
    op.create_index("ix_options_name", "options", ["name"], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_options_name", table_name="options")
    op.drop_index("ix_options_id", table_name="options")
    op.drop_table("options")
