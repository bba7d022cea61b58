"""add min rate to pppoe profiles

Revision ID: b7e2d4c91f06
Revises: a1c4e7f20b93
Create Date: 2026-10-19 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b7e2d4c91f06"
down_revision: Union[str, None] = "a1c4e7f20b93"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    columns = {col["name"] for col in inspector.get_columns("pppoe_profiles")}

    if "min_rate" not in columns:
        op.add_column("pppoe_profiles", sa.Column("min_rate", sa.String(120), nullable=True))


def downgrade() -> None:
    op.drop_column("pppoe_profiles", "min_rate")
