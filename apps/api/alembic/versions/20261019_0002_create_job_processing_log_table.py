"""create job processing log table

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 09:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0002"
down_revision: Union[str, Sequence[str], None] = "20261019_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "job_processing_log",
        sa.Column("log_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("row_id", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "error_time",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_job_processing_log_row_id", "job_processing_log", ["row_id"])


def downgrade() -> None:
    op.drop_index("ix_job_processing_log_row_id", table_name="job_processing_log")
    op.drop_table("job_processing_log")
