"""add inline full video to movies

Revision ID: 20261017_000002
Revises: 20261017_000001
Create Date: 2026-10-17 00:00:02.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_000002"
down_revision: Union[str, None] = "20261017_000001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("movies", sa.Column("video", sa.LargeBinary(), nullable=True))
    op.add_column("movies", sa.Column("video_mime_type", sa.String(), nullable=True))
    op.add_column("movies", sa.Column("video_size_bytes", sa.Integer(), nullable=True))


def downgrade() -> None:
    op.drop_column("movies", "video_size_bytes")
    op.drop_column("movies", "video_mime_type")
    op.drop_column("movies", "video")
