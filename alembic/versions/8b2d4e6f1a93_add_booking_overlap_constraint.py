"""add booking overlap exclusion constraint

Revision ID: 8b2d4e6f1a93
Revises: 3f1c9a2b7d40
Create Date: 2026-10-19 10:40:07

Two concurrent requests can both pass the application overlap check before
either inserts. This constraint makes the second insert fail. The range is
half-open ('[)'), matching the application check: a check-out day may be
the next guest's check-in day.

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '8b2d4e6f1a93'
down_revision: Union[str, Sequence[str], None] = '3f1c9a2b7d40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Only PostgreSQL has range types and exclusion constraints
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
    op.execute(
        "ALTER TABLE bookings ADD CONSTRAINT no_booking_overlap "
        "EXCLUDE USING gist (property_id WITH =, daterange(check_in, check_out, '[)') WITH &&)"
    )


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute('ALTER TABLE bookings DROP CONSTRAINT IF EXISTS no_booking_overlap')
