"""add login rate limits

Revision ID: 8b2d4e6f1a35
Revises: 3f1a9c2e7b40
Create Date: 2026-10-12 00:10:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8b2d4e6f1a35'
down_revision = '3f1a9c2e7b40'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'login_rate_limits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identifier', sa.String(length=255), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False),
        sa.Column('first_attempt_at', sa.DateTime(), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=False),
        sa.Column('blocked_until', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('login_rate_limits', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_login_rate_limits_identifier'), ['identifier'], unique=True)


def downgrade():
    with op.batch_alter_table('login_rate_limits', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_login_rate_limits_identifier'))

    op.drop_table('login_rate_limits')
