from alembic import op
import sqlalchemy as sa

revision = "20261017120000"
down_revision = "20261017090000"

NOW = sa.text("(now() at time zone 'utc')")

def upgrade():
    op.create_table(
        'trainer_matches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('trainer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='active', index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('trainer_id', 'student_id', name='uq_trainer_matches_pair'),
    )

def downgrade():
    op.drop_table('trainer_matches')
