from alembic import op
import sqlalchemy as sa

revision = "20261017090000"
down_revision = None

NOW = sa.text("(now() at time zone 'utc')")

def _timestamps(deleted=True):
    cols = [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=NOW),
    ]
    if deleted:
        cols.append(sa.Column('deleted_at', sa.DateTime(), nullable=True))
    return cols

def upgrade():
    op.create_table(
        'gyms',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(160), nullable=False),
        sa.Column('slug', sa.String(80), nullable=False, unique=True),
        sa.Column('address', sa.String(255)),
        sa.Column('contact_phone', sa.String(32)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        *_timestamps(),
    )
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('description', sa.String(255)),
        sa.Column('permissions', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('gym_id', 'name', name='uq_roles_gym_name'),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id'), nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(120), nullable=False),
        sa.Column('last_name', sa.String(120), nullable=False),
        sa.Column('phone', sa.String(32)),
        *_timestamps(),
    )
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('jti', sa.String(64), nullable=False, unique=True),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
    )
    op.create_table(
        'product_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('image_url', sa.String(1024)),
        *_timestamps(),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('product_categories.id'), nullable=False, index=True),
        sa.Column('name', sa.String(240), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('image_url', sa.String(1024)),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        *_timestamps(),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('order_number', sa.String(32), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending_approval', index=True),
        sa.Column('metadata', sa.JSON()),
        *_timestamps(),
        sa.UniqueConstraint('gym_id', 'order_number', name='uq_orders_gym_order_number'),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
    )
    op.create_table(
        'order_sequences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gym_id', sa.Integer(), sa.ForeignKey('gyms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day', sa.String(8), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('gym_id', 'day', name='uq_order_sequences_gym_day'),
    )

def downgrade():
    for t in ('order_sequences', 'order_items', 'orders', 'products', 'product_categories',
              'refresh_tokens', 'users', 'roles', 'gyms'):
        op.drop_table(t)
