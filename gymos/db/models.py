from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, Numeric, JSON, UniqueConstraint, CheckConstraint
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from gymos.db.session import Base

def utcnow() -> datetime:
    # naive UTC, matches the DateTime() columns
    return datetime.now(timezone.utc).replace(tzinfo=None)

class OrderStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    PREPARED = "prepared"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class Gym(Base):
    __tablename__ = 'gyms'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    slug: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

class Role(Base):
    __tablename__ = 'roles'
    __table_args__ = (UniqueConstraint('gym_id', 'name', name='uq_roles_gym_name'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'), index=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # {"orders": {"read": true, "create": true}, ...}
    permissions: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    gym = relationship('Gym')
    users = relationship('User', back_populates='role')

    def allows(self, resource: str, action: str) -> bool:
        perms = self.permissions or {}
        section = perms.get(resource)
        return isinstance(section, dict) and section.get(action) is True

class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'), index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id'), index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    gym = relationship('Gym')
    role = relationship('Role', back_populates='users')
    refresh_tokens = relationship('RefreshToken', back_populates='user', cascade='all, delete-orphan')

class RefreshToken(Base):
    __tablename__ = 'refresh_tokens'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'))
    jti: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    user = relationship('User', back_populates='refresh_tokens')

class ProductCategory(Base):
    __tablename__ = 'product_categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'), index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    products = relationship('Product', back_populates='category')

class Product(Base):
    __tablename__ = 'products'
    __table_args__ = (CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'), index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey('product_categories.id'), index=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    category = relationship('ProductCategory', back_populates='products')

class Order(Base):
    __tablename__ = 'orders'
    __table_args__ = (UniqueConstraint('gym_id', 'order_number', name='uq_orders_gym_order_number'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), index=True)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.PENDING_APPROVAL.value, index=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict]] = mapped_column('metadata', JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    user = relationship('User')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan', order_by='OrderItem.id')

class OrderItem(Base):
    __tablename__ = 'order_items'
    __table_args__ = (CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id', ondelete='CASCADE'), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # price snapshot taken when the order was placed
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    order = relationship('Order', back_populates='items')
    product = relationship('Product')

class OrderSequence(Base):
    __tablename__ = 'order_sequences'
    __table_args__ = (UniqueConstraint('gym_id', 'day', name='uq_order_sequences_gym_day'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'))
    day: Mapped[str] = mapped_column(String(8), nullable=False)  # YYYYMMDD
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

class MatchStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    ENDED = "ended"

class TrainerMatch(Base):
    __tablename__ = 'trainer_matches'
    # one row per pair; ending a match soft-deletes it and re-creating restores it
    __table_args__ = (UniqueConstraint('trainer_id', 'student_id', name='uq_trainer_matches_pair'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gym_id: Mapped[int] = mapped_column(ForeignKey('gyms.id', ondelete='CASCADE'), index=True)
    trainer_id: Mapped[int] = mapped_column(ForeignKey('users.id'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('users.id'), index=True)
    status: Mapped[str] = mapped_column(String(16), default=MatchStatus.ACTIVE.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    trainer = relationship('User', foreign_keys=[trainer_id])
    student = relationship('User', foreign_keys=[student_id])
