from pydantic import BaseModel, EmailStr, Field, AliasChoices
from typing import Optional, List, Any
from datetime import datetime
from decimal import Decimal
from gymos.db.models import OrderStatus, MatchStatus

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

# --- gyms ---
class GymRead(BaseModel):
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    contact_phone: Optional[str] = None
    is_active: bool
    class Config: from_attributes = True
class GymUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = Field(default=None, min_length=2, max_length=80)
    address: Optional[str] = None
    contact_phone: Optional[str] = None

# --- roles ---
class RoleBase(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    description: Optional[str] = None
    permissions: dict[str, dict[str, bool]] = {}
class RoleCreate(RoleBase): pass
class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    permissions: Optional[dict[str, dict[str, bool]]] = None
class RoleRead(RoleBase):
    id: int
    gym_id: int
    class Config: from_attributes = True
class RoleTemplate(RoleBase): pass
class RoleSummary(BaseModel):
    id: int
    name: str
    class Config: from_attributes = True

# --- users ---
class UserSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: EmailStr
    class Config: from_attributes = True
class UserRead(UserSummary):
    phone: Optional[str] = None
    gym_id: int
    role: RoleSummary
    created_at: datetime
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: Optional[str] = None
    role_id: int
class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    role_id: Optional[int] = None
class UserPage(BaseModel):
    items: List[UserRead]
    pagination: Pagination

# --- auth ---
class RegisterPayload(UserCreate):
    gym_id: int
class LoginPayload(BaseModel):
    email: EmailStr
    password: str
class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'
class RefreshRequest(BaseModel):
    refresh_token: str
class AuthResponse(TokenPair):
    user: UserRead
class MeRead(UserRead):
    gym: GymRead
    permissions: dict[str, Any] = Field(default_factory=dict)

# --- catalog ---
class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    image_url: Optional[str] = None
class CategoryCreate(CategoryBase): pass
class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    image_url: Optional[str] = None
class CategoryRead(CategoryBase):
    id: int
    product_count: int = 0
    class Config: from_attributes = True
class CategorySummary(BaseModel):
    id: int
    name: str
    class Config: from_attributes = True
class CategoryPage(BaseModel):
    items: List[CategoryRead]
    pagination: Pagination

class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=240)
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    stock_quantity: int = Field(default=0, ge=0)
    is_active: bool = True
    category_id: int
class ProductCreate(ProductBase): pass
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=240)
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    category_id: Optional[int] = None
class StockUpdate(BaseModel):
    stock_quantity: int = Field(ge=0)
class ProductRead(ProductBase):
    id: int
    category: Optional[CategorySummary] = None
    class Config: from_attributes = True
class ProductPage(BaseModel):
    items: List[ProductRead]
    pagination: Pagination

# --- orders ---
class OrderItemIn(BaseModel):
    product_id: int = Field(validation_alias=AliasChoices('product_id', 'productId'))
    quantity: int
class OrderCreate(BaseModel):
    user_id: Optional[int] = Field(default=None, validation_alias=AliasChoices('user_id', 'userId'))
    items: List[OrderItemIn] = []
    notes: Optional[str] = Field(default=None, max_length=500)
    metadata: Optional[dict[str, Any]] = None
class OrderStatusUpdate(BaseModel):
    status: str
    metadata: Optional[dict[str, Any]] = None
class OrderProductSummary(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    category: Optional[CategorySummary] = None
    class Config: from_attributes = True
class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    product: OrderProductSummary
    class Config: from_attributes = True
class OrderRead(BaseModel):
    id: int
    order_number: str
    gym_id: int
    user_id: int
    status: OrderStatus
    total_amount: Decimal
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias=AliasChoices('meta', 'metadata'))
    created_at: datetime
    updated_at: datetime
    user: UserSummary
    items: List[OrderItemRead] = []
    class Config: from_attributes = True
class OrderPage(BaseModel):
    items: List[OrderRead]
    pagination: Pagination
class OrderStatusCounts(BaseModel):
    pending: int
    prepared: int
    completed: int
    cancelled: int
class OrderStats(BaseModel):
    total_orders: int
    by_status: OrderStatusCounts
    total_revenue: Decimal

# --- trainer matches ---
class MatchUser(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    class Config: from_attributes = True
class TrainerMatchCreate(BaseModel):
    trainer_id: int = Field(validation_alias=AliasChoices('trainer_id', 'trainerId'))
    student_id: int = Field(validation_alias=AliasChoices('student_id', 'studentId'))
class TrainerMatchStatusUpdate(BaseModel):
    status: str
class TrainerMatchRead(BaseModel):
    id: int
    gym_id: int
    trainer_id: int
    student_id: int
    status: MatchStatus
    created_at: datetime
    updated_at: datetime
    trainer: MatchUser
    student: MatchUser
    class Config: from_attributes = True
class TrainerMatchPage(BaseModel):
    items: List[TrainerMatchRead]
    pagination: Pagination
class TrainerStudent(MatchUser):
    match_id: int
    match_status: MatchStatus
    match_created_at: datetime
class TrainerStudents(BaseModel):
    trainer_id: int
    status: MatchStatus
    total_students: int
    students: List[TrainerStudent]
class StudentTrainer(BaseModel):
    student_id: int
    has_trainer: bool
    match_id: Optional[int] = None
    match_status: Optional[MatchStatus] = None
    match_created_at: Optional[datetime] = None
    trainer: Optional[MatchUser] = None

# --- analytics ---
class RevenuePoint(BaseModel):
    date: str
    revenue: Decimal
class StatusCount(BaseModel):
    status: str
    count: int
class TopProduct(BaseModel):
    product_id: int
    name: str
    total_sold: int
class ActivityPoint(BaseModel):
    date: str
    active: int
    inactive: int
class DashboardSummary(BaseModel):
    total_revenue: Decimal
    pending_orders: int
    total_products: int
    low_stock_products: int
    active_students: int
    total_users: int
