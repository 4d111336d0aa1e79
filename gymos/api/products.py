from fastapi import APIRouter, Depends, Response
from typing import Optional
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, func, or_
from gymos.api.deps import get_db, require_permission, pagination, paginated, changes, Identity, Page
from gymos.core.errors import NotFoundError, ConflictError
from gymos.db.models import Product, ProductCategory, utcnow
from gymos.schemas import ProductCreate, ProductUpdate, ProductRead, ProductPage, StockUpdate

router = APIRouter()

def _get(db: Session, gym_id: int, product_id: int) -> Product:
    obj = db.execute(select(Product).options(selectinload(Product.category)).where(
        Product.id == product_id, Product.gym_id == gym_id, Product.deleted_at.is_(None)
    )).scalar_one_or_none()
    if not obj: raise NotFoundError('Product not found')
    return obj

def _check_category(db: Session, gym_id: int, category_id: int):
    found = db.execute(select(ProductCategory.id).where(
        ProductCategory.id == category_id, ProductCategory.gym_id == gym_id, ProductCategory.deleted_at.is_(None)
    )).first()
    if not found: raise NotFoundError('Category not found')

def _check_duplicate(db: Session, gym_id: int, name: str, category_id: int, exclude_id: Optional[int] = None):
    stmt = select(Product.id).where(
        Product.gym_id == gym_id, Product.name == name, Product.category_id == category_id, Product.deleted_at.is_(None)
    )
    if exclude_id is not None: stmt = stmt.where(Product.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError('Product with this name already exists in this category')

@router.get('', response_model=ProductPage)
def list_products(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    in_stock: Optional[bool] = None,
    page: Page = Depends(pagination),
    identity: Identity = Depends(require_permission('products.read')),
    db: Session = Depends(get_db),
):
    stmt = select(Product).where(Product.gym_id == identity.gym_id, Product.deleted_at.is_(None))
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Product.name.ilike(like), Product.description.ilike(like)))
    if category_id is not None: stmt = stmt.where(Product.category_id == category_id)
    if is_active is not None: stmt = stmt.where(Product.is_active == is_active)
    if in_stock: stmt = stmt.where(Product.stock_quantity > 0)
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.options(selectinload(Product.category)).order_by(Product.name).offset(page.offset).limit(page.limit)
    ).scalars().all()
    return paginated(rows, total, page)

@router.get('/{product_id}', response_model=ProductRead)
def get_product(product_id: int, identity: Identity = Depends(require_permission('products.read')), db: Session = Depends(get_db)):
    return _get(db, identity.gym_id, product_id)

@router.post('', response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, identity: Identity = Depends(require_permission('products.create')), db: Session = Depends(get_db)):
    _check_category(db, identity.gym_id, payload.category_id)
    _check_duplicate(db, identity.gym_id, payload.name, payload.category_id)
    obj = Product(gym_id=identity.gym_id, **payload.model_dump())
    db.add(obj); db.commit()
    return _get(db, identity.gym_id, obj.id)

@router.patch('/{product_id}', response_model=ProductRead)
def update_product(product_id: int, payload: ProductUpdate, identity: Identity = Depends(require_permission('products.update')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, product_id)
    data = changes(payload, 'name', 'price', 'stock_quantity', 'is_active', 'category_id')
    if data.get('category_id') and data['category_id'] != obj.category_id:
        _check_category(db, identity.gym_id, data['category_id'])
    name = data.get('name') or obj.name
    category_id = data.get('category_id') or obj.category_id
    if name != obj.name or category_id != obj.category_id:
        _check_duplicate(db, identity.gym_id, name, category_id, exclude_id=obj.id)
    for k, v in data.items(): setattr(obj, k, v)
    db.add(obj); db.commit()
    return _get(db, identity.gym_id, product_id)

@router.patch('/{product_id}/stock', response_model=ProductRead)
def update_stock(product_id: int, payload: StockUpdate, identity: Identity = Depends(require_permission('products.update')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, product_id)
    obj.stock_quantity = payload.stock_quantity
    db.add(obj); db.commit()
    return _get(db, identity.gym_id, product_id)

@router.delete('/{product_id}', status_code=204)
def delete_product(product_id: int, identity: Identity = Depends(require_permission('products.delete')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, product_id)
    obj.deleted_at = utcnow()
    db.add(obj); db.commit()
    return Response(status_code=204)
