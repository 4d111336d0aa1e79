from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from gymos.api.deps import get_db, require_permission, pagination, paginated, changes, Identity, Page
from gymos.core.errors import NotFoundError, ConflictError, ValidationError
from gymos.db.models import ProductCategory, Product, utcnow
from gymos.schemas import CategoryCreate, CategoryUpdate, CategoryRead, CategoryPage

router = APIRouter()

def _live_products(db: Session, category_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(Product).where(Product.category_id == category_id, Product.deleted_at.is_(None))
    ).scalar_one()

def _read(db: Session, obj: ProductCategory) -> CategoryRead:
    return CategoryRead(id=obj.id, name=obj.name, image_url=obj.image_url, product_count=_live_products(db, obj.id))

def _get(db: Session, gym_id: int, category_id: int) -> ProductCategory:
    obj = db.execute(select(ProductCategory).where(
        ProductCategory.id == category_id, ProductCategory.gym_id == gym_id, ProductCategory.deleted_at.is_(None)
    )).scalar_one_or_none()
    if not obj: raise NotFoundError('Category not found')
    return obj

def _name_taken(db: Session, gym_id: int, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(ProductCategory.id).where(
        ProductCategory.gym_id == gym_id, ProductCategory.name == name, ProductCategory.deleted_at.is_(None)
    )
    if exclude_id is not None: stmt = stmt.where(ProductCategory.id != exclude_id)
    return db.execute(stmt).first() is not None

@router.get('', response_model=CategoryPage)
def list_categories(page: Page = Depends(pagination), identity: Identity = Depends(require_permission('products.read')), db: Session = Depends(get_db)):
    stmt = select(ProductCategory).where(ProductCategory.gym_id == identity.gym_id, ProductCategory.deleted_at.is_(None))
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(stmt.order_by(ProductCategory.name).offset(page.offset).limit(page.limit)).scalars().all()
    return paginated([_read(db, c) for c in rows], total, page)

@router.get('/{category_id}', response_model=CategoryRead)
def get_category(category_id: int, identity: Identity = Depends(require_permission('products.read')), db: Session = Depends(get_db)):
    return _read(db, _get(db, identity.gym_id, category_id))

@router.post('', response_model=CategoryRead, status_code=201)
def create_category(payload: CategoryCreate, identity: Identity = Depends(require_permission('products.create')), db: Session = Depends(get_db)):
    if _name_taken(db, identity.gym_id, payload.name):
        raise ConflictError('Category with this name already exists')
    obj = ProductCategory(gym_id=identity.gym_id, **payload.model_dump())
    db.add(obj); db.commit(); db.refresh(obj)
    return _read(db, obj)

@router.patch('/{category_id}', response_model=CategoryRead)
def update_category(category_id: int, payload: CategoryUpdate, identity: Identity = Depends(require_permission('products.update')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, category_id)
    data = changes(payload, 'name')
    if data.get('name') and data['name'] != obj.name and _name_taken(db, identity.gym_id, data['name'], exclude_id=obj.id):
        raise ConflictError('Category with this name already exists')
    for k, v in data.items(): setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    return _read(db, obj)

@router.delete('/{category_id}', status_code=204)
def delete_category(category_id: int, identity: Identity = Depends(require_permission('products.delete')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, category_id)
    count = _live_products(db, obj.id)
    if count:
        raise ValidationError(f'Cannot delete category with {count} active product(s)')
    obj.deleted_at = utcnow()
    db.add(obj); db.commit()
    return Response(status_code=204)
