from fastapi import APIRouter, Depends, Response
from typing import Optional
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, func, or_
from gymos.api.deps import get_db, get_identity, require_permission, pagination, paginated, changes, Identity, Page
from gymos.core.errors import NotFoundError, ConflictError, ValidationError, ForbiddenError
from gymos.db.models import User, Role, utcnow
from gymos.schemas import UserCreate, UserUpdate, UserRead, UserPage
from gymos.security.utils import hash_password

router = APIRouter()

def _get(db: Session, gym_id: int, user_id: int) -> User:
    obj = db.execute(select(User).options(selectinload(User.role)).where(
        User.id == user_id, User.gym_id == gym_id, User.deleted_at.is_(None)
    )).scalar_one_or_none()
    if not obj: raise NotFoundError('User not found')
    return obj

def _gym_role(db: Session, gym_id: int, role_id: int) -> Role:
    role = db.execute(select(Role).where(Role.id == role_id, Role.gym_id == gym_id, Role.deleted_at.is_(None))).scalar_one_or_none()
    if not role: raise ValidationError('Invalid role')
    return role

@router.get('', response_model=UserPage)
def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    page: Page = Depends(pagination),
    identity: Identity = Depends(require_permission('users.read')),
    db: Session = Depends(get_db),
):
    stmt = select(User).where(User.gym_id == identity.gym_id, User.deleted_at.is_(None))
    if role:
        stmt = stmt.join(Role, Role.id == User.role_id).where(Role.name == role)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(User.first_name.ilike(like), User.last_name.ilike(like), User.email.ilike(like)))
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.options(selectinload(User.role)).order_by(User.created_at.desc(), User.id.desc()).offset(page.offset).limit(page.limit)
    ).scalars().all()
    return paginated(rows, total, page)

@router.get('/{user_id}', response_model=UserRead)
def get_user(user_id: int, identity: Identity = Depends(require_permission('users.read')), db: Session = Depends(get_db)):
    return _get(db, identity.gym_id, user_id)

@router.post('', response_model=UserRead, status_code=201)
def create_user(payload: UserCreate, identity: Identity = Depends(require_permission('users.create')), db: Session = Depends(get_db)):
    if db.execute(select(User.id).where(User.email == str(payload.email))).first():
        raise ConflictError('Email already registered')
    _gym_role(db, identity.gym_id, payload.role_id)
    data = payload.model_dump(exclude={'password'})
    data['email'] = str(payload.email)
    obj = User(gym_id=identity.gym_id, password_hash=hash_password(payload.password), **data)
    db.add(obj); db.commit()
    return _get(db, identity.gym_id, obj.id)

@router.patch('/{user_id}', response_model=UserRead)
def update_user(user_id: int, payload: UserUpdate, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, user_id)
    own_role = db.get(Role, identity.role_id)
    can_manage = bool(own_role and own_role.allows('users', 'update'))
    if user_id != identity.user_id and not can_manage:
        raise ForbiddenError('You can only update your own profile')
    data = changes(payload, 'first_name', 'last_name', 'role_id')
    if data.get('role_id') and data['role_id'] != obj.role_id:
        if not can_manage:
            raise ForbiddenError('You cannot change your own role')
        _gym_role(db, identity.gym_id, data['role_id'])
    for k, v in data.items(): setattr(obj, k, v)
    db.add(obj); db.commit()
    return _get(db, identity.gym_id, user_id)

@router.delete('/{user_id}', status_code=204)
def delete_user(user_id: int, identity: Identity = Depends(require_permission('users.delete')), db: Session = Depends(get_db)):
    if user_id == identity.user_id:
        raise ValidationError('You cannot delete your own account')
    obj = _get(db, identity.gym_id, user_id)
    obj.deleted_at = utcnow()
    db.add(obj); db.commit()
    return Response(status_code=204)
