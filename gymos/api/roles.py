from fastapi import APIRouter, Depends, Response
from typing import List
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from gymos.api.deps import get_db, require_permission, changes, Identity, SYSTEM_ROLES
from gymos.core.errors import NotFoundError, ConflictError, ValidationError
from gymos.db.models import Role, User, utcnow
from gymos.schemas import RoleCreate, RoleUpdate, RoleRead, RoleTemplate

router = APIRouter()

CRUD = {'read': True, 'create': True, 'update': True, 'delete': True}

ROLE_TEMPLATES = [
    {
        'name': 'GymOwner',
        'description': 'Full access to all gym resources',
        'permissions': {r: dict(CRUD) for r in ('users', 'roles', 'products', 'orders', 'trainer_matches')} | {'gyms': {'read': True, 'update': True}},
    },
    {
        'name': 'Trainer',
        'description': 'Can follow students and handle their orders',
        'permissions': {
            'users': {'read': True},
            'products': {'read': True},
            'orders': dict(CRUD),
            'trainer_matches': {'read': True, 'update': True},
        },
    },
    {
        'name': 'Student',
        'description': 'Can browse products and order for themselves',
        'permissions': {'products': {'read': True}, 'orders': {'read': True, 'create': True, 'delete': True}},
    },
    {
        'name': 'Receptionist',
        'description': 'Can register members and take orders',
        'permissions': {
            'users': {'read': True, 'create': True},
            'products': {'read': True},
            'orders': {'read': True, 'create': True, 'update': True},
        },
    },
]

def _get(db: Session, gym_id: int, role_id: int) -> Role:
    obj = db.execute(select(Role).where(Role.id == role_id, Role.gym_id == gym_id, Role.deleted_at.is_(None))).scalar_one_or_none()
    if not obj: raise NotFoundError('Role not found')
    return obj

def _name_taken(db: Session, gym_id: int, name: str) -> bool:
    return db.execute(select(Role.id).where(Role.gym_id == gym_id, Role.name == name, Role.deleted_at.is_(None))).first() is not None

@router.get('', response_model=List[RoleRead])
def list_roles(identity: Identity = Depends(require_permission('roles.read')), db: Session = Depends(get_db)):
    return db.execute(select(Role).where(Role.gym_id == identity.gym_id, Role.deleted_at.is_(None)).order_by(Role.name)).scalars().all()

@router.get('/templates', response_model=List[RoleTemplate])
def list_role_templates(identity: Identity = Depends(require_permission('roles.read'))):
    return ROLE_TEMPLATES

@router.get('/{role_id}', response_model=RoleRead)
def get_role(role_id: int, identity: Identity = Depends(require_permission('roles.read')), db: Session = Depends(get_db)):
    return _get(db, identity.gym_id, role_id)

@router.post('', response_model=RoleRead, status_code=201)
def create_role(payload: RoleCreate, identity: Identity = Depends(require_permission('roles.create')), db: Session = Depends(get_db)):
    if _name_taken(db, identity.gym_id, payload.name):
        raise ConflictError('Role with this name already exists in your gym')
    obj = Role(gym_id=identity.gym_id, **payload.model_dump())
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch('/{role_id}', response_model=RoleRead)
def update_role(role_id: int, payload: RoleUpdate, identity: Identity = Depends(require_permission('roles.update')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, role_id)
    data = changes(payload, 'name', 'permissions')
    if data.get('name') and data['name'] != obj.name:
        if obj.name in SYSTEM_ROLES:
            raise ValidationError('Cannot rename system roles')
        if _name_taken(db, identity.gym_id, data['name']):
            raise ConflictError('Role with this name already exists')
    for k, v in data.items(): setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete('/{role_id}', status_code=204)
def delete_role(role_id: int, identity: Identity = Depends(require_permission('roles.delete')), db: Session = Depends(get_db)):
    obj = _get(db, identity.gym_id, role_id)
    if obj.name in SYSTEM_ROLES:
        raise ValidationError('Cannot delete system roles')
    users = db.execute(select(func.count()).select_from(User).where(User.role_id == obj.id, User.deleted_at.is_(None))).scalar_one()
    if users:
        raise ValidationError(f'Cannot delete role. It is assigned to {users} user(s). Please reassign users first.')
    obj.deleted_at = utcnow()
    db.add(obj); db.commit()
    return Response(status_code=204)
