from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.orm import Session
from gymos.core.config import settings
from gymos.core.errors import UnauthorizedError, ForbiddenError, ValidationError
from gymos.db.session import SessionLocal
from gymos.db.models import Role
from gymos.security.utils import decode_token

STUDENT_ROLE = 'Student'
TRAINER_ROLE = 'Trainer'
OWNER_ROLE = 'GymOwner'
SYSTEM_ROLES = ('SuperAdmin', 'GymOwner', 'Trainer', 'Student')

security = HTTPBearer(auto_error=False)

class Identity(BaseModel):
    user_id: int
    email: str
    gym_id: int
    role_id: int
    role: str

    @property
    def is_student(self) -> bool:
        return self.role == STUDENT_ROLE

class Page(BaseModel):
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    if not creds: raise UnauthorizedError('Not authenticated')
    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise UnauthorizedError('Invalid token')
    if payload.get('type') != 'access':
        raise UnauthorizedError('Invalid access token')
    if not payload.get('gym_id'):
        raise UnauthorizedError('User gym information not found')
    try:
        return Identity(
            user_id=int(payload['sub']),
            email=payload.get('email', ''),
            gym_id=payload['gym_id'],
            role_id=payload['role_id'],
            role=payload.get('role', ''),
        )
    except (KeyError, ValueError):
        raise UnauthorizedError('Invalid token')

def require_permission(permission: str):
    """Dependency factory: the caller's role must grant `resource.action`."""
    resource, _, action = permission.partition('.')
    if not resource or not action:
        raise ValueError('Invalid permission format. Use "resource.action"')

    def _checker(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> Identity:
        role = db.get(Role, identity.role_id)
        if not role or role.deleted_at is not None or role.gym_id != identity.gym_id:
            raise ForbiddenError('Role not found')
        if not role.allows(resource, action):
            raise ForbiddenError(f"You don't have permission to {action} {resource}")
        return identity
    return _checker

def require_role(*roles: str):
    """Dependency factory: the caller's role name must be one of `roles`."""
    def _checker(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise ForbiddenError(f"Only {', '.join(roles)} can access this resource")
        return identity
    return _checker

def pagination(page: int = Query(1, ge=1), limit: Optional[int] = Query(None, ge=1)) -> Page:
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE
    return Page(page=page, limit=min(limit, settings.MAX_PAGE_SIZE))

def paginated(rows, total: int, page: Page) -> dict:
    return {
        'items': rows,
        'pagination': {
            'page': page.page,
            'limit': page.limit,
            'total': total,
            'total_pages': -(-total // page.limit),
        },
    }

def changes(payload: BaseModel, *required: str) -> dict:
    """Fields the client sent; an explicit null on a `required` column is a 400."""
    data = payload.model_dump(exclude_unset=True)
    for name in required:
        if name in data and data[name] is None:
            raise ValidationError(f'{name} cannot be null')
    return data
