from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import select
from gymos.api.deps import get_db, get_identity, require_permission, changes, Identity
from gymos.core.errors import NotFoundError, ConflictError
from gymos.db.models import Gym
from gymos.schemas import GymRead, GymUpdate

router = APIRouter()

def _current(db: Session, identity: Identity) -> Gym:
    gym = db.get(Gym, identity.gym_id)
    if not gym or gym.deleted_at is not None: raise NotFoundError('Gym not found')
    return gym

@router.get('/current', response_model=GymRead)
def get_current_gym(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return _current(db, identity)

@router.patch('/current', response_model=GymRead)
def update_current_gym(payload: GymUpdate, identity: Identity = Depends(require_permission('gyms.update')), db: Session = Depends(get_db)):
    gym = _current(db, identity)
    data = changes(payload, 'name', 'slug')
    if data.get('slug') and data['slug'] != gym.slug:
        if db.execute(select(Gym.id).where(Gym.slug == data['slug'], Gym.id != gym.id)).first():
            raise ConflictError('Gym with this slug already exists')
    for k, v in data.items(): setattr(gym, k, v)
    db.add(gym); db.commit(); db.refresh(gym)
    return gym
