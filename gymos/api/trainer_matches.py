from fastapi import APIRouter, Depends, Response
from typing import Optional
from sqlalchemy.orm import Session
from gymos.api.deps import get_db, get_identity, require_permission, pagination, paginated, Identity, Page
from gymos.db.models import MatchStatus
from gymos.schemas import (
    TrainerMatchCreate, TrainerMatchStatusUpdate, TrainerMatchRead, TrainerMatchPage,
    TrainerStudents, StudentTrainer,
)
from gymos.services import matches as svc

router = APIRouter()

@router.get('/trainer/{trainer_id}/students', response_model=TrainerStudents)
def get_trainer_students(trainer_id: int, status: str = MatchStatus.ACTIVE.value,
                         identity: Identity = Depends(require_permission('trainer_matches.read')),
                         db: Session = Depends(get_db)):
    return svc.trainer_students(db, identity.gym_id, trainer_id, status)

@router.get('/student/{student_id}/trainer', response_model=StudentTrainer)
def get_student_trainer(student_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return svc.student_trainer(db, identity, student_id)

@router.get('', response_model=TrainerMatchPage)
def list_matches(
    status: Optional[str] = None,
    trainer_id: Optional[int] = None,
    student_id: Optional[int] = None,
    page: Page = Depends(pagination),
    identity: Identity = Depends(require_permission('trainer_matches.read')),
    db: Session = Depends(get_db),
):
    rows, total = svc.list_matches(db, identity.gym_id, page, status=status, trainer_id=trainer_id, student_id=student_id)
    return paginated(rows, total, page)

@router.get('/{match_id}', response_model=TrainerMatchRead)
def get_match(match_id: int, identity: Identity = Depends(require_permission('trainer_matches.read')), db: Session = Depends(get_db)):
    return svc.get_match(db, identity.gym_id, match_id)

@router.post('', response_model=TrainerMatchRead, status_code=201)
def create_match(payload: TrainerMatchCreate, identity: Identity = Depends(require_permission('trainer_matches.create')),
                 db: Session = Depends(get_db)):
    return svc.create_match(db, identity.gym_id, payload.trainer_id, payload.student_id)

@router.patch('/{match_id}/status', response_model=TrainerMatchRead)
def update_match_status(match_id: int, payload: TrainerMatchStatusUpdate,
                        identity: Identity = Depends(require_permission('trainer_matches.update')),
                        db: Session = Depends(get_db)):
    return svc.update_status(db, identity.gym_id, match_id, payload.status)

@router.delete('/{match_id}', status_code=204)
def end_match(match_id: int, identity: Identity = Depends(require_permission('trainer_matches.delete')), db: Session = Depends(get_db)):
    svc.end_match(db, identity.gym_id, match_id)
    return Response(status_code=204)
