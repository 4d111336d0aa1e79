"""Trainer-student matching: who trains whom inside a gym."""
import logging
from typing import List, Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload
from gymos.api.deps import Identity, Page, STUDENT_ROLE, TRAINER_ROLE
from gymos.core.errors import ValidationError, ForbiddenError, NotFoundError, ConflictError
from gymos.db.models import MatchStatus, Role, TrainerMatch, User, utcnow

log = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in MatchStatus]

def check_status(status: str) -> str:
    if status not in VALID_STATUSES:
        raise ValidationError('Status must be active, pending, or ended')
    return status

def _with_users(stmt):
    return stmt.options(selectinload(TrainerMatch.trainer), selectinload(TrainerMatch.student))

def _member(db: Session, gym_id: int, user_id: int) -> Optional[Tuple[User, str]]:
    return db.execute(
        select(User, Role.name).join(Role, Role.id == User.role_id)
        .where(User.id == user_id, User.gym_id == gym_id, User.deleted_at.is_(None))
    ).one_or_none()

def active_student_ids(db: Session, gym_id: int, trainer_id: int) -> List[int]:
    return list(db.execute(
        select(TrainerMatch.student_id).where(
            TrainerMatch.gym_id == gym_id,
            TrainerMatch.trainer_id == trainer_id,
            TrainerMatch.status == MatchStatus.ACTIVE.value,
            TrainerMatch.deleted_at.is_(None),
        )
    ).scalars())

def get_match(db: Session, gym_id: int, match_id: int) -> TrainerMatch:
    match = db.execute(_with_users(select(TrainerMatch).where(
        TrainerMatch.id == match_id, TrainerMatch.gym_id == gym_id, TrainerMatch.deleted_at.is_(None)
    ))).scalar_one_or_none()
    if not match:
        raise NotFoundError('Match not found')
    return match

def list_matches(db: Session, gym_id: int, page: Page, status: Optional[str] = None,
                 trainer_id: Optional[int] = None, student_id: Optional[int] = None):
    stmt = select(TrainerMatch).where(TrainerMatch.gym_id == gym_id, TrainerMatch.deleted_at.is_(None))
    if status:
        stmt = stmt.where(TrainerMatch.status == check_status(status))
    if trainer_id is not None:
        stmt = stmt.where(TrainerMatch.trainer_id == trainer_id)
    if student_id is not None:
        stmt = stmt.where(TrainerMatch.student_id == student_id)
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(_with_users(
        stmt.order_by(TrainerMatch.created_at.desc(), TrainerMatch.id.desc()).offset(page.offset).limit(page.limit)
    )).scalars().all()
    return rows, total

def create_match(db: Session, gym_id: int, trainer_id: int, student_id: int) -> TrainerMatch:
    trainer = _member(db, gym_id, trainer_id)
    if not trainer:
        raise NotFoundError('Trainer not found')
    if trainer[1] != TRAINER_ROLE:
        raise ValidationError('User is not a trainer')
    student = _member(db, gym_id, student_id)
    if not student:
        raise NotFoundError('Student not found')
    if student[1] != STUDENT_ROLE:
        raise ValidationError('User is not a student')

    existing = db.execute(select(TrainerMatch).where(
        TrainerMatch.trainer_id == trainer_id, TrainerMatch.student_id == student_id
    )).scalar_one_or_none()
    if existing and existing.deleted_at is None:
        raise ConflictError('This trainer-student match already exists')

    if existing:
        existing.status = MatchStatus.ACTIVE.value
        existing.deleted_at = None
        match = existing
    else:
        match = TrainerMatch(gym_id=gym_id, trainer_id=trainer_id, student_id=student_id,
                             status=MatchStatus.ACTIVE.value)
        db.add(match)
    db.commit()
    log.info(f"trainer {trainer_id} matched with student {student_id} in gym {gym_id}")
    return get_match(db, gym_id, match.id)

def update_status(db: Session, gym_id: int, match_id: int, status: str) -> TrainerMatch:
    check_status(status)
    match = get_match(db, gym_id, match_id)
    match.status = status
    db.commit()
    return get_match(db, gym_id, match_id)

def end_match(db: Session, gym_id: int, match_id: int):
    match = get_match(db, gym_id, match_id)
    match.status = MatchStatus.ENDED.value
    match.deleted_at = utcnow()
    db.commit()
    log.info(f"trainer match {match_id} ended")

def trainer_students(db: Session, gym_id: int, trainer_id: int, status: str) -> dict:
    check_status(status)
    if not _member(db, gym_id, trainer_id):
        raise NotFoundError('Trainer not found')
    matches = db.execute(
        select(TrainerMatch).options(selectinload(TrainerMatch.student)).where(
            TrainerMatch.gym_id == gym_id,
            TrainerMatch.trainer_id == trainer_id,
            TrainerMatch.status == status,
            TrainerMatch.deleted_at.is_(None),
        ).order_by(TrainerMatch.created_at.desc(), TrainerMatch.id.desc())
    ).scalars().all()
    students = [
        {
            'id': m.student.id,
            'first_name': m.student.first_name,
            'last_name': m.student.last_name,
            'email': m.student.email,
            'phone': m.student.phone,
            'match_id': m.id,
            'match_status': m.status,
            'match_created_at': m.created_at,
        }
        for m in matches
    ]
    return {'trainer_id': trainer_id, 'status': status, 'total_students': len(students), 'students': students}

def student_trainer(db: Session, identity: Identity, student_id: int) -> dict:
    if identity.is_student and student_id != identity.user_id:
        raise ForbiddenError('Students can only look up their own trainer')
    if not _member(db, identity.gym_id, student_id):
        raise NotFoundError('Student not found')
    match = db.execute(
        select(TrainerMatch).options(selectinload(TrainerMatch.trainer)).where(
            TrainerMatch.gym_id == identity.gym_id,
            TrainerMatch.student_id == student_id,
            TrainerMatch.status == MatchStatus.ACTIVE.value,
            TrainerMatch.deleted_at.is_(None),
        ).order_by(TrainerMatch.created_at.desc(), TrainerMatch.id.desc()).limit(1)
    ).scalar_one_or_none()
    if not match:
        return {'student_id': student_id, 'has_trainer': False}
    return {
        'student_id': student_id,
        'has_trainer': True,
        'match_id': match.id,
        'match_status': match.status,
        'match_created_at': match.created_at,
        'trainer': match.trainer,
    }
