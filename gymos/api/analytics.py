from fastapi import APIRouter, Depends, Query
from typing import List
from sqlalchemy.orm import Session
from gymos.api.deps import get_db, require_role, Identity, OWNER_ROLE, TRAINER_ROLE
from gymos.schemas import RevenuePoint, StatusCount, TopProduct, ActivityPoint, DashboardSummary
from gymos.services import analytics as svc

router = APIRouter()

staff = require_role(OWNER_ROLE, TRAINER_ROLE)

@router.get('/revenue-trend', response_model=List[RevenuePoint])
def revenue_trend(identity: Identity = Depends(staff), db: Session = Depends(get_db)):
    return svc.revenue_trend(db, identity.gym_id)

@router.get('/order-status', response_model=List[StatusCount])
def order_status(identity: Identity = Depends(staff), db: Session = Depends(get_db)):
    return svc.order_status_distribution(db, identity.gym_id)

@router.get('/top-products', response_model=List[TopProduct])
def top_products(limit: int = Query(10, ge=1, le=100), identity: Identity = Depends(staff), db: Session = Depends(get_db)):
    return svc.top_products(db, identity.gym_id, limit)

@router.get('/active-students', response_model=List[ActivityPoint])
def active_students(identity: Identity = Depends(staff), db: Session = Depends(get_db)):
    return svc.active_students_trend(db, identity.gym_id)

@router.get('/summary', response_model=DashboardSummary)
def summary(identity: Identity = Depends(staff), db: Session = Depends(get_db)):
    return svc.summary(db, identity.gym_id)
