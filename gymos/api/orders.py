from fastapi import APIRouter, Depends, Response
from typing import Optional
from sqlalchemy.orm import Session
from gymos.api.deps import get_db, require_permission, pagination, paginated, Identity, Page
from gymos.schemas import OrderCreate, OrderStatusUpdate, OrderRead, OrderPage, OrderStats
from gymos.services import orders as svc

router = APIRouter()

@router.get('/stats', response_model=OrderStats)
def get_order_stats(identity: Identity = Depends(require_permission('orders.read')), db: Session = Depends(get_db)):
    return svc.order_stats(db, identity)

@router.get('', response_model=OrderPage)
def list_orders(
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    search: Optional[str] = None,
    page: Page = Depends(pagination),
    identity: Identity = Depends(require_permission('orders.read')),
    db: Session = Depends(get_db),
):
    rows, total = svc.list_orders(db, identity, page, status=status, user_id=user_id, search=search)
    return paginated(rows, total, page)

@router.get('/{order_id}', response_model=OrderRead)
def get_order(order_id: int, identity: Identity = Depends(require_permission('orders.read')), db: Session = Depends(get_db)):
    return svc.get_order(db, identity, order_id)

@router.post('', response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, identity: Identity = Depends(require_permission('orders.create')), db: Session = Depends(get_db)):
    return svc.create_order(db, identity, payload)

@router.patch('/{order_id}/status', response_model=OrderRead)
def update_order_status(order_id: int, payload: OrderStatusUpdate,
                        identity: Identity = Depends(require_permission('orders.update')), db: Session = Depends(get_db)):
    return svc.update_status(db, identity, order_id, payload.status, payload.metadata)

@router.delete('/{order_id}', status_code=204)
def delete_order(order_id: int, identity: Identity = Depends(require_permission('orders.delete')), db: Session = Depends(get_db)):
    svc.delete_order(db, identity, order_id)
    return Response(status_code=204)
