"""
Investor Routes — the signed-in investor's dashboard data.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ascendancy.database import get_db
from ascendancy.exceptions import NotFoundError
from ascendancy.models.user import User
from ascendancy.routes.deps import get_current_user
from ascendancy.schemas.schemas import PaymentMethodEntry, QuestProgressResponse, TransactionEntry
from ascendancy.services.payment_store import PaymentStore
from ascendancy.services.returns_service import ReturnsService

router = APIRouter(tags=["Investor"])


@router.get("/api/investor/transactions", response_model=list[TransactionEntry])
def list_transactions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [TransactionEntry.model_validate(t) for t in PaymentStore(db).list_transactions(user.id)]


@router.get("/api/investor/payment-methods", response_model=list[PaymentMethodEntry])
def list_payment_methods(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [PaymentMethodEntry.model_validate(m) for m in PaymentStore(db).list_payment_methods(user.id)]


@router.delete("/api/investor/payment-methods/{method_id}")
def remove_payment_method(
    method_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Deactivate a saved card. The gateway profile is kept for running schedules."""
    store = PaymentStore(db)
    method = store.get_payment_method(user.id, method_id)
    if method is None or not method.is_active:
        raise NotFoundError("Payment method not found")

    method.is_active = False
    store.commit()
    return {"success": True}


@router.get("/api/quest-progress", response_model=QuestProgressResponse)
def quest_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Projected returns and progress for the investor's committed amount."""
    subscription = PaymentStore(db).get_latest_subscription(user.id)
    return QuestProgressResponse(**ReturnsService.project(user, subscription))
