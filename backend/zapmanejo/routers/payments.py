"""
Payments router: per-head pricing, payment history, monthly summary.
"""
from typing import List

from fastapi import APIRouter, Depends

from .. import crud
from ..auth import get_current_user, get_db
from ..schemas import CostConfigIn, CostConfigOut, PaymentIn, PaymentOut, PaymentSummaryOut

router = APIRouter()


@router.get("/cost-config", response_model=CostConfigOut)
def get_cost_config(db=Depends(get_db), user=Depends(get_current_user)):
    return crud.get_cost_config(db, user.id)


@router.put("/cost-config", response_model=CostConfigOut)
def set_cost_config(payload: CostConfigIn, db=Depends(get_db), user=Depends(get_current_user)):
    return crud.set_cost_config(db, user.id, payload.price_per_head, payload.currency)


@router.get("/summary", response_model=PaymentSummaryOut)
def payment_summary(db=Depends(get_db), user=Depends(get_current_user)):
    cfg = crud.get_cost_config(db, user.id)
    active = crud.count_active_animals(db, user.id)
    return PaymentSummaryOut(
        active_animals=active,
        price_per_head=float(cfg.price_per_head),
        currency=cfg.currency,
        monthly_total=float(cfg.price_per_head * active),
        total_paid=float(crud.total_paid(db, user.id)),
    )


@router.get("", response_model=List[PaymentOut])
def list_payments(db=Depends(get_db), user=Depends(get_current_user)):
    return crud.list_payments(db, user.id)


@router.post("", response_model=PaymentOut, status_code=201)
def create_payment(payload: PaymentIn, db=Depends(get_db), user=Depends(get_current_user)):
    return crud.create_payment(
        db,
        user.id,
        amount=payload.amount,
        currency=payload.currency,
        status=payload.status,
        reference=payload.reference,
    )
