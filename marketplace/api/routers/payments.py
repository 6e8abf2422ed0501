# marketplace/api/routers/payments.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.api.deps import DOMAIN_ERRORS, get_gateway, get_lock_service, get_notifier, http_error, maintenance_guard
from marketplace.data.database import get_db
from marketplace.domain.schemas import CardSaleIn, ConfirmationOut
from marketplace.services.lock_service import LockService
from marketplace.services.notification_service import NotificationService
from marketplace.services.payment_gateway import CardData, PaymentGatewayClient
from marketplace.services.settlement_service import SettlementService

router = APIRouter(prefix="/payments", tags=["payments"], dependencies=[Depends(maintenance_guard)])


def get_service(
    db: Session = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_gateway),
    lock_service: LockService = Depends(get_lock_service),
    notifier: NotificationService = Depends(get_notifier),
) -> SettlementService:
    return SettlementService(db, gateway=gateway, lock_service=lock_service, notifier=notifier)


def _out(result) -> dict:
    return {
        "paid": result.paid,
        "session_id": result.session_id,
        "orders": result.order_ids,
        "status": result.status,
        "message": result.message,
        "auth": result.auth,
        "ref": result.ref,
    }


@router.get("/confirm", response_model=ConfirmationOut)
def confirm_payment(
    session_id: int = Query(..., gt=0),
    svc: SettlementService = Depends(get_service),
):
    """
    Called from the payment return page. Safe to call any number of
    times: a settled session returns the same orders.
    """
    try:
        return _out(svc.confirm_link_payment(session_id))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/card", response_model=ConfirmationOut)
def charge_card(
    payload: CardSaleIn,
    user_id: int = Query(...),
    svc: SettlementService = Depends(get_service),
):
    card = CardData(
        number=payload.card_number,
        exp_month=payload.exp_month,
        exp_year=payload.exp_year,
        cvn=payload.cvn,
        name_on_card=payload.name_on_card,
        zip_code=payload.zip_code,
    )
    try:
        return _out(svc.charge_direct(user_id, payload.session_id, card))
    except DOMAIN_ERRORS as e:
        raise http_error(e)
