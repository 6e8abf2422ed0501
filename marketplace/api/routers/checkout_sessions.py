# marketplace/api/routers/checkout_sessions.py
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from marketplace.data.database import get_db
from marketplace.domain.schemas import SessionStatusOut
from marketplace.repos.session_repo import SessionRepo

router = APIRouter(prefix="/checkout-sessions", tags=["checkout-sessions"])


def mask_reference(ref) -> str | None:
    if not ref:
        return None
    ref = str(ref)
    return f"****{ref[-4:]}" if len(ref) > 4 else "****"


@router.get("/{session_id}", response_model=SessionStatusOut)
def get_session(
    session_id: int,
    response: Response,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Polled by the client while a payment is in flight. Never returns the
    payment URL or card data.
    """
    response.headers["Cache-Control"] = "no-store"

    session = SessionRepo(db).get_session_for_customer(session_id, user_id)
    if not session:
        raise HTTPException(status_code=404, detail="Checkout session not found")

    payment = session.payment or {}
    return {
        "id": session.id,
        "status": session.status,
        "payment_method": session.payment_method,
        "amount_total": session.amount_total,
        "payment": {
            "provider": payment.get("provider"),
            "reference": mask_reference(payment.get("link_id") or payment.get("reference")),
            "status": payment.get("status"),
        },
        "created_order_ids": list(session.created_order_ids or []),
        "processed_at": session.processed_at,
    }
