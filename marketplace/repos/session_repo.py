# marketplace/repos/session_repo.py
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace.data.models.checkout_session import CheckoutSessionModel, SessionStatus


class SessionRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_session(self, session: CheckoutSessionModel) -> CheckoutSessionModel:
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def get_session(self, session_id: int) -> CheckoutSessionModel | None:
        return self.db.get(CheckoutSessionModel, session_id)

    def get_session_for_customer(self, session_id: int, customer_id: int) -> CheckoutSessionModel | None:
        return self.db.execute(
            select(CheckoutSessionModel).where(
                CheckoutSessionModel.id == session_id,
                CheckoutSessionModel.customer_id == customer_id,
            )
        ).scalar_one_or_none()

    def lock_session(self, session_id: int) -> CheckoutSessionModel | None:
        return self.db.execute(
            select(CheckoutSessionModel)
            .where(CheckoutSessionModel.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def merge_payment(self, session_id: int, data: dict) -> None:
        """payment = payment || data; the snapshot column is never written here."""
        session = self.get_session(session_id)
        session.payment = {**(session.payment or {}), **data}
        self.db.flush()

    def transition(self, session_id: int, from_status: SessionStatus, values: dict) -> int:
        #compare-and-set on status, 0 rows = someone else got there first
        result = self.db.execute(
            update(CheckoutSessionModel)
            .where(
                CheckoutSessionModel.id == session_id,
                CheckoutSessionModel.status == from_status.value,
            )
            .values(**values)
        )
        return result.rowcount

    def expire_pending_before(self, cutoff: datetime) -> int:
        result = self.db.execute(
            update(CheckoutSessionModel)
            .where(
                CheckoutSessionModel.status == SessionStatus.PENDING.value,
                CheckoutSessionModel.created_at < cutoff,
            )
            .values(status=SessionStatus.EXPIRED.value)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
