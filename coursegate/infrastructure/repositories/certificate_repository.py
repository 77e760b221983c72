from typing import Optional
import logging
from sqlalchemy.orm import Session
from ..db.models import Certificate, CertificateOutbox, OutboxStatus

logger = logging.getLogger(__name__)


class CertificateRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_certificate(self, user_id: int, course_id: int) -> Optional[Certificate]:
        return (
            self.db.query(Certificate)
            .filter(Certificate.user_id == user_id, Certificate.course_id == course_id)
            .first()
        )

    def get_outbox_for_attempt(self, attempt_id: int) -> Optional[CertificateOutbox]:
        return (
            self.db.query(CertificateOutbox)
            .filter(CertificateOutbox.attempt_id == attempt_id)
            .first()
        )

    def list_pending(self, max_tries: int, limit: int = 50) -> list[CertificateOutbox]:
        """Unprocessed rows that still have tries left, oldest first."""
        return (
            self.db.query(CertificateOutbox)
            .filter(
                CertificateOutbox.status.in_([OutboxStatus.PENDING, OutboxStatus.FAILED]),
                CertificateOutbox.tries < max_tries,
            )
            .order_by(CertificateOutbox.created_at.asc())
            .limit(limit)
            .all()
        )

    def enqueue(self, *, attempt_id: int, user_id: int, course_id: int) -> CertificateOutbox:
        entry = CertificateOutbox(
            attempt_id=attempt_id,
            user_id=user_id,
            course_id=course_id,
            status=OutboxStatus.PENDING,
            tries=0,
        )
        self.db.add(entry)
        return entry

    def delete_for_user_course(self, user_id: int, course_id: int) -> None:
        self.db.query(CertificateOutbox).filter(
            CertificateOutbox.user_id == user_id,
            CertificateOutbox.course_id == course_id,
        ).delete(synchronize_session="fetch")
        self.db.query(Certificate).filter(
            Certificate.user_id == user_id,
            Certificate.course_id == course_id,
        ).delete(synchronize_session="fetch")
