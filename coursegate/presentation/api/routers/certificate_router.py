import logging
from fastapi import APIRouter, Depends, HTTPException, Query

from coursegate.application.certificates.certificate_trigger import CertificationTrigger
from coursegate.presentation.dependencies import admin_required, get_certification_trigger
from coursegate.presentation.schemas.certificate_schema import CertificateRetryResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/certificates", tags=["Certificates"])


@router.post("/retry", response_model=CertificateRetryResponse)
def retry_certificates(
    limit: int = Query(50, ge=1, le=500),
    admin: dict = Depends(admin_required),
    trigger: CertificationTrigger = Depends(get_certification_trigger),
):
    """
    Re-drives certificate outbox rows whose issuance failed after a passed final.
    """
    try:
        logger.info(f"Admin {admin['user_id']} retrying pending certificates (limit={limit})")
        issued = trigger.process_pending(limit)
        return CertificateRetryResponse(issued=issued)
    except Exception as e:
        logger.error(f"Error retrying certificates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")
