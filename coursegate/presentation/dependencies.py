import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from coursegate.application.assessment.attempt_service import AttemptService
from coursegate.application.certificates.certificate_trigger import CertificationTrigger
from coursegate.application.progress.progress_gate import ProgressGate
from coursegate.infrastructure.db.models import Role, UserModel
from coursegate.infrastructure.db.session import SessionLocal
from coursegate.infrastructure.security.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# auto_error=False so a missing token produces our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> dict:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except jwt.PyJWTError as e:
        logger.warning(f"Token validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    # Verify user exists in DB
    user = db.query(UserModel).filter(UserModel.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return {
        "user_id": user.id,
        "role": user.role,
    }


def admin_required(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != Role.ADMIN:
        logger.warning(
            f"Access denied for non-admin user_id: {current_user.get('user_id')}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrative privileges required",
        )
    logger.info(f"Admin access granted for user_id: {current_user.get('user_id')}")
    return current_user


def get_attempt_service(db: Session = Depends(get_db)) -> AttemptService:
    return AttemptService(db)


def get_progress_gate(db: Session = Depends(get_db)) -> ProgressGate:
    return ProgressGate(db)


def get_certification_trigger(db: Session = Depends(get_db)) -> CertificationTrigger:
    return CertificationTrigger(db)
