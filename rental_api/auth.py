import logging
import os
from typing import Dict

# load .env first
from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, HTTPException, Request
from google.auth import exceptions as google_exceptions
from google.oauth2 import id_token
from google.auth.transport.requests import Request as GoogleRequest
from sqlmodel import Session

from .database import get_session
from .policy import Principal
from .users import provision_user

logger = logging.getLogger(__name__)

FIREBASE_PROJECT_ID = os.environ.get("FIREBASE_PROJECT_ID")
ADMIN_EMAILS = [e for e in os.environ.get("ADMIN_EMAILS", "").split(",") if e.strip()]


def _verify_firebase_token(request: Request) -> Dict:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authorization header missing")
    if not FIREBASE_PROJECT_ID:
        raise HTTPException(status_code=500, detail="FIREBASE_PROJECT_ID not configured")
    token = auth.split(" ", 1)[1]
    try:
        return id_token.verify_firebase_token(token, GoogleRequest(), audience=FIREBASE_PROJECT_ID)
    except (ValueError, google_exceptions.GoogleAuthError) as exc:
        logger.warning("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_principal(
    info: Dict = Depends(_verify_firebase_token),
    session: Session = Depends(get_session),
) -> Principal:
    email = (info or {}).get("email")
    if not email:
        raise HTTPException(status_code=401, detail="Token missing email")
    user = provision_user(session, email, name=info.get("name"), admin_emails=ADMIN_EMAILS)
    principal = Principal(id=user.id, role=user.role)
    # the route opens its own transaction on this session
    session.rollback()
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="You do not have permission to perform this action")
    return principal
