"""
Password hashing and the per-request session context.

A session is opened by login (a `session` document holding a random bearer
token) and closed by logout. Handlers that need an authenticated caller take
`session: SessionContext = Depends(require_session)`.
"""
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from database import collection, create_document, find_document, serialize, utcnow
from schemas import Session
from backend.config import settings
from backend.exceptions import AuthenticationError
from backend.logging_config import get_logger, set_user_id

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8')[:72], hashed_password.encode('utf-8'))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Serialized user without the password hash"""
    out = serialize(user)
    out.pop("password", None)
    return out


@dataclass
class SessionContext:
    """The authenticated caller of one request"""

    token: str
    user: Dict[str, Any]

    @property
    def user_id(self) -> str:
        return str(self.user["_id"])

    @property
    def title(self) -> Optional[str]:
        return self.user.get("title")


def authenticate(email: str, password: str) -> Dict[str, Any]:
    user = collection("user").find_one({"email": email})
    if not user or not verify_password(password, user.get("password")):
        logger.warning(f"Login failed for {email}")
        raise AuthenticationError("Invalid credentials")
    if user.get("status", "active") != "active":
        logger.warning(f"Login refused for inactive user {email}")
        raise AuthenticationError("Account is inactive")
    return user


def open_session(user: Dict[str, Any]) -> SessionContext:
    token = secrets.token_urlsafe(32)
    create_document("session", Session(
        token=token,
        userId=str(user["_id"]),
        expiresAt=utcnow() + timedelta(hours=settings.SESSION_TTL_HOURS),
    ))
    logger.info(f"Session opened for user {user['_id']}")
    return SessionContext(token=token, user=user)


def close_session(session: SessionContext) -> None:
    collection("session").delete_many({"token": session.token})
    logger.info(f"Session closed for user {session.user_id}")


def require_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> SessionContext:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    record = collection("session").find_one({"token": credentials.credentials})
    if not record:
        raise AuthenticationError("Invalid session")
    if record.get("expiresAt") and record["expiresAt"] < utcnow():
        collection("session").delete_one({"_id": record["_id"]})
        raise AuthenticationError("Session expired")
    user = find_document("user", record["userId"], resource_type="User")
    if not user or user.get("status", "active") != "active":
        raise AuthenticationError("Invalid session")
    set_user_id(str(user["_id"]))
    return SessionContext(token=record["token"], user=user)


def seed_admin() -> Optional[str]:
    """Create the configured admin when the user collection is empty"""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return None
    if collection("user").count_documents({}) > 0:
        return None
    doc = {
        "fullName": "Administrator",
        "email": settings.ADMIN_EMAIL,
        "title": "admin",
        "status": "active",
        "password": get_password_hash(settings.ADMIN_PASSWORD),
        "studentId": None,
    }
    if settings.ADMIN_PHONE:
        doc["phone"] = settings.ADMIN_PHONE
    uid = create_document("user", doc)
    logger.info(f"Seeded admin user {settings.ADMIN_EMAIL}")
    return uid
