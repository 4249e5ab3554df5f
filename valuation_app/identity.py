"""
Identity asserted by the upstream auth proxy.

Session issuance lives outside this service; the proxy forwards the
authenticated user's id and email as request headers.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from .email_utils import sanitize_email


@dataclass(frozen=True)
class SessionUser:
    user_id: str
    email: Optional[str] = None


def get_optional_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
) -> Optional[SessionUser]:
    user_id = (x_user_id or "").strip()
    if not user_id:
        return None
    return SessionUser(user_id=user_id, email=sanitize_email(x_user_email) or None)


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
) -> SessionUser:
    user = get_optional_user(x_user_id=x_user_id, x_user_email=x_user_email)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
