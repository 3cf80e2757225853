from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from bizdesk.core.config import get_settings


logger = logging.getLogger("bizdesk.auth")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == get_settings().admin_role


IdentityProvider = Callable[[], "CurrentUser | None"]


def anonymous_identity() -> CurrentUser | None:
    return None


def static_identity(user: CurrentUser | None) -> IdentityProvider:
    def current_user() -> CurrentUser | None:
        return user

    return current_user


def stamp_user(identity: IdentityProvider) -> str:
    user = identity()
    return user.id if user is not None else "unknown"


def decode_token(token: str) -> CurrentUser | None:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.warning("auth.invalid_token", extra={"error": str(exc)})
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    role = payload.get("role", "user")
    return CurrentUser(id=str(subject), role=str(role))


async def get_current_user(request: Request) -> CurrentUser | None:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    if not token:
        return None
    return decode_token(token)
