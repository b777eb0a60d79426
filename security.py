"""
JWT authentication and role checks.

Tokens are issued by POST /api/login_check and sent back as
``Authorization: Bearer <token>``. The user behind a valid token is loaded
into ``g.current_user`` before each API request.
"""
from __future__ import annotations

import time
from functools import wraps
from typing import Optional

from flask import current_app, g, request
from jose import ExpiredSignatureError, JWTError, jwt
from werkzeug.exceptions import Forbidden, Unauthorized

from data_models import User, db

# role -> roles it implies
ROLE_HIERARCHY = {
    "ROLE_ADMIN": ["ROLE_USER"],
}


def create_token(user: User) -> str:
    settings = current_app.config["SETTINGS"]
    now = int(time.time())
    claims = {
        "username": user.email,
        "roles": user.get_roles(),
        "iat": now,
        "exp": now + settings.jwt_ttl_seconds,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def authenticate(username: str, password: str) -> Optional[User]:
    """Return the user matching the credentials, or None."""
    if not username:
        return None
    user = User.query.filter_by(email=username).first()
    if user is None or not user.check_password(password):
        return None
    return user


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_user() -> None:
    """
    before_request hook: decode the bearer token, if any, into g.current_user.
    A token that is present but invalid is rejected even on public routes.
    """
    g.current_user = None
    token = _bearer_token()
    if token is None:
        return

    settings = current_app.config["SETTINGS"]
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        current_app.logger.warning("Expired JWT token")
        raise Unauthorized("Expired JWT Token")
    except JWTError as exc:
        current_app.logger.warning("Invalid JWT token: %s", exc)
        raise Unauthorized("Invalid JWT Token")

    user = User.query.filter_by(email=claims.get("username")).first()
    if user is None:
        current_app.logger.warning("JWT token for unknown user %s", claims.get("username"))
        raise Unauthorized("Invalid JWT Token")
    g.current_user = user


def current_user() -> Optional[User]:
    return g.get("current_user")


def _reachable_roles(roles: list[str]) -> set[str]:
    reachable = set()
    pending = list(roles)
    while pending:
        role = pending.pop()
        if role in reachable:
            continue
        reachable.add(role)
        pending.extend(ROLE_HIERARCHY.get(role, []))
    return reachable


def is_granted(role: str) -> bool:
    user = current_user()
    if user is None:
        return False
    return role in _reachable_roles(user.get_roles())


def require_role(role: str, message: str = "Access Denied."):
    """
    Route decorator: 401 when nobody is authenticated, 403 with `message`
    when the authenticated user lacks `role`.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if current_user() is None:
                raise Unauthorized("JWT Token not found")
            if not is_granted(role):
                current_app.logger.warning(
                    "Access denied to %s for %s", request.path, current_user().email
                )
                raise Forbidden(message)
            return view(*args, **kwargs)
        return wrapper
    return decorator


def create_user(email: str, password: str, roles: Optional[list[str]] = None) -> User:
    user = User(email=email, roles=roles or ["ROLE_USER"])
    user.set_password(password)
    db.session.add(user)
    return user
