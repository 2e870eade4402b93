from functools import wraps

import jwt
from flask import current_app, g, request

from .utils.responses import error


class Actor:
    """Caller identity decoded from the auth-service bearer token."""

    def __init__(self, user_id: int, role: str = "user"):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_service(self) -> bool:
        """Token minted for another backend service (auctions-service closing an auction)."""
        return self.role == "service"

    def __repr__(self) -> str:
        return f"<Actor {self.user_id} role={self.role}>"


def decode_token(token: str) -> Actor:
    cfg = current_app.config
    # auth-service puts the numeric user id in sub; PyJWT only accepts strings there by default
    payload = jwt.decode(token, cfg["JWT_SECRET"], algorithms=[cfg["JWT_ALGO"]],
                         options={"verify_sub": False})
    sub = payload.get("sub")
    if sub is None:
        raise jwt.InvalidTokenError("missing sub claim")
    return Actor(int(sub), payload.get("role") or "user")


def require_auth(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer "):
            return error("missing_token", "Authorization bearer token required", 401)
        token = auth.split(" ", 1)[1]
        try:
            g.actor = decode_token(token)
        except (jwt.InvalidTokenError, ValueError):
            return error("invalid_token", "Token is invalid or expired", 401)
        return func(*args, **kwargs)

    return wrapper


def require_admin(func):
    @wraps(func)
    @require_auth
    def wrapper(*args, **kwargs):
        if not g.actor.is_admin:
            return error("not_admin", "Admin role required", 403)
        return func(*args, **kwargs)

    return wrapper
