from typing import Optional

from fastapi import Depends, Header, Request

from config.exceptions import AuthenticationRequiredError
from models.catalog import User


def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Optional[User]:
    """Resolve the caller from an 'Authorization: Bearer <api token>' header.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        authorization (str | None): The raw Authorization header.

    Returns:
        User | None: The caller, or None for anonymous requests.

    Raises:
        AuthenticationRequiredError: If a token is sent but matches no user.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationRequiredError("Malformed Authorization header")
    user = request.app.state.db.get_user_by_token(token.strip())
    if user is None:
        raise AuthenticationRequiredError("Invalid API token")
    return user


def require_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """Like get_optional_user, but anonymous callers are rejected."""
    if user is None:
        raise AuthenticationRequiredError()
    return user
