"""FastAPI dependencies shared by every router.

Services are built once by ``app.create_app()`` and kept on ``app.state``;
routes reach them through these helpers instead of module-level globals.
"""

from fastapi import Header, Request

from identity.collaborators import Identity
from shared.errors import AuthenticationRequired, AuthorizationError


def services(request: Request):
    return request.app.state.services


def current_identity(request: Request, x_user_id: str | None = Header(default=None)) -> Identity:
    """Resolve the acting user from the ``X-User-Id`` header."""
    if not x_user_id:
        raise AuthenticationRequired({"user": ["X-User-Id header is required"]})

    identity = services(request).identities.lookup(x_user_id)
    if identity is None:
        raise AuthenticationRequired({"user": [f"Unknown user {x_user_id}"]})
    return identity


def privileged_identity(request: Request, x_user_id: str | None = Header(default=None)) -> Identity:
    identity = current_identity(request, x_user_id)
    if not identity.is_privileged:
        raise AuthorizationError({"role": ["ADMIN or MASTER role required"]})
    return identity
