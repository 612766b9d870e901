"""Litestar dependencies that turn request credentials into an Identity."""

from __future__ import annotations

from litestar import Request
from litestar.datastructures import State
from litestar.exceptions import (
    HTTPException,
    NotAuthorizedException,
    NotFoundException,
    PermissionDeniedException,
)

from rcon_server.models.identity import Identity
from rcon_server.resources.auth import (
    AuthResource,
    InvalidTokenError,
    MissingServerNameError,
    MissingTokenError,
    UnknownServerAuthError,
)

_BEARER = "Bearer "


def extract_token(request: Request[object, object, State]) -> str | None:
    """Bearer header first, then X-API-Token, then the ``token`` query param."""
    header = request.headers.get("Authorization", "")
    if header.startswith(_BEARER):
        return header[len(_BEARER):] or None
    return (
        request.headers.get("X-API-Token")
        or request.query_params.get("token")
        or None
    )


def _server_name(request: Request[object, object, State]) -> str | None:
    return request.path_params.get("server_name") or request.headers.get(
        "X-Server-Name",
    )


def _translate(error: Exception) -> HTTPException:
    if isinstance(error, MissingTokenError):
        return NotAuthorizedException(detail=str(error))
    if isinstance(error, MissingServerNameError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, UnknownServerAuthError):
        return NotFoundException(detail=str(error))
    return PermissionDeniedException(detail=str(error))


_AUTH_ERRORS = (
    MissingTokenError,
    InvalidTokenError,
    MissingServerNameError,
    UnknownServerAuthError,
)


def provide_master(
    request: Request[object, object, State], auth_resource: AuthResource,
) -> Identity:
    """Operator identity, or 401/403."""
    try:
        return auth_resource.master(extract_token(request))
    except _AUTH_ERRORS as error:
        raise _translate(error) from error


def provide_server(
    request: Request[object, object, State], auth_resource: AuthResource,
) -> Identity:
    """Server identity for the server named in the path or X-Server-Name."""
    try:
        return auth_resource.server(extract_token(request), _server_name(request))
    except _AUTH_ERRORS as error:
        raise _translate(error) from error


def provide_combined(
    request: Request[object, object, State], auth_resource: AuthResource,
) -> Identity:
    """Operator identity, or a server identity named by X-Server-Name."""
    try:
        return auth_resource.combined(extract_token(request), _server_name(request))
    except _AUTH_ERRORS as error:
        raise _translate(error) from error
