"""Shared router dependencies: viewer identity and error translation."""

from __future__ import annotations

from fastapi import Header, HTTPException

from kaen.core.constants import VIEWER_AVATAR_HEADER, VIEWER_ID_HEADER, VIEWER_NAME_HEADER
from kaen.core.errors import AuthError, KaenError, NotFoundError, TransportError, ValidationError
from kaen.models.comment import Viewer

_STATUS_BY_ERROR: dict[type[KaenError], int] = {
    ValidationError: 422,
    AuthError: 403,
    NotFoundError: 404,
    TransportError: 502,
}


def get_viewer(
    viewer_id: str | None = Header(default=None, alias=VIEWER_ID_HEADER),
    viewer_name: str | None = Header(default=None, alias=VIEWER_NAME_HEADER),
    viewer_avatar: str | None = Header(default=None, alias=VIEWER_AVATAR_HEADER),
) -> Viewer | None:
    """Return the viewer the host page passed along, or None if anonymous."""
    if not viewer_id:
        return None
    return Viewer(id=viewer_id, display_name=viewer_name or "", avatar_url=viewer_avatar)


def require_viewer(viewer: Viewer | None) -> Viewer:
    if viewer is None:
        raise to_http_error(AuthError("You must be logged in"))
    return viewer


def to_http_error(exc: KaenError) -> HTTPException:
    """Map an application error onto an ``HTTPException``."""
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=exc.message)
