"""Discussion session endpoints.

A host page mounts a discussion for a post, polls ``GET`` for the rendered
view, forwards the viewer's actions on individual comments, and deletes the
session when the panel closes so its poll job stops.

Backend failures of a mutation do not fail the request: they come back as
the node's (or the composer's) inline ``error`` in the returned view.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from starlette.concurrency import run_in_threadpool

from kaen.core.errors import KaenError
from kaen.models.comment import Viewer
from kaen.models.discussion import (
    DiscussionView,
    NodeActionRequest,
    OpenDiscussionRequest,
    ThreadOptions,
)
from kaen.models.enums import NodeAction
from kaen.routers.deps import get_viewer, to_http_error
from kaen.services.comments import CommentStore, get_comment_store
from kaen.services.discussion import DiscussionRegistry, get_registry

logger = logging.getLogger(__name__)

router = APIRouter()


def _options_for(body: OpenDiscussionRequest) -> ThreadOptions:
    """Resolve the variant preset plus any overrides from the request."""
    if body.variant == "drawer":
        options = ThreadOptions.drawer()
    else:
        options = ThreadOptions.section()
    if body.poll_interval_seconds is not None:
        options = options.with_polling(body.poll_interval_seconds)
    if body.community_owner_id or body.post_author_id:
        options = options.with_badges(body.community_owner_id, body.post_author_id)
    return options


@router.post("/posts/{post_id}/discussions", response_model=DiscussionView, status_code=201)
async def open_discussion(
    post_id: int,
    body: OpenDiscussionRequest | None = None,
    viewer: Viewer | None = Depends(get_viewer),
    store: CommentStore = Depends(get_comment_store),
    registry: DiscussionRegistry = Depends(get_registry),
) -> DiscussionView:
    """Mount a discussion for the post and return its first view."""
    options = _options_for(body or OpenDiscussionRequest())
    discussion = await run_in_threadpool(
        registry.open_session, post_id, store, viewer=viewer, options=options
    )
    return await run_in_threadpool(discussion.view)


@router.get("/discussions/{session_id}", response_model=DiscussionView)
async def get_discussion(
    session_id: str,
    registry: DiscussionRegistry = Depends(get_registry),
) -> DiscussionView:
    """Return the current rendered view of an open discussion."""
    try:
        discussion = registry.get(session_id)
    except KaenError as exc:
        raise to_http_error(exc) from exc
    return await run_in_threadpool(discussion.view)


@router.post("/discussions/{session_id}/comments", response_model=DiscussionView)
async def post_root_comment(
    session_id: str,
    body: NodeActionRequest,
    registry: DiscussionRegistry = Depends(get_registry),
) -> DiscussionView:
    """Submit the discussion's main composer."""
    try:
        discussion = registry.get(session_id)
        await run_in_threadpool(discussion.submit_comment, body.content or "")
    except KaenError as exc:
        raise to_http_error(exc) from exc
    return await run_in_threadpool(discussion.view)


@router.post(
    "/discussions/{session_id}/comments/{comment_id}/{action}",
    response_model=DiscussionView,
)
async def perform_comment_action(
    session_id: str,
    comment_id: int,
    action: NodeAction,
    body: NodeActionRequest | None = None,
    registry: DiscussionRegistry = Depends(get_registry),
) -> DiscussionView:
    """Apply one user action to a comment of the discussion."""
    content = body.content if body else None
    try:
        discussion = registry.get(session_id)
        await run_in_threadpool(discussion.perform, comment_id, action, content)
    except KaenError as exc:
        raise to_http_error(exc) from exc
    return await run_in_threadpool(discussion.view)


@router.delete("/discussions/{session_id}", status_code=204)
async def close_discussion(
    session_id: str,
    registry: DiscussionRegistry = Depends(get_registry),
) -> Response:
    """Tear the discussion down; closing twice is harmless."""
    closed = registry.close_session(session_id)
    logger.info("discussion_close_requested", extra={"session_id": session_id, "closed": closed})
    return Response(status_code=204)
