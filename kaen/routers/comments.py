"""Stateless comment endpoints.

Flat listing, the built reply tree, and create / edit / delete for hosts
that manage their own UI state.  Edits and deletes are restricted to the
comment's author.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from starlette.concurrency import run_in_threadpool

from kaen.core.errors import AuthError, KaenError
from kaen.models.comment import (
    Comment,
    CommentContentUpdate,
    CommentCreateRequest,
    CommentNode,
    Viewer,
)
from kaen.routers.deps import get_viewer, require_viewer, to_http_error
from kaen.services.comment_tree import build_comment_tree
from kaen.services.comments import CommentStore, get_comment_store
from kaen.services.controller import new_comment
from kaen.services.sync import comment_cache

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("/posts/{post_id}/comments", response_model=list[Comment])
async def list_post_comments(
    post_id: int,
    store: CommentStore = Depends(get_comment_store),
) -> list[Comment]:
    """Return the flat comment list of a post, oldest first."""
    try:
        return await run_in_threadpool(store.list_comments, post_id)
    except KaenError as exc:
        raise to_http_error(exc) from exc


@router.get("/posts/{post_id}/comments/tree", response_model=list[CommentNode])
async def get_comment_tree(
    post_id: int,
    store: CommentStore = Depends(get_comment_store),
) -> list[CommentNode]:
    """Return the post's comments grouped into a reply forest."""
    try:
        comments = await run_in_threadpool(store.list_comments, post_id)
    except KaenError as exc:
        raise to_http_error(exc) from exc
    return build_comment_tree(comments)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("/posts/{post_id}/comments", response_model=Comment, status_code=201)
async def create_post_comment(
    post_id: int,
    body: CommentCreateRequest,
    viewer: Viewer | None = Depends(get_viewer),
    store: CommentStore = Depends(get_comment_store),
) -> Comment:
    """Create a root comment or, with ``parent_comment_id``, a reply."""
    viewer = require_viewer(viewer)
    try:
        payload = new_comment(post_id, viewer, body.content, body.parent_comment_id)
        comment = await run_in_threadpool(store.create_comment, payload)
    except KaenError as exc:
        raise to_http_error(exc) from exc
    comment_cache.invalidate(post_id)
    return comment


async def _authored_comment(
    comment_id: int, viewer: Viewer, store: CommentStore
) -> Comment | None:
    comment = await run_in_threadpool(store.get_comment, comment_id)
    if comment is not None and comment.author_id != viewer.id:
        logger.warning(
            "comment_change_forbidden",
            extra={"comment_id": comment_id, "viewer_id": viewer.id},
        )
        raise AuthError("Only the author can change this comment")
    return comment


@router.patch("/comments/{comment_id}", status_code=204)
async def update_comment(
    comment_id: int,
    body: CommentContentUpdate,
    viewer: Viewer | None = Depends(get_viewer),
    store: CommentStore = Depends(get_comment_store),
) -> Response:
    """Replace a comment's body (author only)."""
    viewer = require_viewer(viewer)
    try:
        comment = await _authored_comment(comment_id, viewer, store)
        await run_in_threadpool(store.update_comment_content, comment_id, body.content)
    except KaenError as exc:
        raise to_http_error(exc) from exc
    if comment is not None:
        comment_cache.invalidate(comment.post_id)
    return Response(status_code=204)


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    viewer: Viewer | None = Depends(get_viewer),
    store: CommentStore = Depends(get_comment_store),
) -> Response:
    """Delete a comment (author only).  Deleting twice succeeds."""
    viewer = require_viewer(viewer)
    try:
        comment = await _authored_comment(comment_id, viewer, store)
        if comment is not None:
            await run_in_threadpool(store.delete_comment, comment_id)
    except KaenError as exc:
        raise to_http_error(exc) from exc
    if comment is not None:
        comment_cache.invalidate(comment.post_id)
    return Response(status_code=204)
