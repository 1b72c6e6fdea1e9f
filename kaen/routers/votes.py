"""Comment vote endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from kaen.core.errors import KaenError
from kaen.models.comment import Viewer
from kaen.models.vote import VoteRequest, VoteTally
from kaen.routers.deps import get_viewer, require_viewer, to_http_error
from kaen.services.votes import VoteService, get_vote_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/comments/{comment_id}/votes", response_model=VoteTally)
async def get_comment_votes(
    comment_id: int,
    viewer: Viewer | None = Depends(get_viewer),
    votes: VoteService = Depends(get_vote_service),
) -> VoteTally:
    """Return like/dislike counts and the viewer's own vote."""
    try:
        return await run_in_threadpool(
            votes.get_tally, comment_id, viewer.id if viewer else None
        )
    except KaenError as exc:
        raise to_http_error(exc) from exc


@router.post("/comments/{comment_id}/votes", response_model=VoteTally)
async def toggle_comment_vote(
    comment_id: int,
    body: VoteRequest,
    viewer: Viewer | None = Depends(get_viewer),
    votes: VoteService = Depends(get_vote_service),
) -> VoteTally:
    """Cast, flip, or withdraw the viewer's vote."""
    viewer = require_viewer(viewer)
    try:
        return await run_in_threadpool(votes.toggle_vote, comment_id, viewer.id, body.vote)
    except KaenError as exc:
        raise to_http_error(exc) from exc
