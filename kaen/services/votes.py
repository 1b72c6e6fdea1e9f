"""Comment like/dislike votes.

A user holds at most one vote per comment.  Voting the same value again
withdraws the vote; voting the other value flips it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from supabase import Client

from kaen.core.constants import COMMENT_VOTES_TABLE
from kaen.db.supabase import get_supabase
from kaen.models.enums import VoteValue
from kaen.models.vote import CommentVote, VoteTally
from kaen.services.comments import backend_call

logger = logging.getLogger(__name__)


def tally_votes(
    comment_id: int,
    votes: Sequence[CommentVote],
    viewer_id: str | None = None,
) -> VoteTally:
    """Count likes and dislikes and find the viewer's own vote."""
    likes = sum(1 for v in votes if v.vote == VoteValue.like)
    dislikes = sum(1 for v in votes if v.vote == VoteValue.dislike)
    viewer_vote: VoteValue | None = None
    if viewer_id is not None:
        for v in votes:
            if v.user_id == viewer_id:
                viewer_vote = v.vote
                break
    return VoteTally(
        comment_id=comment_id,
        likes=likes,
        dislikes=dislikes,
        viewer_vote=viewer_vote,
    )


class VoteService:
    """Reads and toggles rows of ``comment_votes``."""

    def __init__(self, client_factory: Callable[[], Client] = get_supabase) -> None:
        self._client_factory = client_factory

    def _table(self) -> Any:
        return self._client_factory().table(COMMENT_VOTES_TABLE)

    def list_votes(self, comment_id: int) -> list[CommentVote]:
        with backend_call("list_votes", comment_id=comment_id):
            result = self._table().select("*").eq("comment_id", comment_id).execute()
        return [CommentVote(**row) for row in result.data or []]

    def get_tally(self, comment_id: int, viewer_id: str | None = None) -> VoteTally:
        return tally_votes(comment_id, self.list_votes(comment_id), viewer_id)

    def toggle_vote(self, comment_id: int, user_id: str, value: VoteValue) -> VoteTally:
        """Apply *value* for *user_id* and return the fresh tally."""
        with backend_call("toggle_vote", comment_id=comment_id):
            existing = (
                self._table()
                .select("*")
                .eq("comment_id", comment_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
            if existing.data:
                current = CommentVote(**existing.data[0])
                if current.vote == value:
                    self._table().delete().eq("id", current.id).execute()
                    outcome = "withdrawn"
                else:
                    self._table().update({"vote": value.value}).eq("id", current.id).execute()
                    outcome = "changed"
            else:
                self._table().insert(
                    {"comment_id": comment_id, "user_id": user_id, "vote": value.value}
                ).execute()
                outcome = "cast"

        logger.info(
            "comment_vote_toggled",
            extra={"comment_id": comment_id, "vote": value.value, "outcome": outcome},
        )
        return self.get_tally(comment_id, user_id)


def get_vote_service() -> VoteService:
    """FastAPI dependency returning the production vote service."""
    return VoteService()
