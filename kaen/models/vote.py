"""Pydantic models for the ``comment_votes`` table."""

from pydantic import BaseModel, ConfigDict

from kaen.models.enums import VoteValue


class CommentVote(BaseModel):
    """One user's like or dislike on a comment."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    comment_id: int
    user_id: str
    vote: VoteValue


class VoteRequest(BaseModel):
    """Request body for toggling a vote."""
    vote: VoteValue


class VoteTally(BaseModel):
    """Aggregated votes for one comment, from one viewer's perspective."""
    comment_id: int
    likes: int = 0
    dislikes: int = 0
    viewer_vote: VoteValue | None = None
