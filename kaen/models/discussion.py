"""Models describing a mounted discussion and its rendered comment tree."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from kaen.core.config import settings
from kaen.core.constants import SECTION_POLL_INTERVAL_SECONDS
from kaen.models.enums import DiscussionStatus, NodeMode, UserBadge


class ThreadOptions(BaseModel):
    """Variant configuration for one place a discussion is shown.

    The inline comment section polls and shows every reply; the community
    drawer refreshes only after local mutations, collapses replies behind a
    toggle, and shows role badges.  Both are presets over the same renderer.
    """
    model_config = ConfigDict(frozen=True)

    poll_interval_seconds: float | None = SECTION_POLL_INTERVAL_SECONDS
    collapse_replies: bool = False
    show_badges: bool = False
    community_owner_id: str | None = None
    post_author_id: str | None = None

    @classmethod
    def section(cls) -> ThreadOptions:
        """Inline comment section under a post page, polling as configured."""
        return cls(poll_interval_seconds=settings.poll_interval_seconds)

    @classmethod
    def drawer(cls) -> ThreadOptions:
        """Comment drawer opened from a community's post grid."""
        return cls(poll_interval_seconds=None, collapse_replies=True, show_badges=True)

    def with_polling(self, seconds: float | None) -> ThreadOptions:
        """Return a copy polling every *seconds* (``None`` or ``<= 0`` disables)."""
        if seconds is not None and seconds <= 0:
            seconds = None
        return self.model_copy(update={"poll_interval_seconds": seconds})

    def with_badges(
        self,
        community_owner_id: str | None = None,
        post_author_id: str | None = None,
    ) -> ThreadOptions:
        """Return a copy that shows badges for the given owners."""
        return self.model_copy(
            update={
                "show_badges": True,
                "community_owner_id": community_owner_id,
                "post_author_id": post_author_id,
            }
        )

    def with_collapsed_replies(self, collapsed: bool = True) -> ThreadOptions:
        return self.model_copy(update={"collapse_replies": collapsed})


class CommentView(BaseModel):
    """One rendered comment with its interaction state and affordances."""
    id: int
    post_id: int
    parent_comment_id: int | None = None
    content: str
    author_id: str
    author_display_name: str
    author_avatar_url: str | None = None
    created_at: datetime
    depth: int = 0

    mode: NodeMode = NodeMode.viewing
    replying: bool = False
    replies_expanded: bool = True
    reply_count: int = 0
    edit_buffer: str | None = None
    reply_buffer: str = ""

    can_edit: bool = False
    can_delete: bool = False
    can_reply: bool = False
    can_save: bool = False
    can_submit_reply: bool = False
    pending: bool = False
    error: str | None = None
    badges: list[UserBadge] = Field(default_factory=list)

    children: list[CommentView] = Field(default_factory=list)


class DiscussionView(BaseModel):
    """Snapshot of a mounted discussion as the viewer sees it."""
    session_id: str
    post_id: int
    status: DiscussionStatus
    banner: str | None = None
    viewer_id: str | None = None
    can_comment: bool = False
    composer_pending: bool = False
    composer_error: str | None = None
    comment_count: int = 0
    comments: list[CommentView] = Field(default_factory=list)


class OpenDiscussionRequest(BaseModel):
    """Request body for mounting a discussion."""
    variant: Literal["section", "drawer"] = "section"
    poll_interval_seconds: float | None = None
    community_owner_id: str | None = None
    post_author_id: str | None = None


class NodeActionRequest(BaseModel):
    """Optional body for a node action; carries edit/reply text."""
    content: str | None = None
