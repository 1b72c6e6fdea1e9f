"""Enum types shared by models, services, and routers."""

from enum import Enum


class VoteValue(int, Enum):
    """Value stored in ``comment_votes.vote``."""
    like = 1
    dislike = -1


class NodeMode(str, Enum):
    """Exclusive interaction mode of one rendered comment."""
    viewing = "viewing"
    editing = "editing"
    confirming_delete = "confirming_delete"


class NodeAction(str, Enum):
    """User actions a discussion accepts for a single comment."""
    edit = "edit"
    cancel_edit = "cancel_edit"
    save_edit = "save_edit"
    delete = "delete"
    cancel_delete = "cancel_delete"
    confirm_delete = "confirm_delete"
    reply = "reply"
    cancel_reply = "cancel_reply"
    submit_reply = "submit_reply"
    toggle_replies = "toggle_replies"


class UserBadge(str, Enum):
    """Role badges shown next to an author's name."""
    founder = "founder"
    admin = "admin"
    author = "author"


class DiscussionStatus(str, Enum):
    """Load state of a mounted discussion."""
    loading = "loading"
    ready = "ready"
    load_failed = "load_failed"
