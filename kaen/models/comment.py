"""Pydantic models for the ``comments`` table.

Rows use the Supabase column names (``user_id``, ``author``, ``avatar_url``);
the models accept them as validation aliases and expose descriptive attribute
names, so raw rows are validated once, at the persistence boundary.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

_AUTHOR_ID = AliasChoices("author_id", "user_id")
_AUTHOR_NAME = AliasChoices("author_display_name", "author")
_AUTHOR_AVATAR = AliasChoices("author_avatar_url", "avatar_url")


class Viewer(BaseModel):
    """The authenticated person looking at a discussion."""
    id: str
    display_name: str
    avatar_url: str | None = None


class CommentCreate(BaseModel):
    """Payload for inserting a new comment."""
    post_id: int
    content: str
    parent_comment_id: int | None = None
    author_id: str = Field(validation_alias=_AUTHOR_ID)
    author_display_name: str = Field(validation_alias=_AUTHOR_NAME)
    author_avatar_url: str | None = Field(default=None, validation_alias=_AUTHOR_AVATAR)

    def to_row(self) -> dict[str, Any]:
        """Return the insert payload keyed by column name."""
        return {
            "post_id": self.post_id,
            "content": self.content,
            "parent_comment_id": self.parent_comment_id,
            "user_id": self.author_id,
            "author": self.author_display_name,
            "avatar_url": self.author_avatar_url,
        }


class Comment(BaseModel):
    """Full comment record returned from the database."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    parent_comment_id: int | None = None
    content: str
    author_id: str = Field(validation_alias=_AUTHOR_ID)
    author_display_name: str = Field(validation_alias=_AUTHOR_NAME)
    author_avatar_url: str | None = Field(default=None, validation_alias=_AUTHOR_AVATAR)
    created_at: datetime


class CommentNode(Comment):
    """A comment together with its direct replies, in creation order."""
    children: list[CommentNode] = Field(default_factory=list)


class CommentContentUpdate(BaseModel):
    """Request body for editing a comment."""
    content: str


class CommentCreateRequest(BaseModel):
    """Request body for posting a comment; the author is the viewer."""
    content: str
    parent_comment_id: int | None = None
