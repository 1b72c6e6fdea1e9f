"""Comment persistence against the Supabase ``comments`` table.

``CommentStore`` is the contract the discussion layer depends on;
``SupabaseCommentStore`` is the production implementation.  Backend and
network failures are translated into ``TransportError`` here so callers
only ever see the application error taxonomy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from kaen.core.constants import COMMENTS_TABLE
from kaen.core.errors import AuthError, NotFoundError, TransportError, ValidationError
from kaen.db.supabase import get_supabase
from kaen.models.comment import Comment, CommentCreate

logger = logging.getLogger(__name__)


class CommentStore(Protocol):
    """Operations the discussion layer needs from the backend."""

    def list_comments(self, post_id: int) -> list[Comment]: ...

    def get_comment(self, comment_id: int) -> Comment | None: ...

    def create_comment(self, payload: CommentCreate) -> Comment: ...

    def update_comment_content(self, comment_id: int, content: str) -> None: ...

    def delete_comment(self, comment_id: int) -> None: ...


def normalize_content(content: str | None) -> str:
    """Return *content* trimmed, raising ``ValidationError`` when blank."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment content cannot be empty")
    return text


@contextmanager
def backend_call(operation: str, **context: Any) -> Iterator[None]:
    """Translate Supabase and network failures into ``TransportError``."""
    try:
        yield
    except APIError as exc:
        logger.error(
            "comment_backend_error",
            extra={"operation": operation, "error_message": exc.message, **context},
        )
        raise TransportError(exc.message or "Backend request failed") from exc
    except httpx.HTTPError as exc:
        logger.error(
            "comment_transport_error",
            extra={"operation": operation, "error_message": str(exc), **context},
        )
        raise TransportError("Could not reach the backend") from exc


class SupabaseCommentStore:
    """``CommentStore`` backed by the Supabase ``comments`` table."""

    def __init__(self, client_factory: Callable[[], Client] = get_supabase) -> None:
        self._client_factory = client_factory

    def _table(self) -> Any:
        return self._client_factory().table(COMMENTS_TABLE)

    def list_comments(self, post_id: int) -> list[Comment]:
        """Return every comment of *post_id*, oldest first."""
        with backend_call("list_comments", post_id=post_id):
            result = (
                self._table()
                .select("*")
                .eq("post_id", post_id)
                .order("created_at", desc=False)
                .execute()
            )
        return [Comment(**row) for row in result.data or []]

    def get_comment(self, comment_id: int) -> Comment | None:
        """Return a single comment, or None when it does not exist."""
        with backend_call("get_comment", comment_id=comment_id):
            result = self._table().select("*").eq("id", comment_id).limit(1).execute()
        if not result.data:
            return None
        return Comment(**result.data[0])

    def create_comment(self, payload: CommentCreate) -> Comment:
        """Insert *payload* and return the stored row."""
        if not payload.author_id:
            raise AuthError("You must be logged in to comment")
        content = normalize_content(payload.content)
        row = payload.model_copy(update={"content": content}).to_row()

        with backend_call("create_comment", post_id=payload.post_id):
            result = self._table().insert(row).execute()

        if not result.data:
            raise TransportError("Backend did not return the created comment")
        comment = Comment(**result.data[0])
        logger.info(
            "comment_created",
            extra={
                "comment_id": comment.id,
                "post_id": comment.post_id,
                "parent_comment_id": comment.parent_comment_id,
            },
        )
        return comment

    def update_comment_content(self, comment_id: int, content: str) -> None:
        """Replace the body of *comment_id*.

        Raises ``NotFoundError`` when no row matched (already deleted).
        """
        text = normalize_content(content)
        with backend_call("update_comment_content", comment_id=comment_id):
            result = (
                self._table()
                .update({"content": text})
                .eq("id", comment_id)
                .execute()
            )
        if not result.data:
            raise NotFoundError(f"Comment {comment_id} no longer exists")
        logger.info("comment_updated", extra={"comment_id": comment_id})

    def delete_comment(self, comment_id: int) -> None:
        """Delete *comment_id*; deleting a missing comment is a no-op."""
        with backend_call("delete_comment", comment_id=comment_id):
            result = self._table().delete().eq("id", comment_id).execute()
        logger.info(
            "comment_deleted",
            extra={"comment_id": comment_id, "rows": len(result.data or [])},
        )


def get_comment_store() -> CommentStore:
    """FastAPI dependency returning the production comment store."""
    return SupabaseCommentStore()
