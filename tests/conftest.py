"""Shared test fixtures.

Provides a FastAPI ``test_client``, an in-memory ``CommentStore``, chainable
Supabase table mocks, and a scheduler patch so no real poll jobs run.
"""

import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from kaen.core.errors import AuthError, NotFoundError, TransportError
from kaen.models.comment import Comment, CommentCreate, Viewer
from kaen.services.comments import normalize_content

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

ALICE = Viewer(id="user-alice", display_name="alice", avatar_url="https://cdn.test/a.png")
BOB = Viewer(id="user-bob", display_name="bob")


def make_comment(
    comment_id: int,
    parent_id: int | None = None,
    *,
    post_id: int = 1,
    author_id: str = "user-alice",
    content: str | None = None,
) -> Comment:
    """Return a comment whose ``created_at`` grows with its id."""
    return Comment(
        id=comment_id,
        post_id=post_id,
        parent_comment_id=parent_id,
        content=content or f"comment {comment_id}",
        author_id=author_id,
        author_display_name=author_id.removeprefix("user-"),
        created_at=BASE_TIME + timedelta(minutes=comment_id),
    )


def chainable_table_mock(data: list[dict[str, Any]] | None = None) -> MagicMock:
    """Return a table mock supporting fluent chaining, ending in ``execute``."""
    m = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "limit", "order", "in_"):
        getattr(m, method).return_value = m
    m.execute.return_value = MagicMock(data=data if data is not None else [])
    return m


class FakeCommentStore:
    """In-memory ``CommentStore`` mirroring the Supabase store's contract."""

    def __init__(self, comments: list[Comment] | None = None) -> None:
        self.comments: list[Comment] = list(comments or [])
        self.calls: list[tuple[str, Any]] = []
        self.fail_with: TransportError | None = None
        self._next_id = max((c.id for c in self.comments), default=0) + 1

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def list_comments(self, post_id: int) -> list[Comment]:
        self.calls.append(("list", post_id))
        self._maybe_fail()
        rows = [c for c in self.comments if c.post_id == post_id]
        return sorted(rows, key=lambda c: c.created_at)

    def get_comment(self, comment_id: int) -> Comment | None:
        self.calls.append(("get", comment_id))
        self._maybe_fail()
        return next((c for c in self.comments if c.id == comment_id), None)

    def create_comment(self, payload: CommentCreate) -> Comment:
        self.calls.append(("create", payload))
        if not payload.author_id:
            raise AuthError("You must be logged in to comment")
        content = normalize_content(payload.content)
        self._maybe_fail()
        comment = Comment(
            id=self._next_id,
            post_id=payload.post_id,
            parent_comment_id=payload.parent_comment_id,
            content=content,
            author_id=payload.author_id,
            author_display_name=payload.author_display_name,
            author_avatar_url=payload.author_avatar_url,
            created_at=BASE_TIME + timedelta(minutes=self._next_id),
        )
        self._next_id += 1
        self.comments.append(comment)
        return comment

    def update_comment_content(self, comment_id: int, content: str) -> None:
        self.calls.append(("update", comment_id))
        text = normalize_content(content)
        self._maybe_fail()
        for idx, c in enumerate(self.comments):
            if c.id == comment_id:
                self.comments[idx] = c.model_copy(update={"content": text})
                return
        raise NotFoundError(f"Comment {comment_id} no longer exists")

    def delete_comment(self, comment_id: int) -> None:
        self.calls.append(("delete", comment_id))
        self._maybe_fail()
        self.comments = [c for c in self.comments if c.id != comment_id]

    def mutation_calls(self) -> list[tuple[str, Any]]:
        return [call for call in self.calls if call[0] in ("create", "update", "delete")]


@pytest.fixture()
def store() -> FakeCommentStore:
    """A store holding a small thread on post 1: 1 <- 2 <- 3, plus root 4 by bob."""
    return FakeCommentStore(
        [
            make_comment(1),
            make_comment(2, 1, author_id="user-bob"),
            make_comment(3, 2),
            make_comment(4, author_id="user-bob"),
        ]
    )


@pytest.fixture()
def mock_poll_jobs() -> Generator[dict[str, MagicMock], None, None]:
    """Patch poll job registration used by the sync policy."""
    with patch("kaen.services.sync.add_poll_job") as add_job, patch(
        "kaen.services.sync.remove_poll_job"
    ) as remove_job:
        yield {"add": add_job, "remove": remove_job}


@pytest.fixture()
def mock_supabase_module() -> Generator[MagicMock, None, None]:
    """Patch the Supabase client at module level in the health router."""
    mock_client = MagicMock()
    mock_client.table.return_value = chainable_table_mock()
    with patch("kaen.routers.health.get_supabase", return_value=mock_client):
        yield mock_client


@pytest.fixture()
def mock_supabase_disconnected() -> Generator[MagicMock, None, None]:
    """Patch ``get_supabase`` to simulate a disconnected database."""
    with patch(
        "kaen.routers.health.get_supabase",
        side_effect=Exception("Connection refused"),
    ):
        yield MagicMock()


@pytest.fixture()
def test_client(
    store: FakeCommentStore,
    mock_poll_jobs: dict[str, MagicMock],
) -> Generator[TestClient, None, None]:
    """Provide a FastAPI TestClient wired to the in-memory store."""
    from kaen.main import app
    from kaen.services.comments import get_comment_store
    from kaen.services.discussion import registry

    app.dependency_overrides[get_comment_store] = lambda: store
    with patch("kaen.main.start_scheduler"), patch("kaen.main.shutdown_scheduler"), patch(
        "kaen.main.add_idle_sweep_job"
    ):
        with TestClient(app) as client:
            yield client
    app.dependency_overrides.clear()
    registry.close_all()
