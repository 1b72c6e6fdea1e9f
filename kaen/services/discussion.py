"""Mounted discussions: one post, one viewer, one live reply tree.

A ``Discussion`` wires the synchronization policy, the renderer and the root
comment composer together.  Opening it loads the comments and starts polling
(when configured); closing it stops the poll job and unmounts every
controller so no late fetch or mutation writes into a torn-down view.  It is
also a context manager, so the poll job is released on every exit path.

``DiscussionRegistry`` keeps the discussions opened through the HTTP API and
closes the ones whose host page went away without closing them.
"""

from __future__ import annotations

import logging
import threading
import time
from types import TracebackType
from uuid import uuid4

from kaen.core.errors import NotFoundError, TransportError
from kaen.models.comment import Comment, Viewer
from kaen.models.discussion import DiscussionView, ThreadOptions
from kaen.models.enums import NodeAction
from kaen.scheduler.lock import InFlightGuard
from kaen.services.comment_tree import count_nodes
from kaen.services.comments import CommentStore
from kaen.services.controller import ThreadContext, ThreadRenderer, new_comment
from kaen.services.sync import CommentCache, CommentThreadSync

logger = logging.getLogger(__name__)


class Discussion:
    """The comment thread of one post as seen by one viewer."""

    def __init__(
        self,
        post_id: int,
        store: CommentStore,
        *,
        viewer: Viewer | None = None,
        options: ThreadOptions | None = None,
        session_id: str | None = None,
        cache: CommentCache | None = None,
    ) -> None:
        self.post_id = post_id
        self.viewer = viewer
        self.options = options or ThreadOptions.section()
        self.session_id = session_id or uuid4().hex
        self.store = store
        self.sync = CommentThreadSync(
            post_id,
            store,
            job_id=f"discussion:{self.session_id}",
            poll_interval_seconds=self.options.poll_interval_seconds,
            cache=cache,
        )
        self.renderer = ThreadRenderer(
            ThreadContext(
                viewer=viewer,
                store=store,
                options=self.options,
                on_refresh=self.sync.invalidate,
            )
        )
        self.composer_error: str | None = None
        self._composer_guard = InFlightGuard()
        self.last_seen = time.monotonic()

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def open(self) -> Discussion:
        """Load the comments and start polling."""
        self.sync.load()
        self.sync.start()
        logger.info(
            "discussion_opened",
            extra={
                "session_id": self.session_id,
                "post_id": self.post_id,
                "status": self.sync.status.value,
                "poll_interval_seconds": self.options.poll_interval_seconds,
            },
        )
        return self

    def close(self) -> None:
        """Stop polling and unmount every node."""
        if self.sync.closed:
            return
        self.sync.stop()
        self.renderer.unmount_all()
        logger.info(
            "discussion_closed",
            extra={"session_id": self.session_id, "post_id": self.post_id},
        )

    @property
    def closed(self) -> bool:
        return self.sync.closed

    def touch(self, now: float | None = None) -> None:
        """Record that the host page is still reading this discussion."""
        self.last_seen = time.monotonic() if now is None else now

    def __enter__(self) -> Discussion:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def view(self) -> DiscussionView:
        """Render the latest snapshot for the viewer."""
        self.sync.ensure_fresh()
        forest = self.sync.tree()
        return DiscussionView(
            session_id=self.session_id,
            post_id=self.post_id,
            status=self.sync.status,
            banner=self.sync.banner,
            viewer_id=self.viewer.id if self.viewer else None,
            can_comment=self.viewer is not None and not self._composer_guard.pending,
            composer_pending=self._composer_guard.pending,
            composer_error=self.composer_error,
            comment_count=count_nodes(forest),
            comments=self.renderer.render(forest),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def submit_comment(self, content: str) -> bool:
        """Post a root-level comment from the discussion's main composer."""
        payload = new_comment(self.post_id, self.viewer, content)
        if not self._composer_guard.acquire("create"):
            return False
        try:
            self.store.create_comment(payload)
        except TransportError as exc:
            if not self.closed:
                self.composer_error = exc.message
            return False
        finally:
            self._composer_guard.release()

        if not self.closed:
            self.composer_error = None
        self.sync.invalidate()
        return True

    def find_comment(self, comment_id: int) -> Comment:
        for comment in self.sync.comments():
            if comment.id == comment_id:
                return comment
        raise NotFoundError(f"Comment {comment_id} is not part of this discussion")

    def perform(
        self,
        comment_id: int,
        action: NodeAction,
        content: str | None = None,
    ) -> bool:
        """Apply *action* to one comment's controller.

        Returns False only when a mutation was not carried out (pending
        duplicate or backend failure, see the node's ``error``).
        """
        comment = self.find_comment(comment_id)
        controller = self.renderer.controller_for(comment_id)

        if action == NodeAction.edit:
            controller.begin_edit(comment)
        elif action == NodeAction.cancel_edit:
            controller.cancel_edit()
        elif action == NodeAction.save_edit:
            return controller.save_edit(comment, content)
        elif action == NodeAction.delete:
            controller.arm_delete(comment)
        elif action == NodeAction.cancel_delete:
            controller.cancel_delete()
        elif action == NodeAction.confirm_delete:
            return controller.confirm_delete(comment)
        elif action == NodeAction.reply:
            controller.open_reply()
        elif action == NodeAction.cancel_reply:
            controller.cancel_reply()
        elif action == NodeAction.submit_reply:
            return controller.submit_reply(comment, content)
        elif action == NodeAction.toggle_replies:
            controller.toggle_replies()
        return True


class DiscussionRegistry:
    """Discussions opened through the API, keyed by session id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Discussion] = {}

    def open_session(
        self,
        post_id: int,
        store: CommentStore,
        *,
        viewer: Viewer | None = None,
        options: ThreadOptions | None = None,
    ) -> Discussion:
        discussion = Discussion(post_id, store, viewer=viewer, options=options)
        with self._lock:
            self._sessions[discussion.session_id] = discussion
        return discussion.open()

    def get(self, session_id: str) -> Discussion:
        with self._lock:
            discussion = self._sessions.get(session_id)
        if discussion is None:
            raise NotFoundError(f"Discussion {session_id} is not open")
        discussion.touch()
        return discussion

    def close_session(self, session_id: str) -> bool:
        with self._lock:
            discussion = self._sessions.pop(session_id, None)
        if discussion is None:
            return False
        discussion.close()
        return True

    def close_all(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for discussion in sessions:
            discussion.close()
        return len(sessions)

    def close_idle(self, max_idle_seconds: float, now: float | None = None) -> int:
        """Close every discussion not read for *max_idle_seconds*."""
        now = time.monotonic() if now is None else now
        with self._lock:
            expired = [
                session_id
                for session_id, discussion in self._sessions.items()
                if now - discussion.last_seen >= max_idle_seconds
            ]
            sessions = [self._sessions.pop(session_id) for session_id in expired]
        for discussion in sessions:
            discussion.close()
            logger.info(
                "discussion_expired",
                extra={"session_id": discussion.session_id, "post_id": discussion.post_id},
            )
        return len(sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Module-level registry instance (singleton)
registry = DiscussionRegistry()


def get_registry() -> DiscussionRegistry:
    """FastAPI dependency returning the process-wide registry."""
    return registry
