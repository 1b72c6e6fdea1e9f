"""Keeps a discussion's flat comment collection in step with the backend.

The collection for a post lives in ``CommentCache`` and is only ever replaced
wholesale by a completed fetch.  A discussion refreshes it:

* once when it is mounted,
* after every successful local mutation (invalidate, then re-fetch),
* on a fixed interval when polling is enabled, so that other users' new,
  edited and deleted comments show up.

Local state is never patched optimistically; the rendered tree is always
built from a real server snapshot.
"""

from __future__ import annotations

import logging
import threading

from kaen.core.errors import TransportError
from kaen.models.comment import Comment, CommentNode
from kaen.models.enums import DiscussionStatus
from kaen.scheduler.jobs import add_poll_job, remove_poll_job
from kaen.services.comment_tree import build_comment_tree
from kaen.services.comments import CommentStore

logger = logging.getLogger(__name__)


class CommentCache:
    """Flat comment collections keyed by post id.

    Every fetch takes a ticket from ``begin_fetch``; a completed fetch only
    replaces the entry if no later-started fetch has already been stored, so
    a slow poll cannot overwrite the snapshot taken after a mutation.

    Invalidation marks an entry stale: readers keep seeing the last snapshot
    until a fetch started after the invalidation replaces it.

    Entries are reference counted by the discussions showing the post and
    evicted when the last one lets go.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, tuple[Comment, ...]] = {}
        self._stale: dict[int, int] = {}
        self._issued: dict[int, int] = {}
        self._stored: dict[int, int] = {}
        self._holders: dict[int, int] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._holders.keys() | self._issued.keys())

    def retain(self, post_id: int) -> None:
        with self._lock:
            self._holders[post_id] = self._holders.get(post_id, 0) + 1

    def release(self, post_id: int) -> None:
        """Drop one holder; the post's entry is evicted with the last one."""
        with self._lock:
            holders = self._holders.get(post_id, 0) - 1
            if holders > 0:
                self._holders[post_id] = holders
                return
            self._holders.pop(post_id, None)
            self._entries.pop(post_id, None)
            self._stale.pop(post_id, None)
            self._issued.pop(post_id, None)
            self._stored.pop(post_id, None)
        logger.debug("comment_cache_evicted", extra={"post_id": post_id})

    def begin_fetch(self, post_id: int) -> int:
        with self._lock:
            ticket = self._issued.get(post_id, 0) + 1
            self._issued[post_id] = ticket
            return ticket

    def replace(self, post_id: int, comments: list[Comment], ticket: int) -> bool:
        """Store *comments* for *post_id*; False if a newer fetch already landed."""
        with self._lock:
            if post_id not in self._holders:
                return False
            if ticket <= self._stored.get(post_id, 0):
                return False
            self._entries[post_id] = tuple(comments)
            self._stored[post_id] = ticket
            invalidated_at = self._stale.get(post_id)
            if invalidated_at is not None and ticket > invalidated_at:
                del self._stale[post_id]
            return True

    def get(self, post_id: int) -> tuple[Comment, ...] | None:
        with self._lock:
            return self._entries.get(post_id)

    def is_fresh(self, post_id: int) -> bool:
        """True when a snapshot is stored and no invalidation is newer than it."""
        with self._lock:
            return post_id in self._entries and post_id not in self._stale

    def invalidate(self, post_id: int) -> None:
        """Mark the collection stale so the next read must re-fetch.

        Fetches already in flight may still store their snapshot, but only a
        fetch started after this call clears the stale mark.
        """
        with self._lock:
            if post_id in self._holders:
                self._stale[post_id] = self._issued.get(post_id, 0)


# Process-wide cache shared by every discussion of the same post
comment_cache = CommentCache()


class CommentThreadSync:
    """Fetch and refresh policy for one mounted discussion.

    Holds a reference on the post's cache entry from construction until
    ``stop``.  ``status`` and ``banner`` are written both from request
    threads and from the scheduler thread, always under ``_lock``.
    """

    def __init__(
        self,
        post_id: int,
        store: CommentStore,
        *,
        job_id: str,
        poll_interval_seconds: float | None = None,
        cache: CommentCache | None = None,
    ) -> None:
        self.post_id = post_id
        self.poll_interval_seconds = poll_interval_seconds
        self.status = DiscussionStatus.loading
        self.banner: str | None = None
        self._store = store
        self._cache = cache if cache is not None else comment_cache
        self._job_id = job_id
        self._lock = threading.Lock()
        self._polling = False
        self._closed = False
        self._cache.retain(post_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def polling(self) -> bool:
        return self._polling

    def load(self) -> bool:
        """Initial fetch; on failure the view shows a load-failure placeholder."""
        return self.refresh()

    def refresh(self, background: bool = False) -> bool:
        """Re-fetch the collection.

        Background failures are logged and swallowed so stale data stays on
        screen until the next tick.  Foreground failures set ``banner``.
        Returns True when a fresh snapshot was stored.
        """
        if self._closed:
            return False

        ticket = self._cache.begin_fetch(self.post_id)
        try:
            comments = self._store.list_comments(self.post_id)
        except TransportError as exc:
            if background:
                logger.warning(
                    "comment_poll_failed",
                    extra={"post_id": self.post_id, "error_message": exc.message},
                )
                return False
            with self._lock:
                if self._closed:
                    return False
                self.banner = exc.message
                if self.status != DiscussionStatus.ready:
                    self.status = DiscussionStatus.load_failed
            return False

        with self._lock:
            if self._closed:
                logger.debug("comment_fetch_discarded", extra={"post_id": self.post_id})
                return False
            self._cache.replace(self.post_id, comments, ticket)
            self.status = DiscussionStatus.ready
            self.banner = None
        return True

    def invalidate(self) -> bool:
        """Mark the cached collection stale and fetch a fresh one."""
        self._cache.invalidate(self.post_id)
        return self.refresh()

    def ensure_fresh(self) -> bool:
        """Re-fetch only when the cached snapshot is missing or stale."""
        if self._closed or self._cache.is_fresh(self.post_id):
            return False
        return self.refresh()

    def comments(self) -> list[Comment]:
        return list(self._cache.get(self.post_id) or ())

    def tree(self) -> list[CommentNode]:
        """Build the reply tree from the latest snapshot."""
        return build_comment_tree(self.comments())

    def _poll(self) -> None:
        self.refresh(background=True)

    def start(self) -> None:
        """Begin polling when an interval is configured."""
        if self._closed or self._polling or not self.poll_interval_seconds:
            return
        add_poll_job(self._job_id, self._poll, self.poll_interval_seconds)
        self._polling = True

    def stop(self) -> None:
        """Stop polling and let go of the cache entry.

        Later fetch completions are discarded.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._polling:
            remove_poll_job(self._job_id)
            self._polling = False
        self._cache.release(self.post_id)
