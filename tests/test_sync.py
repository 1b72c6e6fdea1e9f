"""Unit tests for the comment synchronization policy and scheduler helpers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeCommentStore, make_comment

from kaen.core.errors import TransportError
from kaen.models.enums import DiscussionStatus
from kaen.services.sync import CommentCache, CommentThreadSync


def _sync(
    store: FakeCommentStore,
    poll: float | None = None,
    cache: CommentCache | None = None,
) -> CommentThreadSync:
    return CommentThreadSync(
        1,
        store,
        job_id="discussion:test",
        poll_interval_seconds=poll,
        cache=cache if cache is not None else CommentCache(),
    )


class TestCommentCache:

    def test_replace_and_get(self) -> None:
        cache = CommentCache()
        cache.retain(1)
        ticket = cache.begin_fetch(1)

        assert cache.replace(1, [make_comment(1)], ticket) is True
        assert [c.id for c in cache.get(1) or ()] == [1]
        assert cache.is_fresh(1) is True

    def test_older_fetch_cannot_overwrite_newer(self) -> None:
        """Given two overlapping fetches, the later-started one wins."""
        cache = CommentCache()
        cache.retain(1)
        slow = cache.begin_fetch(1)
        fast = cache.begin_fetch(1)

        assert cache.replace(1, [make_comment(1), make_comment(2)], fast) is True
        assert cache.replace(1, [make_comment(1)], slow) is False
        assert [c.id for c in cache.get(1) or ()] == [1, 2]

    def test_invalidate_keeps_snapshot_but_marks_stale(self) -> None:
        cache = CommentCache()
        cache.retain(1)
        cache.replace(1, [make_comment(1)], cache.begin_fetch(1))

        cache.invalidate(1)

        assert cache.is_fresh(1) is False
        assert cache.get(1) is not None

    def test_fetch_started_before_invalidate_stays_stale(self) -> None:
        """Given a poll in flight across a mutation, its snapshot is not fresh."""
        cache = CommentCache()
        cache.retain(1)
        cache.replace(1, [make_comment(1)], cache.begin_fetch(1))
        poll_ticket = cache.begin_fetch(1)

        cache.invalidate(1)

        assert cache.replace(1, [make_comment(1)], poll_ticket) is True
        assert cache.is_fresh(1) is False
        assert cache.replace(1, [make_comment(1), make_comment(2)], cache.begin_fetch(1))
        assert cache.is_fresh(1) is True

    def test_posts_are_independent(self) -> None:
        cache = CommentCache()
        cache.retain(1)
        cache.replace(1, [make_comment(1)], cache.begin_fetch(1))

        assert cache.get(2) is None
        assert cache.is_fresh(2) is False

    def test_last_release_evicts_entry(self) -> None:
        cache = CommentCache()
        cache.retain(1)
        cache.retain(1)
        cache.replace(1, [make_comment(1)], cache.begin_fetch(1))

        cache.release(1)
        assert cache.get(1) is not None

        cache.release(1)
        assert cache.get(1) is None
        assert len(cache) == 0

    def test_untracked_posts_leave_nothing_behind(self) -> None:
        cache = CommentCache()

        cache.invalidate(7)
        assert cache.replace(7, [make_comment(1)], cache.begin_fetch(7)) is False
        cache.release(7)

        assert cache.get(7) is None
        assert len(cache) == 0


class TestLoadAndRefresh:

    def test_initial_load_builds_tree(self, store: FakeCommentStore) -> None:
        sync = _sync(store)

        assert sync.load() is True

        assert sync.status == DiscussionStatus.ready
        assert [n.id for n in sync.tree()] == [1, 4]

    def test_initial_load_failure_shows_placeholder(self, store: FakeCommentStore) -> None:
        store.fail_with = TransportError("Backend unavailable")
        sync = _sync(store)

        assert sync.load() is False

        assert sync.status == DiscussionStatus.load_failed
        assert sync.banner == "Backend unavailable"
        assert sync.tree() == []

    def test_background_failure_keeps_stale_data_silently(self, store: FakeCommentStore) -> None:
        sync = _sync(store)
        sync.load()
        store.fail_with = TransportError("flaky")

        assert sync.refresh(background=True) is False

        assert sync.status == DiscussionStatus.ready
        assert sync.banner is None
        assert len(sync.comments()) == 4

    def test_foreground_failure_sets_banner_and_keeps_data(self, store: FakeCommentStore) -> None:
        sync = _sync(store)
        sync.load()
        store.fail_with = TransportError("flaky")

        sync.invalidate()

        assert sync.status == DiscussionStatus.ready
        assert sync.banner == "flaky"
        assert len(sync.comments()) == 4

    def test_poll_recovers_after_failed_load(self, store: FakeCommentStore) -> None:
        store.fail_with = TransportError("down")
        sync = _sync(store)
        sync.load()
        store.fail_with = None

        assert sync.refresh(background=True) is True
        assert sync.status == DiscussionStatus.ready
        assert sync.banner is None

    def test_invalidate_refetches_other_users_changes(self, store: FakeCommentStore) -> None:
        sync = _sync(store)
        sync.load()
        store.comments.append(make_comment(9, 4, author_id="user-bob"))

        sync.invalidate()

        assert [c.id for c in sync.tree()[1].children] == [9]

    def test_late_poll_does_not_hide_failed_refetch(self, store: FakeCommentStore) -> None:
        """Given a pre-mutation poll landing after the refetch failed, the next read refetches."""
        cache = CommentCache()
        sync = _sync(store, cache=cache)
        sync.load()
        poll_ticket = cache.begin_fetch(1)
        before_reply = store.list_comments(1)
        store.comments.append(make_comment(9, 4, author_id="user-bob"))
        store.fail_with = TransportError("flaky")
        sync.invalidate()
        store.fail_with = None

        cache.replace(1, before_reply, poll_ticket)

        assert sync.ensure_fresh() is True
        assert [c.id for c in sync.tree()[1].children] == [9]

    def test_stop_releases_cache_entry(self, store: FakeCommentStore) -> None:
        cache = CommentCache()
        sync = _sync(store, cache=cache)
        sync.load()

        sync.stop()
        sync.stop()

        assert cache.get(1) is None
        assert len(cache) == 0

    def test_ensure_fresh_only_fetches_when_stale(self, store: FakeCommentStore) -> None:
        sync = _sync(store)
        sync.load()
        fetches = len(store.calls)

        assert sync.ensure_fresh() is False
        assert len(store.calls) == fetches


class TestPollingLifecycle:

    def test_start_registers_interval_job(
        self, store: FakeCommentStore, mock_poll_jobs: dict[str, MagicMock]
    ) -> None:
        sync = _sync(store, poll=5.0)

        sync.start()

        mock_poll_jobs["add"].assert_called_once()
        job_id, func, seconds = mock_poll_jobs["add"].call_args.args
        assert job_id == "discussion:test"
        assert seconds == 5.0
        assert sync.polling is True

        func()
        assert ("list", 1) in store.calls

    def test_polling_disabled(
        self, store: FakeCommentStore, mock_poll_jobs: dict[str, MagicMock]
    ) -> None:
        sync = _sync(store, poll=None)

        sync.start()

        mock_poll_jobs["add"].assert_not_called()
        assert sync.polling is False

    def test_stop_removes_job_and_discards_late_fetches(
        self, store: FakeCommentStore, mock_poll_jobs: dict[str, MagicMock]
    ) -> None:
        cache = CommentCache()
        cache.retain(1)  # another discussion of the same post
        sync = _sync(store, poll=5.0, cache=cache)
        sync.load()
        sync.start()

        sync.stop()
        store.comments.clear()

        mock_poll_jobs["remove"].assert_called_once_with("discussion:test")
        assert sync.refresh(background=True) is False
        assert len(cache.get(1) or ()) == 4

    def test_fetch_finishing_after_stop_is_dropped(self, store: FakeCommentStore) -> None:
        cache = CommentCache()
        cache.retain(1)
        sync = _sync(store, cache=cache)
        sync.load()
        real_list = store.list_comments

        def list_then_close(post_id: int):
            real_list(post_id)
            sync.stop()
            return []

        store.list_comments = list_then_close  # type: ignore[method-assign]

        assert sync.refresh() is False
        assert len(cache.get(1) or ()) == 4


class TestSchedulerJobs:
    """APScheduler helpers."""

    @patch("kaen.scheduler.jobs.scheduler")
    def test_add_poll_job(self, mock_scheduler: MagicMock) -> None:
        from kaen.scheduler.jobs import add_poll_job

        func = MagicMock()
        add_poll_job("discussion:abc", func, 5.0)

        mock_scheduler.add_job.assert_called_once()
        call = mock_scheduler.add_job.call_args
        assert call.args[0] is func
        assert call.kwargs.get("id") == "discussion:abc"
        assert call.kwargs.get("replace_existing") is True
        assert call.kwargs.get("max_instances") == 1

    @patch("kaen.scheduler.jobs.scheduler")
    def test_add_idle_sweep_job(self, mock_scheduler: MagicMock) -> None:
        from kaen.scheduler.jobs import add_idle_sweep_job

        close_idle = MagicMock()
        add_idle_sweep_job(close_idle, 300.0)

        call = mock_scheduler.add_job.call_args
        assert call.args[0] is close_idle
        assert call.kwargs.get("args") == [300.0]
        assert call.kwargs.get("id") == "discussion_idle_sweep"
        assert call.args[1].interval.total_seconds() == 30.0

    @patch("kaen.scheduler.jobs.scheduler")
    def test_remove_unknown_job_is_noop(self, mock_scheduler: MagicMock) -> None:
        from apscheduler.jobstores.base import JobLookupError

        from kaen.scheduler.jobs import remove_poll_job

        mock_scheduler.remove_job.side_effect = JobLookupError("missing")
        remove_poll_job("discussion:missing")

        mock_scheduler.remove_job.assert_called_once_with("discussion:missing")

    @patch("kaen.scheduler.jobs.scheduler")
    def test_shutdown_scheduler(self, mock_scheduler: MagicMock) -> None:
        from kaen.scheduler.jobs import shutdown_scheduler

        mock_scheduler.running = True
        shutdown_scheduler()

        mock_scheduler.shutdown.assert_called_once_with(wait=False)

    @patch("kaen.scheduler.jobs.scheduler")
    def test_start_scheduler_once(self, mock_scheduler: MagicMock) -> None:
        from kaen.scheduler.jobs import start_scheduler

        mock_scheduler.running = True
        start_scheduler()

        mock_scheduler.start.assert_not_called()


class TestInFlightGuard:

    def test_non_blocking_acquire(self) -> None:
        from kaen.scheduler.lock import InFlightGuard

        guard = InFlightGuard()
        assert guard.acquire("update") is True
        assert guard.pending is True
        assert guard.operation == "update"
        assert guard.acquire("delete") is False

        guard.release()
        assert guard.pending is False
        assert guard.acquire("delete") is True

    def test_release_without_acquire_raises(self) -> None:
        from kaen.scheduler.lock import InFlightGuard

        with pytest.raises(RuntimeError):
            InFlightGuard().release()
