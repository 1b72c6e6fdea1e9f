"""Per-comment interaction state and recursive rendering of a reply tree.

Every comment shown in a discussion gets a ``CommentController`` holding its
transient UI state: the exclusive mode (viewing, editing, confirming a
delete), whether the reply composer is open, and the edit/reply buffers.
Controllers are keyed by comment id so their state survives tree rebuilds.

Mutations never patch the tree.  A successful save, delete or reply calls
the context's ``on_refresh`` callback, which invalidates the discussion's
comment collection; the next render reflects the fresh server snapshot.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from kaen.core.constants import ANONYMOUS_DISPLAY_NAME
from kaen.core.errors import AuthError, NotFoundError, TransportError, ValidationError
from kaen.models.comment import Comment, CommentCreate, CommentNode, Viewer
from kaen.models.discussion import CommentView, ThreadOptions
from kaen.models.enums import NodeMode
from kaen.scheduler.lock import InFlightGuard
from kaen.services.badges import badges_for
from kaen.services.comment_tree import iter_nodes
from kaen.services.comments import CommentStore, normalize_content

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreadContext:
    """Collaborators handed unchanged to every level of the tree."""
    viewer: Viewer | None
    store: CommentStore
    options: ThreadOptions
    on_refresh: Callable[[], object]


def new_comment(
    post_id: int,
    viewer: Viewer | None,
    content: str,
    parent_comment_id: int | None = None,
) -> CommentCreate:
    """Build the create payload for *viewer*, validating identity and content."""
    if viewer is None:
        raise AuthError("You must be logged in to comment")
    return CommentCreate(
        post_id=post_id,
        content=normalize_content(content),
        parent_comment_id=parent_comment_id,
        author_id=viewer.id,
        author_display_name=viewer.display_name or ANONYMOUS_DISPLAY_NAME,
        author_avatar_url=viewer.avatar_url,
    )


class CommentController:
    """Interaction state machine for a single rendered comment."""

    def __init__(self, comment_id: int, context: ThreadContext) -> None:
        self.comment_id = comment_id
        self.context = context
        self.mode = NodeMode.viewing
        self.replying = False
        self.replies_expanded = not context.options.collapse_replies
        self.edit_buffer: str | None = None
        self.reply_buffer = ""
        self.error: str | None = None
        self._guard = InFlightGuard()
        self._mounted = True

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @property
    def pending(self) -> bool:
        return self._guard.pending

    @property
    def mounted(self) -> bool:
        return self._mounted

    def unmount(self) -> None:
        """Detach from the UI; late mutation results write no state."""
        self._mounted = False

    def is_author(self, comment: Comment) -> bool:
        viewer = self.context.viewer
        return viewer is not None and viewer.id == comment.author_id

    def _require_author(self, comment: Comment) -> None:
        if not self.is_author(comment):
            raise AuthError("Only the author can change this comment")

    def _require_mode(self, mode: NodeMode) -> None:
        if self.mode != mode:
            raise ValidationError(f"Comment is {self.mode.value}, not {mode.value}")

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def begin_edit(self, comment: Comment) -> None:
        """Viewing -> Editing, with the buffer pre-filled from the comment."""
        self._require_author(comment)
        if self.pending or self.mode != NodeMode.viewing:
            return
        self.mode = NodeMode.editing
        self.edit_buffer = comment.content
        self.replying = False
        self.error = None

    def cancel_edit(self) -> None:
        if self.mode != NodeMode.editing or self.pending:
            return
        self.mode = NodeMode.viewing
        self.edit_buffer = None
        self.error = None

    def save_edit(self, comment: Comment, content: str | None = None) -> bool:
        """Send the edit buffer (or *content*) as the new body."""
        self._require_author(comment)
        self._require_mode(NodeMode.editing)
        if self.pending:
            return False
        if content is not None:
            self.edit_buffer = content
        text = normalize_content(self.edit_buffer)

        def succeeded() -> None:
            self.mode = NodeMode.viewing
            self.edit_buffer = None

        return self._mutate(
            "update",
            lambda: self.context.store.update_comment_content(comment.id, text),
            succeeded,
        )

    # ------------------------------------------------------------------
    # Two-step delete
    # ------------------------------------------------------------------

    def arm_delete(self, comment: Comment) -> None:
        """Viewing -> ConfirmingDelete."""
        self._require_author(comment)
        if self.pending or self.mode != NodeMode.viewing:
            return
        self.mode = NodeMode.confirming_delete
        self.replying = False
        self.error = None

    def cancel_delete(self) -> None:
        if self.mode != NodeMode.confirming_delete or self.pending:
            return
        self.mode = NodeMode.viewing
        self.error = None

    def confirm_delete(self, comment: Comment) -> bool:
        """Delete the comment; it disappears on the next rebuild."""
        self._require_author(comment)
        self._require_mode(NodeMode.confirming_delete)

        def succeeded() -> None:
            self.mode = NodeMode.viewing

        return self._mutate(
            "delete",
            lambda: self.context.store.delete_comment(comment.id),
            succeeded,
        )

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def open_reply(self) -> None:
        if self.context.viewer is None:
            raise AuthError("You must be logged in to reply")
        if self.mode != NodeMode.viewing:
            return
        self.replying = True
        self.error = None

    def cancel_reply(self) -> None:
        if self.pending:
            return
        self.replying = False
        self.reply_buffer = ""
        self.error = None

    def submit_reply(self, comment: Comment, content: str | None = None) -> bool:
        """Create a reply whose parent is this comment."""
        if not self.replying:
            raise ValidationError("Reply composer is not open")
        if self.pending:
            return False
        if content is not None:
            self.reply_buffer = content
        payload = new_comment(
            comment.post_id,
            self.context.viewer,
            self.reply_buffer,
            parent_comment_id=comment.id,
        )

        def succeeded() -> None:
            self.replying = False
            self.reply_buffer = ""
            self.replies_expanded = True

        return self._mutate(
            "reply",
            lambda: self.context.store.create_comment(payload),
            succeeded,
        )

    def toggle_replies(self) -> None:
        self.replies_expanded = not self.replies_expanded

    # ------------------------------------------------------------------
    # Mutation plumbing
    # ------------------------------------------------------------------

    def _mutate(
        self,
        operation: str,
        request: Callable[[], object],
        on_success: Callable[[], None],
    ) -> bool:
        """Issue one request, then refresh; returns False if nothing changed."""
        if not self._guard.acquire(operation):
            logger.info(
                "comment_mutation_ignored",
                extra={"comment_id": self.comment_id, "operation": operation},
            )
            return False

        try:
            try:
                request()
            except NotFoundError:
                # Someone else removed it first; the refetch reconciles the view
                logger.info(
                    "comment_mutation_target_missing",
                    extra={"comment_id": self.comment_id, "operation": operation},
                )
            except TransportError as exc:
                logger.warning(
                    "comment_mutation_failed",
                    extra={
                        "comment_id": self.comment_id,
                        "operation": operation,
                        "error_message": exc.message,
                    },
                )
                if self._mounted:
                    self.error = exc.message
                return False

            if self._mounted:
                on_success()
                self.error = None
        finally:
            self._guard.release()

        self.context.on_refresh()
        return True

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(
        self,
        node: CommentNode,
        depth: int,
        children: list[CommentView],
    ) -> CommentView:
        """Project *node* and this controller's state into a ``CommentView``."""
        options = self.context.options
        is_author = self.is_author(node)
        pending = self.pending
        viewing = self.mode == NodeMode.viewing
        editing = self.mode == NodeMode.editing
        replying = self.replying and viewing

        return CommentView(
            **node.model_dump(exclude={"children"}),
            depth=depth,
            mode=self.mode,
            replying=replying,
            replies_expanded=self.replies_expanded,
            reply_count=len(node.children),
            edit_buffer=self.edit_buffer if editing else None,
            reply_buffer=self.reply_buffer if replying else "",
            can_edit=is_author and viewing and not pending,
            can_delete=is_author and not pending and not editing,
            can_reply=self.context.viewer is not None and viewing and not pending,
            can_save=editing and not pending and bool((self.edit_buffer or "").strip()),
            can_submit_reply=replying and not pending and bool(self.reply_buffer.strip()),
            pending=pending,
            error=self.error,
            badges=(
                badges_for(node.author_id, options.community_owner_id, options.post_author_id)
                if options.show_badges
                else []
            ),
            children=children if self.replies_expanded else [],
        )


class ThreadRenderer:
    """Renders a comment forest and owns the controllers of its nodes."""

    def __init__(self, context: ThreadContext) -> None:
        self.context = context
        self._lock = threading.Lock()
        self._controllers: dict[int, CommentController] = {}

    def controller_for(self, comment_id: int) -> CommentController:
        with self._lock:
            controller = self._controllers.get(comment_id)
            if controller is None:
                controller = CommentController(comment_id, self.context)
                self._controllers[comment_id] = controller
            return controller

    def render(self, forest: list[CommentNode]) -> list[CommentView]:
        """Render every root, forgetting controllers of vanished comments."""
        live_ids = {node.id for node in iter_nodes(forest)}
        with self._lock:
            for comment_id in list(self._controllers):
                if comment_id not in live_ids:
                    self._controllers.pop(comment_id).unmount()
        return [self._render_node(node, 0) for node in forest]

    def _render_node(self, node: CommentNode, depth: int) -> CommentView:
        children = [self._render_node(child, depth + 1) for child in node.children]
        return self.controller_for(node.id).render(node, depth, children)

    def unmount_all(self) -> None:
        with self._lock:
            for controller in self._controllers.values():
                controller.unmount()
            self._controllers.clear()
