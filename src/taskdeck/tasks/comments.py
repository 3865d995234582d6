# src/taskdeck/tasks/comments.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from ..core.errors import NotFound, PermissionDenied
from .task_models import Actor, Comment, Task
from .task_store import EntityStore, MutationResult, new_id, require_text

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommentScope:
    """A comment thread: the task's own thread, or one subtask's thread."""

    task_id: str
    subtask_id: str | None = None

    def describe(self) -> str:
        if self.subtask_id:
            return f"task {self.task_id} / subtask {self.subtask_id}"
        return f"task {self.task_id}"


def can_delete(comment: Comment, requester: Actor) -> bool:
    return requester.is_admin or comment.created_by == requester.user_id


def _find(comments: list[Comment], comment_id: str, scope: CommentScope) -> Comment:
    for c in comments:
        if c.id == comment_id:
            return c
    raise NotFound("comment", comment_id, f"comment {comment_id!r} not found on {scope.describe()}")


class CommentService:
    """Threaded comments with like-toggling and owner/admin-gated deletion."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def list_comments(self, scope: CommentScope) -> list[Comment]:
        if scope.subtask_id:
            return list(self._store.get_subtask(scope.task_id, scope.subtask_id).comments)
        return list(self._store.get_task(scope.task_id).comments)

    def add_comment(self, scope: CommentScope, text: str, author: Actor) -> MutationResult[Task]:
        self.list_comments(scope)
        body = require_text(text, "text")

        comment = Comment(
            id=new_id()[:16],
            text=body,
            created_at=self._store.now(),
            created_by=author.user_id,
            created_by_name=author.display_name or "Unknown",
            created_by_photo_url=author.photo_url,
        )
        result = self._rewrite(scope, lambda comments: [*comments, comment])
        logger.info("Comment %s added on %s by %s", comment.id, scope.describe(), author.user_id)
        return result

    def toggle_like(self, scope: CommentScope, comment_id: str, user_id: str) -> MutationResult[Task]:
        """Like if not liked yet, otherwise unlike."""
        _find(self.list_comments(scope), comment_id, scope)

        def flip(comments: list[Comment]) -> list[Comment]:
            out: list[Comment] = []
            for c in comments:
                if c.id == comment_id:
                    likes = [u for u in c.likes if u != user_id] if user_id in c.likes else [*c.likes, user_id]
                    c = replace(c, likes=likes)
                out.append(c)
            return out

        return self._rewrite(scope, flip)

    def delete_comment(self, scope: CommentScope, comment_id: str, requester: Actor) -> MutationResult[Task]:
        comment = _find(self.list_comments(scope), comment_id, scope)
        if not can_delete(comment, requester):
            logger.warning(
                "Comment %s delete denied for user %s (owner %s)",
                comment_id,
                requester.user_id,
                comment.created_by,
            )
            raise PermissionDenied("Only the comment owner or an admin can delete this comment.")

        result = self._rewrite(scope, lambda comments: [c for c in comments if c.id != comment_id])
        logger.info("Comment %s deleted from %s by %s", comment_id, scope.describe(), requester.user_id)
        return result

    def _rewrite(
        self,
        scope: CommentScope,
        change: Callable[[list[Comment]], list[Comment]],
    ) -> MutationResult[Task]:
        if scope.subtask_id:
            return self._store.update_subtask(
                scope.task_id,
                scope.subtask_id,
                lambda st: replace(st, comments=change(st.comments)),
            )

        task = self._store.get_task(scope.task_id)
        updated = replace(task, comments=change(task.comments), updated_at=self._store.now())
        return self._store.commit_task(updated, ["comments", "updatedAt"])
