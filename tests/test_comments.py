# tests/test_comments.py

from __future__ import annotations

import pytest

from taskdeck.core.errors import NotFound, PermissionDenied, ValidationFailed
from taskdeck.tasks.comments import CommentScope, can_delete
from taskdeck.tasks.task_models import Actor


@pytest.fixture()
def task(store, alice):
    return store.create_task({"title": "Review", "due_date": "2024-01-05"}, alice).entity


def test_add_comment_to_task(comments, task, bob, clock, persistence) -> None:
    scope = CommentScope(task.id)
    result = comments.add_comment(scope, "  looks good  ", bob)

    [comment] = result.entity.comments
    assert comment.text == "looks good"
    assert comment.created_by == "bob"
    assert comment.created_by_name == "Bob"
    assert comment.created_at == clock.now()
    assert comment.likes == []
    assert comments.list_comments(scope) == [comment]

    _, _, _, fields = persistence.last_call()
    assert fields is not None and set(fields) == {"comments", "updatedAt"}


def test_comment_author_name_falls_back(comments, task) -> None:
    anon = Actor(user_id="ghost")
    comment = comments.add_comment(CommentScope(task.id), "boo", anon).entity.comments[0]
    assert comment.created_by_name == "Unknown"


def test_empty_comment_rejected(comments, task, alice) -> None:
    with pytest.raises(ValidationFailed):
        comments.add_comment(CommentScope(task.id), "   ", alice)
    assert comments.list_comments(CommentScope(task.id)) == []


def test_comment_on_unknown_scope(comments, task, alice) -> None:
    with pytest.raises(NotFound):
        comments.add_comment(CommentScope("missing"), "hi", alice)
    with pytest.raises(NotFound):
        comments.add_comment(CommentScope(task.id, "missing"), "hi", alice)


def test_subtask_thread_is_separate(comments, store, task, alice) -> None:
    task = store.add_subtask(task.id, "child").entity
    sub_scope = CommentScope(task.id, task.subtasks[0].id)

    comments.add_comment(sub_scope, "on the subtask", alice)

    assert [c.text for c in comments.list_comments(sub_scope)] == ["on the subtask"]
    assert comments.list_comments(CommentScope(task.id)) == []


def test_toggle_like_is_a_set_flip(comments, task, alice, bob) -> None:
    scope = CommentScope(task.id)
    comment = comments.add_comment(scope, "hi", alice).entity.comments[0]

    comments.toggle_like(scope, comment.id, "bob")
    comments.toggle_like(scope, comment.id, "carol")
    assert comments.list_comments(scope)[0].likes == ["bob", "carol"]

    comments.toggle_like(scope, comment.id, "bob")
    assert comments.list_comments(scope)[0].likes == ["carol"]

    comments.toggle_like(scope, comment.id, "carol")
    assert comments.list_comments(scope)[0].likes == []


def test_toggle_like_unknown_comment(comments, task) -> None:
    with pytest.raises(NotFound):
        comments.toggle_like(CommentScope(task.id), "nope", "bob")


def test_only_owner_or_admin_can_delete(comments, task, alice, bob, admin) -> None:
    scope = CommentScope(task.id)
    first = comments.add_comment(scope, "one", alice).entity.comments[0]
    second = comments.add_comment(scope, "two", alice).entity.comments[1]

    with pytest.raises(PermissionDenied):
        comments.delete_comment(scope, first.id, bob)
    assert len(comments.list_comments(scope)) == 2

    comments.delete_comment(scope, first.id, alice)
    comments.delete_comment(scope, second.id, admin)
    assert comments.list_comments(scope) == []


def test_can_delete_rule(alice, bob, admin, comments, task) -> None:
    comment = comments.add_comment(CommentScope(task.id), "x", alice).entity.comments[0]
    assert can_delete(comment, alice)
    assert can_delete(comment, admin)
    assert not can_delete(comment, bob)
