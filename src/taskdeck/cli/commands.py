# src/taskdeck/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable, Iterable
from datetime import date
from typing import cast

from ..core.errors import NotFound, TrackerError, ValidationFailed
from ..core.state import AppState
from ..tasks.comments import CommentScope
from ..tasks.status import suggested_transitions
from ..tasks.task_models import Actor, Comment, Sprint, SprintStatus, Subtask, Task
from ..tasks.views import (
    BOARD_COLUMNS,
    ListFilters,
    board_view,
    calendar_month,
    due_urgency,
    list_view,
)

CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], Actor], str]
CommandHandler4 = Callable[[AppState, list[str], Actor, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)

SHORT_ID = 8


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        actor: Actor | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Tracker errors (not found, validation, permission) become the reply text.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        who = actor or state.operator

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        try:
            if nparams >= 4:
                h4 = cast(CommandHandler4, handler)
                return h4(state, args, who, emit)
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, who)
        except TrackerError as e:
            logger.info("/%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- lookup helpers ----


def _by_prefix(items: Iterable[tuple[str, object]], ref: str, kind: str) -> object:
    """Exact id wins; otherwise a unique id prefix."""
    ref = ref.strip()
    pairs = list(items)
    for item_id, item in pairs:
        if item_id == ref:
            return item
    matches = [item for item_id, item in pairs if ref and item_id.startswith(ref)]
    if not matches:
        raise NotFound(kind, ref)
    if len(matches) > 1:
        raise ValidationFailed(f"Ambiguous {kind} id {ref!r} ({len(matches)} matches); type more characters.")
    return matches[0]


def find_task(state: AppState, ref: str) -> Task:
    return cast(Task, _by_prefix(((t.id, t) for t in state.store.tasks()), ref, "task"))


def find_subtask(task: Task, ref: str) -> Subtask:
    return cast(Subtask, _by_prefix(((st.id, st) for st in task.subtasks), ref, "subtask"))


def find_sprint(state: AppState, ref: str) -> Sprint:
    return cast(Sprint, _by_prefix(((s.id, s) for s in state.store.sprints()), ref, "sprint"))


def find_scope(state: AppState, ref: str) -> tuple[Task, Subtask | None, CommentScope]:
    """A bare task ref targets the task thread; task/subtask targets a subtask thread."""
    task_ref, sep, sub_ref = ref.partition("/")
    task = find_task(state, task_ref)
    if not sep:
        return task, None, CommentScope(task.id)
    sub = find_subtask(task, sub_ref)
    return task, sub, CommentScope(task.id, sub.id)


def find_comment(state: AppState, scope: CommentScope, ref: str) -> Comment:
    comments = state.comments.list_comments(scope)
    return cast(Comment, _by_prefix(((c.id, c) for c in comments), ref, "comment"))


# ---- formatting ----


def _short(entity_id: str) -> str:
    return entity_id[:SHORT_ID]


def _fmt_due(task: Task) -> str:
    if task.due_date is None:
        return "no due date"
    return task.due_date.strftime("%Y-%m-%d %H:%M")


def format_task_line(task: Task, today: date) -> str:
    urgency = due_urgency(task, today)
    marker = f" !{urgency.value}" if urgency is not None else ""
    done = sum(1 for st in task.subtasks if st.completed)
    subs = f" ({done}/{len(task.subtasks)} subtasks)" if task.subtasks else ""
    return (
        f"{_short(task.id)}  [{task.status.value}] {task.priority.value:<6} "
        f"due {_fmt_due(task)}  {task.title}{subs}{marker}"
    )


def _parse_list_args(args: list[str]) -> tuple[int, ListFilters]:
    page = 1
    rest = list(args)
    if rest and rest[0].isdigit():
        page = int(rest.pop(0))

    status = "all"
    priority = "all"
    words: list[str] = []
    for token in rest:
        key, sep, value = token.partition(":")
        if sep and key.lower() == "status":
            status = value.lower()
        elif sep and key.lower() == "priority":
            priority = value.lower()
        else:
            words.append(token)

    return page, ListFilters(search=" ".join(words), status=status, priority=priority)


# ---- commands ----


def cmd_help(state: AppState, args: list[str], actor: Actor) -> str:
    return registry.build_help()


def cmd_tasks(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /tasks                      -> page 1 of all tasks
    /tasks 2                    -> page 2
    /tasks 1 report status:open -> search "report" among open tasks
    """
    page, filters = _parse_list_args(args)
    result = list_view(state.store.tasks(), filters, page=page, page_size=state.page_size)
    if not result.items:
        return "No tasks match."

    today = state.clock.now().date()
    lines = [f"Tasks page {result.page}/{result.total_pages} ({result.total} total):"]
    lines.extend("  " + format_task_line(t, today) for t in result.items)
    return "\n".join(lines)


def cmd_board(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /board      -> board of the active sprint (or everything if none is active)
    /board all  -> board of every task
    """
    sprint_id = None if args and args[0].lower() == "all" else state.sprints.active_sprint_id
    columns = board_view(state.store.tasks(), sprint_id=sprint_id)

    sprint = state.sprints.active_sprint() if sprint_id else None
    title = f"Board (sprint: {sprint.name})" if sprint else "Board (all tasks)"
    today = state.clock.now().date()

    lines = [title]
    for status in BOARD_COLUMNS:
        bucket = columns[status]
        lines.append(f"{status.value.upper()} ({len(bucket)})")
        lines.extend("  " + format_task_line(t, today) for t in bucket)
    return "\n".join(lines)


def cmd_calendar(state: AppState, args: list[str], actor: Actor) -> str:
    today = state.clock.now().date()
    year, month = today.year, today.month
    if args:
        raw_year, sep, raw_month = args[0].partition("-")
        if not sep or not raw_year.isdigit() or not raw_month.isdigit():
            return "Usage: /calendar [YYYY-MM]"
        year, month = int(raw_year), int(raw_month)
        if not date.min.year <= year <= date.max.year:
            return f"Usage: /calendar [YYYY-MM] (year {date.min.year}..{date.max.year})"

    cells = calendar_month(state.store.tasks(), year, month)

    lines = [f"{year:04d}-{month:02d}", " Su  Mo  Tu  We  Th  Fr  Sa"]
    row: list[str] = []
    for cell in cells:
        if cell.date is None:
            row.append("    ")
        else:
            row.append(f"{cell.day:>3}{'*' if cell.tasks else ' '}")
        if len(row) == 7:
            lines.append("".join(row).rstrip())
            row = []
    if row:
        lines.append("".join(row).rstrip())

    for cell in cells:
        if cell.tasks:
            titles = ", ".join(f"{t.title} [{t.status.value}]" for t in cell.tasks)
            lines.append(f"{cell.date.isoformat()}: {titles}")
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /add 2024-01-05T12:00 Prepare invoice
    /add 2024-01-05T12:00 priority:high Prepare invoice
    """
    if len(args) < 2:
        return "Usage: /add <YYYY-MM-DDTHH:MM> [priority:low|medium|high] <title>"

    fields: dict[str, str] = {"due_date": args[0]}
    words: list[str] = []
    for token in args[1:]:
        key, sep, value = token.partition(":")
        if sep and key.lower() == "priority" and "priority" not in fields:
            fields["priority"] = value.lower()
        else:
            words.append(token)
    fields["title"] = " ".join(words)

    task = state.store.create_task(fields, actor).entity
    return f"Task created {_short(task.id)}: {task.title} ({task.priority.value}, due {_fmt_due(task)})"


# /edit field name -> update_task field; values in CLEARABLE accept "none".
EDIT_FIELDS: dict[str, str] = {
    "title": "title",
    "desc": "description",
    "description": "description",
    "priority": "priority",
    "due": "due_date",
    "assignee": "assigned_to",
    "app": "app_id",
}
CLEARABLE = {"description", "assigned_to", "app_id"}


def cmd_edit(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /edit <task> title <text>
    /edit <task> desc <text|none>
    /edit <task> priority <low|medium|high>
    /edit <task> due <YYYY-MM-DDTHH:MM>
    /edit <task> assignee <user|none>
    /edit <task> app <app|none>
    """
    if len(args) < 3:
        return f"Usage: /edit <task> <{'|'.join(EDIT_FIELDS)}> <value>"
    task = find_task(state, args[0])

    field = EDIT_FIELDS.get(args[1].lower())
    if field is None:
        return f"Unknown field {args[1]!r}. Editable: {', '.join(EDIT_FIELDS)}"

    value: str | None = " ".join(args[2:])
    if field in CLEARABLE and value.lower() == "none":
        value = None

    updated = state.store.update_task(task.id, {field: value}).entity
    return f"Task {_short(task.id)} updated: {args[1].lower()} = {_edit_display(updated, field)}"


def _edit_display(task: Task, field: str) -> str:
    if field == "due_date":
        return _fmt_due(task)
    if field == "priority":
        return task.priority.value
    if field == "assigned_to":
        return task.assigned_to_name or task.assigned_to or "-"
    if field == "app_id":
        return task.app_name or task.app_id or "-"
    return str(getattr(task, field) or "-")


def cmd_status(state: AppState, args: list[str], actor: Actor) -> str:
    if not args:
        return "Usage: /status <task> <status>"
    task = find_task(state, args[0])
    if len(args) < 2:
        hints = ", ".join(s.value for s in suggested_transitions(task.status))
        return f"{_short(task.id)} is {task.status.value}. Next: {hints or '-'}"

    result = state.store.change_status(task.id, args[1])
    return f"{_short(task.id)}: {task.status.value} -> {result.entity.status.value}"


def cmd_rm(state: AppState, args: list[str], actor: Actor) -> str:
    if not args:
        return "Usage: /rm <task>"
    task = find_task(state, args[0])
    state.store.delete_task(task.id)
    return f"Task deleted {_short(task.id)}: {task.title}"


def cmd_sub(state: AppState, args: list[str], actor: Actor) -> str:
    if len(args) < 2:
        return "Usage: /sub <task> <title>"
    task = find_task(state, args[0])
    result = state.store.add_subtask(task.id, " ".join(args[1:]))
    sub = result.entity.subtasks[-1]
    return f"Subtask {sub.id[:SHORT_ID]} added to {_short(task.id)}: {sub.title}"


def cmd_subdone(state: AppState, args: list[str], actor: Actor) -> str:
    if len(args) < 2:
        return "Usage: /subdone <task> <subtask>"
    task = find_task(state, args[0])
    sub = find_subtask(task, args[1])
    state.store.toggle_subtask(task.id, sub.id)
    return f"Subtask {sub.title!r} marked {'open' if sub.completed else 'done'}."


def cmd_subdue(state: AppState, args: list[str], actor: Actor) -> str:
    """/subdue <task> <subtask> <YYYY-MM-DDTHH:MM|none>"""
    if len(args) < 3:
        return "Usage: /subdue <task> <subtask> <YYYY-MM-DDTHH:MM|none>"
    task = find_task(state, args[0])
    sub = find_subtask(task, args[1])
    due = None if args[2].lower() == "none" else args[2]

    updated = state.store.set_subtask_due_date(task.id, sub.id, due).entity
    st = updated.find_subtask(sub.id)
    if st is None or st.due_date is None:
        return f"Subtask {sub.title!r} has no due date now."
    return f"Subtask {sub.title!r} due {st.due_date.strftime('%Y-%m-%d %H:%M')}."


def cmd_comment(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /comment <task>[/<subtask>]          -> show the thread
    /comment <task>[/<subtask>] <text>   -> add a comment as the current operator
    """
    if not args:
        return "Usage: /comment <task>[/<subtask>] [text]"
    task, sub, scope = find_scope(state, args[0])
    where = _short(task.id) if sub is None else f"{_short(task.id)}/{sub.id[:SHORT_ID]}"

    if len(args) == 1:
        comments = state.comments.list_comments(scope)
        if not comments:
            return f"No comments on {where}."
        title = task.title if sub is None else sub.title
        lines = [f"Comments on {where} ({title}):"]
        for c in comments:
            likes = f" +{len(c.likes)}" if c.likes else ""
            lines.append(f"  {c.id[:SHORT_ID]} {c.created_by_name}: {c.text}{likes}")
        return "\n".join(lines)

    state.comments.add_comment(scope, " ".join(args[1:]), actor)
    comment = state.comments.list_comments(scope)[-1]
    return f"Comment {comment.id[:SHORT_ID]} added to {where}."


def cmd_like(state: AppState, args: list[str], actor: Actor) -> str:
    if len(args) < 2:
        return "Usage: /like <task>[/<subtask>] <comment>"
    _, _, scope = find_scope(state, args[0])
    target = find_comment(state, scope, args[1])
    state.comments.toggle_like(scope, target.id, actor.user_id)
    updated = find_comment(state, scope, target.id)
    verb = "Liked" if actor.user_id in updated.likes else "Unliked"
    return f"{verb} comment {updated.id[:SHORT_ID]} ({len(updated.likes)} likes)."


def cmd_uncomment(state: AppState, args: list[str], actor: Actor) -> str:
    """Owners delete their own comments; admins delete anyone's."""
    if len(args) < 2:
        return "Usage: /uncomment <task>[/<subtask>] <comment>"
    _, _, scope = find_scope(state, args[0])
    target = find_comment(state, scope, args[1])
    state.comments.delete_comment(scope, target.id, actor)
    return f"Comment {target.id[:SHORT_ID]} deleted."


def cmd_sprint(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /sprint                         -> list sprints
    /sprint new <name>              -> create (planning, 14 days from today)
    /sprint start|done|next <id>    -> activate / complete / advance
    /sprint assign <task> <id|none> -> move a task into (or out of) a sprint
    /sprint assignsub <task> <subtask> <id|none>  -> same for one subtask
    /sprint rm <id>                 -> delete sprint (tasks keep a dangling id)
    """
    sub = args[0].lower() if args else "list"
    rest = args[1:]

    if sub == "list":
        sprints = state.store.sprints()
        if not sprints:
            return "No sprints."
        lines = ["Sprints:"]
        for s in sprints:
            mark = "*" if s.id == state.sprints.active_sprint_id else " "
            count = len(state.sprints.tasks_in_sprint(s.id))
            lines.append(
                f" {mark}{_short(s.id)} [{s.status.value}] {s.name} "
                f"{s.start_date.isoformat()}..{s.end_date.isoformat()} ({count} tasks)"
            )
        return "\n".join(lines)

    if sub == "new":
        if not rest:
            return "Usage: /sprint new <name>"
        sprint = state.sprints.create_sprint({"name": " ".join(rest)}, actor).entity
        return (
            f"Sprint created {_short(sprint.id)}: {sprint.name} "
            f"({sprint.start_date.isoformat()}..{sprint.end_date.isoformat()})"
        )

    if sub in ("start", "done", "next", "rm"):
        if not rest:
            return f"Usage: /sprint {sub} <sprint>"
        sprint = find_sprint(state, rest[0])
        if sub == "rm":
            state.sprints.delete_sprint(sprint.id)
            return f"Sprint deleted {_short(sprint.id)}: {sprint.name}"
        if sub == "start":
            updated = state.sprints.set_sprint_status(sprint.id, SprintStatus.ACTIVE).entity
        elif sub == "done":
            updated = state.sprints.set_sprint_status(sprint.id, SprintStatus.COMPLETED).entity
        else:
            updated = state.sprints.advance_sprint(sprint.id).entity
        return f"Sprint {updated.name}: {sprint.status.value} -> {updated.status.value}"

    if sub == "assign":
        if len(rest) < 2:
            return "Usage: /sprint assign <task> <sprint|none>"
        task = find_task(state, rest[0])
        if rest[1].lower() == "none":
            state.sprints.assign_task_to_sprint(task.id, None)
            return f"Task {_short(task.id)} removed from its sprint."
        sprint = find_sprint(state, rest[1])
        state.sprints.assign_task_to_sprint(task.id, sprint.id)
        return f"Task {_short(task.id)} assigned to sprint {sprint.name}."

    if sub == "assignsub":
        if len(rest) < 3:
            return "Usage: /sprint assignsub <task> <subtask> <sprint|none>"
        task = find_task(state, rest[0])
        st = find_subtask(task, rest[1])
        if rest[2].lower() == "none":
            state.sprints.assign_subtask_to_sprint(task.id, st.id, None)
            return f"Subtask {st.title!r} removed from its sprint."
        sprint = find_sprint(state, rest[2])
        state.sprints.assign_subtask_to_sprint(task.id, st.id, sprint.id)
        return f"Subtask {st.title!r} assigned to sprint {sprint.name}."

    return "Unknown /sprint subcommand. Use: list | new | start | done | next | assign | assignsub | rm"


def cmd_alarms(state: AppState, args: list[str], actor: Actor) -> str:
    monitor = state.alarms
    keys = sorted(monitor.active_alarms, key=str)
    flags = []
    if monitor.muted:
        flags.append("muted")
    if monitor.sounding:
        flags.append("sounding")
    suffix = f" [{', '.join(flags)}]" if flags else ""

    if not keys:
        return f"No active alarms.{suffix}"

    lines = [f"Active alarms: {len(keys)}{suffix}"]
    for key in keys:
        try:
            task = state.store.get_task(key.task_id)
        except NotFound:
            lines.append(f"  {key} (deleted)")
            continue
        if key.subtask_id is None:
            lines.append(f"  {key}  {task.title} (due {_fmt_due(task)})")
        else:
            st = task.find_subtask(key.subtask_id)
            title = st.title if st is not None else "?"
            lines.append(f"  {key}  {title} in {task.title}")
    return "\n".join(lines)


def cmd_check(
    state: AppState,
    args: list[str],
    actor: Actor,
    emit: CommandEmitter | None = None,
) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("[ALARMS] Checking due items...")
    result = state.alarms.check_due_items()
    parts = [f"{len(result.active)} active"]
    if result.raised:
        parts.append("new: " + ", ".join(item.title for item in result.raised))
    if result.cleared:
        parts.append(f"{len(result.cleared)} cleared")
    return "Alarm check: " + "; ".join(parts)


def cmd_mute(state: AppState, args: list[str], actor: Actor) -> str:
    """
    /mute        -> toggle
    /mute on|off -> set explicitly
    """
    if args and args[0].lower() in ("on", "off"):
        state.alarms.set_muted(args[0].lower() == "on")
    else:
        state.alarms.toggle_mute()
    return f"Alarms {'muted' if state.alarms.muted else 'unmuted'}."


def cmd_stop(state: AppState, args: list[str], actor: Actor) -> str:
    state.alarms.stop_alarm()
    return f"Alarm silenced ({state.alarms.active_count} items still due)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [page] [search] [status:x] [priority:y].")
registry.register("board", cmd_board, help_text="Status board (active sprint): /board [all].")
registry.register("calendar", cmd_calendar, help_text="Month calendar of due dates: /calendar [YYYY-MM].")
registry.register("add", cmd_add, help_text="Create a task: /add <YYYY-MM-DDTHH:MM> [priority:x] <title>.")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <task> <title|desc|priority|due|assignee|app> <value>.")
registry.register("status", cmd_status, help_text="Change task status: /status <task> <status>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task>.")
registry.register("sub", cmd_sub, help_text="Add a subtask: /sub <task> <title>.")
registry.register("subdone", cmd_subdone, help_text="Toggle a subtask: /subdone <task> <subtask>.")
registry.register("subdue", cmd_subdue, help_text="Set a subtask due date: /subdue <task> <subtask> <YYYY-MM-DDTHH:MM|none>.")
registry.register("comment", cmd_comment, help_text="Show or add comments: /comment <task>[/<subtask>] [text].")
registry.register("like", cmd_like, help_text="Like/unlike a comment: /like <task>[/<subtask>] <comment>.")
registry.register("uncomment", cmd_uncomment, help_text="Delete a comment (owner or admin): /uncomment <task>[/<subtask>] <comment>.")
registry.register(
    "sprint", cmd_sprint, help_text="Sprints: /sprint [list|new|start|done|next|assign|assignsub|rm] ..."
)
registry.register("alarms", cmd_alarms, help_text="Show currently due items.")
registry.register("check", cmd_check, help_text="Run the alarm check now.")
registry.register("mute", cmd_mute, help_text="Mute/unmute alarms: /mute [on|off].")
registry.register("stop", cmd_stop, help_text="Silence the sounding alarm.")
